"""Utility functions for the API."""

from .validators import (
    validate_email,
    validate_password,
    validate_name,
    validate_birthdate,
    validate_required_fields,
    sanitize_string,
    ValidationError,
)

# Security utilities
from .security import (
    safe_error_response,
    error_400,
    error_401,
    error_403,
    error_404,
    error_409,
    error_500,
    error_502,
    hash_password,
    verify_password,
    validate_image_file,
    ALLOWED_IMAGE_MIMES,
)

__all__ = [
    # Validators
    'validate_email',
    'validate_password',
    'validate_name',
    'validate_birthdate',
    'validate_required_fields',
    'sanitize_string',
    'ValidationError',
    # Security utilities
    'safe_error_response',
    'error_400',
    'error_401',
    'error_403',
    'error_404',
    'error_409',
    'error_500',
    'error_502',
    'hash_password',
    'verify_password',
    'validate_image_file',
    'ALLOWED_IMAGE_MIMES',
]

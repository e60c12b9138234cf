"""Security utilities for the iBarangay API.

Error responses, password hashing and upload validation shared by the
route modules.
"""
import logging
from typing import Dict, Optional, Set

import bcrypt
import magic
from flask import jsonify, current_app, has_app_context
from werkzeug.security import check_password_hash

from ibarangay.utils.validators import ValidationError


# =============================================================================
# Error responses
# =============================================================================

def safe_error_response(
    message: str,
    exception: Optional[Exception] = None,
    status_code: int = 500,
    code: str = None,
    log_level: str = 'error'
) -> tuple:
    """
    Build a JSON error body and log the underlying exception.

    Clients get ``{'error': message}`` (plus ``code`` when given). The
    exception text is added under ``details`` only in debug mode; app.py
    strips it otherwise.
    """
    body = {'error': message}
    if code:
        body['code'] = code

    logger = current_app.logger if has_app_context() else logging.getLogger(__name__)
    if exception is not None:
        getattr(logger, log_level, logger.error)("%s: %s: %s", message, type(exception).__name__, exception)
    else:
        getattr(logger, log_level, logger.error)(message)

    if exception is not None and has_app_context() and current_app.config.get('DEBUG'):
        body['details'] = str(exception)
        body['exception_type'] = type(exception).__name__

    return jsonify(body), status_code


def error_400(message: str = "Bad request", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 400, code, 'warning')


def error_401(message: str = "Unauthorized", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 401, code, 'warning')


def error_403(message: str = "Forbidden", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 403, code, 'warning')


def error_404(message: str = "Not found", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 404, code, 'info')


def error_409(message: str = "Conflict", exception: Exception = None, code: str = None):
    """Duplicate email and similar uniqueness conflicts."""
    return safe_error_response(message, exception, 409, code, 'warning')


def error_500(message: str = "Internal server error", exception: Exception = None, code: str = None):
    return safe_error_response(message, exception, 500, code, 'error')


def error_502(message: str = "Upstream service error", exception: Exception = None, code: str = None):
    """Failure of a hosted dependency (AI model, storage)."""
    return safe_error_response(message, exception, 502, code, 'error')


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against hash, supporting both bcrypt and Werkzeug formats."""
    if not password_hash:
        return False

    # Werkzeug hashes (scrypt, pbkdf2) from older seed scripts
    if password_hash.startswith(('scrypt:', 'pbkdf2:')):
        return check_password_hash(password_hash, password)

    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


# =============================================================================
# Upload Validation
# =============================================================================

# Content types accepted for each image extension
IMAGE_MIME_TYPE_MAP: Dict[str, Set[str]] = {
    'jpg': {'image/jpeg', 'image/pjpeg', 'image/jpg'},
    'jpeg': {'image/jpeg', 'image/pjpeg', 'image/jpg'},
    'png': {'image/png', 'image/x-png'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
}

IMAGE_EXTENSION_MIMES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
}

ALLOWED_IMAGE_MIMES: Set[str] = set().union(*IMAGE_MIME_TYPE_MAP.values())


def detect_mime_type(file) -> str:
    """Detect the content type of ``file`` from its first 2048 bytes."""
    file.seek(0)
    header = file.read(2048)
    file.seek(0)
    return magic.from_buffer(header, mime=True)


def validate_image_file(file, max_size_mb: int = 5) -> str:
    """
    Validate an uploaded image by extension, declared type, content and size.

    The file's magic bytes must identify an image of the same kind as its
    extension; the client-supplied content type is only a first filter.

    Returns:
        The content type to store the file with

    Raises:
        ValidationError: If the file is not an acceptable image
    """
    filename = getattr(file, 'filename', None) or ''
    if '.' not in filename:
        raise ValidationError('file', 'File must have an extension')

    ext = filename.rsplit('.', 1)[1].lower()
    if ext not in IMAGE_EXTENSION_MIMES:
        raise ValidationError(
            'file',
            f'File type not allowed. Allowed: {", ".join(sorted(IMAGE_EXTENSION_MIMES))}'
        )

    declared = (getattr(file, 'content_type', None) or '').lower()
    if declared and declared not in ALLOWED_IMAGE_MIMES:
        raise ValidationError('file', f'File content type {declared} is not an image')

    file.seek(0, 2)
    size = file.tell()
    file.seek(0)
    if size == 0:
        raise ValidationError('file', 'File is empty')
    if size > max_size_mb * 1024 * 1024:
        raise ValidationError('file', f'File size exceeds {max_size_mb}MB limit')

    detected = detect_mime_type(file)
    if detected not in IMAGE_MIME_TYPE_MAP[ext]:
        if has_app_context():
            current_app.logger.warning("Rejected upload %s: .%s file detected as %s", filename, ext, detected)
        raise ValidationError('file', f'File content does not match .{ext} (detected {detected})')

    return IMAGE_EXTENSION_MIMES[ext]

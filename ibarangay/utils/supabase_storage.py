"""
File storage for iBarangay uploads.

Uses the Supabase Storage REST API directly (no supabase package needed).
When Supabase credentials are not configured the file is written below
UPLOAD_FOLDER instead and served from /uploads.

Storage layout:
    residents/{resident_id}/{filename}      profile pictures
    staff/{user_id}/{filename}              officials' profile pictures
    barangay-seals/{timestamp}-{filename}   barangay seal / logo

Usage:
    from ibarangay.utils.supabase_storage import (
        upload_profile_picture,
        upload_seal,
        delete_file,
    )
"""
from __future__ import annotations

import os
import logging
from typing import Optional, Tuple, BinaryIO

import requests
from flask import current_app
from werkzeug.utils import secure_filename

from ibarangay.utils.security import validate_image_file
from ibarangay.utils.time import utc_now

logger = logging.getLogger(__name__)

STORAGE_BUCKET = 'ibarangay-files'
LOCAL_URL_PREFIX = '/uploads'
UPLOAD_TIMEOUT_SECONDS = 30


class SupabaseStorageError(Exception):
    """Custom exception for Supabase Storage operations."""
    pass


def _get_supabase_config() -> Optional[Tuple[str, str]]:
    """Return (url, service key), or None when storage is not configured."""
    supabase_url = current_app.config.get('SUPABASE_URL')
    supabase_key = (
        current_app.config.get('SUPABASE_SERVICE_KEY') or
        current_app.config.get('SUPABASE_KEY')
    )
    if not supabase_url or not supabase_key:
        return None
    return supabase_url.rstrip('/'), supabase_key


def _get_storage_bucket() -> str:
    return current_app.config.get('SUPABASE_STORAGE_BUCKET') or STORAGE_BUCKET


def _get_headers(service_key: str, content_type: Optional[str] = None) -> dict:
    """Get headers for Supabase REST API requests."""
    headers = {
        'Authorization': f'Bearer {service_key}',
        'apikey': service_key,
    }
    if content_type:
        headers['Content-Type'] = content_type
    return headers


def _upload_to_supabase(content: bytes, storage_path: str, content_type: str,
                        supabase_url: str, service_key: str) -> str:
    bucket = _get_storage_bucket()
    upload_url = f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}"
    headers = _get_headers(service_key, content_type)
    # Overwrite an existing object at the same path
    headers['x-upsert'] = 'true'

    try:
        response = requests.post(upload_url, headers=headers, data=content, timeout=UPLOAD_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.error(f"Supabase Storage upload failed: {e}")
        raise SupabaseStorageError(f"Upload failed: {e}")

    if response.status_code not in (200, 201):
        raise SupabaseStorageError(f"Upload failed: {response.status_code} - {response.text}")

    logger.info(f"File uploaded to Supabase Storage: {storage_path}")
    return f"{supabase_url}/storage/v1/object/public/{bucket}/{storage_path}"


def _save_to_filesystem(content: bytes, storage_path: str) -> str:
    base_dir = current_app.config.get('UPLOAD_FOLDER', 'uploads')
    file_path = os.path.join(base_dir, *storage_path.split('/'))
    os.makedirs(os.path.dirname(file_path), exist_ok=True)
    with open(file_path, 'wb') as f:
        f.write(content)
    logger.info(f"File saved to filesystem: {storage_path}")
    return f"{LOCAL_URL_PREFIX}/{storage_path}"


def upload_to_path(file: BinaryIO, storage_path: str, content_type: str) -> str:
    """
    Store ``file`` at ``storage_path`` and return its public URL.

    Raises:
        SupabaseStorageError: If the upload fails
    """
    if not storage_path:
        raise SupabaseStorageError("Storage path is required")

    file.seek(0)
    content = file.read()
    file.seek(0)

    config = _get_supabase_config()
    if config is None:
        return _save_to_filesystem(content, storage_path)
    supabase_url, service_key = config
    return _upload_to_supabase(content, storage_path, content_type, supabase_url, service_key)


def _safe_name(file) -> str:
    name = secure_filename(getattr(file, 'filename', None) or '')
    if not name:
        raise SupabaseStorageError('No filename provided')
    return name


# Convenience functions for specific file types

def upload_profile_picture(file: BinaryIO, resident_id: int) -> str:
    """Upload a resident profile picture; returns its URL."""
    content_type = validate_image_file(file, max_size_mb=5)
    storage_path = f"residents/{resident_id}/{_safe_name(file)}"
    return upload_to_path(file, storage_path, content_type)


def upload_staff_avatar(file: BinaryIO, user_id: int) -> str:
    """Upload an official's profile picture; officials have no resident record."""
    content_type = validate_image_file(file, max_size_mb=5)
    storage_path = f"staff/{user_id}/{_safe_name(file)}"
    return upload_to_path(file, storage_path, content_type)


def upload_seal(file: BinaryIO) -> str:
    """Upload the barangay seal; returns its URL."""
    content_type = validate_image_file(file, max_size_mb=5)
    timestamp = utc_now().strftime('%Y%m%dT%H%M%S')
    storage_path = f"barangay-seals/{timestamp}-{_safe_name(file)}"
    return upload_to_path(file, storage_path, content_type)


def delete_file(url: str) -> bool:
    """
    Delete a previously uploaded file by its URL.

    Returns:
        True if deleted successfully
    """
    if not url:
        return False

    if url.startswith(f"{LOCAL_URL_PREFIX}/"):
        base_dir = current_app.config.get('UPLOAD_FOLDER', 'uploads')
        relative = url[len(LOCAL_URL_PREFIX) + 1:]
        file_path = os.path.join(base_dir, *relative.split('/'))
        if os.path.isfile(file_path):
            os.remove(file_path)
            return True
        return False

    config = _get_supabase_config()
    if config is None:
        return False
    supabase_url, service_key = config
    bucket = _get_storage_bucket()
    marker = f"/storage/v1/object/public/{bucket}/"
    if marker not in url:
        return False
    storage_path = url.split(marker, 1)[1]

    try:
        response = requests.delete(
            f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}",
            headers=_get_headers(service_key),
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"Failed to delete file: {e}")
        return False

    if response.status_code in (200, 204):
        logger.info(f"File deleted from Supabase Storage: {storage_path}")
        return True
    logger.warning(f"Delete returned {response.status_code}: {response.text}")
    return False

"""
Validation of uploaded course materials and images.
"""
import os
import re
import logging
from typing import BinaryIO, Dict, Optional, Tuple

from .storage_config import (
    MATERIAL_MAX_UPLOAD_SIZE,
    IMAGE_MAX_UPLOAD_SIZE,
    MATERIAL_TYPES,
    IMAGE_TYPES,
    MATERIAL_SIGNATURES,
    IMAGE_SIGNATURES,
    DANGEROUS_SIGNATURES,
    format_bytes
)
from .api.exceptions import BadRequestException

logger = logging.getLogger(__name__)

HEADER_BYTES = 16


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client supplied filename to a safe storage name.

    Only the final path component is kept, and every character outside
    ``[A-Za-z0-9._-]`` becomes an underscore.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    if not filename or not filename.strip():
        return "unnamed_file"

    filename = filename.replace('\\', '/').split('/')[-1].strip()

    # No hidden files
    filename = filename.lstrip('.')

    filename = re.sub(r'[^A-Za-z0-9._-]', '_', filename)
    filename = re.sub(r'_+', '_', filename)

    name, dot, ext = filename.rpartition('.')
    if dot and name:
        filename = f"{name[:100]}.{ext[:10]}"
    else:
        filename = filename[:100]

    if not filename or filename.strip('_.') == '':
        return "unnamed_file"

    return filename


def get_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_file_extension(filename: str, allowed: Dict[str, str]) -> Tuple[bool, Optional[str]]:
    """
    Validate file extension against an allow-list.

    Returns:
        Tuple of (is_valid, error_message)
    """
    ext = get_extension(filename)

    if not ext:
        return False, "File must have an extension"

    if ext not in allowed:
        return False, f"File type '{ext}' is not allowed. Allowed types: {', '.join(sorted(allowed))}"

    return True, None


def validate_content_type(content_type: Optional[str], filename: str, allowed: Dict[str, str]) -> Tuple[bool, Optional[str]]:
    """
    Validate the declared MIME type. Browsers often send a generic type,
    so ``application/octet-stream`` and an empty type are accepted and the
    magic bytes decide.

    Returns:
        Tuple of (is_valid, error_message)
    """
    content_type = (content_type or '').split(';')[0].strip().lower()

    if content_type in ('', 'application/octet-stream'):
        return True, None

    expected = allowed.get(get_extension(filename))
    if content_type not in set(allowed.values()) or (expected and content_type != expected):
        return False, f"Content type '{content_type}' is not allowed"

    return True, None


def validate_file_size(file_size: int, max_size: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size against the limit.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size > max_size:
        return False, f"File size {format_bytes(file_size)} exceeds maximum allowed size of {format_bytes(max_size)}"

    if file_size == 0:
        return False, "Empty files are not allowed"

    return True, None


def read_header(file_data: BinaryIO, length: int = HEADER_BYTES) -> bytes:
    file_data.seek(0)
    header = file_data.read(length)
    file_data.seek(0)
    return header


def validate_file_signature(header: bytes, filename: str, signatures: Dict[str, Tuple[bytes, ...]]) -> Tuple[bool, Optional[str]]:
    """
    Check the magic bytes match what the extension claims.

    Returns:
        Tuple of (is_valid, error_message)
    """
    for signature, description in DANGEROUS_SIGNATURES.items():
        if header.startswith(signature):
            return False, f"File type not allowed: {description}"

    ext = get_extension(filename)
    expected = signatures.get(ext, ())

    if not any(header.startswith(sig) for sig in expected):
        return False, f"File content does not match a valid {ext.lstrip('.').upper()} file"

    if ext == '.webp' and header[8:12] != b'WEBP':
        return False, "File content does not match a valid WEBP file"

    return True, None


def validate_storage_path(path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate storage path to prevent directory traversal.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if '..' in path or path.startswith('/') or '\\' in path:
        return False, "Invalid storage path"

    if not re.fullmatch(r'[A-Za-z0-9._/-]+', path):
        return False, "Storage path contains invalid characters"

    return True, None


def _validate_upload(
    filename: str,
    content_type: Optional[str],
    file_size: int,
    file_data: BinaryIO,
    allowed: Dict[str, str],
    signatures: Dict[str, Tuple[bytes, ...]],
    max_size: int
) -> str:
    valid, error = validate_file_size(file_size, max_size)
    if not valid:
        raise BadRequestException(error)

    valid, error = validate_file_extension(filename, allowed)
    if not valid:
        raise BadRequestException(error)

    valid, error = validate_content_type(content_type, filename, allowed)
    if not valid:
        raise BadRequestException(error)

    valid, error = validate_file_signature(read_header(file_data), filename, signatures)
    if not valid:
        raise BadRequestException(error)

    logger.info(f"File validation passed for: {filename} ({format_bytes(file_size)})")
    return allowed[get_extension(filename)]


def validate_material_upload(filename: str, content_type: Optional[str], file_size: int, file_data: BinaryIO) -> str:
    """Validate a course material upload. Returns the canonical MIME type or raises BadRequestException."""
    return _validate_upload(filename, content_type, file_size, file_data,
                            MATERIAL_TYPES, MATERIAL_SIGNATURES, MATERIAL_MAX_UPLOAD_SIZE)


def validate_image_upload(filename: str, content_type: Optional[str], file_size: int, file_data: BinaryIO) -> str:
    """Validate an image upload. Returns the canonical MIME type or raises BadRequestException."""
    return _validate_upload(filename, content_type, file_size, file_data,
                            IMAGE_TYPES, IMAGE_SIGNATURES, IMAGE_MAX_UPLOAD_SIZE)

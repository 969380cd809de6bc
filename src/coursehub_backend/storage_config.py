"""
Upload limits, allow-lists and storage layout for course files.
"""
import os
from typing import Dict, Tuple

# Size limits
MATERIAL_MAX_UPLOAD_SIZE = int(os.environ.get('MATERIAL_MAX_UPLOAD_SIZE', 10 * 1024 * 1024))  # 10MB default
IMAGE_MAX_UPLOAD_SIZE = int(os.environ.get('IMAGE_MAX_UPLOAD_SIZE', 5 * 1024 * 1024))  # 5MB default

# Course materials: extension -> canonical MIME type
MATERIAL_TYPES: Dict[str, str] = {
    '.pdf': 'application/pdf',
    '.doc': 'application/msword',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.ppt': 'application/vnd.ms-powerpoint',
    '.pptx': 'application/vnd.openxmlformats-officedocument.presentationml.presentation',
}

# Images: extension -> canonical MIME type
IMAGE_TYPES: Dict[str, str] = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}

OLE_SIGNATURE = b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1'
ZIP_SIGNATURE = b'PK\x03\x04'

# Magic bytes each extension must start with
MATERIAL_SIGNATURES: Dict[str, Tuple[bytes, ...]] = {
    '.pdf': (b'%PDF',),
    '.doc': (OLE_SIGNATURE,),
    '.ppt': (OLE_SIGNATURE,),
    '.docx': (ZIP_SIGNATURE,),
    '.pptx': (ZIP_SIGNATURE,),
}

IMAGE_SIGNATURES: Dict[str, Tuple[bytes, ...]] = {
    '.jpg': (b'\xff\xd8\xff',),
    '.jpeg': (b'\xff\xd8\xff',),
    '.png': (b'\x89PNG\r\n\x1a\n',),
    '.gif': (b'GIF87a', b'GIF89a'),
    '.webp': (b'RIFF',),
}

# Executable signatures rejected regardless of extension
DANGEROUS_SIGNATURES: Dict[bytes, str] = {
    b'MZ': 'Windows executable',
    b'\x7fELF': 'Linux executable',
    b'\xfe\xed\xfa\xce': 'Mach-O executable (32-bit)',
    b'\xfe\xed\xfa\xcf': 'Mach-O executable (64-bit)',
    b'\xce\xfa\xed\xfe': 'Mach-O executable (reverse)',
    b'\xcf\xfa\xed\xfe': 'Mach-O executable (reverse 64-bit)',
    b'\xca\xfe\xba\xbe': 'Java class file',
}

# Storage path patterns
STORAGE_PATH_PATTERNS = {
    'course_material': 'course-materials/{course_id}/{filename}',
    'session_material': 'course-materials/{course_id}/sessions/{session_id}/{filename}',
    'profile_picture': 'profile-pictures/{user_id}/{filename}',
    'course_cover': 'course-covers/{course_id}/{filename}',
}

def format_bytes(bytes_size: int) -> str:
    """Format bytes to human readable string"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} TB"

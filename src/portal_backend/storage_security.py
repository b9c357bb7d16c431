"""
Security validation for media uploads.
"""
import os
import re
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    # Images
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.ico',
    # Video and audio
    '.mp4', '.webm', '.mov', '.mp3', '.wav', '.ogg',
    # Documents
    '.pdf', '.doc', '.docx', '.odt', '.txt', '.md', '.rtf',
    '.xls', '.xlsx', '.csv', '.ods', '.ppt', '.pptx', '.odp',
    # Archives
    '.zip', '.tar', '.gz', '.7z',
}

ARCHIVE_EXTENSIONS = {'.zip', '.tar', '.gz', '.7z'}

DOCUMENT_MIME_PREFIXES = ('application/pdf', 'application/msword', 'application/vnd.', 'text/')

DANGEROUS_SIGNATURES = {
    b'MZ': 'Windows executable',
    b'\x7fELF': 'Linux executable',
    b'\xfe\xed\xfa\xce': 'Mach-O executable (32-bit)',
    b'\xfe\xed\xfa\xcf': 'Mach-O executable (64-bit)',
    b'\xcf\xfa\xed\xfe': 'Mach-O executable (reverse 64-bit)',
    b'\xca\xfe\xba\xbe': 'Java class file',
}


def sanitize_filename(filename: str) -> str:
    """Final path component of `filename` with unsafe characters removed."""
    if not filename or not filename.strip():
        return "unnamed_file"

    filename = filename.replace('\\', '/').split('/')[-1]
    if not filename:
        return "unnamed_file"

    if filename.startswith('.'):
        filename = '_' + filename.lstrip('.')

    filename = re.sub(r'[^\w\s.-]', '', filename, flags=re.UNICODE)
    filename = re.sub(r'\s+', '_', filename)
    filename = filename.strip('. ')

    name, ext = os.path.splitext(filename)
    filename = f"{name[:100]}{ext}"

    if not filename or filename.strip('_') == '':
        filename = "unnamed_file"
    return filename


def validate_file_extension(filename: str) -> Tuple[bool, Optional[str]]:
    ext = os.path.splitext(filename)[1].lower()

    if not ext:
        return False, "File must have an extension"

    if ext not in ALLOWED_EXTENSIONS:
        return False, f"File type '{ext}' is not allowed. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

    return True, None


def check_file_content_security(head: bytes, filename: str) -> Tuple[bool, Optional[str]]:
    for signature, description in DANGEROUS_SIGNATURES.items():
        if head.startswith(signature):
            logger.warning(f"Rejected upload {filename}: {description}")
            return False, f"File content is not allowed ({description})"
    return True, None


def classify_file_type(mime_type: str, extension: str) -> str:
    mime_type = (mime_type or "").split(';')[0].strip().lower()
    if mime_type.startswith('image/'):
        return 'image'
    if mime_type.startswith('video/'):
        return 'video'
    if mime_type.startswith('audio/'):
        return 'audio'
    if extension.lower() in ARCHIVE_EXTENSIONS or mime_type in ('application/zip', 'application/x-tar', 'application/gzip'):
        return 'archive'
    if mime_type.startswith(DOCUMENT_MIME_PREFIXES):
        return 'document'
    return 'other'

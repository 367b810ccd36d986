"""Blob key layout for project images

Keys embed ownership so every blob of a project can be found by prefix:

    Clients/{client_id}/{invoice_month}/{project_id}/{category}{index}[_{suffix}].{ext}
"""

import secrets
from typing import Optional

from invoicer.services.errors import ValidationError

KEY_ROOT = "Clients"
DEFAULT_EXTENSION = "bin"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/pjpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/avif": "avif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/heic": "heic",
}


def extension_for(content_type: Optional[str]) -> str:
    """File extension for a declared content type, 'bin' when unknown"""
    if not content_type:
        return DEFAULT_EXTENSION
    mime = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_EXTENSIONS.get(mime, DEFAULT_EXTENSION)


def _segment(value, field: str) -> str:
    text = str(value).strip()
    if not text or "/" in text:
        raise ValidationError(f"{field} must be a non-empty path segment without '/'")
    return text


def validate_key_segments(client_id: str, invoice_month: str, category: str) -> None:
    """Reject ownership values that cannot be embedded in a key"""
    _segment(client_id, "client_id")
    _segment(invoice_month, "invoice_month")
    _segment(category, "category")


def project_prefix(client_id: str, invoice_month: str, project_id: int) -> str:
    """Prefix under which every blob of a project lives, with trailing slash"""
    return "/".join(
        [
            KEY_ROOT,
            _segment(client_id, "client_id"),
            _segment(invoice_month, "invoice_month"),
            _segment(project_id, "project_id"),
        ]
    ) + "/"


def new_disambiguator(length: int) -> str:
    """Random lowercase hex suffix of the given length"""
    return secrets.token_hex((length + 1) // 2)[:length]


def image_key(
    client_id: str,
    invoice_month: str,
    project_id: int,
    category: str,
    index: int,
    content_type: Optional[str],
    disambiguator: Optional[str] = None,
) -> str:
    """
    Build the blob key for one image.

    Args:
        client_id: Owning client
        invoice_month: Invoice month (YYYY-MM)
        project_id: Project id
        category: Project category, used as the file stem
        index: 1-based position within the project
        content_type: Declared content type, picks the extension
        disambiguator: Optional suffix that keeps update keys unique

    Returns:
        Blob key string
    """
    stem = f"{_segment(category, 'category')}{index}"
    if disambiguator:
        stem = f"{stem}_{disambiguator}"
    return f"{project_prefix(client_id, invoice_month, project_id)}{stem}.{extension_for(content_type)}"

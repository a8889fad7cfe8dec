"""
Centralized file type detection using magic bytes.

Upload validation and the local extractor both decide "PDF or image" from
the leading bytes here, never from the client-supplied file name.

Magic bytes reference:
- PDF:  %PDF (0x25504446)
- JPEG: 0xFFD8FF
- PNG:  0x89504E47 (89 P N G)
- TIFF: 0x49492A00 (little-endian) or 0x4D4D002A (big-endian)
- WEBP: RIFF....WEBP
"""

from typing import Final, Literal, Optional

FileType = Literal["pdf", "jpeg", "png", "tiff", "webp"]
MimeType = Literal["application/pdf", "image/jpeg", "image/png", "image/tiff", "image/webp"]

MAGIC_BYTES_MAP: Final[dict[bytes, tuple[FileType, MimeType]]] = {
    b"%PDF": ("pdf", "application/pdf"),
    b"\xff\xd8\xff": ("jpeg", "image/jpeg"),
    b"\x89PNG": ("png", "image/png"),
    b"\x49\x49\x2a\x00": ("tiff", "image/tiff"),
    b"\x4d\x4d\x00\x2a": ("tiff", "image/tiff"),
}

EXTENSIONS: Final[dict[str, str]] = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/tiff": "tiff",
    "image/webp": "webp",
}


def detect_file_type_from_bytes(
    header: bytes,
) -> Optional[tuple[FileType, MimeType]]:
    """
    Detect file type from magic bytes header.

    Args:
        header: First 12+ bytes of file

    Returns:
        Tuple of (file_type, mime_type) or None if unrecognized

    Example:
        >>> detect_file_type_from_bytes(b'%PDF-1.4')
        ('pdf', 'application/pdf')
    """
    for signature, result in MAGIC_BYTES_MAP.items():
        if header.startswith(signature):
            return result
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return ("webp", "image/webp")
    return None


def is_pdf(data: bytes, mime_type: Optional[str] = None) -> bool:
    """True when the payload is a PDF, by magic bytes first and MIME type second."""
    detected = detect_file_type_from_bytes(data[:12])
    if detected is not None:
        return detected[0] == "pdf"
    return mime_type == "application/pdf"


def extension_for(mime_type: str, file_name: Optional[str] = None) -> str:
    """Storage key extension for an upload."""
    if mime_type in EXTENSIONS:
        return EXTENSIONS[mime_type]
    if file_name and "." in file_name:
        return file_name.rsplit(".", 1)[1].lower()
    return "bin"

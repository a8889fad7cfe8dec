"""In-memory fakes and document builders shared by the unit tests."""

import io
import uuid
from typing import Any, Optional

from PIL import Image, ImageDraw
from pypdf import PdfWriter

from expense_ocr.pipeline.core.exceptions import StorageError
from expense_ocr.pipeline.models.dto import OcrJob, ProviderText
from expense_ocr.pipeline.providers.base import OcrProvider
from expense_ocr.pipeline.rasterizer.base import RasterStrategy
from expense_ocr.services.storage.base import StoredObject


def make_text_pdf(pages: list[list[str]]) -> bytes:
    """Minimal PDF with one Helvetica text line per entry, one list per page."""
    page_ids = [4 + 2 * i for i in range(len(pages))]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for page_id, lines in zip(page_ids, pages):
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {page_id + 1} 0 R >>"
            ).encode()
        )
        ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
        for line in lines:
            escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
            ops.append(f"({escaped}) Tj T*")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{number} 0 obj\n".encode() + body + b"\nendobj\n")
    xref = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode())
    for offset in offsets:
        out.write(f"{offset:010d} 00000 n \n".encode())
    out.write(
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref}\n%%EOF\n".encode()
    )
    return out.getvalue()


def make_blank_pdf(page_count: int = 1) -> bytes:
    """PDF with empty pages, the shape of a scanned document with no text layer."""
    writer = PdfWriter()
    for _ in range(page_count):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def make_damaged_pdf() -> bytes:
    """Blank one-page PDF with two bytes of its object structure flipped."""
    data = bytearray(make_blank_pdf())
    for offset in (136, 170):
        data[offset] ^= 0xFF
    return bytes(data)


def make_png(width: int = 200, height: int = 200, blank: bool = False) -> bytes:
    image = Image.new("RGB", (width, height), "white")
    if not blank:
        ImageDraw.Draw(image).rectangle((10, 10, 60, 60), fill="black")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeStorage:
    def __init__(self, fail_on: Optional[str] = None):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_on = fail_on

    def upload(self, data, organization_id, folder, file_name, content_type) -> StoredObject:
        if self.fail_on == "upload":
            raise StorageError("upload", file_name, "bucket unavailable")
        key = f"{organization_id}/{folder}/{uuid.uuid4()}.bin"
        self.objects[key] = data
        return StoredObject(url=f"memory://{key}", key=key, size=len(data))

    def download(self, key: str) -> bytes:
        if self.fail_on == "download" or key not in self.objects:
            raise StorageError("download", key, "object missing")
        return self.objects[key]

    def delete(self, key: str) -> None:
        if self.fail_on == "delete":
            raise StorageError("delete", key, "permission denied")
        self.deleted.append(key)
        self.objects.pop(key, None)


class FakePublisher:
    def __init__(self, error: Optional[Exception] = None, reachable: bool = True):
        self.published: list[tuple[dict[str, Any], str]] = []
        self.revoked: list[str] = []
        self.error = error
        self.reachable = reachable

    def publish(self, payload: dict[str, Any], task_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.published.append((payload, task_id))

    def ping(self) -> bool:
        return self.reachable

    def revoke(self, task_id: str) -> None:
        self.revoked.append(task_id)


class FakeProvider(OcrProvider):
    """Scripted provider: returns queued answers or raises queued errors in order."""

    def __init__(self, *answers, name: str = "fake", accepts_pdf: bool = False, missing: Optional[str] = None):
        self.answers = list(answers)
        self.name = name
        self.accepts_pdf = accepts_pdf
        self.missing = missing
        self.calls: list[tuple[bytes, str]] = []

    def missing_configuration(self) -> Optional[str]:
        return self.missing

    def recognize(self, data: bytes, mime_type: str) -> ProviderText:
        self.calls.append((data, mime_type))
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return ProviderText(answer, 0.9, self.name)


class FakeRasterStrategy(RasterStrategy):
    def __init__(self, pages=None, name: str = "fake", error: Optional[Exception] = None, available: bool = True):
        self.pages = pages or []
        self.name = name
        self.error = error
        self.available = available
        self.calls = 0

    def is_available(self) -> bool:
        return self.available

    def render(self, pdf_bytes: bytes, max_pages: int) -> list[bytes]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.pages[:max_pages]


class RecordingArtifacts:
    def __init__(self):
        self.pages: list[tuple[str, int]] = []

    def save_page(self, job_id: str, page_number: int, png: bytes) -> Optional[str]:
        self.pages.append((job_id, page_number))
        return f"pages/page_{page_number:03d}.png"


def make_job(**overrides) -> OcrJob:
    values = dict(
        job_id=str(uuid.uuid4()),
        organization_id="org-1",
        user_id="user-1",
        file_name="receipt.png",
        file_key="org-1/ocr-temp/receipt.png",
        file_url="memory://org-1/ocr-temp/receipt.png",
        file_type="image/png",
        file_size=1024,
    )
    values.update(overrides)
    return OcrJob(**values)



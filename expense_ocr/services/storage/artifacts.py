"""
Per-job run artifacts: rendered page images and the final result snapshot.

Layout: ``RUNS_DIR/<YYYY-MM-DD>/<job_id>/pages/page_001.png`` and
``RUNS_DIR/<YYYY-MM-DD>/<job_id>/result.json``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from expense_ocr.pipeline.core.config import PAGE_IMAGE_FILE, PAGES_DIR, RESULT_FILE
from expense_ocr.pipeline.models.dto import utcnow
from expense_ocr.pipeline.utils.io_utils import write_bytes_once, write_json

logger = logging.getLogger(__name__)


class LocalArtifactStore:
    def __init__(self, runs_dir: str | Path):
        self.runs_dir = Path(runs_dir)

    def job_dir(self, job_id: str) -> Path:
        return self.runs_dir / utcnow().strftime("%Y-%m-%d") / job_id

    def save_page(self, job_id: str, page_number: int, png: bytes) -> Optional[str]:
        path = self.job_dir(job_id) / PAGES_DIR / PAGE_IMAGE_FILE.format(page=page_number)
        if not write_bytes_once(path, png):
            logger.info(
                "Page artifact already present, keeping the first copy",
                extra={"job_id": job_id, "page": page_number},
            )
        return str(path)

    def save_result(self, job_id: str, result: dict[str, Any]) -> str:
        path = self.job_dir(job_id) / RESULT_FILE
        write_json(path, result)
        return str(path)

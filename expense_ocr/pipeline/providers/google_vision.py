"""Google Cloud Vision text detection."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import vision
from google.oauth2 import service_account

from expense_ocr.pipeline.core.config import GOOGLE_DEFAULT_CONFIDENCE, PROVIDER_TIMEOUT_SECONDS
from expense_ocr.pipeline.core.exceptions import ProviderError
from expense_ocr.pipeline.models.dto import ProviderText
from expense_ocr.pipeline.providers.base import OcrProvider, ProviderName

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIAL_FIELDS = ("type", "project_id", "private_key", "client_email")


def parse_service_account(raw_json: str) -> dict[str, Any]:
    """
    Parse service-account JSON from settings.

    Raises:
        ValueError: If the JSON is malformed or required fields are missing
    """
    info = json.loads(raw_json)
    missing = [f for f in REQUIRED_CREDENTIAL_FIELDS if not info.get(f)]
    if missing:
        raise ValueError(f"Invalid Google credentials, missing: {', '.join(missing)}")
    # keys pasted into env files often carry literal "\n"
    info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


class GoogleVisionProvider(OcrProvider):
    name = ProviderName.GOOGLE.value
    accepts_pdf = False

    def __init__(
        self,
        credentials_json: Optional[str] = None,
        credentials_path: Optional[str] = None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.credentials_json = credentials_json
        self.credentials_path = credentials_path
        self.timeout = timeout
        self._client: Optional[vision.ImageAnnotatorClient] = None

    def missing_configuration(self) -> Optional[str]:
        if self.credentials_json:
            return None
        if self.credentials_path and Path(self.credentials_path).exists():
            return None
        return "GOOGLE_CREDENTIALS_JSON / GOOGLE_APPLICATION_CREDENTIALS"

    def _get_client(self) -> vision.ImageAnnotatorClient:
        if self._client is None:
            if self.credentials_path and Path(self.credentials_path).exists():
                self._client = vision.ImageAnnotatorClient.from_service_account_file(
                    self.credentials_path
                )
            else:
                info = parse_service_account(self.credentials_json or "")
                credentials = service_account.Credentials.from_service_account_info(info)
                self._client = vision.ImageAnnotatorClient(credentials=credentials)
        return self._client

    def recognize(self, data: bytes, mime_type: str) -> ProviderText:
        try:
            client = self._get_client()
            response = client.text_detection(
                image=vision.Image(content=data), timeout=self.timeout
            )
        except ValueError as e:
            raise ProviderError(self.name, str(e), error_type="unconfigured") from e
        except google_exceptions.DeadlineExceeded as e:
            raise ProviderError(self.name, str(e), error_type="timeout") from e
        except google_exceptions.GoogleAPICallError as e:
            raise ProviderError(self.name, str(e)) from e

        if response.error.message:
            raise ProviderError(self.name, response.error.message)

        annotations = response.text_annotations
        if not annotations:
            return ProviderText("", 0.0, self.name)

        full_text = annotations[0].description or ""
        confidence = annotations[0].confidence or GOOGLE_DEFAULT_CONFIDENCE
        return ProviderText(
            full_text,
            float(confidence),
            self.name,
            {"text_annotations": len(annotations)},
        )

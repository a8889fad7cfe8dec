"""Azure AI Document Intelligence (Form Recognizer) read model."""

from __future__ import annotations

import io
import logging
from typing import Optional

from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError, ServiceRequestTimeoutError

from expense_ocr.pipeline.core.config import AZURE_DEFAULT_CONFIDENCE, PROVIDER_TIMEOUT_SECONDS
from expense_ocr.pipeline.core.exceptions import ProviderError
from expense_ocr.pipeline.models.dto import ProviderText
from expense_ocr.pipeline.providers.base import OcrProvider, ProviderName

logger = logging.getLogger(__name__)


class AzureDocumentProvider(OcrProvider):
    """Reads images and PDFs directly; no rasterization needed."""

    name = ProviderName.AZURE.value
    accepts_pdf = True

    def __init__(
        self,
        endpoint: Optional[str],
        api_key: Optional[str],
        model_id: str = "prebuilt-read",
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model_id = model_id
        self.timeout = timeout
        self._client: Optional[DocumentIntelligenceClient] = None

    def missing_configuration(self) -> Optional[str]:
        if not self.endpoint:
            return "AZURE_FORM_RECOGNIZER_ENDPOINT"
        if not self.api_key:
            return "AZURE_FORM_RECOGNIZER_KEY"
        return None

    def _get_client(self) -> DocumentIntelligenceClient:
        if self._client is None:
            self._client = DocumentIntelligenceClient(
                endpoint=self.endpoint, credential=AzureKeyCredential(self.api_key)
            )
        return self._client

    def recognize(self, data: bytes, mime_type: str) -> ProviderText:
        try:
            poller = self._get_client().begin_analyze_document(
                model_id=self.model_id, body=io.BytesIO(data)
            )
            result = poller.result(timeout=self.timeout)
        except ServiceRequestTimeoutError as e:
            raise ProviderError(self.name, str(e), error_type="timeout") from e
        except AzureError as e:
            raise ProviderError(self.name, str(e)) from e

        if result is None:
            raise ProviderError(self.name, "empty analyze result")

        words = [w for page in (result.pages or []) for w in (page.words or [])]
        scores = [w.confidence for w in words if w.confidence is not None]
        confidence = sum(scores) / len(scores) if scores else AZURE_DEFAULT_CONFIDENCE
        return ProviderText(
            result.content or "",
            round(float(confidence), 4),
            self.name,
            {"pages": len(result.pages or []), "model_id": self.model_id},
        )

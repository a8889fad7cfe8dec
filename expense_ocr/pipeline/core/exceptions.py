"""Custom exception hierarchy for expense OCR.

All exceptions inherit from BaseError and provide structured error information
compatible with RFC 7807 Problem Details for HTTP APIs. The same hierarchy is
used by the HTTP layer, the queue service and the background worker, so an
error raised deep in the pipeline carries its own status and retryability.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Error categories for classification and monitoring."""

    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    EXTERNAL_SERVICE = "external_service"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"


class BaseError(Exception):
    """Base exception for all expense OCR errors.

    Attributes:
        message: Human-readable error message
        error_code: Application-specific error code
        category: Error category for classification
        http_status: HTTP status code to return
        details: Additional context (dict)
        retryable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        http_status: int,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.http_status = http_status
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 Problem Details format.

        Returns:
            Dict containing standardized error information
        """
        return {
            "type": f"/errors/{self.error_code}",
            "title": self.message,
            "status": self.http_status,
            "code": self.error_code,
            "detail": self.details.get("detail"),
            "category": self.category.value,
            "retryable": self.retryable,
        }


class ClientError(BaseError):
    """Base for client errors (4xx). Not retryable."""

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.CLIENT_ERROR,
            http_status=kwargs.pop("http_status", 400),
            retryable=False,
            **kwargs,
        )


class ValidationError(ClientError):
    """Input validation failed (422 Unprocessable Entity).

    Args:
        message: Validation error description
        field: Name of the field that failed validation
        details: Additional validation context
    """

    def __init__(self, message: str, field: str, **kwargs):
        additional_details = kwargs.pop("details", {})
        additional_details["field"] = field
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            http_status=422,
            details=additional_details,
            **kwargs,
        )


class ResourceNotFoundError(ClientError):
    """Resource not found (404).

    Args:
        resource_type: Type of resource (e.g., "OCR job", "Stored object")
        resource_id: Identifier of the missing resource
    """

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"{resource_type} not found",
            error_code="RESOURCE_NOT_FOUND",
            http_status=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PayloadTooLargeError(ClientError):
    """Payload too large (413).

    Args:
        max_size_mb: Maximum allowed size in MB
        actual_size_mb: Actual file size in MB
    """

    def __init__(self, max_size_mb: int, actual_size_mb: float):
        super().__init__(
            message=f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb}MB)",
            error_code="PAYLOAD_TOO_LARGE",
            http_status=413,
            details={"max_size_mb": max_size_mb, "actual_size_mb": actual_size_mb},
        )


class InvalidJobTransitionError(ClientError):
    """A job status change would move the job backwards (409).

    Args:
        job_id: External job identifier
        current: Status the job is in now
        requested: Status that was requested
    """

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(
            message=f"Cannot move job from {current} to {requested}",
            error_code="INVALID_JOB_TRANSITION",
            http_status=409,
            details={"job_id": job_id, "current": current, "requested": requested},
        )


class UnreadableDocumentError(ClientError):
    """The document holds nothing the pipeline can read (422).

    Raised for corrupt or empty PDFs, undecodable images and documents where
    no backend produced any text at all. Retrying will not help.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="UNREADABLE_DOCUMENT",
            http_status=422,
            **kwargs,
        )


class RasterizationError(UnreadableDocumentError):
    """Every rasterization strategy failed for a scanned PDF."""

    def __init__(self, message: str = "Could not render any page of the PDF", **kwargs):
        super().__init__(message, **kwargs)
        self.error_code = "RASTERIZATION_FAILED"


class ServerError(BaseError):
    """Base for server errors (5xx). Some are retryable."""

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.SERVER_ERROR,
            http_status=kwargs.pop("http_status", 500),
            retryable=kwargs.pop("retryable", False),
            **kwargs,
        )


class ExternalServiceError(ServerError):
    """External service failure (502 Bad Gateway / 504 Gateway Timeout).

    Raised when external services (OCR providers, LLM, storage, broker) fail
    or time out. These errors are retryable as they may be transient.

    Args:
        service_name: Name of the external service
        error_type: Type of error ("timeout", "unavailable", "error", "circuit_open")
        details: Additional error context
    """

    def __init__(self, service_name: str, error_type: str, **kwargs):
        if error_type == "timeout":
            http_status = 504
        elif error_type in ("circuit_open", "unavailable"):
            http_status = 503
        else:
            http_status = 502

        additional_details = kwargs.pop("details", {})
        additional_details.update(
            {
                "service": service_name,
                "error_type": error_type,
            }
        )

        super().__init__(
            message=kwargs.pop("message", f"{service_name} service {error_type}"),
            error_code=f"{service_name.upper()}_{error_type.upper()}",
            http_status=http_status,
            retryable=True,
            details=additional_details,
            **kwargs,
        )


class BrokerUnavailableError(ExternalServiceError):
    """The job queue broker is not reachable; publishing was refused."""

    def __init__(self, reason: str = "broker not reachable", **kwargs):
        details = kwargs.pop("details", {})
        details["detail"] = reason
        super().__init__(
            service_name="QUEUE",
            error_type="unavailable",
            message=f"Queue unavailable: {reason}",
            details=details,
            **kwargs,
        )


class StorageError(ExternalServiceError):
    """Object storage upload, download or delete failed."""

    def __init__(self, operation: str, key: str, reason: str, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"operation": operation, "key": key, "detail": reason})
        super().__init__(
            service_name="STORAGE",
            error_type="error",
            message=f"Storage {operation} failed for {key}: {reason}",
            details=details,
            **kwargs,
        )


class ProviderError(ExternalServiceError):
    """An OCR provider call failed. Always absorbed by the provider adapter."""

    def __init__(
        self, provider: str, reason: str, error_type: str = "error", retryable: bool = True, **kwargs
    ):
        details = kwargs.pop("details", {})
        details["detail"] = reason
        super().__init__(
            service_name=provider,
            error_type=error_type,
            message=f"{provider} OCR failed: {reason}",
            details=details,
            **kwargs,
        )
        self.provider = provider
        self.retryable = retryable


class ProviderNotConfiguredError(ProviderError):
    """Provider credentials are missing; the adapter uses the local extractor."""

    def __init__(self, provider: str, missing: str):
        super().__init__(provider, f"not configured ({missing})", error_type="unconfigured", retryable=False)

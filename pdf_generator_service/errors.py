"""
Error taxonomy for the PDF generator.

Every failure the HTTP surface can report derives from PdfServiceError and
knows its status code and JSON payload, so routes raise and a single
exception handler renders.
"""

from typing import Any, Dict, Optional


class PdfServiceError(Exception):
    """Base class for failures reported to clients as structured payloads."""

    http_status: int = 500
    error: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.error,
            "message": self.message,
        }


class ValidationError(PdfServiceError):
    """Client sent an unusable request (e.g. no HTML)."""

    http_status = 400
    error = "HTML content is required"


class ArtifactNotFound(PdfServiceError):
    """Unknown, malformed or expired artifact id."""

    http_status = 404
    error = "PDF not found or has expired"

    def __init__(self, pdf_id: str):
        self.pdf_id = pdf_id
        super().__init__(f"No PDF available for id '{pdf_id}'")


class RenderFailure(PdfServiceError):
    """Engine or session error during load, paint or persist."""

    http_status = 500
    error = "Failed to generate PDF"


class RenderTimeout(RenderFailure):
    """Content did not settle before the load deadline."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Content did not finish loading within {timeout_ms}ms")


class ServiceOverloaded(PdfServiceError):
    """Admission control rejected the render."""

    http_status = 503
    error = "Service overloaded"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Too many concurrent PDF renders (limit {limit})")


class EngineUnavailable(PdfServiceError):
    """The shared browser was never launched or has gone away."""

    http_status = 503
    error = "Rendering engine unavailable"


class EngineLaunchFailure(PdfServiceError):
    """Chromium could not be launched; the service must not start."""

    error = "Rendering engine failed to launch"


class DiagnosticsDisabled(PdfServiceError):
    """Debug endpoint requested on a deployment without DEBUG_DIAGNOSTICS."""

    http_status = 404
    error = "Not found"

    def __init__(self):
        super().__init__("Diagnostics are disabled on this deployment")

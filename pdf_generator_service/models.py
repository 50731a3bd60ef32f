"""
Pydantic models for the PDF generator API.

Field names follow the public JSON contract (camelCase) so existing clients
keep working.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


DEFAULT_MARGIN = "1cm"


class Margin(BaseModel):
    """
    Page margins in CSS units.

    Sides left out of a client-supplied margin stay unset (no margin);
    the 1cm default applies only when no margin object is sent at all.
    """

    top: Optional[str] = None
    right: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None

    @classmethod
    def default(cls) -> "Margin":
        return cls(top=DEFAULT_MARGIN, right=DEFAULT_MARGIN, bottom=DEFAULT_MARGIN, left=DEFAULT_MARGIN)


class PdfOptions(BaseModel):
    """Page layout options passed to Chromium's print-to-PDF."""

    format: str = Field("A4", description="Paper format, e.g. A4, Letter, Legal")
    margin: Margin = Field(default_factory=Margin.default, description="Page margins")
    printBackground: bool = Field(True, description="Print background colors/images")
    preferCSSPageSize: bool = Field(False, description="Let CSS @page size win over format")

    def to_playwright(self) -> Dict[str, Any]:
        """Keyword arguments for ``Page.pdf``."""
        return {
            "format": self.format,
            "margin": self.margin.model_dump(exclude_none=True),
            "print_background": self.printBackground,
            "prefer_css_page_size": self.preferCSSPageSize,
        }


class RenderRequest(BaseModel):
    """HTML to PDF request."""

    # Optional here so a missing field gets the service's own 400 message
    html: Optional[str] = Field(None, description="HTML content to render")
    options: PdfOptions = Field(default_factory=PdfOptions)
    baseUrl: Optional[str] = Field(
        None,
        description="Location used to resolve relative image and asset references"
    )

    @field_validator("baseUrl")
    @classmethod
    def blank_base_url_is_absent(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class RenderResponse(BaseModel):
    """Successful render: where and until when the PDF can be fetched."""

    success: bool = True
    pdfId: str
    downloadUrl: str
    expiresAt: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    timestamp: datetime
    browser_connected: bool
    active_sessions: int

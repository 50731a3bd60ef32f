"""
PDF Generator Service - FastAPI application.

Converts submitted HTML to PDF with a shared Playwright/Chromium instance
and returns a download link valid for five minutes.
"""

import asyncio
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from . import __version__
from .artifacts import ArtifactStore
from .browser import BrowserManager
from .config import get_settings, validate_config_on_startup
from .diagnostics import DiagnosticRecorder
from .errors import DiagnosticsDisabled, PdfServiceError, ServiceOverloaded
from .models import HealthResponse, RenderRequest, RenderResponse
from .origins import is_origin_allowed, origin_regex
from .renderer import render_to_artifact

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PDF Generator API",
    version=__version__,
    description="HTML to PDF conversion with short-lived download links"
)

browser_manager = BrowserManager(
    headless=settings.headless,
    executable_path=settings.chromium_executable_path,
)
artifact_store = ArtifactStore(settings.pdf_dir)
diagnostic_recorder = DiagnosticRecorder()

# Admission control is opt-in; unset means unbounded concurrent renders
_render_semaphore: Optional[asyncio.Semaphore] = (
    asyncio.Semaphore(settings.max_concurrent_renders)
    if settings.max_concurrent_renders
    else None
)


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def startup() -> None:
    """
    Prepare storage and launch Chromium.

    A launch failure propagates so uvicorn aborts startup instead of serving
    requests that could never render.
    """
    validate_config_on_startup()

    artifact_store.ensure_directory()
    artifact_store.recover()
    artifact_store.schedule_pending()

    await browser_manager.initialize()
    logger.info(f"PDF Generator API ready on port {settings.port}")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Close Chromium and drop pending expiry timers."""
    logger.info("Shutting down PDF Generator API...")
    artifact_store.cancel_pending()
    await browser_manager.shutdown()


# ============================================================================
# Middleware & error handling
# ============================================================================

@app.middleware("http")
async def enforce_origin_policy(request: Request, call_next):
    """Reject cross-origin callers outside the trusted domain."""
    origin = request.headers.get("origin")
    if not is_origin_allowed(origin, settings.trusted_origin_domain):
        logger.warning(f"Rejected request from origin {origin}")
        return JSONResponse(
            status_code=403,
            content={
                "success": False,
                "error": "Not allowed by CORS",
                "message": f"Origin '{origin}' is not allowed",
            },
        )
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=origin_regex(settings.trusted_origin_domain),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PdfServiceError)
async def pdf_service_error_handler(request: Request, exc: PdfServiceError) -> JSONResponse:
    """Render every service error as a structured JSON payload."""
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def _public_base(request: Request) -> str:
    """Configured BASE_URL, else the inbound request's scheme and host."""
    if settings.base_url:
        return settings.base_url
    return f"{request.url.scheme}://{request.url.netloc}"


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe with browser status."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        browser_connected=browser_manager.is_connected,
        active_sessions=browser_manager.active_sessions,
    )


@app.get("/")
async def root():
    """Describe the API and how to call it."""
    endpoints = {
        "health": "GET /health",
        "generate": "POST /api/generate-pdf",
        "download": "GET /api/download/:pdfId",
    }
    if settings.debug_diagnostics:
        endpoints["debug"] = "GET /api/debug/last-request"

    return {
        "message": "PDF Generator API",
        "version": __version__,
        "endpoints": endpoints,
        "usage": {
            "generate": {
                "method": "POST",
                "url": "/api/generate-pdf",
                "body": {
                    "html": "<html><body><h1>Hello World</h1></body></html>",
                    "baseUrl": "https://app.example.com",
                    "options": {
                        "format": "A4",
                        "printBackground": True,
                        "preferCSSPageSize": False,
                        "margin": {
                            "top": "1cm",
                            "right": "1cm",
                            "bottom": "1cm",
                            "left": "1cm",
                        },
                    },
                },
            },
        },
    }


@app.post("/api/generate-pdf", response_model=RenderResponse)
async def generate_pdf(body: RenderRequest, request: Request) -> RenderResponse:
    """
    Render HTML to a PDF and return a short-lived download link.

    Raises:
        ValidationError: 400 when html is missing or blank
        RenderFailure: 500 when loading or painting fails
        ServiceOverloaded: 503 when MAX_CONCURRENT_RENDERS is reached
    """
    recorder = diagnostic_recorder if settings.debug_diagnostics else None

    async def run():
        return await render_to_artifact(
            browser_manager,
            artifact_store,
            body,
            public_base=_public_base(request),
            recorder=recorder,
            request_headers=request.headers,
        )

    if _render_semaphore is None:
        result = await run()
    else:
        if _render_semaphore.locked():
            logger.warning("PDF service overloaded, rejecting request")
            raise ServiceOverloaded(settings.max_concurrent_renders)
        async with _render_semaphore:
            result = await run()

    return RenderResponse(
        success=True,
        pdfId=result.pdf_id,
        downloadUrl=result.download_url,
        expiresAt=result.expires_at,
    )


@app.get("/api/download/{pdf_id}")
async def download_pdf(pdf_id: str):
    """
    Stream a previously generated PDF.

    Raises:
        ArtifactNotFound: 404 for unknown or expired ids
    """
    pdf_id = artifact_store.canonical_id(pdf_id)
    pdf_bytes = await artifact_store.read_async(pdf_id)
    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="document-{pdf_id}.pdf"',
            "Content-Length": str(len(pdf_bytes)),
        },
    )


@app.get("/api/debug/last-request")
async def last_request_diagnostics():
    """Most recent request detail and image diagnosis (debug deployments only)."""
    if not settings.debug_diagnostics:
        raise DiagnosticsDisabled()

    snapshot = diagnostic_recorder.query()
    if snapshot is None:
        return {"message": "No requests recorded yet"}
    return snapshot

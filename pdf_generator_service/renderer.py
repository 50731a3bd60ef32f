"""
HTML to PDF render pipeline.

Drives one RenderSession through load, optional diagnostics, and paint,
stores the bytes as an expiring artifact, and returns where to fetch it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from .artifacts import ArtifactStore
from .browser import CONTENT_LOAD_TIMEOUT_MS, BrowserManager
from .diagnostics import (
    DiagnosticRecorder,
    DiagnosticSnapshot,
    ImageLoadResult,
    extract_img_tags,
    select_headers,
)
from .errors import RenderFailure, ValidationError
from .models import RenderRequest

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    """Outcome of a successful render."""

    pdf_id: str
    download_url: str
    expires_at: datetime
    size_bytes: int


def build_download_url(public_base: str, pdf_id: str) -> str:
    return f"{public_base.rstrip('/')}/api/download/{pdf_id}"


async def render_to_artifact(
    browser_manager: BrowserManager,
    artifact_store: ArtifactStore,
    request: RenderRequest,
    public_base: str,
    recorder: Optional[DiagnosticRecorder] = None,
    request_headers: Optional[Mapping[str, str]] = None,
) -> RenderResult:
    """
    Render request.html to a PDF artifact.

    Args:
        browser_manager: Shared Chromium owner
        artifact_store: Where the PDF is kept until it expires
        request: HTML, layout options and optional base URL
        public_base: Scheme and host used to build the download URL
        recorder: When given, image load results are captured for debugging
        request_headers: Inbound headers, recorded alongside diagnostics

    Returns:
        RenderResult with the artifact id and download URL

    Raises:
        ValidationError: html missing or blank (no session is opened)
        RenderFailure: anything went wrong while loading, painting or storing
    """
    html = request.html
    if not html or not html.strip():
        raise ValidationError("HTML content is required")

    pdf_id = str(uuid.uuid4())
    logger.info(
        f"[{pdf_id[:8]}] Starting PDF render "
        f"(format={request.options.format}, baseUrl={request.baseUrl or 'none'}, {len(html)} chars)"
    )

    stored = False
    try:
        async with browser_manager.session() as session:
            await session.load_content(html, base_url=request.baseUrl, timeout_ms=CONTENT_LOAD_TIMEOUT_MS)

            if recorder is not None:
                raw_images = await session.collect_images()
                recorder.record(DiagnosticSnapshot(
                    html=html,
                    base_url=request.baseUrl,
                    headers=select_headers(request_headers),
                    options=request.options.model_dump(),
                    img_tags=extract_img_tags(html),
                    images=[ImageLoadResult.from_page(raw) for raw in raw_images],
                ))

            pdf_bytes = await session.paint_pdf(request.options)
            artifact = await _store_artifact(artifact_store, pdf_id, pdf_bytes)

        artifact_store.schedule_expiry(artifact)
        stored = True
    except RenderFailure as e:
        logger.error(f"[{pdf_id[:8]}] PDF render failed: {e.message}")
        raise
    except Exception as e:
        logger.exception(f"[{pdf_id[:8]}] PDF render failed: {e}")
        raise RenderFailure(str(e)) from e
    finally:
        # Also covers cancellation, which is not an Exception
        if not stored:
            artifact_store.delete(pdf_id)

    logger.info(f"[{pdf_id[:8]}] PDF render completed ({artifact.size_bytes} bytes)")

    return RenderResult(
        pdf_id=pdf_id,
        download_url=build_download_url(public_base, pdf_id),
        expires_at=artifact.expires_at,
        size_bytes=artifact.size_bytes,
    )


async def _store_artifact(artifact_store: ArtifactStore, pdf_id: str, pdf_bytes: bytes):
    """
    Write the PDF on a worker thread.

    If the caller is cancelled mid-write, wait for the thread to finish
    before re-raising so the cleanup delete sees the file it wrote.
    """
    write = asyncio.ensure_future(asyncio.to_thread(artifact_store.create, pdf_id, pdf_bytes))
    try:
        return await asyncio.shield(write)
    except asyncio.CancelledError:
        await asyncio.wait([write])
        raise

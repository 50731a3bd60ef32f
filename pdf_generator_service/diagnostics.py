"""
Last-request diagnostics for troubleshooting image loading.

Keeps a single process-wide snapshot of the most recent render: the raw
HTML, the <img> tags it contained, selected request headers, and what
Chromium reported for every image after load. Concurrent renders overwrite
each other's snapshot (last writer wins); this is a manual debugging aid,
not an audit log.
"""

import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

IMG_TAG_PATTERN = re.compile(r"<img\b[^>]*>", re.IGNORECASE)

RECORDED_HEADERS = (
    "content-type",
    "content-length",
    "origin",
    "referer",
    "user-agent",
)

REASON_RELATIVE_PATH = "likely missing base/relative path"
REASON_NETWORK = "likely network/CORS failure"


@dataclass
class ImageLoadResult:
    """What the rendered document reported for one <img>."""

    src: str
    resolved_src: str = ""
    natural_width: int = 0
    natural_height: int = 0
    complete: bool = False

    @property
    def loaded(self) -> bool:
        return self.complete and self.natural_width > 0 and self.natural_height > 0

    @classmethod
    def from_page(cls, raw: Mapping[str, Any]) -> "ImageLoadResult":
        """Build from the dict returned by the in-page image probe."""
        return cls(
            src=raw.get("src") or "",
            resolved_src=raw.get("resolvedSrc") or "",
            natural_width=int(raw.get("naturalWidth") or 0),
            natural_height=int(raw.get("naturalHeight") or 0),
            complete=bool(raw.get("complete")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["loaded"] = self.loaded
        return data


@dataclass
class DiagnosticSnapshot:
    """Full detail of one render request."""

    html: str
    base_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    img_tags: List[str] = field(default_factory=list)
    images: List[ImageLoadResult] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_images(self) -> bool:
        return len(self.images) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "html": self.html,
            "html_length": len(self.html),
            "base_url": self.base_url,
            "headers": dict(self.headers),
            "options": dict(self.options),
            "img_tags": list(self.img_tags),
            "has_images": self.has_images,
            "images": [image.to_dict() for image in self.images],
        }


def extract_img_tags(html: str) -> List[str]:
    """Raw <img ...> tags as they appear in the submitted HTML."""
    return IMG_TAG_PATTERN.findall(html or "")


def select_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Keep only the request headers useful for debugging."""
    if not headers:
        return {}
    lowered = {k.lower(): v for k, v in headers.items()}
    return {name: lowered[name] for name in RECORDED_HEADERS if name in lowered}


def is_absolute_reference(src: str) -> bool:
    """True for URLs with a scheme (https:, data:, file:) or protocol-relative //."""
    src = (src or "").strip()
    if src.startswith("//"):
        return True
    return bool(urlparse(src).scheme)


def diagnose(snapshot: DiagnosticSnapshot) -> Dict[str, Any]:
    """
    Explain the image situation of a snapshot.

    Checks in order: no images at all; images but no base URL (relative
    paths cannot resolve); failed images, each classified by whether its
    src was relative or absolute; otherwise everything loaded.
    """
    images = snapshot.images
    if not images:
        return {
            "status": "no_images",
            "message": "No images found in the rendered document",
            "failures": [],
        }

    if not snapshot.base_url:
        return {
            "status": "relative_paths_will_fail",
            "message": "Images present but no baseUrl provided - relative paths will fail",
            "failures": [],
        }

    failures = [
        {
            "src": image.src,
            "resolved_src": image.resolved_src,
            "reason": REASON_NETWORK if is_absolute_reference(image.src) else REASON_RELATIVE_PATH,
        }
        for image in images
        if not image.loaded
    ]
    if failures:
        return {
            "status": "images_failed",
            "message": f"{len(failures)} of {len(images)} image(s) failed to load",
            "failures": failures,
        }

    return {
        "status": "all_images_loaded",
        "message": f"All {len(images)} image(s) loaded",
        "failures": [],
    }


class DiagnosticRecorder:
    """Single-slot holder for the most recent DiagnosticSnapshot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[DiagnosticSnapshot] = None

    def record(self, snapshot: DiagnosticSnapshot) -> None:
        """Replace the current snapshot unconditionally."""
        with self._lock:
            self._snapshot = snapshot
        failed = sum(1 for image in snapshot.images if not image.loaded)
        logger.debug(f"Recorded diagnostics: {len(snapshot.images)} image(s), {failed} failed")

    @property
    def snapshot(self) -> Optional[DiagnosticSnapshot]:
        with self._lock:
            return self._snapshot

    def query(self) -> Optional[Dict[str, Any]]:
        """Current snapshot plus diagnosis, or None if nothing was recorded."""
        snapshot = self.snapshot
        if snapshot is None:
            return None
        data = snapshot.to_dict()
        data["diagnosis"] = diagnose(snapshot)
        return data

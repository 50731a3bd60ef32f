"""
Pytest fixtures for PDF generator service tests.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

# IMPORTANT: Set environment variables BEFORE any imports from
# pdf_generator_service so the cached settings pick them up.
os.environ["ENVIRONMENT"] = "development"
os.environ["PDF_DIR"] = tempfile.mkdtemp(prefix="pdf-generator-tests-")
os.environ["TRUSTED_ORIGIN_DOMAIN"] = "atap.solar"
os.environ["DEBUG_DIAGNOSTICS"] = "true"
os.environ.pop("BASE_URL", None)
os.environ.pop("MAX_CONCURRENT_RENDERS", None)

import pytest
from fastapi.testclient import TestClient

from pdf_generator_service.artifacts import ArtifactStore
from pdf_generator_service.browser import BrowserManager
from pdf_generator_service.diagnostics import DiagnosticRecorder
from pdf_generator_service.errors import EngineUnavailable

FAKE_PDF = b"%PDF-1.4 fake pdf content"


class FrozenClock:
    """Controllable replacement for the artifact store's clock."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeSession:
    """Stands in for a Playwright-backed RenderSession."""

    def __init__(self, manager):
        self._manager = manager
        self.loaded_html = None
        self.base_url = None
        self.timeout_ms = None
        self.painted_options = None
        self.close_calls = 0

    async def load_content(self, html, base_url=None, timeout_ms=30000):
        self.loaded_html = html
        self.base_url = base_url
        self.timeout_ms = timeout_ms
        if self._manager.load_error is not None:
            raise self._manager.load_error

    async def collect_images(self):
        return list(self._manager.images)

    async def paint_pdf(self, options):
        self.painted_options = options
        if self._manager.paint_error is not None:
            raise self._manager.paint_error
        return self._manager.pdf_bytes

    async def close(self):
        self.close_calls += 1
        if self._manager.close_delay:
            await asyncio.sleep(self._manager.close_delay)


class FakeBrowserManager(BrowserManager):
    """BrowserManager whose sessions never touch Chromium."""

    def __init__(self):
        super().__init__()
        self.connected = True
        self.sessions = []
        self.images = []
        self.pdf_bytes = FAKE_PDF
        self.load_error = None
        self.paint_error = None
        self.close_delay = 0

    @property
    def is_connected(self):
        return self.connected

    @property
    def active_sessions(self):
        return sum(1 for s in self.sessions if s.close_calls == 0)

    async def acquire_session(self):
        if not self.connected:
            raise EngineUnavailable("Chromium is not running")
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(tmp_path, clock):
    """Artifact store in a per-test directory with a frozen clock."""
    return ArtifactStore(tmp_path / "pdfs", clock=clock)


@pytest.fixture
def fake_browser():
    return FakeBrowserManager()


@pytest.fixture
def recorder():
    return DiagnosticRecorder()


@pytest.fixture
def app_module(monkeypatch, fake_browser, store, recorder):
    """The app module wired to fakes instead of a real Chromium."""
    import pdf_generator_service.app as module

    monkeypatch.setattr(module, "browser_manager", fake_browser)
    monkeypatch.setattr(module, "artifact_store", store)
    monkeypatch.setattr(module, "diagnostic_recorder", recorder)
    monkeypatch.setattr(module, "_render_semaphore", None)
    monkeypatch.setattr(module.settings, "debug_diagnostics", True)
    monkeypatch.setattr(module.settings, "base_url", None)
    return module


@pytest.fixture
def client(app_module):
    """FastAPI test client; startup hooks are not run, so no browser launches."""
    return TestClient(app_module.app)

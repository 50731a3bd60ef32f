"""
Unit tests for the last-request diagnostic recorder.
"""

import pytest

from pdf_generator_service.diagnostics import (
    REASON_NETWORK,
    REASON_RELATIVE_PATH,
    DiagnosticRecorder,
    DiagnosticSnapshot,
    ImageLoadResult,
    diagnose,
    extract_img_tags,
    is_absolute_reference,
    select_headers,
)


def loaded_image(src):
    return ImageLoadResult(src=src, natural_width=100, natural_height=50, complete=True)


def broken_image(src):
    return ImageLoadResult(src=src, natural_width=0, natural_height=0, complete=True)


class TestImageLoadResult:
    """Tests for the derived loaded flag."""

    def test_loaded_requires_complete_and_dimensions(self):
        assert loaded_image("a.png").loaded is True
        assert broken_image("a.png").loaded is False
        assert ImageLoadResult(src="a.png", natural_width=10, natural_height=10, complete=False).loaded is False
        assert ImageLoadResult(src="a.png", natural_width=10, natural_height=0, complete=True).loaded is False

    def test_from_page_maps_probe_fields(self):
        image = ImageLoadResult.from_page({
            "src": "/logo.png",
            "resolvedSrc": "https://app.atap.solar/logo.png",
            "naturalWidth": 64,
            "naturalHeight": 32,
            "complete": True,
        })

        assert image.src == "/logo.png"
        assert image.resolved_src == "https://app.atap.solar/logo.png"
        assert image.loaded is True
        assert image.to_dict()["loaded"] is True

    def test_from_page_tolerates_missing_fields(self):
        image = ImageLoadResult.from_page({"src": None})

        assert image.src == ""
        assert image.loaded is False


class TestExtractImgTags:
    """Tests for raw <img> tag extraction."""

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_counts_match_number_of_img_elements(self, count):
        html = "<html><body>" + '<img src="x.png">' * count + "</body></html>"
        assert len(extract_img_tags(html)) == count

    def test_case_insensitive_and_attributes_preserved(self):
        html = '<IMG SRC="a.png" alt="A"><p>text</p><img src="b.png"/>'
        assert extract_img_tags(html) == ['<IMG SRC="a.png" alt="A">', '<img src="b.png"/>']

    def test_ignores_similar_tag_names(self):
        assert extract_img_tags("<imgx src='a'><image href='b'/>") == []

    def test_none_html(self):
        assert extract_img_tags(None) == []


class TestAbsoluteReference:
    """Tests for absolute vs relative src classification."""

    @pytest.mark.parametrize("src", [
        "https://cdn.example.com/a.png",
        "http://example.com/a.png",
        "data:image/png;base64,AAAA",
        "//cdn.example.com/a.png",
    ])
    def test_absolute(self, src):
        assert is_absolute_reference(src) is True

    @pytest.mark.parametrize("src", ["logo.png", "/images/logo.png", "../img/a.png", ""])
    def test_relative(self, src):
        assert is_absolute_reference(src) is False


class TestDiagnose:
    """Tests for the ordered diagnosis procedure."""

    def test_no_images(self):
        snapshot = DiagnosticSnapshot(html="<h1>Hi</h1>", base_url="https://app.atap.solar")
        assert diagnose(snapshot)["status"] == "no_images"

    def test_images_without_base_url(self):
        snapshot = DiagnosticSnapshot(html="<img src='a.png'>", images=[broken_image("a.png")])

        result = diagnose(snapshot)

        assert result["status"] == "relative_paths_will_fail"
        assert "relative paths will fail" in result["message"]

    def test_images_without_base_url_even_if_loaded(self):
        snapshot = DiagnosticSnapshot(
            html="<img src='https://cdn/a.png'>",
            images=[loaded_image("https://cdn/a.png")],
        )
        assert diagnose(snapshot)["status"] == "relative_paths_will_fail"

    def test_failures_are_classified_by_src(self):
        snapshot = DiagnosticSnapshot(
            html="...",
            base_url="https://app.atap.solar",
            images=[
                broken_image("images/missing.png"),
                broken_image("https://other.example/blocked.png"),
                loaded_image("ok.png"),
            ],
        )

        result = diagnose(snapshot)

        assert result["status"] == "images_failed"
        assert result["message"].startswith("2 of 3")
        reasons = {f["src"]: f["reason"] for f in result["failures"]}
        assert reasons == {
            "images/missing.png": REASON_RELATIVE_PATH,
            "https://other.example/blocked.png": REASON_NETWORK,
        }

    def test_all_loaded(self):
        snapshot = DiagnosticSnapshot(
            html="...",
            base_url="https://app.atap.solar",
            images=[loaded_image("a.png"), loaded_image("b.png")],
        )

        result = diagnose(snapshot)

        assert result["status"] == "all_images_loaded"
        assert result["failures"] == []


class TestSelectHeaders:
    """Tests for header selection."""

    def test_keeps_only_known_headers_lowercased(self):
        headers = {
            "Content-Type": "application/json",
            "Origin": "https://app.atap.solar",
            "Authorization": "Bearer secret",
            "User-Agent": "curl/8.0",
        }

        assert select_headers(headers) == {
            "content-type": "application/json",
            "origin": "https://app.atap.solar",
            "user-agent": "curl/8.0",
        }

    def test_empty(self):
        assert select_headers(None) == {}


class TestDiagnosticRecorder:
    """Tests for the single-slot recorder."""

    def test_query_before_any_record_returns_none(self):
        assert DiagnosticRecorder().query() is None

    def test_query_returns_snapshot_and_diagnosis(self):
        recorder = DiagnosticRecorder()
        recorder.record(DiagnosticSnapshot(
            html="<img src='a.png'>",
            img_tags=["<img src='a.png'>"],
            images=[broken_image("a.png")],
        ))

        data = recorder.query()

        assert data["html"] == "<img src='a.png'>"
        assert data["html_length"] == len("<img src='a.png'>")
        assert data["has_images"] is True
        assert len(data["images"]) == 1
        assert data["images"][0]["loaded"] is False
        assert data["diagnosis"]["status"] == "relative_paths_will_fail"

    def test_last_writer_wins(self):
        recorder = DiagnosticRecorder()
        recorder.record(DiagnosticSnapshot(html="first"))
        recorder.record(DiagnosticSnapshot(html="second"))

        assert recorder.query()["html"] == "second"

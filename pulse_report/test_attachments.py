#!/usr/bin/env python3
"""
Test suite for attachments.py

Data URI embedding with per-item failure isolation.
"""
import base64
import json

import pytest

from pulse_report.attachments import AttachmentEmbedder, video_mime_type
from pulse_report.errors import MissingAttachment
from pulse_report.models import Attachment, TestResult


@pytest.fixture
def embedder(output_dir):
    return AttachmentEmbedder(output_dir)


def _write_bytes(path, data=b"\x89PNG fake"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


# ============================================================================
# MIME types
# ============================================================================

class TestVideoMimeType:
    """Extension-based content types."""

    @pytest.mark.parametrize("path,expected", [
        ("a.mp4", "video/mp4"),
        ("a.WEBM", "video/webm"),
        ("dir/a.ogg", "video/ogg"),
        ("a.mov", "video/quicktime"),
        ("a.avi", "video/x-msvideo"),
        ("a.mkv", "video/mp4"),
        ("noext", "video/mp4"),
    ])
    def test_mime_from_extension(self, path, expected):
        """Known extensions map to their type, anything else to mp4."""
        assert video_mime_type(path) == expected


# ============================================================================
# Embedding
# ============================================================================

class TestEmbedding:
    """Files to data URIs."""

    def test_screenshot_is_embedded(self, embedder, output_dir):
        """A readable screenshot becomes a base64 data URI."""
        _write_bytes(output_dir / "shots" / "a.png", b"abc")

        embedded = embedder.embed_screenshots(["shots/a.png"])

        assert embedded == [{
            "name": "a.png",
            "contentType": "image/png",
            "dataUri": "data:image/png;base64," + base64.b64encode(b"abc").decode("ascii"),
        }]

    def test_missing_screenshot_is_omitted(self, embedder, output_dir):
        """A nonexistent file is dropped without raising."""
        _write_bytes(output_dir / "shots" / "ok.png")

        embedded = embedder.embed_screenshots(["shots/missing.png", "shots/ok.png"])

        assert [e["name"] for e in embedded] == ["ok.png"]

    def test_missing_screenshot_logs_warning(self, embedder, caplog):
        """The dropped file is reported in the log."""
        embedder.embed_screenshots(["nope.png"])

        assert "nope.png" in caplog.text

    def test_screenshot_content_type_from_source(self, embedder, output_dir):
        """Supplied content types are used as-is."""
        _write_bytes(output_dir / "b.jpg")

        embedded = embedder.embed_screenshots([Attachment(name="b", path="b.jpg", content_type="image/jpeg")])

        assert embedded[0]["dataUri"].startswith("data:image/jpeg;base64,")

    def test_video_mime_from_extension(self, embedder, output_dir):
        """Videos carry the extension-derived type."""
        _write_bytes(output_dir / "v.webm")

        embedded = embedder.embed_videos(["v.webm", "gone.mp4"])

        assert len(embedded) == 1
        assert embedded[0]["mimeType"] == "video/webm"
        assert embedded[0]["dataUri"].startswith("data:video/webm;base64,")

    def test_missing_trace_is_none(self, embedder):
        """A missing trace nulls the field."""
        assert embedder.embed_trace("trace.zip") is None
        assert embedder.embed_trace(None) is None

    def test_data_uri_passes_through(self, embedder):
        """data: URIs are already inline and are not read from disk."""
        assert embedder.data_uri("data:image/png;base64,AAA", "image/png") == "data:image/png;base64,AAA"

    @pytest.mark.parametrize("url", ["https://example.com/a.png", "http://example.com/a.png", "HTTPS://x/y.webm"])
    def test_remote_url_is_rejected(self, embedder, url):
        """Remote references are never shipped, so viewing makes no network calls."""
        with pytest.raises(MissingAttachment, match="remote"):
            embedder.data_uri(url, "image/png")

    def test_remote_references_are_dropped(self, embedder, caplog):
        """Every collection drops remote entries with a warning."""
        result = TestResult.from_dict({
            "id": "t", "name": "t", "status": "failed",
            "screenshots": ["https://cdn.example.com/a.png"],
            "videoPath": ["http://cdn.example.com/v.webm"],
            "tracePath": "https://cdn.example.com/trace.zip",
            "attachments": [{"name": "log", "path": "https://cdn.example.com/log.txt", "contentType": "text/plain"}],
        })

        with caplog.at_level("WARNING"):
            data = embedder.embed_result(result)

        assert data["screenshots"] == []
        assert data["videoPath"] == []
        assert data["tracePath"] is None
        assert data["attachments"] == []
        assert "http" not in json.dumps(data)
        assert caplog.text.count("remote reference") == 4

    def test_data_uri_raises_for_missing(self, embedder):
        """The low-level call raises; collection helpers catch it."""
        with pytest.raises(MissingAttachment):
            embedder.data_uri("missing.bin", "application/octet-stream")

    def test_absolute_path(self, embedder, tmp_path):
        """Absolute paths are used without joining the output root."""
        path = _write_bytes(tmp_path / "elsewhere" / "a.png")

        assert embedder.embed_screenshots([str(path)])[0]["name"] == "a.png"

    def test_embed_result(self, embedder, output_dir, make_result):
        """Every attachment collection of a result is embedded."""
        _write_bytes(output_dir / "a.png")
        _write_bytes(output_dir / "t.zip")
        _write_bytes(output_dir / "log.txt", b"hello")
        result = TestResult.from_dict(make_result(
            "t", "failed",
            screenshots=["a.png", "gone.png"],
            videoPath=["gone.webm"],
            tracePath="t.zip",
            attachments=[{"name": "log", "path": "log.txt", "contentType": "text/plain"}],
        ))

        data = embedder.embed_result(result)

        assert len(data["screenshots"]) == 1
        assert data["videoPath"] == []
        assert data["tracePath"].startswith("data:application/zip;base64,")
        assert data["attachments"][0]["dataUri"] == "data:text/plain;base64," + base64.b64encode(b"hello").decode()
        assert data["name"] == result.name

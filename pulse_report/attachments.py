"""Inline attachment files (screenshots, videos, traces) as data URIs.

Attachment paths in the current-run JSON are relative to the report output
directory. Each readable file is base64-encoded into a `data:` URI so the
generated report stays a single offline document. An unreadable file only
removes that one entry; so does an http(s) URL, which the report would
otherwise fetch when opened.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .constants import (
    DEFAULT_ATTACHMENT_MIME_TYPE,
    DEFAULT_SCREENSHOT_MIME_TYPE,
    DEFAULT_VIDEO_MIME_TYPE,
    TRACE_MIME_TYPE,
    VIDEO_MIME_TYPES,
)
from .errors import MissingAttachment
from .models import Attachment, TestResult

logger = logging.getLogger(__name__)

# Already-inline references, kept as they are
PASSTHROUGH_PREFIXES = ("data:",)

# References that would make the report fetch content when viewed
REMOTE_PREFIXES = ("http://", "https://")


def video_mime_type(path: str) -> str:
    """Content type for a video file, from its extension (mp4 when unknown)."""
    return VIDEO_MIME_TYPES.get(_extension(path), DEFAULT_VIDEO_MIME_TYPE)


def _extension(path: str) -> str:
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def _is_passthrough(path: str) -> bool:
    return path.strip().startswith(PASSTHROUGH_PREFIXES)


def _is_remote(path: str) -> bool:
    return path.strip().lower().startswith(REMOTE_PREFIXES)


class AttachmentEmbedder:
    """Resolve attachment references against an output root and inline them."""

    def __init__(self, output_root: Union[str, Path]):
        self.output_root = Path(output_root)

    def resolve(self, path: str) -> Path:
        candidate = Path(path.strip().replace("\\", "/"))
        if candidate.is_absolute():
            return candidate
        return (self.output_root / candidate).resolve()

    def data_uri(self, path: str, mime_type: str) -> str:
        """
        Read one file and return it as a data URI.

        Raises:
            MissingAttachment: If the file does not exist or cannot be read,
                or the reference is a remote URL
        """
        if _is_passthrough(path):
            return path.strip()
        if _is_remote(path):
            raise MissingAttachment(path.strip(), "remote reference, not embedded")

        resolved = self.resolve(path)
        if not resolved.is_file():
            raise MissingAttachment(resolved)
        try:
            payload = resolved.read_bytes()
        except OSError as e:
            raise MissingAttachment(resolved, str(e)) from e
        return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"

    # -----------------------------
    # Per-collection embedding
    # -----------------------------

    def embed_screenshots(self, screenshots: Iterable[Union[str, Attachment]]) -> List[Dict[str, Any]]:
        embedded = []
        for shot in screenshots:
            attachment = shot if isinstance(shot, Attachment) else Attachment.from_value(shot)
            if attachment is None:
                continue
            mime = attachment.content_type or DEFAULT_SCREENSHOT_MIME_TYPE
            try:
                uri = self.data_uri(attachment.path, mime)
            except MissingAttachment as e:
                logger.warning("%s", e)
                continue
            embedded.append({"name": attachment.name, "contentType": mime, "dataUri": uri})
        return embedded

    def embed_videos(self, paths: Iterable[str]) -> List[Dict[str, Any]]:
        embedded = []
        for path in paths:
            if not path:
                continue
            mime = video_mime_type(path)
            try:
                uri = self.data_uri(path, mime)
            except MissingAttachment as e:
                logger.warning("%s", e)
                continue
            embedded.append({"dataUri": uri, "mimeType": mime, "extension": _extension(path)})
        return embedded

    def embed_trace(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        try:
            return self.data_uri(path, TRACE_MIME_TYPE)
        except MissingAttachment as e:
            logger.warning("%s", e)
            return None

    def embed_attachments(self, attachments: Iterable[Attachment]) -> List[Dict[str, Any]]:
        embedded = []
        for attachment in attachments:
            mime = attachment.content_type or DEFAULT_ATTACHMENT_MIME_TYPE
            try:
                uri = self.data_uri(attachment.path, mime)
            except MissingAttachment as e:
                logger.warning("%s", e)
                continue
            embedded.append({
                "name": attachment.name,
                "path": attachment.path,
                "contentType": mime,
                "dataUri": uri,
            })
        return embedded

    def embed_result(self, result: TestResult) -> Dict[str, Any]:
        """Payload dict for one test with every attachment inlined."""
        data = result.to_dict()
        data["screenshots"] = self.embed_screenshots(result.screenshots)
        data["videoPath"] = self.embed_videos(result.video_paths)
        data["tracePath"] = self.embed_trace(result.trace_path)
        data["attachments"] = self.embed_attachments(result.attachments)
        return data

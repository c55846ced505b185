"""Media storage collaborator for player photos and team logos."""

from __future__ import annotations

import logging
import re
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4


logger = logging.getLogger(__name__)

_ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif", ".svg", ".bmp", ".avif"}
_SAFE_NAME = re.compile(r"[^A-Za-z0-9_-]+")

PLACEHOLDER_BASE = "https://via.placeholder.com/400x400?text="


def placeholder_url(name: str) -> str:
    initial = name.strip()[:1] or "?"
    return PLACEHOLDER_BASE + urllib.parse.quote(initial)


class MediaStore(Protocol):
    def store(self, data: bytes, *, folder: str, filename: str) -> str:
        """Persist ``data`` and return a durable URL for it."""
        ...


class LocalMediaStore:
    """Writes uploads under a directory served at ``base_url``."""

    def __init__(self, root: Path, base_url: str = "/media"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def store(self, data: bytes, *, folder: str, filename: str) -> str:
        if not data:
            raise ValueError("empty upload")
        suffix = Path(filename).suffix.lower()
        if suffix not in _ALLOWED_SUFFIXES:
            raise ValueError(f"unsupported image type {suffix or filename!r}")
        stem = _SAFE_NAME.sub("_", Path(filename).stem)[:40] or "upload"
        target_dir = self.root / _SAFE_NAME.sub("_", folder)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{stem}_{uuid4().hex[:12]}{suffix}"
        target.write_bytes(data)
        logger.info("Stored %d bytes at %s", len(data), target)
        return f"{self.base_url}/{target_dir.name}/{target.name}"


@dataclass(frozen=True)
class Upload:
    """Raw file bytes as received from a multipart form."""

    data: bytes
    filename: str
    content_type: str | None = None

"""Justification file store.

The engine only keeps the returned reference; file contents are never read
back or interpreted.
"""

import os
import secrets
import time
from typing import Protocol

from app.config import settings


class JustificationStore(Protocol):
    def save(self, penalty_id: int, filename: str, content: bytes) -> str:
        """Persist *content* and return a retrievable URL/path."""
        ...


class LocalJustificationStore:
    """Writes files under ``<upload_dir>/rental/penalties/<penalty_id>/``."""

    def __init__(self, root: str | None = None, url_prefix: str = "/uploads"):
        self.root = root or settings.upload_dir
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, penalty_id: int, filename: str, content: bytes) -> str:
        relative_dir = os.path.join("rental", "penalties", str(penalty_id))
        target_dir = os.path.join(self.root, relative_dir)
        os.makedirs(target_dir, exist_ok=True)

        extension = os.path.splitext(os.path.basename(filename))[1].lower()
        stored_name = f"justification-{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"
        with open(os.path.join(target_dir, stored_name), "wb") as f:
            f.write(content)

        return f"{self.url_prefix}/rental/penalties/{penalty_id}/{stored_name}"

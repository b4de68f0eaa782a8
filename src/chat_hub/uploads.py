"""Media upload storage. Returned paths are opaque to the chat core."""
from __future__ import annotations

import logging
import random
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger("chat_hub.uploads")

URL_PREFIX = "/uploads"


def unique_filename(original: Optional[str]) -> str:
    """``<epoch ms>-<random 9 digits><original extension>``."""
    ext = Path(original or "").suffix
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1)}{ext}"


class MediaStorage:
    def __init__(self, uploads_dir: str) -> None:
        self.root = Path(uploads_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, src: BinaryIO, original_name: Optional[str]) -> str:
        """Copy ``src`` into the uploads dir; returns the public path."""
        name = unique_filename(original_name)
        dest = self.root / name
        with dest.open("wb") as out:
            shutil.copyfileobj(src, out)
        logger.info("Stored upload %s (%d bytes)", name, dest.stat().st_size)
        return f"{URL_PREFIX}/{name}"

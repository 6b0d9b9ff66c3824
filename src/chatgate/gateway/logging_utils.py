from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict

logger = logging.getLogger(__name__)


class RequestLog:
    """Append-only JSONL log of completed gateway requests with size rotation."""

    def __init__(self, path: str, max_bytes: int = 25_000_000, enabled: bool = True):
        self.path = path
        self.max_bytes = max_bytes
        self.enabled = enabled
        log_dir = os.path.dirname(path)
        if enabled and log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as exc:
                logger.warning("[request-log] Cannot create %s: %s", log_dir, exc)

    def _rotate_if_needed(self) -> None:
        try:
            if os.path.exists(self.path) and os.path.getsize(self.path) > self.max_bytes:
                ts = time.strftime("%Y%m%d-%H%M%S")
                os.rename(self.path, f"{self.path}.{ts}")
        except OSError as exc:
            logger.warning("[request-log] Rotation failed for %s: %s", self.path, exc)

    def log(self, record: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._rotate_if_needed()
        entry = {"ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()), **record}
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as exc:
            logger.warning("[request-log] Write failed for %s: %s", self.path, exc)

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import Any, Dict


def setup_logger(log_dir: str | Path, name: str = "stream-translate") -> logging.Logger:
    """Create a simple file+console logger."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Avoid adding multiple handlers (e.g., uvicorn reloads)
    if logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")

    fh = logging.FileHandler(log_dir / "app.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(fmt)

    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(ch)
    return logger


def sha1_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def collapse_whitespace(s: str) -> str:
    """Collapse every whitespace run (newlines included) to one space."""
    return re.sub(r"\s+", " ", s).strip()


def count_words(text: str) -> int:
    return len(text.split())


def shorten(text: str, limit: int = 80) -> str:
    """One-line preview of a markup fragment for log messages."""
    flat = collapse_whitespace(text)
    if len(flat) <= limit:
        return flat
    return flat[: limit - 1] + "…"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged

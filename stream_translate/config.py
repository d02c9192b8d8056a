from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional

from . import storage
from .readiness import DEFAULT_WORD_THRESHOLD
from .translator import RateLimiter
from .utils import deep_merge


DEFAULT_CONFIG: Dict[str, Any] = {
    "translation": {
        "provider": "openai",
        "openai": {
            "model": "gpt-4.1-mini",
            "temperature": 0.3,
            "max_output_tokens": 4000,
        },
        "scheduling": {
            "requests_per_minute": 0,
            "max_retries": 2,
            "retry_backoff_seconds": 2.0,
        },
    },
    "readiness": {"word_threshold": DEFAULT_WORD_THRESHOLD},
    "server": {"host": "127.0.0.1", "port": 8000},
    "client": {"base_url": "http://127.0.0.1:8000", "timeout_seconds": 120.0},
    "paths": {"logs_dir": "logs"},
}


def load_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Defaults, overridden by the JSON file at ``path`` when one is given."""
    if not path:
        return copy.deepcopy(DEFAULT_CONFIG)
    return deep_merge(copy.deepcopy(DEFAULT_CONFIG), storage.read_json(path))


def scheduling_options(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Retry and rate-limit keyword arguments for ``open_translation_stream``."""
    sched_cfg = cfg.get("translation", {}).get("scheduling", {})
    return {
        "max_retries": int(sched_cfg.get("max_retries", 2)),
        "retry_backoff": float(sched_cfg.get("retry_backoff_seconds", 2.0)),
        "rate_limiter": RateLimiter(int(sched_cfg.get("requests_per_minute", 0))),
    }

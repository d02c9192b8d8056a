from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd


SEGMENT_COLUMNS = ["index", "kind", "key", "chars", "markup"]


def _target(path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def read_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def write_text(path: str | Path, text: str) -> None:
    _target(path).write_text(text, encoding="utf-8")


def read_json(path: str | Path) -> Any:
    return json.loads(read_text(path))


def write_json(path: str | Path, obj: Any) -> None:
    write_text(path, json.dumps(obj, ensure_ascii=False, indent=2))


def write_segments_csv(path: str | Path, rows: List[Dict[str, Any]]) -> None:
    """One row per node, for eyeballing a segmentation in a spreadsheet."""
    pd.DataFrame(rows, columns=SEGMENT_COLUMNS).to_csv(_target(path), index=False, encoding="utf-8")

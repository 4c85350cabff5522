"""Text and persistence helpers shared by ingestion, stores and the API."""
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import orjson

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_SPACE = re.compile(r"[ \t]+\n")
_BLANK_RUNS = re.compile(r"\n{3,}")


# --- Text ---------------------------------------------------------------------

def clean_text(text: str) -> str:
    """
    Normalise uploaded document text before chunking.

    Line endings become "\\n", control characters (other than tab/newline)
    are dropped, trailing spaces are trimmed and blank-line runs collapse to
    one empty line, so chunk boundaries land on real paragraph breaks.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    text = _TRAILING_SPACE.sub("\n", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def truncate_text(text: str, max_chars: int = 80) -> str:
    """Shorten a query or message for log lines."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


# --- JSON persistence ---------------------------------------------------------

def save_json(data: Any, path: str | Path) -> None:
    """
    Write `data` as indented JSON via orjson (datetimes become ISO strings).

    The payload goes to a sibling temp file first and is moved into place with
    os.replace, so readers never see a half-written store.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))
    os.replace(tmp, path)


def load_json(path: str | Path) -> Any:
    return orjson.loads(Path(path).read_bytes())

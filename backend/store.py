"""
Atomic JSON file store.

This module centralizes how JSON documents are read from and written to
disk. Repositories build paths with `safe_join()` and never open files
themselves.

Guarantees:
- `read_json()` fails soft: a missing or corrupt file yields `default`.
- `write_json()` writes a sibling temp file, fsyncs it and `os.replace`s
  it over the target, so readers see either the old or the new document,
  never a truncated one. Parent directories are created on demand.

Usage:
    from store import read_json, write_json
    data = read_json(path, {"reactions": {}, "comments": []})
    write_json(path, data)
"""

from pathlib import Path
from typing import Any
import json
import os
import tempfile

from loguru import logger

from errors import ValidationError


def read_json(path: Path, default: Any = None) -> Any:
    """Return the parsed document at `path`, or `default` if unreadable."""

    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        logger.warning("Unreadable JSON at {} ({}), using default", path, e)
        return default


def write_json(path: Path, value: Any) -> None:
    """Atomically replace `path` with `value` serialized as JSON."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(value, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def safe_join(base: Path, filename: str) -> Path:
    """Join `filename` onto `base` and refuse anything that escapes `base`.

    Identifiers are validated against their grammar before they get here;
    this is the second line in case a caller forgets.
    """

    base = Path(base).resolve()
    target = (base / filename).resolve()
    if target.parent != base:
        raise ValidationError(f"Path escapes data directory: {filename!r}")
    return target

"""
Repository: file operations for day documents and the day index.

One `<slug>.json` per day under the days directory plus `index.json`, a
summary list `{slug, date, title, cover}` sorted by date that the public
site reads to build its front page. Keep business rules out of this module.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import re

from errors import ValidationError
from models import SLUG_PATTERN
from store import read_json, safe_join, write_json

_SLUG_RE = re.compile(SLUG_PATTERN)


class DayRepo:
    """File access only. No business logic here."""

    def __init__(self, days_dir: Path):
        self.days_dir = Path(days_dir)

    @property
    def index_path(self) -> Path:
        return self.days_dir / "index.json"

    def path_for(self, slug: str) -> Path:
        if not isinstance(slug, str) or not _SLUG_RE.fullmatch(slug):
            raise ValidationError(f"Invalid day slug: {slug!r}")
        return safe_join(self.days_dir, f"{slug}.json")

    def load(self, slug: str) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None if there is none."""

        data = read_json(self.path_for(slug), None)
        return data if isinstance(data, dict) else None

    def save(self, slug: str, doc: Dict[str, Any]) -> Path:
        path = self.path_for(slug)
        write_json(path, doc)
        return path

    def load_index(self) -> List[Dict[str, Any]]:
        data = read_json(self.index_path, [])
        return data if isinstance(data, list) else []

    def save_index(self, entries: List[Dict[str, Any]]) -> Path:
        write_json(self.index_path, entries)
        return self.index_path

    def slugs(self) -> List[str]:
        """Slugs of every day file on disk, sorted."""

        if not self.days_dir.exists():
            return []
        return sorted(p.stem for p in self.days_dir.glob("*.json") if _SLUG_RE.fullmatch(p.stem))

"""
Service layer for day documents.

Business rules for days sit here; file access goes through `DayRepo`.
Writes to a day file run inside the key lock for that file, index
updates inside the lock for `index.json`, and both changed paths are
handed to the publisher afterwards.

Key responsibilities:
- full-replace editing of a day (`put`)
- append-only photo import (`append_photos`, `merge_imported`)
- per-photo and per-stack caption/title edits
- keeping `index.json` in sync with the day files
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from errors import NotFoundError, ValidationError
from locks import KeyLockManager
from models import new_day
from publisher import publish_safely
from repo_days import DayRepo


def index_entry(slug: str, day: Dict[str, Any]) -> Dict[str, Any]:
    """Summary of a day for the front page. Cover falls back to the first photo."""

    photos = day.get("photos") if isinstance(day.get("photos"), list) else []
    first = photos[0] if photos and isinstance(photos[0], dict) else {}
    return {
        "slug": slug,
        "date": str(day.get("date") or slug),
        "title": str(day.get("title") or f"Day — {slug}"),
        "cover": str(day.get("cover") or first.get("thumb") or first.get("url") or ""),
    }


def _index_sort_key(entry: Any) -> str:
    # hand-edited files may carry a non-string date
    return str(entry.get("date") or "") if isinstance(entry, dict) else ""


def _photo_key(photo: Dict[str, Any]) -> Any:
    return photo.get("id") or photo.get("url")


def _append_unique(day: Dict[str, Any], photos: Iterable[Dict[str, Any]]) -> int:
    """Append photos not already present (by id, else url). Returns how many were added."""

    if not isinstance(day.get("photos"), list):
        day["photos"] = []
    seen = {_photo_key(p) for p in day["photos"] if isinstance(p, dict)}
    added = 0
    for p in photos:
        key = _photo_key(p)
        if not key or key in seen:
            continue
        day["photos"].append(p)
        seen.add(key)
        added += 1
    return added


class DayService:
    """Day rules + locking + publish.

    Example usage:
        svc = DayService(DayRepo(settings.days_dir), KeyLockManager(), publisher)
        await svc.put("2024-05-01", doc)
    """

    def __init__(self, repo: DayRepo, locks: KeyLockManager, publisher):
        self.repo = repo
        self.locks = locks
        self.publisher = publisher

    def _publish(self, paths: List[Path], message: str) -> None:
        publish_safely(self.publisher, paths, message)

    def get(self, slug: str) -> Dict[str, Any]:
        day = self.repo.load(slug)
        if day is None:
            raise NotFoundError("Not found")
        return day

    def list_days(self) -> List[Dict[str, Any]]:
        return self.repo.load_index()

    async def put(self, slug: str, doc: Any) -> None:
        """Replace the stored document for `slug` with `doc` (no merge)."""

        if not isinstance(doc, dict):
            raise ValidationError("Invalid JSON")
        path = self.repo.path_for(slug)
        await self.locks.run(path, lambda: self.repo.save(slug, doc))
        index_path = await self._upsert_index(slug, doc)
        self._publish([path, index_path], f"day {slug}: saved")

    async def append_photos(
        self, date: str, photos: List[Dict[str, Any]], title: Optional[str] = None
    ) -> Tuple[int, int]:
        """Add photos to a day without touching existing ones.

        Returns `(requested, total)`: the number of photos sent and the
        day's photo count afterwards.
        """

        path = self.repo.path_for(date)

        def mutate() -> Dict[str, Any]:
            day = self.repo.load(date) or new_day(date, title)
            _append_unique(day, photos)
            if title and not day.get("title"):
                day["title"] = title
            self.repo.save(date, day)
            return day

        day = await self.locks.run(path, mutate)
        index_path = await self._upsert_index(date, day)
        self._publish([path, index_path], f"day {date}: {len(photos)} photos published")
        return len(photos), len(day["photos"])

    async def merge_imported(self, date: str, photos: List[Dict[str, Any]]) -> int:
        """Merge photos from the album auto-load. Returns how many were new."""

        path = self.repo.path_for(date)

        def mutate() -> int:
            day = self.repo.load(date) or new_day(date)
            added = _append_unique(day, photos)
            if added:
                self.repo.save(date, day)
            return added

        added = await self.locks.run(path, mutate)
        if added:
            self._publish([path], f"day {date}: {added} photos imported")
        return added

    async def update_photo(
        self, slug: str, photo_id: str, caption: Optional[str] = None, title: Optional[str] = None
    ) -> None:
        path = self.repo.path_for(slug)

        def mutate() -> None:
            day = self.repo.load(slug)
            if day is None or not isinstance(day.get("photos"), list):
                raise NotFoundError("day not found")
            photo = next(
                (p for p in day["photos"] if isinstance(p, dict) and _photo_key(p) == photo_id), None
            )
            if photo is None:
                raise NotFoundError("photo not found")
            if caption is not None:
                photo["caption"] = str(caption).strip()
            if title is not None:
                photo["title"] = str(title).strip()
                if not photo["title"]:
                    del photo["title"]
            self.repo.save(slug, day)

        await self.locks.run(path, mutate)
        self._publish([path], f"day {slug}: photo {photo_id} updated")

    async def update_stack_meta(
        self, slug: str, stack_id: str, caption: Optional[str] = None, title: Optional[str] = None
    ) -> None:
        """Set title/caption for a stack in `stackMeta`, creating the day if needed."""

        path = self.repo.path_for(slug)

        def mutate() -> None:
            day = self.repo.load(slug)
            if day is None:
                logger.info("Creating new day file for {}", slug)
                day = new_day(slug)

            # older files kept a flat {stackId: caption} map
            if "stackCaptions" in day and "stackMeta" not in day:
                legacy = day.pop("stackCaptions") or {}
                day["stackMeta"] = {k: {"title": "", "caption": str(v or "")} for k, v in legacy.items()}

            stack_meta = day.setdefault("stackMeta", {})
            meta = dict(stack_meta.get(stack_id) or {"title": "", "caption": ""})
            if title is not None:
                meta["title"] = str(title).strip()
            if caption is not None:
                meta["caption"] = str(caption).strip()

            if not meta.get("title") and not meta.get("caption"):
                stack_meta.pop(stack_id, None)
            else:
                stack_meta[stack_id] = meta
            self.repo.save(slug, day)

        await self.locks.run(path, mutate)
        self._publish([path], f"day {slug}: stack {stack_id} updated")

    async def delete_photo(self, slug: str, photo_id: str) -> None:
        path = self.repo.path_for(slug)

        def mutate() -> None:
            day = self.repo.load(slug)
            if day is None:
                raise NotFoundError("day not found")
            photos = day.get("photos")
            if not isinstance(photos, list):
                raise NotFoundError("no photos in day")
            idx = next(
                (i for i, p in enumerate(photos) if isinstance(p, dict) and p.get("id") == photo_id), -1
            )
            if idx == -1:
                raise NotFoundError("photo not found")
            del photos[idx]
            self.repo.save(slug, day)

        await self.locks.run(path, mutate)
        self._publish([path], f"day {slug}: photo {photo_id} deleted")

    async def rebuild_index(self) -> int:
        """Regenerate `index.json` from the day files on disk."""

        entries = []
        for slug in self.repo.slugs():
            day = self.repo.load(slug)
            if day is not None:
                entries.append(index_entry(slug, day))
        entries.sort(key=_index_sort_key)
        path = self.repo.index_path
        await self.locks.run(path, lambda: self.repo.save_index(entries))
        self._publish([path], "day index rebuilt")
        return len(entries)

    async def _upsert_index(self, slug: str, day: Dict[str, Any]) -> Path:
        entry = index_entry(slug, day)
        path = self.repo.index_path

        def mutate() -> Path:
            entries = self.repo.load_index()
            for i, existing in enumerate(entries):
                if isinstance(existing, dict) and existing.get("slug") == slug:
                    entries[i] = {**existing, **entry}
                    break
            else:
                entries.append(entry)
            entries.sort(key=_index_sort_key)
            return self.repo.save_index(entries)

        return await self.locks.run(path, mutate)

"""
Local stand-in for the Immich import, used when testing without a library.

Scans `public/test-photos` for images and returns those not imported yet
as `Photo` dicts. Each file is identified by the SHA-1 of its content; the
hashes already handed out are kept in `public/data/imported.json`.
"""

from pathlib import Path
from typing import Any, Dict, List
import hashlib

from store import read_json, write_json

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}


def scan_test_photos(public_dir: Path, date: str) -> List[Dict[str, Any]]:
    photo_dir = Path(public_dir) / "test-photos"
    manifest = Path(public_dir) / "data" / "imported.json"
    imported = read_json(manifest, [])
    if not isinstance(imported, list):
        imported = []
    seen = set(imported)

    if not photo_dir.is_dir():
        return []

    photos = []
    new_hashes = []
    for f in sorted(photo_dir.iterdir()):
        if f.suffix.lower() not in IMAGE_SUFFIXES:
            continue
        digest = hashlib.sha1(f.read_bytes()).hexdigest()
        if digest in seen:
            continue
        seen.add(digest)
        new_hashes.append(digest)
        photos.append({
            "id": digest,
            "url": f"/test-photos/{f.name}",
            "thumb": f"/test-photos/{f.name}",
            "taken_at": f"{date}T12:00:00.000Z",
            "lat": None,
            "lon": None,
            "caption": f.name,
        })

    if new_hashes:
        write_json(manifest, imported + new_hashes)
    return photos

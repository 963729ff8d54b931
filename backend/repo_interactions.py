"""
Repository: file operations for interaction records.

One JSON file per subject under the interactions directory:
`<photoId>.json` for photos and `stack_<stackId>.json` for stacks.
This module only maps subjects to paths and loads/saves records. Keep
business rules (toggling, ownership, roll-up) out of this module.
"""

from pathlib import Path
from typing import Any, Dict, Literal

from errors import ValidationError
from models import empty_record, is_valid_id
from store import read_json, safe_join, write_json

SubjectKind = Literal["photo", "stack"]


class InteractionRepo:
    """File access only. No business logic here."""

    def __init__(self, interactions_dir: Path):
        self.interactions_dir = Path(interactions_dir)

    def path_for(self, kind: SubjectKind, subject_id: str) -> Path:
        if not is_valid_id(subject_id):
            raise ValidationError(f"Invalid {kind} id: {subject_id!r}")
        filename = f"stack_{subject_id}.json" if kind == "stack" else f"{subject_id}.json"
        return safe_join(self.interactions_dir, filename)

    def load(self, kind: SubjectKind, subject_id: str) -> Dict[str, Any]:
        """Return the record, defaulting missing or malformed parts."""

        data = read_json(self.path_for(kind, subject_id), None)
        if not isinstance(data, dict):
            return empty_record()
        if not isinstance(data.get("reactions"), dict):
            data["reactions"] = {}
        if not isinstance(data.get("comments"), list):
            data["comments"] = []
        return data

    def save(self, kind: SubjectKind, subject_id: str, record: Dict[str, Any]) -> Path:
        path = self.path_for(kind, subject_id)
        write_json(path, record)
        return path

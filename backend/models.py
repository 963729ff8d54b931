"""
Pydantic models and identifier grammars used across the backend.

Only input shapes belong here. These models provide validation at the
FastAPI route boundary. Stored documents (days, interaction records) stay
plain dicts so unknown fields written by the admin UI round-trip intact.

Guidelines:
- Keep models minimal and permissive where the stored data is free-form.
- Anything that ends up in a file path must match `ID_PATTERN` or
  `SLUG_PATTERN` first.
"""

from typing import Any, Dict, List, Literal, Optional
import re

from pydantic import BaseModel, ConfigDict, Field

SLUG_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
ID_PATTERN = r"^[A-Za-z0-9_-]+$"

_ID_RE = re.compile(ID_PATTERN)


def is_valid_id(value: Any) -> bool:
    """True if `value` is a string usable as a photo/stack id."""

    return isinstance(value, str) and bool(_ID_RE.fullmatch(value))


def empty_record() -> Dict[str, Any]:
    """Zero-value interaction record for a photo or stack."""

    return {"reactions": {}, "comments": []}


def new_day(slug: str, title: Optional[str] = None) -> Dict[str, Any]:
    """Skeleton document for a day that has no file yet."""

    return {
        "date": slug,
        "segment": "day",
        "slug": slug,
        "title": title or f"Day — {slug}",
        "stats": {},
        "polyline": {"type": "LineString", "coordinates": []},
        "points": [],
        "photos": [],
    }


class ReactIn(BaseModel):
    """Body of `POST .../react`.

    `action` omitted toggles: a positive count is decremented, otherwise
    incremented. `add` / `remove` force the direction.
    """

    emoji: str = Field(min_length=1)
    action: Optional[Literal["add", "remove"]] = None


class CommentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    author: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")


class CommentEditIn(BaseModel):
    text: str


class PublishIn(BaseModel):
    """Append-only import of photos into a day (admin)."""

    date: str = Field(pattern=SLUG_PATTERN)
    title: Optional[str] = None
    photos: List[Dict[str, Any]] = Field(default_factory=list)


class MetaPatchIn(BaseModel):
    """Caption/title edit for a photo or a stack.

    `description` is accepted as an older name for `caption`.
    """

    caption: Optional[str] = None
    description: Optional[str] = None
    title: Optional[str] = None

    @property
    def effective_caption(self) -> Optional[str]:
        return self.caption if self.caption is not None else self.description

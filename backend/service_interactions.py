"""
Service layer for reactions and comments on photos and stacks.

This module implements the interaction rules on top of `InteractionRepo`.
Every mutation is one read-modify-write executed inside the key lock for
the target file, followed by a best-effort publish of that file.

Key responsibilities:
- reaction toggling (counts never negative, zero counts never stored)
- comment creation with increasing ids, edit and delete
- ownership checks for edit/delete (admin or original author)
- the stack roll-up view combining a stack with its member photos
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple
import time

from errors import ForbiddenError, NotFoundError, ValidationError
from locks import KeyLockManager
from models import is_valid_id
from publisher import publish_safely
from repo_interactions import InteractionRepo, SubjectKind


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and `Z` suffix."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CommentIdGenerator:
    """Millisecond-timestamp ids, strictly increasing within the process."""

    def __init__(self) -> None:
        self._last = 0

    def next(self) -> str:
        now = int(time.time() * 1000)
        self._last = now if now > self._last else self._last + 1
        return str(self._last)


class InteractionService:
    """Interaction rules + locking + publish.

    Example usage:
        repo = InteractionRepo(settings.interactions_dir)
        svc = InteractionService(repo, KeyLockManager(), publisher)
        count, removed = await svc.react("photo", "abc", "❤️")
    """

    def __init__(self, repo: InteractionRepo, locks: KeyLockManager, publisher):
        self.repo = repo
        self.locks = locks
        self.publisher = publisher
        self.ids = CommentIdGenerator()

    def _publish(self, paths, message: str) -> None:
        publish_safely(self.publisher, paths, message)

    def get(self, kind: SubjectKind, subject_id: str) -> Dict[str, Any]:
        """Current record; a subject nobody interacted with yields the empty record."""

        return self.repo.load(kind, subject_id)

    async def react(
        self, kind: SubjectKind, subject_id: str, emoji: str, action: Optional[str] = None
    ) -> Tuple[int, bool]:
        """Apply a reaction and return `(count, removed)` for `emoji`.

        Without an explicit action the call toggles: if the emoji already
        has a positive count it is decremented, otherwise incremented.
        """

        if not emoji:
            raise ValidationError("emoji required")
        path = self.repo.path_for(kind, subject_id)

        def mutate() -> Tuple[int, bool]:
            data = self.repo.load(kind, subject_id)
            reactions = data["reactions"]
            current = int(reactions.get(emoji, 0) or 0)
            removed = action == "remove" or (action is None and current > 0)
            if removed:
                current = max(0, current - 1)
            else:
                current += 1
            if current > 0:
                reactions[emoji] = current
            else:
                reactions.pop(emoji, None)
            self.repo.save(kind, subject_id, data)
            return current, removed

        count, removed = await self.locks.run(path, mutate)
        verb = "removed" if removed else "added"
        self._publish([path], f"{kind} {subject_id}: reaction {emoji} {verb}")
        return count, removed

    async def comment(
        self,
        kind: SubjectKind,
        subject_id: str,
        text: str,
        author: Optional[str] = None,
        author_id: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Append a comment and return it."""

        text = (text or "").strip()
        if not text:
            raise ValidationError("text required")
        path = self.repo.path_for(kind, subject_id)

        def mutate() -> Dict[str, Any]:
            data = self.repo.load(kind, subject_id)
            comment: Dict[str, Any] = {
                "id": self.ids.next(),
                "text": text,
                "author": (author or "").strip() or "Anonymous",
                "timestamp": utc_now_iso(),
            }
            if author_id:
                comment["authorId"] = author_id
            if parent_id:
                comment["parentId"] = parent_id
            data["comments"].append(comment)
            self.repo.save(kind, subject_id, data)
            return comment

        comment = await self.locks.run(path, mutate)
        self._publish([path], f"{kind} {subject_id}: comment {comment['id']} added")
        return comment

    async def edit_comment(
        self,
        kind: SubjectKind,
        subject_id: str,
        comment_id: str,
        text: str,
        caller_id: Optional[str] = None,
        is_admin: bool = True,
    ) -> Dict[str, Any]:
        text = (text or "").strip()
        if not text:
            raise ValidationError("text required")
        path = self.repo.path_for(kind, subject_id)

        def mutate() -> Dict[str, Any]:
            data = self.repo.load(kind, subject_id)
            comment = _find_comment(data, comment_id)
            _check_owner(comment, caller_id, is_admin)
            comment["text"] = text
            comment["edited"] = utc_now_iso()
            self.repo.save(kind, subject_id, data)
            return comment

        comment = await self.locks.run(path, mutate)
        self._publish([path], f"{kind} {subject_id}: comment {comment_id} edited")
        return comment

    async def delete_comment(
        self,
        kind: SubjectKind,
        subject_id: str,
        comment_id: str,
        caller_id: Optional[str] = None,
        is_admin: bool = True,
    ) -> None:
        path = self.repo.path_for(kind, subject_id)

        def mutate() -> None:
            data = self.repo.load(kind, subject_id)
            comment = _find_comment(data, comment_id)
            _check_owner(comment, caller_id, is_admin)
            data["comments"].remove(comment)
            self.repo.save(kind, subject_id, data)

        await self.locks.run(path, mutate)
        self._publish([path], f"{kind} {subject_id}: comment {comment_id} deleted")

    def rollup(self, stack_id: str, photo_ids: Iterable[Any]) -> Dict[str, Any]:
        """Combine a stack's own record with its member photos' records.

        Comments keep list order: the stack's own first, then each photo's
        in the order given. Ids that do not match the id grammar are skipped.
        """

        stack = self.repo.load("stack", stack_id)
        reactions: Dict[str, int] = {}
        comments = []

        records = [stack] + [self.repo.load("photo", pid) for pid in photo_ids if is_valid_id(pid)]
        for record in records:
            for emoji, count in record["reactions"].items():
                reactions[emoji] = reactions.get(emoji, 0) + int(count or 0)
            comments.extend(record["comments"])

        return {
            "stack": stack,
            "rollup": {
                "reactions": reactions,
                "comments": comments,
                "totalCommentCount": len(comments),
                "totalReactionCount": sum(reactions.values()),
            },
        }


def _find_comment(data: Dict[str, Any], comment_id: str) -> Dict[str, Any]:
    for c in data["comments"]:
        if isinstance(c, dict) and c.get("id") == comment_id:
            return c
    raise NotFoundError("comment not found")


def _check_owner(comment: Dict[str, Any], caller_id: Optional[str], is_admin: bool) -> None:
    if is_admin:
        return
    owner = comment.get("authorId")
    if not (owner and caller_id and owner == caller_id):
        raise ForbiddenError("forbidden")

"""
Publish collaborator: record changed data files in git.

Services call `publisher.publish(paths, message)` after a durable write.
The call only schedules work and returns immediately. Git runs in a
background task, one publish at a time, and every failure is logged and
dropped: the JSON file on disk is the source of truth, a missing commit
is never a reason to fail a request.

`NullPublisher` is used when publishing is disabled (no git checkout or
`GIT_PUBLISH=0`).
"""

from pathlib import Path
from typing import List, Sequence, Set
import asyncio

from loguru import logger


def publish_safely(publisher, paths: Sequence[Path], message: str) -> None:
    """Hand `paths` to `publisher`; any error is logged, never raised."""

    try:
        publisher.publish(paths, message)
    except Exception:
        logger.exception("publish failed: {}", message)


class NullPublisher:
    """Publisher that only logs. Keeps the service code path identical."""

    def publish(self, paths: Sequence[Path], message: str) -> None:
        logger.debug("publish disabled, skipping: {}", message)

    async def drain(self) -> None:
        return None


class GitPublisher:
    """Stage, commit and optionally push changed files.

    Example usage:
        pub = GitPublisher(repo_dir, push=True)
        pub.publish([day_path, index_path], "day 2024-05-01 updated")
        await pub.drain()   # on shutdown
    """

    def __init__(self, repo_dir: Path, push: bool = False):
        self.repo_dir = Path(repo_dir)
        self.push = push
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    def publish(self, paths: Sequence[Path], message: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._publish(list(paths), message))
        except RuntimeError:
            logger.warning("publish called outside an event loop, skipped: {}", message)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all scheduled publishes to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _publish(self, paths: List[Path], message: str) -> None:
        async with self._lock:
            try:
                rel = [str(Path(p).resolve().relative_to(self.repo_dir.resolve())) for p in paths]
                await self._git("add", "--", *rel)
                code, out = await self._git("commit", "-m", message, "--", *rel, check=False)
                if code != 0:
                    # nothing to commit is the usual cause
                    logger.info("git commit skipped ({}): {}", message, out.strip())
                    return
                logger.info("committed: {}", message)
                if self.push:
                    code, out = await self._git("push", check=False)
                    if code != 0:
                        logger.warning("git push failed: {}", out.strip())
            except Exception:
                logger.exception("publish failed: {}", message)

    async def _git(self, *args: str, check: bool = True):
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(self.repo_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        raw, _ = await proc.communicate()
        out = raw.decode("utf-8", errors="replace")
        if check and proc.returncode != 0:
            raise RuntimeError(f"git {args[0]} exited {proc.returncode}: {out.strip()}")
        return proc.returncode, out

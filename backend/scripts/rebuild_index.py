#!/usr/bin/env python3
"""
Rebuild public/data/days/index.json from the day files on disk.

Usage:
    python rebuild_index.py            # rebuild and commit if GIT_PUBLISH is on
    python rebuild_index.py --no-git   # rebuild only

Useful after editing day files by hand or restoring them from git.
"""

import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from locks import KeyLockManager
from publisher import GitPublisher, NullPublisher
from repo_days import DayRepo
from service_days import DayService
from settings import settings


async def main(use_git: bool) -> int:
    publisher = GitPublisher(settings.repo_dir, push=settings.git_push) \
        if use_git and settings.git_publish else NullPublisher()
    svc = DayService(DayRepo(settings.days_dir), KeyLockManager(), publisher)
    count = await svc.rebuild_index()
    await publisher.drain()
    return count


if __name__ == "__main__":
    count = asyncio.run(main('--no-git' not in sys.argv))
    print(f"Index rebuilt: {count} days -> {settings.day_index_file}")

"""
Per-key FIFO locks for read-modify-write sequences.

Every mutation of a day file or an interaction file runs through
`KeyLockManager.run(key, fn)` with the file path as key. Calls for the
same key run one at a time in arrival order; calls for different keys
never wait on each other.

Each key maps to the future of the most recent queued call (the tail).
A new call swaps itself in as the tail and waits for the previous one.
When the last call for a key finishes and is still the tail, the key is
dropped, so the map only holds keys with work in flight.

Only protects within a single process and a single event loop.
"""

from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Union
import asyncio
import inspect


class KeyLockManager:
    """Named async mutexes with FIFO hand-off and automatic cleanup."""

    def __init__(self) -> None:
        self._tails: Dict[Hashable, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._tails)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tails

    async def run(self, key: Hashable, fn: Callable[[], Union[Any, Awaitable[Any]]]) -> Any:
        """Run `fn` once every earlier call for `key` has finished.

        `fn` may be a plain callable or return an awaitable. Its exception
        propagates to the caller; the next waiter is released either way.
        """

        loop = asyncio.get_running_loop()
        prev: Optional[asyncio.Future] = self._tails.get(key)
        done = loop.create_future()
        self._tails[key] = done
        try:
            if prev is not None:
                # shield: a cancelled waiter must not cancel its predecessor
                await asyncio.shield(prev)
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            if prev is None or prev.done():
                self._release(key, done)
            else:
                # cancelled while queued: hand off only after prev finishes
                prev.add_done_callback(lambda _: self._release(key, done))

    def _release(self, key: Hashable, done: asyncio.Future) -> None:
        if not done.done():
            done.set_result(None)
        if self._tails.get(key) is done:
            del self._tails[key]

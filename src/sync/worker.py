"""
Background sync worker.

Mutations are applied locally first; the remote half is queued here as a
command and its outcome is reported back through callbacks, all on the event
loop, so nothing touches shared state from another context.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.errors import PosError, TransportError
from utils.logger import get_logger

_logger = get_logger(__name__)

SuccessCallback = Callable[[Any], Any]
FailureCallback = Callable[[PosError], Any]


@dataclass
class SyncCommand:
    label: str
    run: Callable[[], Awaitable[Any]]
    on_success: Optional[SuccessCallback] = None
    on_failure: Optional[FailureCallback] = None


async def _invoke(callback: Optional[Callable], arg: Any) -> None:
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


async def execute(command: SyncCommand, attempts: int = 1, backoff: float = 0.0) -> bool:
    """
    Run a command, retrying transport failures. Returns True on success.

    Validation, not-found and conflict errors are answers, not outages, so
    they are reported straight away.
    """
    error: PosError | None = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            result = await command.run()
        except TransportError as exc:
            error = exc
            _logger.warning(
                f"{command.label}: attempt {attempt}/{attempts} failed ({exc.code}): {exc}"
            )
            if attempt < attempts:
                await asyncio.sleep(backoff * attempt)
            continue
        except PosError as exc:
            error = exc
            _logger.warning(f"{command.label}: {exc}")
            break
        except Exception as exc:
            # untyped failure: report it like any other, without retrying
            _logger.exception(f"{command.label}: unexpected error")
            error = TransportError(f"{command.label} failed: {exc}")
            break
        else:
            _logger.debug(f"{command.label}: done")
            await _invoke(command.on_success, result)
            return True

    await _invoke(command.on_failure, error)
    return False


class SyncWorker:
    """Single consumer of a command queue; commands run in submission order."""

    def __init__(self, attempts: int = 2, backoff: float = 0.5):
        self.attempts = attempts
        self.backoff = backoff
        self._queue: asyncio.Queue[SyncCommand] | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="sync-worker")

    def submit(
        self,
        label: str,
        run: Callable[[], Awaitable[Any]],
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> None:
        if not self.running:
            self.start()
        self._queue.put_nowait(SyncCommand(label, run, on_success, on_failure))

    async def join(self) -> None:
        """Wait until every queued command has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                await execute(command, self.attempts, self.backoff)
            except Exception:
                # a broken callback must not take the worker down with it
                _logger.exception(f"{command.label}: callback raised")
            finally:
                self._queue.task_done()


async def dispatch(
    worker: Optional[SyncWorker],
    label: str,
    run: Callable[[], Awaitable[Any]],
    on_success: Optional[SuccessCallback] = None,
    on_failure: Optional[FailureCallback] = None,
) -> None:
    """Queue on the worker, or run inline when there is none."""
    if worker is not None:
        worker.submit(label, run, on_success, on_failure)
        return
    await execute(SyncCommand(label, run, on_success, on_failure))

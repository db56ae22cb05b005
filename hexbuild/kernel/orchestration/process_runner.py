"""Run one resolved step as a child process.

Handles the only suspension point of a pipeline run: waiting for the child to
exit. Standard output and standard error are captured separately and kept even
when the process is killed.

On POSIX each child leads its own process group, and timeouts and
cancellation signal the whole group, so helpers a tool forked (shell
pipelines, compiler daemons) go down with it. Waits after a kill are bounded
by the terminate grace: a run never hangs on pipes held by a process that
escaped the group.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from hexbuild.kernel.logging import get_logger

if TYPE_CHECKING:
    from hexbuild.kernel.domain.step import ResolvedStep

logger = get_logger(__name__)

# Seconds a terminated child gets to exit before it is killed
DEFAULT_TERMINATE_GRACE = 5.0

_PROCESS_GROUPS = os.name == "posix"


class Timer:
    """Elapsed wall time since construction, in milliseconds."""

    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


class CancelToken:
    """Cooperative cancellation signal for one or more runs.

    Must be triggered from the event loop thread running the pipeline.

    Examples
    --------
    Example usage::

        token = CancelToken()
        task = asyncio.create_task(executor.run(pipeline, cancel_token=token))
        ...
        token.cancel("user requested stop")
    """

    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """What happened to a spawned child process."""

    returncode: int | None
    stdout: bytes
    stderr: bytes
    duration_ms: float
    timed_out: bool = False
    cancelled: bool = False


async def spawn(
    resolved: ResolvedStep,
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> asyncio.subprocess.Process:
    """Start the child with captured output streams.

    Raises
    ------
    OSError
        If the executable is missing or not runnable
    ValueError
        If the command, an argument or an environment entry contains a NUL byte
    """
    merged_env = {**os.environ, **env} if env else None
    return await asyncio.create_subprocess_exec(
        resolved.command,
        *resolved.arguments,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=merged_env,
        start_new_session=_PROCESS_GROUPS,
    )


async def wait_process(
    process: asyncio.subprocess.Process,
    *,
    timeout: float | None = None,
    cancel_token: CancelToken | None = None,
    terminate_grace: float = DEFAULT_TERMINATE_GRACE,
) -> ProcessOutcome:
    """Wait for ``process`` to exit, its timeout to elapse, or cancellation.

    On timeout the child is killed. On cancellation it is terminated and, if it
    ignores the request for ``terminate_grace`` seconds, killed. If the calling
    task itself is cancelled the child is killed and the cancellation propagates.
    """
    timer = Timer()
    communicate = asyncio.ensure_future(process.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancel_wait = None
    if cancel_token is not None:
        cancel_wait = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        logger.warning("Run task cancelled, killing pid {}", process.pid)
        _send(process, force=True)
        communicate.cancel()
        await _reap(process, terminate_grace)
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if communicate in done:
        stdout, stderr = communicate.result()
        return ProcessOutcome(process.returncode, stdout, stderr, timer.duration_ms)

    if cancel_wait is not None and cancel_wait in done:
        logger.debug("Terminating pid {} on cancellation", process.pid)
        stdout, stderr = await _stop(process, communicate, graceful=True, grace=terminate_grace)
        return ProcessOutcome(
            process.returncode, stdout, stderr, timer.duration_ms, cancelled=True
        )

    logger.debug("Killing pid {} after {}s timeout", process.pid, timeout)
    stdout, stderr = await _stop(process, communicate, graceful=False, grace=terminate_grace)
    return ProcessOutcome(process.returncode, stdout, stderr, timer.duration_ms, timed_out=True)


async def _stop(
    process: asyncio.subprocess.Process,
    communicate: asyncio.Future,
    *,
    graceful: bool,
    grace: float,
) -> tuple[bytes, bytes]:
    if graceful:
        _send(process, force=False)
        if not await _reap(process, grace):
            logger.warning("pid {} ignored SIGTERM for {}s, killing", process.pid, grace)
    # The group may outlive its leader, so it is always killed
    _send(process, force=True)
    await _reap(process, grace)

    try:
        return await asyncio.wait_for(asyncio.shield(communicate), grace)
    except TimeoutError:
        logger.warning("Output pipes of pid {} still open after kill, dropping output", process.pid)
        communicate.cancel()
        return b"", b""


async def _reap(process: asyncio.subprocess.Process, grace: float) -> bool:
    """Wait at most ``grace`` seconds for the exit status; True once it is known."""
    if process.returncode is not None:
        return True
    # Process.wait() may also wait for the pipes to close, so poll the status
    loop = asyncio.get_running_loop()
    deadline = loop.time() + grace
    while process.returncode is None and loop.time() < deadline:
        await asyncio.sleep(0.05)
    return process.returncode is not None


def _send(process: asyncio.subprocess.Process, *, force: bool) -> None:
    """SIGKILL (``force``) or SIGTERM the child's process group."""
    if not _PROCESS_GROUPS:
        if process.returncode is None:
            with suppress(ProcessLookupError):
                if force:
                    process.kill()
                else:
                    process.terminate()
        return
    sig = signal.SIGKILL if force else signal.SIGTERM
    with suppress(ProcessLookupError, PermissionError):
        os.killpg(process.pid, sig)

"""Refresh actions run as external commands.

ActionTrigger        -- ABC every refresh action must implement.
ScriptActionTrigger  -- Runs ``<command> <topic>`` as a subprocess with a
                        timeout and captures its output.
"""

from __future__ import annotations

import asyncio
import contextlib
import shlex
import time
from abc import ABC, abstractmethod

from podfeed.models.events import TriggerResult
from podfeed.observability.logging import get_logger

_log = get_logger("trigger.script")

DEFAULT_COMMAND = "./refreshFeed.sh"
DEFAULT_TIMEOUT_SECONDS = 30.0


class ActionTrigger(ABC):
    """A refresh action invoked with a topic and an advisory change count.

    Implementations must not raise; failures are reported in the returned
    TriggerResult.
    """

    @abstractmethod
    async def run(self, topic: str, count: int) -> TriggerResult:
        """Refresh *topic* after *count* coalesced changes."""


class ScriptActionTrigger(ActionTrigger):
    """Runs a refresh script with the topic as its final argument.

    Args:
        command: Command line, split with shlex; the topic is appended as a
                 separate argument so it is never interpreted by a shell.
        timeout: Seconds before the process is killed.
        cwd:     Working directory for the script (defaults to ours).
    """

    def __init__(
        self,
        command: str = DEFAULT_COMMAND,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cwd: str | None = None,
    ) -> None:
        argv = shlex.split(command)
        if not argv:
            raise ValueError("Trigger command must not be empty")
        self._argv = argv
        self._timeout = timeout
        self._cwd = cwd or None

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    async def run(self, topic: str, count: int) -> TriggerResult:
        argv = [*self._argv, topic]
        started = time.monotonic()
        _log.debug("action_spawning", topic=topic, argv=argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
            )
        except OSError as exc:
            return TriggerResult(
                topic=topic,
                count=count,
                duration_seconds=time.monotonic() - started,
                error=f"failed to start {argv[0]}: {exc}",
            )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            _log.warning("action_cancelled", topic=topic, pid=proc.pid)
            raise
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            return TriggerResult(
                topic=topic,
                count=count,
                returncode=proc.returncode,
                duration_seconds=time.monotonic() - started,
                error=f"timed out after {self._timeout:g}s",
                timed_out=True,
            )

        returncode = proc.returncode
        return TriggerResult(
            topic=topic,
            count=count,
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=time.monotonic() - started,
            error=None if returncode == 0 else f"exit status {returncode}",
        )

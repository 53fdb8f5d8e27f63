"""Pane lifecycle coordination on top of the zjpane gateway.

The plugin's spawn command returns before the pane exists and there is no
creation event, only the list query. Spawning therefore runs in three steps:

1. Checking   - reject the name if a pane already carries that title.
2. Requesting - send the spawn command.
3. Polling    - list panes every ``poll_interval`` until the title shows up,
                or fail once ``spawn_timeout`` has passed since Requesting.

A successful spawn only promises the pane was observed once; it may be
closed again by the time the caller acts on it.

Concurrent spawns of the same name inside this process are serialised, so
the later one fails the duplicate check. Another process can still race us
between Checking and Requesting; zellij offers nothing to lock on.
"""

import asyncio
import contextlib
import logging
import shlex
import time
from typing import Optional

from zjpane import (
    DELIMITER,
    DuplicateNameError,
    InvalidArgumentError,
    SpawnTimeoutError,
    ZjpaneGateway,
)

logger = logging.getLogger(__name__)

SPAWN_TIMEOUT = 3.0
SPAWN_POLL_INTERVAL = 0.05

DIRECTIONS = ("up", "down", "left", "right")

HEREDOC_DELIMITER = "ZJPANE_TASK"


def validate_pane_name(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError("Pane name must be a non-empty string", "spawn")
    if DELIMITER in name:
        raise InvalidArgumentError(f'Pane name "{name}" must not contain "{DELIMITER}"', "spawn")
    if "\n" in name or "\r" in name:
        raise InvalidArgumentError("Pane name must be a single line", "spawn")


def validate_direction(direction: Optional[str]) -> None:
    if direction is not None and direction not in DIRECTIONS:
        raise InvalidArgumentError(
            f"Invalid direction {direction!r}, expected one of: {', '.join(DIRECTIONS)}", "spawn"
        )


def heredoc_delimiter(text: str) -> str:
    """Pick a terminator that no line of text can end the heredoc early with.

    Inside $( ... ) bash also closes the heredoc on a line that merely starts
    with the terminator (e.g. `ZJPANE_TASK)`), so prefixes count as collisions.
    """
    lines = text.splitlines()
    delimiter = HEREDOC_DELIMITER
    n = 0
    while any(line.startswith(delimiter) for line in lines):
        n += 1
        delimiter = f"{HEREDOC_DELIMITER}_{n}"
    return delimiter


def build_agent_command(task: str, working_dir: Optional[str] = None, agent_command: str = "claude") -> str:
    """Shell line that starts the agent with task as its single argument.

    The task sits in a heredoc with a quoted terminator, so the shell performs
    no expansion on it: quotes, $, backticks and newlines arrive verbatim.
    Command substitution drops trailing newlines of the task.
    """
    delimiter = heredoc_delimiter(task)
    cmd = f"{agent_command} \"$(cat <<'{delimiter}'\n{task}\n{delimiter}\n)\""
    if working_dir:
        cmd = f"cd {shlex.quote(working_dir)} && {cmd}"
    return cmd


class PaneCoordinator:
    """Turns the plugin's fire-and-forget spawn into a bounded synchronous result."""

    def __init__(self, gateway: ZjpaneGateway, spawn_timeout: float = SPAWN_TIMEOUT,
                 poll_interval: float = SPAWN_POLL_INTERVAL, agent_command: str = "claude"):
        self.gateway = gateway
        self.spawn_timeout = spawn_timeout
        self.poll_interval = poll_interval
        self.agent_command = agent_command
        # name -> [lock, number of spawns holding or waiting on it]
        self._spawn_locks: dict[str, list] = {}

    @contextlib.asynccontextmanager
    async def _exclusive(self, name: str):
        entry = self._spawn_locks.get(name)
        if entry is None:
            entry = self._spawn_locks[name] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._spawn_locks[name]

    def ensure_absent(self, name: str) -> None:
        """Fail with DuplicateNameError if a pane already has this title."""
        if self.gateway.find(name) is not None:
            raise DuplicateNameError(name)

    async def wait_for_pane(self, name: str, start: float) -> float:
        """Poll until a pane titled name exists. Returns seconds since start."""
        polls = 0
        while True:
            polls += 1
            if self.gateway.find(name) is not None:
                elapsed = time.monotonic() - start
                logger.debug("pane %r visible after %d polls", name, polls)
                return elapsed

            # full interval between polls; no extra poll once the budget is spent
            await asyncio.sleep(self.poll_interval)
            if time.monotonic() - start >= self.spawn_timeout:
                raise SpawnTimeoutError(name, self.spawn_timeout)

    async def spawn(self, name: str, direction: Optional[str] = None) -> float:
        """Create a pane titled name and wait until zellij lists it.

        Returns the seconds between sending the spawn command and seeing the
        pane. Raises DuplicateNameError before sending anything if the title
        is taken, SpawnTimeoutError if the pane never shows up.
        """
        validate_pane_name(name)
        validate_direction(direction)

        async with self._exclusive(name):
            self.ensure_absent(name)

            start = time.monotonic()
            self.gateway.spawn(name, direction)
            try:
                elapsed = await self.wait_for_pane(name, start)
            except SpawnTimeoutError:
                logger.warning("pane %r did not appear within %.2fs", name, self.spawn_timeout)
                raise

        logger.info("spawned pane %r in %.3fs", name, elapsed)
        return elapsed

    async def spawn_agent(self, name: str, task: str, direction: Optional[str] = None,
                          working_dir: Optional[str] = None) -> float:
        """Spawn a pane and start an agent in it with task as the prompt."""
        if not isinstance(task, str) or not task:
            raise InvalidArgumentError("Agent task must be a non-empty string", "spawn_agent")

        elapsed = await self.spawn(name, direction)
        self.gateway.write(name, build_agent_command(task, working_dir, self.agent_command))
        logger.info("started agent in pane %r", name)
        return elapsed

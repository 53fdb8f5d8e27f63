"""Command gateway to the zjpane zellij plugin.

Every pane operation is a single `zellij pipe` call carrying one
`<namespace>::<op>::<args...>` line. The plugin answers on stdout.
"""

import json
import logging
import subprocess
from dataclasses import asdict, dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

DELIMITER = "::"
DEFAULT_NAMESPACE = "zjpane"
DEFAULT_COMMAND_TIMEOUT = 10.0

PLUGIN_LOAD_HINT = (
    'Run: zellij action launch-or-focus-plugin '
    '"file:~/.config/zellij/plugins/zjpane.wasm" --floating'
)


# =============================================================================
# ERRORS
# =============================================================================

class ZjpaneError(Exception):
    """Base error. Carries the command (or pane name) that caused it."""

    def __init__(self, message: str, command: str = ""):
        super().__init__(message)
        self.message = message
        self.command = command

    def to_dict(self) -> dict[str, Any]:
        """Error envelope for tool responses."""
        result: dict[str, Any] = {"success": False, "error": self.message}
        if self.command:
            result["command"] = self.command
        return result


class GatewayError(ZjpaneError):
    """The zellij process could not run a command."""


class GatewayTimeoutError(GatewayError):
    """zellij pipe did not finish within its timeout."""

    def __init__(self, command: str, timeout: float):
        super().__init__(
            f"zjpane command timed out after {timeout:g}s - is the zjpane plugin loaded? {PLUGIN_LOAD_HINT}",
            command,
        )
        self.timeout = timeout


class GatewayExecutionError(GatewayError):
    """zellij pipe failed to start or exited non-zero."""

    def __init__(self, message: str, command: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message, command)
        self.returncode = returncode
        self.stderr = stderr


class ParseError(ZjpaneError):
    """The pane list was not a JSON array of {id, title} records."""

    def __init__(self, output: str, command: str):
        super().__init__(f"Failed to parse pane list: {output}", command)
        self.output = output


class DuplicateNameError(ZjpaneError):
    def __init__(self, name: str):
        super().__init__(f'Pane "{name}" already exists', f"spawn{DELIMITER}{name}")
        self.name = name


class SpawnTimeoutError(ZjpaneError):
    def __init__(self, name: str, timeout: float):
        super().__init__(
            f'Pane "{name}" failed to spawn within {int(timeout * 1000)}ms',
            f"spawn{DELIMITER}{name}",
        )
        self.name = name
        self.timeout = timeout


class PaneNotFoundError(ZjpaneError):
    def __init__(self, name: str, available: list[str]):
        super().__init__(f'Pane "{name}" not found')
        self.name = name
        self.available = available

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["available_panes"] = self.available
        return result


class InvalidArgumentError(ZjpaneError):
    """A tool argument cannot be encoded into a zjpane command."""


# =============================================================================
# PANE MODEL
# =============================================================================

@dataclass(frozen=True)
class Pane:
    """A pane as reported by the plugin's list command."""
    id: int
    title: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_pane_list(output: str, command: str) -> list[Pane]:
    """Decode list output. Empty output means no panes."""
    if not output:
        return []
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        raise ParseError(output, command) from None

    if not isinstance(data, list):
        raise ParseError(output, command)

    panes = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ParseError(output, command)
        pane_id = entry.get("id")
        title = entry.get("title")
        # bool is an int subclass
        if not isinstance(pane_id, int) or isinstance(pane_id, bool) or not isinstance(title, str):
            raise ParseError(output, command)
        panes.append(Pane(id=pane_id, title=title))
    return panes


# =============================================================================
# GATEWAY
# =============================================================================

class ZjpaneGateway:
    """Synchronous channel to the zjpane plugin via `zellij pipe`."""

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, session: Optional[str] = None,
                 timeout: float = DEFAULT_COMMAND_TIMEOUT, zellij_bin: str = "zellij"):
        self.namespace = namespace
        self.session = session
        self.timeout = timeout
        self.zellij_bin = zellij_bin

    def command(self, *fields: Any) -> str:
        """Build a namespaced command line from its fields."""
        return DELIMITER.join([self.namespace, *(str(f) for f in fields)])

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        """Run one command and return the plugin's trimmed output."""
        if timeout is None:
            timeout = self.timeout

        args = [self.zellij_bin]
        if self.session:
            args.extend(["-s", self.session])
        args.extend(["pipe", command])

        logger.debug("zellij pipe %s", command)
        try:
            result = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise GatewayTimeoutError(command, timeout) from None
        except OSError as e:
            raise GatewayExecutionError(f"zjpane command failed: {e}", command) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise GatewayExecutionError(
                f"zjpane command failed: exit status {result.returncode}" + (f": {stderr}" if stderr else ""),
                command,
                returncode=result.returncode,
                stderr=stderr,
            )
        return (result.stdout or "").strip()

    # === QUERIES ===

    def list_panes(self) -> list[Pane]:
        """List all panes in the session."""
        command = self.command("list")
        return parse_pane_list(self.execute(command), command)

    def titles(self) -> list[str]:
        return [p.title for p in self.list_panes()]

    def find(self, title: str) -> Optional[Pane]:
        """Return the first pane with this exact title, if any."""
        return next((p for p in self.list_panes() if p.title == title), None)

    def is_loaded(self) -> bool:
        """Check whether the plugin answers a list command."""
        try:
            self.list_panes()
        except ZjpaneError as e:
            logger.debug("zjpane liveness check failed: %s", e)
            return False
        return True

    # === PASS-THROUGH COMMANDS ===

    def spawn(self, name: str, direction: Optional[str] = None) -> str:
        """Request a new pane. The pane appears asynchronously."""
        fields = ["spawn", name]
        if direction:
            fields.append(direction)
        return self.execute(self.command(*fields))

    def write(self, name: str, text: str) -> str:
        """Write text followed by a carriage return."""
        return self.execute(self.command("write", name, text))

    def write_by_id(self, pane_id: int, text: str) -> str:
        return self.execute(self.command("write_id", pane_id, text))

    def write_raw(self, name: str, text: str) -> str:
        """Write text without a carriage return."""
        return self.execute(self.command("write_raw", name, text))

    def write_raw_by_id(self, pane_id: int, text: str) -> str:
        return self.execute(self.command("write_raw_id", pane_id, text))

    def send_enter(self, name: str) -> str:
        return self.execute(self.command("send_enter", name))

    def send_enter_by_id(self, pane_id: int) -> str:
        return self.execute(self.command("send_enter_id", pane_id))

    def read(self, name: str, full: bool = False) -> str:
        """Read the viewport, or the whole scrollback if full."""
        fields = ["read", name]
        if full:
            fields.append("full")
        return self.execute(self.command(*fields))

    def read_by_id(self, pane_id: int, full: bool = False) -> str:
        fields = ["read_id", pane_id]
        if full:
            fields.append("full")
        return self.execute(self.command(*fields))

    def close(self, name: str) -> str:
        return self.execute(self.command("close", name))

    def close_by_id(self, pane_id: int) -> str:
        return self.execute(self.command("close_id", pane_id))

    def focus(self, name: str) -> str:
        return self.execute(self.command("focus", name))

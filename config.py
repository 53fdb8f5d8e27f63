"""Runtime settings: defaults, overridden by ZJPANE_* env vars, then CLI flags."""

import argparse
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

from coordinator import SPAWN_POLL_INTERVAL, SPAWN_TIMEOUT
from zjpane import DEFAULT_COMMAND_TIMEOUT, DEFAULT_NAMESPACE

ENV_PREFIX = "ZJPANE_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_SPAWN_TIMEOUT = SPAWN_TIMEOUT
DEFAULT_POLL_INTERVAL = SPAWN_POLL_INTERVAL
DEFAULT_ENTER_DELAY = 0.15  # Claude Code's TUI drops an Enter sent together with the text


@dataclass(frozen=True)
class Settings:
    zellij_bin: str = "zellij"
    namespace: str = DEFAULT_NAMESPACE
    session: Optional[str] = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    spawn_timeout: float = DEFAULT_SPAWN_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    enter_delay: float = DEFAULT_ENTER_DELAY
    agent_command: str = "claude"
    log_level: str = "WARNING"

    def __post_init__(self):
        for name in ("command_timeout", "spawn_timeout", "poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.enter_delay < 0:
            raise ValueError(f"enter_delay must not be negative, got {self.enter_delay}")
        if not self.namespace:
            raise ValueError("namespace must not be empty")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Build settings from ZJPANE_<FIELD> environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        return cls(**values)

    def with_args(self, args: argparse.Namespace) -> "Settings":
        """Apply CLI flags that were given explicitly."""
        overrides = {
            f.name: getattr(args, f.name)
            for f in fields(self)
            if getattr(args, f.name, None) is not None
        }
        return replace(self, **overrides)


def _coerce(name: str, raw: str, default):
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a number, got {raw!r}") from None
    return raw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zellij-swarm-mcp",
        description="MCP server for managing zellij panes through the zjpane plugin",
    )
    parser.add_argument("--zellij-bin", help="zellij executable (default: zellij)")
    parser.add_argument("--namespace", help="Plugin command namespace (default: zjpane)")
    parser.add_argument("--session", "-s", help="Target zellij session (default: current)")
    parser.add_argument("--command-timeout", type=float, help="Seconds before a zellij pipe call is abandoned")
    parser.add_argument("--spawn-timeout", type=float, help="Seconds to wait for a spawned pane to appear")
    parser.add_argument("--poll-interval", type=float, help="Seconds between pane list polls while spawning")
    parser.add_argument("--enter-delay", type=float, help="Seconds between writing text and sending Enter")
    parser.add_argument("--agent-command", help="Agent executable started by spawn_agent (default: claude)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Log level (stderr)")
    return parser


def load_settings(argv: Optional[list[str]] = None, environ: Optional[dict[str, str]] = None) -> Settings:
    args = build_parser().parse_args(argv)
    return Settings.from_env(environ).with_args(args)

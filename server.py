#!/usr/bin/env python3
"""Zellij Swarm MCP Server - Named pane management and sub-agents via the zjpane plugin."""

import asyncio
import json
import logging
import sys
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from config import Settings, load_settings
from coordinator import DIRECTIONS, PaneCoordinator
from zjpane import (
    PLUGIN_LOAD_HINT,
    InvalidArgumentError,
    PaneNotFoundError,
    ZjpaneError,
    ZjpaneGateway,
)

logger = logging.getLogger(__name__)

server = Server("zellij-swarm")

settings = Settings()
gateway = ZjpaneGateway()
coordinator = PaneCoordinator(gateway)


def configure(new_settings: Settings) -> None:
    """Rebuild the gateway and coordinator from settings."""
    global settings, gateway, coordinator
    settings = new_settings
    gateway = ZjpaneGateway(
        namespace=settings.namespace,
        session=settings.session,
        timeout=settings.command_timeout,
        zellij_bin=settings.zellij_bin,
    )
    coordinator = PaneCoordinator(
        gateway,
        spawn_timeout=settings.spawn_timeout,
        poll_interval=settings.poll_interval,
        agent_command=settings.agent_command,
    )


def require_pane(name: str) -> None:
    """Raise PaneNotFoundError listing the available titles if name is absent."""
    titles = gateway.titles()
    if name not in titles:
        raise PaneNotFoundError(name, titles)


def argument(arguments: dict[str, Any], key: str, tool: str) -> Any:
    """Fetch a required tool argument."""
    if key not in arguments:
        raise InvalidArgumentError(f"Missing required argument: {key}", tool)
    return arguments[key]


# =============================================================================
# TOOL SCHEMAS
# =============================================================================

DIRECTION_ENUM = {"type": "string", "enum": list(DIRECTIONS)}
PANE_NAME = {"type": "string", "description": "Name/title of the target pane"}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List pane management tools."""
    return [
        Tool(
            name="list_panes",
            description="List all terminal panes in the current zellij session with their IDs and titles",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="spawn_pane",
            description="Create a new named terminal pane. The pane title will be set to the given name.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name/title for the new pane"},
                    "direction": {**DIRECTION_ENUM, "description": "Direction to split from current pane (optional)"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="write_to_pane",
            description=(
                "Send text to a terminal pane by name. The text is written as if typed. "
                "Do NOT include \\n - Enter is sent automatically unless send_enter is false."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": PANE_NAME,
                    "text": {"type": "string", "description": "Text to send, without trailing newline"},
                    "send_enter": {
                        "type": "boolean",
                        "description": "Send Enter after the text (default true). Use false for multi-step input.",
                        "default": True,
                    },
                },
                "required": ["name", "text"],
            },
        ),
        Tool(
            name="send_enter",
            description="Send Enter to a terminal pane. Use after write_to_pane with send_enter=false.",
            inputSchema={
                "type": "object",
                "properties": {"name": PANE_NAME},
                "required": ["name"],
            },
        ),
        Tool(
            name="read_pane",
            description="Read the terminal contents of a pane. Returns the viewport, or full scrollback if full=true.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": PANE_NAME,
                    "full": {"type": "boolean", "description": "Return entire scrollback history", "default": False},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="close_pane",
            description="Close a terminal pane by name",
            inputSchema={
                "type": "object",
                "properties": {"name": PANE_NAME},
                "required": ["name"],
            },
        ),
        Tool(
            name="focus_pane",
            description="Move focus to a terminal pane by name",
            inputSchema={
                "type": "object",
                "properties": {"name": PANE_NAME},
                "required": ["name"],
            },
        ),
        Tool(
            name="spawn_agent",
            description="Spawn a new pane and start a Claude Code agent in it with the given task.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name for the agent pane (will appear as pane title)"},
                    "task": {"type": "string", "description": "The task/prompt to give to the agent"},
                    "direction": {**DIRECTION_ENUM, "description": "Direction to split from current pane (optional)"},
                    "working_dir": {"type": "string", "description": "Working directory for the agent (optional)"},
                },
                "required": ["name", "task"],
            },
        ),
    ]


# =============================================================================
# TOOL DISPATCH
# =============================================================================

async def dispatch(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Run one tool and return its success envelope. Domain failures raise ZjpaneError."""
    if name == "list_panes":
        panes = gateway.list_panes()
        return {"success": True, "panes": [p.to_dict() for p in panes], "count": len(panes)}

    if name == "spawn_pane":
        pane_name = argument(arguments, "name", name)
        elapsed = await coordinator.spawn(pane_name, arguments.get("direction"))
        return {"success": True, "message": f'Pane "{pane_name}" spawned', "elapsed": round(elapsed, 3)}

    if name == "write_to_pane":
        pane_name = argument(arguments, "name", name)
        require_pane(pane_name)
        gateway.write_raw(pane_name, argument(arguments, "text", name))
        if arguments.get("send_enter", True):
            await asyncio.sleep(settings.enter_delay)
            gateway.send_enter(pane_name)
        return {"success": True, "message": f'Text sent to pane "{pane_name}"'}

    if name == "send_enter":
        pane_name = argument(arguments, "name", name)
        require_pane(pane_name)
        gateway.send_enter(pane_name)
        return {"success": True, "message": f'Enter sent to pane "{pane_name}"'}

    if name == "read_pane":
        pane_name = argument(arguments, "name", name)
        require_pane(pane_name)
        content = gateway.read(pane_name, full=arguments.get("full", False))
        return {"success": True, "pane": pane_name, "content": content}

    if name == "close_pane":
        pane_name = argument(arguments, "name", name)
        require_pane(pane_name)
        gateway.close(pane_name)
        return {"success": True, "message": f'Pane "{pane_name}" closed'}

    if name == "focus_pane":
        pane_name = argument(arguments, "name", name)
        require_pane(pane_name)
        gateway.focus(pane_name)
        return {"success": True, "message": f'Pane "{pane_name}" focused'}

    if name == "spawn_agent":
        agent_name = argument(arguments, "name", name)
        elapsed = await coordinator.spawn_agent(
            agent_name,
            argument(arguments, "task", name),
            direction=arguments.get("direction"),
            working_dir=arguments.get("working_dir"),
        )
        return {
            "success": True,
            "message": f'Agent "{agent_name}" spawned with task',
            "elapsed": round(elapsed, 3),
        }

    return {"success": False, "error": f"Unknown tool: {name}"}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Execute a pane management tool."""
    arguments = arguments or {}
    try:
        result = await dispatch(name, arguments)
    except ZjpaneError as e:
        logger.info("%s failed: %s", name, e)
        result = e.to_dict()
    except Exception as e:
        logger.exception("unexpected error in %s", name)
        result = {"success": False, "error": str(e) or type(e).__name__}

    return [TextContent(type="text", text=json.dumps(result, indent=2))]


# =============================================================================
# ENTRY POINT
# =============================================================================

async def main():
    """Run the MCP server."""
    if not gateway.is_loaded():
        logger.warning("zjpane plugin is not responding. %s", PLUGIN_LOAD_HINT)

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run(argv: Optional[list[str]] = None) -> None:
    """Console script entry point."""
    try:
        new_settings = load_settings(argv)
    except ValueError as e:
        print(f"zellij-swarm-mcp: {e}", file=sys.stderr)
        sys.exit(1)

    # stdout carries the protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=new_settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    configure(new_settings)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.exception("zellij-swarm MCP server failed")
        sys.exit(1)


if __name__ == "__main__":
    run()

#!/usr/bin/env python3
"""MCP server exposing ai-cli operations as structured tools."""

from __future__ import annotations

import argparse
import io
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

SCRIPT_DIR = Path(__file__).resolve().parent.parent / "scripts"
sys.path.insert(0, str(SCRIPT_DIR))

import ai_cli as cli  # noqa: E402
from mcp.server.fastmcp import FastMCP  # noqa: E402

mcp = FastMCP(
    "ai-cli",
    instructions=(
        "Manage the canonical .ai/ folder of a project: list and install plugins, "
        "rebuild IDE folders (.claude, .cursor, ...) and update from upstream templates. "
        "Operates on the server's working directory."
    ),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_args(**kwargs: Any) -> argparse.Namespace:
    defaults = {
        "verbose": False,
        "yes": True,
        "parser": "json5",
        "source": None,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


@contextmanager
def _capture_output():
    old_out, old_err = sys.stdout, sys.stderr
    sys.stdout = buf_out = io.StringIO()
    sys.stderr = buf_err = io.StringIO()
    try:
        yield buf_out, buf_err
    finally:
        sys.stdout, sys.stderr = old_out, old_err


def _run_cmd(fn: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> dict[str, Any]:
    with _capture_output() as (out, err):
        try:
            fn(args)
        except cli.AiCliError as e:
            return {"success": False, "error": str(e)}
        except SystemExit as e:
            return {
                "success": False,
                "error": err.getvalue().strip() or out.getvalue().strip() or f"exit code {e.code}",
            }
    return {
        "success": True,
        "output": out.getvalue().strip(),
    }


# ---------------------------------------------------------------------------
# Read-only tools
# ---------------------------------------------------------------------------


@mcp.tool()
def ai_status() -> dict[str, Any]:
    """Return the installed plugins, configured IDEs and IDE folder state."""
    root = cli.project_root()
    try:
        doc = cli.load_config(root, cli.select_parser())
    except cli.AiCliError as e:
        return {"success": False, "error": str(e)}

    folders = {}
    for ide in doc.ides:
        target = cli.IDE_TARGETS.get(ide)
        if target is None:
            continue
        backup = cli.latest_backup(root, ide)
        folders[ide] = {
            "folder": target.folder,
            "present": cli.target_present(root, target),
            "last_backup": backup.name if backup else None,
        }
    return {
        "success": True,
        "version": doc.version,
        "plugins": doc.plugins,
        "ides": doc.ides,
        "ide_folders": folders,
    }


@mcp.tool()
def ai_plugins_list(source: Optional[str] = None) -> dict[str, Any]:
    """List plugins available in the template source.

    Args:
        source: Local template directory or git URL (default: upstream repository).
    """
    root = cli.project_root()
    with _capture_output():
        try:
            installed: list[str] = []
            if cli.config_path(root).exists():
                installed = cli.load_config(root, cli.select_parser()).plugins
            with cli.fetch_template_source(source) as tmpl:
                available = cli.list_plugins(tmpl)
        except cli.AiCliError as e:
            return {"success": False, "error": str(e)}
    return {"success": True, "available": available, "installed": installed}


# ---------------------------------------------------------------------------
# Mutating tools
# ---------------------------------------------------------------------------


@mcp.tool()
def ai_plugins_add(name: str, source: Optional[str] = None) -> dict[str, Any]:
    """Copy a plugin's commands/agents/context/skills into .ai/ and register it.

    Args:
        name: Plugin name as listed by ai_plugins_list.
        source: Local template directory or git URL (default: upstream repository).
    """
    return _run_cmd(cli.cmd_plugins_add, _mock_args(name=name, source=source))


@mcp.tool()
def ai_configure(ides: list[str], source: Optional[str] = None) -> dict[str, Any]:
    """Rebuild IDE folders from .ai/, preserving files that only exist in them.

    Args:
        ides: IDE ids (e.g. ["claude", "cursor"]). Empty means the configured ones.
        source: Template source used for IDE assets such as settings.json.
    """
    return _run_cmd(cli.cmd_configure, _mock_args(ides=ides, source=source))


@mcp.tool()
def ai_update(source: Optional[str] = None) -> dict[str, Any]:
    """Refresh installed plugins, AGENTS.md and IDE folders from fresh templates.

    Refuses to run when the git working tree has uncommitted changes.

    Args:
        source: Local template directory or git URL (default: upstream repository).
    """
    return _run_cmd(cli.cmd_update, _mock_args(source=source))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run(transport="stdio")

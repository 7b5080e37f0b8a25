"""Shared fixtures for ai_cli tests."""

from __future__ import annotations

import argparse
import importlib.util
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Load the script as a module (not in a package).
# Register in sys.modules so all test files share the SAME instance.
# ---------------------------------------------------------------------------

_SCRIPT = Path(__file__).parent.parent / "scripts" / "ai_cli.py"

if "ai_cli" not in sys.modules:
    _spec = importlib.util.spec_from_file_location("ai_cli", _SCRIPT)
    _mod = importlib.util.module_from_spec(_spec)
    sys.modules["ai_cli"] = _mod
    _spec.loader.exec_module(_mod)

mod = sys.modules["ai_cli"]

TEMPLATE_FILES: dict[str, str] = {
    ".ai/AGENTS.md": "# Main instructions\n",
    ".ai/scripts/setup.sh": "#!/bin/sh\necho setup\n",
    ".ai/commands/.gitkeep": "",
    ".ai/agents/.gitkeep": "",
    ".ai/context/.gitkeep": "",
    ".ai/skills/.gitkeep": "",
    "plugins/core/commands/hello.md": "# Hello command\n",
    "plugins/core/agents/helper.md": "# Helper agent\n",
    "plugins/docs/context/guide.md": "# Writing guide\n",
    "plugins/docs/skills/writing/SKILL.md": "# Writing skill\n",
    "ides/claude/settings.json": '{"permissions": {}}\n',
    "ides/claude/.gitignore": "# Claude Code\n.claude/\n",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project(tmp_path, monkeypatch):
    """An empty project root, also made the working directory."""
    root = tmp_path / "project"
    root.mkdir()
    monkeypatch.chdir(root)
    return root.resolve()


@pytest.fixture
def template_source(tmp_path):
    return build_template_source(tmp_path / "upstream")


@pytest.fixture
def installed(project, template_source):
    """A project after `install` with no IDE selected."""
    mod.install_project(project, template_source, [], mod.select_parser(), make_args())
    return project


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_template_source(base: Path, files: dict[str, str] | None = None) -> Path:
    for rel, content in (files or TEMPLATE_FILES).items():
        path = base / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return base


def make_args(**overrides: Any) -> argparse.Namespace:
    """Create an argparse.Namespace with sensible test defaults."""
    defaults: dict[str, Any] = {
        "verbose": False,
        "yes": True,
        "parser": "json5",
        "source": None,
        "command": None,
    }
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def tree_state(path: Path) -> dict[str, str]:
    """Map every entry under path to its content, link target or '<dir>'."""
    state: dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            p = Path(dirpath) / name
            rel = str(p.relative_to(path))
            if p.is_symlink():
                state[rel] = "-> " + os.readlink(p)
            elif p.is_file():
                state[rel] = p.read_text()
            else:
                state[rel] = "<dir>"
    return state


def link_targets(path: Path) -> dict[str, str]:
    return {k: v for k, v in tree_state(path).items() if v.startswith("-> ")}


def fake_fetcher(source: Path, calls: list[Path] | None = None):
    """A template fetcher that hands out an existing directory."""

    @contextmanager
    def fetch():
        if calls is not None:
            calls.append(source)
        yield source

    return fetch

#!/usr/bin/env python3
"""Scaffold per-IDE AI configuration folders from a canonical .ai/ source."""

from __future__ import annotations

import argparse
import filecmp
import json
import os
import shutil
import subprocess
import sys
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, ContextManager, Iterator, Optional

import json5

try:
    import curses

    _HAS_CURSES = True
except ImportError:
    _HAS_CURSES = False

# ---------------------------------------------------------------------------
# Terminal colors (respects NO_COLOR and non-TTY)
# ---------------------------------------------------------------------------

_USE_COLOR = (
    sys.stdout.isatty()
    and os.environ.get("NO_COLOR") is None
    and os.environ.get("TERM") != "dumb"
)


def _ansi(code: str) -> str:
    return f"\033[{code}m" if _USE_COLOR else ""


class C:
    """ANSI escape sequences, empty strings when color is disabled."""
    RESET = _ansi("0")
    BOLD = _ansi("1")
    DIM = _ansi("2")
    RED = _ansi("31")
    GREEN = _ansi("32")
    YELLOW = _ansi("33")
    BLUE = _ansi("34")
    MAGENTA = _ansi("35")
    CYAN = _ansi("36")
    BOLD_RED = _ansi("1;31")
    BOLD_GREEN = _ansi("1;32")
    BOLD_YELLOW = _ansi("1;33")
    BOLD_CYAN = _ansi("1;36")
    BOLD_WHITE = _ansi("1;37")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REPO_URL = "https://github.com/betagouv/ai-cli"
LOCAL_TEMPLATES = Path(__file__).resolve().parent.parent / "templates"

CONFIG_VERSION = "1.0.0"
AI_DIR = ".ai"
CONFIG_NAME = "config.jsonc"
MAIN_DOC = "AGENTS.md"
SCRIPTS_DIR = "scripts"
LOCK_NAME = ".lock"
BACKUPS_DIR = Path(".tmp") / "backups"

GROUPS = ("commands", "agents", "context", "skills")
CORE_PLUGIN = "core"
LINK_KINDS = ("dir", "file", "copy")

CONFIG_HEADER = "// ai-cli configuration: installed plugins and configured IDEs.\n"
GITIGNORE_MARKER = "# {ide} - Auto-generated symlinks"
GITIGNORE_BASE = (".tmp/", f"{AI_DIR}/{LOCK_NAME}")

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AiCliError(Exception):
    """Fatal error: aborts the current command with exit code 1."""


class ConfigMissing(AiCliError):
    pass


class ConfigCorrupt(AiCliError):
    pass


class PluginNotFound(AiCliError):
    pass


class InstallIncomplete(AiCliError):
    pass


class DirtyWorkingTree(AiCliError):
    pass


class UnknownIDE(AiCliError):
    pass


class IOFailure(AiCliError):
    pass


class LockHeld(IOFailure):
    pass


class LinkUnsupported(Exception):
    """A symlink could not be created. Caught per entry during relink."""


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class ConfigDocument:
    version: str = CONFIG_VERSION
    ides: list[str] = field(default_factory=list)
    plugins: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def add_plugin(self, name: str) -> bool:
        """Register a plugin. Returns False when it was already present."""
        if name in self.plugins:
            return False
        self.plugins.append(name)
        return True

    def add_ide(self, ide: str) -> bool:
        if ide in self.ides:
            return False
        self.ides.append(ide)
        return True

    @classmethod
    def from_data(cls, data: Any) -> "ConfigDocument":
        if not isinstance(data, dict):
            raise ConfigCorrupt("top level must be an object")
        version = data.get("version")
        if not isinstance(version, str):
            raise ConfigCorrupt("'version' must be a string")
        plugins = data.get("plugins", [])
        if not isinstance(plugins, list) or not all(isinstance(p, str) for p in plugins):
            raise ConfigCorrupt("'plugins' must be an array of strings")
        # Older documents carried a single "ide" string.
        ides = data.get("ides")
        if ides is None:
            ides = [data["ide"]] if isinstance(data.get("ide"), str) else []
        if not isinstance(ides, list) or not all(isinstance(i, str) for i in ides):
            raise ConfigCorrupt("'ides' must be an array of strings")
        extra = {k: v for k, v in data.items() if k not in ("version", "ides", "ide", "plugins")}
        return cls(
            version=version,
            ides=list(dict.fromkeys(ides)),
            plugins=list(dict.fromkeys(plugins)),
            extra=extra,
        )

    def to_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "ides": list(self.ides),
            "plugins": list(self.plugins),
        }
        data.update(self.extra)
        return data


@dataclass
class InstallResult:
    plugin: str
    groups: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LinkSpec:
    source: str  # relative to .ai/
    dest: str  # relative to the IDE folder
    kind: str = "dir"


@dataclass(frozen=True)
class IDETarget:
    id: str
    label: str
    folder: str
    links: tuple[LinkSpec, ...]
    absorb: tuple[tuple[str, str], ...] = ()
    preserve: tuple[str, ...] = ()
    assets: tuple[str, ...] = ()
    # The folder also holds unrelated content: only link destinations are touched.
    shared: bool = False


@dataclass(frozen=True)
class TreeEntry:
    path: PurePosixPath
    kind: str  # "file" | "dir" | "symlink"


@dataclass(frozen=True)
class AbsorbAction:
    entry: PurePosixPath
    kind: str  # "skip" | "absorb" | "adopt" | "restore" | "keep" | "backup"
    dest: Optional[PurePosixPath] = None
    managed: Optional[PurePosixPath] = None


@dataclass
class ReconcileReport:
    ide: str
    backup: Optional[Path] = None
    absorbed: list[str] = field(default_factory=list)
    linked: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


@dataclass
class UpdateReport:
    plugins: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    ides: list[ReconcileReport] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


IDE_TARGETS: dict[str, IDETarget] = {
    "claude": IDETarget(
        id="claude",
        label="Claude Code",
        folder=".claude",
        links=(
            LinkSpec(MAIN_DOC, "CLAUDE.md", "file"),
            LinkSpec("commands", "commands"),
            LinkSpec("agents", "agents"),
            LinkSpec("skills", "skills"),
            LinkSpec("avatars", "output-styles"),
        ),
        preserve=("settings.json", "settings.local.json"),
        assets=("settings.json",),
    ),
    "cursor": IDETarget(
        id="cursor",
        label="Cursor",
        folder=".cursor",
        links=(
            LinkSpec(MAIN_DOC, "rules/main.mdc", "file"),
            LinkSpec("context", "rules/context"),
        ),
        absorb=(("rules", "context"),),
    ),
    "windsurf": IDETarget(
        id="windsurf",
        label="Windsurf",
        folder=".windsurf",
        links=(
            LinkSpec(MAIN_DOC, "rules/main.md", "file"),
            LinkSpec("context", "rules/context"),
        ),
        absorb=(("rules", "context"),),
    ),
    # GitHub's hosted agents do not follow symlinks, so Copilot gets copies.
    "copilot": IDETarget(
        id="copilot",
        label="GitHub Copilot",
        folder=".github",
        links=(
            LinkSpec(MAIN_DOC, "copilot-instructions.md", "copy"),
            LinkSpec("context", "copilot/context", "copy"),
        ),
        shared=True,
    ),
}

# ---------------------------------------------------------------------------
# CLI setup
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-cli",
        description="Maintain a canonical .ai/ folder and link it into IDE configuration folders.",
    )
    parser.add_argument("--verbose", action="store_true", help="Detailed output")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--parser", choices=sorted(PARSERS), default="json5",
                        help="Config parser implementation (default: json5)")
    parser.add_argument("--source", metavar="PATH_OR_URL",
                        help="Template source: local directory or git URL")

    sub = parser.add_subparsers(dest="command")
    install_p = sub.add_parser("install", help="Create .ai/, install core and configure IDEs")
    install_p.add_argument("--ide", dest="ides", action="append", default=[],
                           choices=sorted(IDE_TARGETS), help="IDE to configure (repeatable)")
    sub.add_parser("update", help="Refresh plugins and IDE links from the latest templates")
    sub.add_parser("status", help="Show installed plugins, IDEs and backups")

    plugins_p = sub.add_parser("plugins", help="List or add plugins")
    plugins_sub = plugins_p.add_subparsers(dest="plugins_command")
    plugins_sub.add_parser("list", help="List plugins available in the template source")
    add_p = plugins_sub.add_parser("add", help="Install a plugin into .ai/")
    add_p.add_argument("name", help="Plugin name")

    configure_p = sub.add_parser("configure", help="(Re)build IDE folders from .ai/")
    configure_p.add_argument("ides", nargs="*", metavar="IDE",
                             help="IDE ids (default: those recorded in the config)")

    return parser


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


def section_header(title: str) -> None:
    width = 50
    rule = "─" * max(1, width - len(title) - 5)
    print(f"\n{C.BOLD_CYAN}─── {title} {rule}{C.RESET}")


def summary_line(label: str, count: int, detail: str = "") -> None:
    extra = f"  {C.DIM}({detail}){C.RESET}" if detail else ""
    print(f"  {label:15s} {C.BOLD}{count}{C.RESET}{extra}")


def log(msg: str) -> None:
    print(f"  {msg}")


def log_verbose(msg: str, args: argparse.Namespace) -> None:
    if args.verbose:
        print(f"  {C.DIM}[verbose] {msg}{C.RESET}")


def warn(msg: str) -> None:
    log(f"{C.BOLD_YELLOW}Warning:{C.RESET} {msg}")


def confirm(prompt: str, default: bool = True) -> bool:
    suffix = f"{C.BOLD}[Y/n]{C.RESET}" if default else f"{C.BOLD}[y/N]{C.RESET}"
    answer = input(f"{prompt} {suffix} ").strip().lower()
    if not answer:
        return default
    return answer in ("y", "yes")


def _curses_multi_select(
    stdscr: Any,
    prompt: str,
    options: list[tuple[str, str]],
    defaults: Optional[list[str]],
) -> list[str]:
    """Interactive multi-select using curses. Called via curses.wrapper."""
    curses.curs_set(0)
    curses.use_default_colors()
    selected = set(defaults or [])
    cursor = 0
    hint = "(↑↓ navigate, Space toggle, a all, Enter confirm, q abort)"

    while True:
        stdscr.clear()
        max_y, max_x = stdscr.getmaxyx()
        stdscr.addnstr(0, 0, prompt, max_x - 1)
        stdscr.addnstr(1, 0, hint, max_x - 1)

        for i, (oid, label) in enumerate(options):
            if i + 3 >= max_y:
                break
            marker = "x" if oid in selected else " "
            prefix = ">" if i == cursor else " "
            stdscr.addnstr(i + 3, 0, f"  {prefix} [{marker}] {label}", max_x - 1)

        stdscr.refresh()
        key = stdscr.getch()

        if key == curses.KEY_UP and cursor > 0:
            cursor -= 1
        elif key == curses.KEY_DOWN and cursor < len(options) - 1:
            cursor += 1
        elif key == ord(" "):
            selected ^= {options[cursor][0]}
        elif key == ord("a"):
            all_ids = {o for o, _ in options}
            selected = set() if selected == all_ids else all_ids
        elif key in (curses.KEY_ENTER, 10, 13):
            return [o for o, _ in options if o in selected]
        elif key == ord("q") or key == 27:
            return list(defaults or [])


def _fallback_multi_select(
    prompt: str,
    options: list[tuple[str, str]],
    defaults: Optional[list[str]],
) -> list[str]:
    """Number input fallback for non-TTY environments (e.g. '1 2' or '1,2')."""
    print(f"\n{prompt}")
    for i, (oid, label) in enumerate(options, 1):
        marker = "*" if defaults and oid in defaults else " "
        print(f"  {i}. [{marker}] {label}")
    if defaults:
        print("\n  (* = detected, press Enter to accept)")
    raw = input("\n  Your choice: ").strip()
    if not raw:
        return defaults or []
    if raw.lower() == "all":
        return [oid for oid, _ in options]
    selected = []
    for part in raw.replace(",", " ").split():
        if part.isdigit():
            idx = int(part) - 1
            if 0 <= idx < len(options) and options[idx][0] not in selected:
                selected.append(options[idx][0])
    return selected


def multi_select(
    prompt: str,
    options: list[tuple[str, str]],
    defaults: Optional[list[str]] = None,
    auto_accept: bool = False,
) -> list[str]:
    """Multi-select with fallback chain: auto_accept -> curses -> numbered input."""
    if not options:
        return []

    if auto_accept:
        print(f"\n{prompt}")
        for oid in (defaults or []):
            label = next((lbl for o, lbl in options if o == oid), oid)
            print(f"  {C.DIM}[auto]{C.RESET} {label}")
        return defaults or []

    if _HAS_CURSES and sys.stdin.isatty() and sys.stdout.isatty():
        try:
            return curses.wrapper(_curses_multi_select, prompt, options, defaults)
        except curses.error:
            pass

    return _fallback_multi_select(prompt, options, defaults)


def ai_dir(root: Path) -> Path:
    return root / AI_DIR


def config_path(root: Path) -> Path:
    return root / AI_DIR / CONFIG_NAME


def _rel(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def _is_under(path: PurePosixPath, parent: PurePosixPath) -> bool:
    return parent in path.parents


def _same_file(a: Path, b: Path) -> bool:
    return a.is_file() and b.is_file() and filecmp.cmp(a, b, shallow=False)


def _copy_entry(source: Path, dest: Path) -> None:
    if source.is_dir():
        shutil.copytree(source, dest, dirs_exist_ok=True)
    else:
        shutil.copy2(source, dest)


@contextmanager
def project_lock(root: Path) -> Iterator[Path]:
    """Hold .ai/.lock for the duration of a mutating command."""
    lock = ai_dir(root) / LOCK_NAME
    lock.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(lock, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError as exc:
        raise LockHeld(
            f"{_rel(lock, root)} exists: another ai-cli command is running "
            "(delete the file if that run crashed)"
        ) from exc
    with os.fdopen(fd, "w") as fh:
        fh.write(f"{os.getpid()}\n")
    try:
        yield lock
    finally:
        lock.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Config parsers (JSON with comments)
# ---------------------------------------------------------------------------


class ConfigParser:
    name = ""

    def parse(self, text: str) -> Any:
        raise NotImplementedError


class Json5Parser(ConfigParser):
    """Tolerant parse through the json5 library."""
    name = "json5"

    def parse(self, text: str) -> Any:
        return json5.loads(text)


class LineParser(ConfigParser):
    """Strip comments and trailing commas, then parse as strict JSON."""
    name = "lines"

    def parse(self, text: str) -> Any:
        return json.loads(_strip_trailing_commas(_strip_comments(text)))


def _scan_strings(text: str) -> Iterator[tuple[int, bool]]:
    """Yield (index, inside_string) for every character of comment-free text."""
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            yield i, True
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            yield i, True
            continue
        yield i, False


def _strip_comments(text: str) -> str:
    """Drop // and /* */ comments. Quotes inside a comment never open a string."""
    out: list[str] = []
    in_string = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                out.append(text[i:i + 2])
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = len(text) if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ValueError("unterminated block comment")
            i = end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    for i, in_string in _scan_strings(text):
        ch = text[i]
        if not in_string and ch == ",":
            rest = text[i + 1:].lstrip()
            if rest[:1] in ("]", "}"):
                continue
        out.append(ch)
    return "".join(out)


PARSERS: dict[str, ConfigParser] = {p.name: p for p in (Json5Parser(), LineParser())}


def select_parser(name: str = "json5") -> ConfigParser:
    if name not in PARSERS:
        raise AiCliError(f"unknown config parser '{name}'. Options: {', '.join(sorted(PARSERS))}")
    return PARSERS[name]


# ---------------------------------------------------------------------------
# Config store
# ---------------------------------------------------------------------------


def load_config(root: Path, parser: ConfigParser) -> ConfigDocument:
    path = config_path(root)
    if not path.exists():
        raise ConfigMissing(f"{_rel(path, root)} not found. Run 'install' first.")
    try:
        data = parser.parse(path.read_text())
    except ValueError as exc:
        raise ConfigCorrupt(f"{_rel(path, root)} is not valid: {exc}") from exc
    try:
        return ConfigDocument.from_data(data)
    except ConfigCorrupt as exc:
        raise ConfigCorrupt(f"{_rel(path, root)} is not valid: {exc}") from exc


def _leading_comments(text: str) -> str:
    """Return the lines above the opening brace, or the default header."""
    lines = text.splitlines(keepends=True)
    for i, line in enumerate(lines):
        if line.lstrip().startswith("{"):
            header = "".join(lines[:i])
            return header if header.strip() else CONFIG_HEADER
    return CONFIG_HEADER


def save_config(root: Path, doc: ConfigDocument) -> None:
    """Write the document atomically, keeping any comment header above it."""
    path = config_path(root)
    header = _leading_comments(path.read_text()) if path.exists() else CONFIG_HEADER
    if not header.endswith("\n"):
        header += "\n"
    content = header + json.dumps(doc.to_data(), indent=2, ensure_ascii=False) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".config.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as fh:
            fh.write(content)
        os.replace(tmp, path)
    except OSError as exc:
        Path(tmp).unlink(missing_ok=True)
        raise IOFailure(f"could not write {_rel(path, root)}: {exc}") from exc


def register_plugin(root: Path, name: str, parser: ConfigParser) -> ConfigDocument:
    """Add a plugin to the config, creating the document on first install."""
    if config_path(root).exists():
        doc = load_config(root, parser)
        if not doc.add_plugin(name):
            return doc
    else:
        doc = ConfigDocument(plugins=[name])
    save_config(root, doc)
    return doc


# ---------------------------------------------------------------------------
# Template source
# ---------------------------------------------------------------------------


def template_root(path: Path) -> Path:
    nested = path / "templates"
    return nested if nested.is_dir() else path


@contextmanager
def fetch_template_source(source: Optional[str] = None) -> Iterator[Path]:
    """Yield a template root: a local directory as-is, anything else cloned."""
    if source is None and LOCAL_TEMPLATES.is_dir():
        log(f"{C.DIM}Using local templates (development mode){C.RESET}")
        yield LOCAL_TEMPLATES
        return
    if source is not None and Path(source).expanduser().is_dir():
        yield template_root(Path(source).expanduser().resolve())
        return
    url = source or REPO_URL
    log(f"Fetching templates from {url}...")
    with tempfile.TemporaryDirectory(prefix="ai-cli-") as tmp:
        dest = Path(tmp) / "source"
        try:
            subprocess.run(
                ["git", "clone", "--depth", "1", "--quiet", url, str(dest)],
                check=True, capture_output=True, text=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            raise IOFailure(f"failed to download templates from {url}") from exc
        yield template_root(dest)


def list_plugins(source: Path) -> list[str]:
    plugins_dir = source / "plugins"
    if not plugins_dir.is_dir():
        return []
    return sorted(d.name for d in plugins_dir.iterdir() if d.is_dir())


# ---------------------------------------------------------------------------
# Version control
# ---------------------------------------------------------------------------


def uncommitted_changes(root: Path) -> list[str]:
    """Return `git status` lines for tracked changes, [] outside a repository."""
    if not (root / ".git").exists():
        return []
    try:
        result = subprocess.run(
            ["git", "status", "--porcelain", "--untracked-files=no"],
            cwd=root, check=True, capture_output=True, text=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise IOFailure(f"could not read git status: {exc}") from exc
    return [line for line in result.stdout.splitlines() if line.strip()]


def ensure_clean_tree(root: Path) -> None:
    changes = uncommitted_changes(root)
    if changes:
        listing = "\n".join(f"    {line}" for line in changes)
        raise DirtyWorkingTree(
            f"git working directory is not clean. Commit or stash first.\n{listing}"
        )


# ---------------------------------------------------------------------------
# Plugin installer
# ---------------------------------------------------------------------------


def copy_plugin(root: Path, name: str, source: Path, args: argparse.Namespace) -> InstallResult:
    """Copy every group a plugin ships into .ai/<group>/<name>/."""
    plugin_dir = source / "plugins" / name
    if not plugin_dir.is_dir():
        raise PluginNotFound(f"plugin '{name}' not found in template source")
    result = InstallResult(plugin=name)
    for group in GROUPS:
        src = plugin_dir / group
        if not src.is_dir():
            log_verbose(f"{name}: no {group}/, skipping", args)
            result.skipped.append(group)
            continue
        dest = ai_dir(root) / group / name
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(src, dest, dirs_exist_ok=True)
        except OSError as exc:
            raise InstallIncomplete(
                f"copying {group}/ of plugin '{name}' failed: {exc}. Re-run to retry."
            ) from exc
        result.groups.append(group)
        log(f"{C.GREEN}✓{C.RESET} {group:9s} -> {_rel(dest, root)}/")
    return result


def install_plugin(
    root: Path,
    name: str,
    source: Path,
    parser: ConfigParser,
    args: argparse.Namespace,
) -> InstallResult:
    """Copy then register; a crash in between is repaired by re-running."""
    result = copy_plugin(root, name, source, args)
    register_plugin(root, name, parser)
    return result


def refresh_base_templates(root: Path, source: Path, args: argparse.Namespace) -> list[str]:
    """Overwrite the main instruction document and core scripts."""
    skeleton = source / AI_DIR
    refreshed = []
    main_doc = skeleton / MAIN_DOC
    if main_doc.is_file():
        shutil.copy2(main_doc, ai_dir(root) / MAIN_DOC)
        refreshed.append(MAIN_DOC)
    scripts = skeleton / SCRIPTS_DIR
    if scripts.is_dir():
        shutil.copytree(scripts, ai_dir(root) / SCRIPTS_DIR, dirs_exist_ok=True)
        refreshed.append(f"{SCRIPTS_DIR}/")
    for item in refreshed:
        log(f"{C.GREEN}✓{C.RESET} Updated {AI_DIR}/{item}")
    return refreshed


# ---------------------------------------------------------------------------
# IDE targets
# ---------------------------------------------------------------------------


def load_ide_target(ide: str, source: Optional[Path], parser: ConfigParser) -> IDETarget:
    """Built-in target, with its link map replaced by ides/<id>/links.jsonc if present."""
    base = IDE_TARGETS.get(ide)
    manifest = source / "ides" / ide / "links.jsonc" if source else None
    if manifest is None or not manifest.is_file():
        if base is None:
            raise UnknownIDE(f"unknown IDE '{ide}'. Options: {', '.join(sorted(IDE_TARGETS))}")
        return base

    try:
        data = parser.parse(manifest.read_text())
        links = tuple(
            LinkSpec(str(e["source"]), str(e["dest"]), str(e.get("kind", "dir")))
            for e in data["links"]
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise ConfigCorrupt(f"link map for '{ide}' is not valid: {exc}") from exc
    bad = [link.kind for link in links if link.kind not in LINK_KINDS]
    if bad:
        raise ConfigCorrupt(f"link map for '{ide}' has unknown kind(s): {', '.join(bad)}")
    folder = data.get("folder") or (base.folder if base else None)
    if not folder:
        raise ConfigCorrupt(f"link map for '{ide}' has no 'folder'")
    if "absorb" in data:
        absorb = tuple((str(k), str(v)) for k, v in data["absorb"].items())
    else:
        absorb = base.absorb if base else ()
    return IDETarget(
        id=ide,
        label=data.get("label") or (base.label if base else ide),
        folder=folder,
        links=links,
        absorb=absorb,
        preserve=tuple(data.get("preserve", base.preserve if base else ())),
        assets=tuple(data.get("assets", base.assets if base else ())),
        shared=bool(data.get("shared", base.shared if base else False)),
    )


def target_present(root: Path, target: IDETarget) -> bool:
    folder = root / target.folder
    if target.shared:
        return any((folder / link.dest).exists() for link in target.links)
    return folder.exists()


def detect_ides(root: Path) -> list[str]:
    return [ide for ide, t in IDE_TARGETS.items() if target_present(root, t)]


def gitignore_fragment(target: IDETarget, assets_dir: Optional[Path]) -> list[str]:
    template = assets_dir / ".gitignore" if assets_dir else None
    if template is not None and template.is_file():
        lines = template.read_text().splitlines()
    elif target.shared:
        # Generated copies in a shared folder are committed for hosted tools.
        lines = []
    else:
        lines = [f"{target.folder}/"]
    return [ln for ln in lines if ln.strip() and not ln.startswith("#")]


def update_gitignore(root: Path, ide: str, lines: list[str]) -> bool:
    """Append an IDE section to .gitignore once. Returns True when written."""
    if not lines:
        return False
    path = root / ".gitignore"
    marker = GITIGNORE_MARKER.format(ide=ide)
    existing = path.read_text() if path.exists() else ""
    if marker in existing.splitlines():
        return False
    rule = "# " + "=" * 77
    block = ["", rule, marker, "# Auto-generated by ai-cli - do not edit manually", rule, *lines]
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    path.write_text(existing + prefix + "\n".join(block) + "\n")
    return True


def ensure_gitignore_entries(root: Path, entries: tuple[str, ...] = GITIGNORE_BASE) -> list[str]:
    path = root / ".gitignore"
    existing = path.read_text() if path.exists() else ""
    present = {ln.strip() for ln in existing.splitlines()}
    missing = [e for e in entries if e not in present]
    if missing:
        prefix = "" if not existing or existing.endswith("\n") else "\n"
        path.write_text(existing + prefix + "\n# ai-cli backups and lock\n" + "\n".join(missing) + "\n")
    return missing


# ---------------------------------------------------------------------------
# Backup system
# ---------------------------------------------------------------------------


def init_backup(root: Path, ide: str, command: str, folder: str) -> Path:
    """Create a timestamped backup directory for one IDE folder."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    base = root / BACKUPS_DIR
    backup_dir = base / f"{ts}-{ide}"
    n = 1
    while backup_dir.exists():
        n += 1
        backup_dir = base / f"{ts}-{ide}-{n}"
    backup_dir.mkdir(parents=True)
    meta = {
        "created": ts,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "command": command,
        "ide": ide,
        "folder": folder,
    }
    (backup_dir / "meta.json").write_text(json.dumps(meta, indent=2) + "\n")
    return backup_dir


def backup_folder(
    root: Path,
    folder: Path,
    ide: str,
    command: str,
    only: Optional[list[str]] = None,
) -> Path:
    """Copy an IDE folder (symlinks kept as links) before mutating it.

    With ``only``, just those entries of the folder are copied.
    """
    backup_dir = init_backup(root, ide, command, _rel(folder, root))
    try:
        if only is not None:
            for rel in only:
                src = folder / rel
                dest = backup_dir / "files" / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                if src.is_dir() and not src.is_symlink():
                    shutil.copytree(src, dest, symlinks=True)
                else:
                    shutil.copy2(src, dest, follow_symlinks=False)
        elif folder.is_symlink():
            meta_path = backup_dir / "meta.json"
            meta = json.loads(meta_path.read_text())
            meta["link"] = os.readlink(folder)
            meta_path.write_text(json.dumps(meta, indent=2) + "\n")
        else:
            shutil.copytree(folder, backup_dir / "files", symlinks=True)
    except OSError as exc:
        raise IOFailure(f"backup of {_rel(folder, root)} failed: {exc}") from exc
    log(f"{C.BLUE}Backed up{C.RESET} {_rel(folder, root)} -> {_rel(backup_dir, root)}")
    return backup_dir


def list_backups(root: Path, ide: Optional[str] = None) -> list[Path]:
    """Backup directories, newest first."""
    base = root / BACKUPS_DIR
    if not base.exists():
        return []
    found: list[tuple[str, Path]] = []
    for d in base.iterdir():
        meta_path = d / "meta.json"
        if not d.is_dir() or not meta_path.exists():
            continue
        try:
            meta = json.loads(meta_path.read_text())
        except (OSError, ValueError):
            continue
        if not isinstance(meta, dict):
            continue
        if ide is not None and meta.get("ide") != ide:
            continue
        found.append((meta.get("created_at", ""), d))
    return [d for _, d in sorted(found, key=lambda item: item[0], reverse=True)]


def latest_backup(root: Path, ide: Optional[str] = None) -> Optional[Path]:
    backups = list_backups(root, ide)
    return backups[0] if backups else None


# ---------------------------------------------------------------------------
# IDE reconciler
# ---------------------------------------------------------------------------


def snapshot_tree(folder: Path) -> list[TreeEntry]:
    """List every entry under folder without following symlinks."""
    if folder.is_symlink() or not folder.is_dir():
        return []
    entries: list[TreeEntry] = []
    pending = [folder]
    while pending:
        current = pending.pop()
        with os.scandir(current) as it:
            items = sorted(it, key=lambda e: e.name)
        for item in items:
            rel = PurePosixPath(Path(item.path).relative_to(folder).as_posix())
            if item.is_symlink():
                entries.append(TreeEntry(rel, "symlink"))
            elif item.is_dir(follow_symlinks=False):
                entries.append(TreeEntry(rel, "dir"))
                pending.append(Path(item.path))
            else:
                entries.append(TreeEntry(rel, "file"))
    return sorted(entries, key=lambda e: e.path.parts)


def classify_entry(entry: TreeEntry, target: IDETarget, plugins: list[str]) -> AbsorbAction:
    path = entry.path
    if entry.kind == "symlink":
        return AbsorbAction(path, "skip")
    if str(path) in target.preserve:
        return AbsorbAction(path, "keep")

    for link in target.links:
        dest = PurePosixPath(link.dest)
        source = PurePosixPath(link.source)
        if path == dest:
            if link.kind == "dir":
                return AbsorbAction(path, "backup")
            if link.kind == "copy":
                return AbsorbAction(path, "restore", source)
            return AbsorbAction(path, "adopt", source)
        if _is_under(path, dest):
            rel = path.relative_to(dest)
            plugin_owned = len(rel.parts) > 1 and rel.parts[0] in plugins
            if link.kind == "copy":
                # A copy mirrors .ai/ as of the last run: plugin files are
                # regenerated and other files only fill gaps in .ai/.
                if plugin_owned:
                    return AbsorbAction(path, "skip")
                return AbsorbAction(path, "restore", source / rel)
            if plugin_owned:
                # Plugin content is replaceable: edits move to the group root.
                return AbsorbAction(path, "absorb", source.joinpath(*rel.parts[1:]), source / rel)
            return AbsorbAction(path, "absorb", source / rel)

    for container, group in target.absorb:
        if _is_under(path, PurePosixPath(container)):
            return AbsorbAction(path, "absorb", PurePosixPath(group) / path.relative_to(container))

    if path in (PurePosixPath(CONFIG_NAME), PurePosixPath(LOCK_NAME)):
        return AbsorbAction(path, "backup")
    return AbsorbAction(path, "absorb", path)


def plan_absorb(snapshot: list[TreeEntry], target: IDETarget, plugins: list[str]) -> list[AbsorbAction]:
    """Decide, without touching the disk, where each IDE-only file must go."""
    if target.shared:
        snapshot = [e for e in snapshot if in_link_scope(e.path, target)]
    return [classify_entry(e, target, plugins) for e in snapshot if e.kind != "dir"]


def in_link_scope(path: PurePosixPath, target: IDETarget) -> bool:
    if str(path) in target.preserve:
        return True
    for link in target.links:
        dest = PurePosixPath(link.dest)
        if path == dest or _is_under(path, dest):
            return True
    return False


def apply_absorb(
    root: Path,
    folder: Path,
    actions: list[AbsorbAction],
    backup_dir: Path,
    report: ReconcileReport,
    args: argparse.Namespace,
) -> list[PurePosixPath]:
    """Copy IDE-only content into .ai/. Returns the entries to keep in place."""
    canonical = ai_dir(root)
    kept: list[PurePosixPath] = []
    try:
        for action in actions:
            src = folder / action.entry
            label = f"{target_prefix(root, folder)}{action.entry}"
            if action.kind == "skip":
                log_verbose(f"{label} is a link or a regenerated copy, skipping", args)
                continue
            if action.kind == "keep":
                kept.append(action.entry)
                continue
            if action.kind == "backup":
                report.warnings.append(f"{label} kept only in backup ({_rel(backup_dir, root)})")
                continue

            dest = canonical / action.dest
            if action.kind == "restore":
                if dest.exists() or dest.is_symlink():
                    log_verbose(f"{label} is a copy of {AI_DIR}/{action.dest}, skipping", args)
                else:
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dest)
                    report.absorbed.append(str(action.dest))
                    log(f"{C.GREEN}✓{C.RESET} Preserved {label} -> {AI_DIR}/{action.dest}")
                continue
            if action.kind == "adopt":
                if not dest.exists() and not dest.is_symlink():
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dest)
                    report.absorbed.append(str(action.dest))
                    log(f"{C.GREEN}✓{C.RESET} Adopted {label} as {AI_DIR}/{action.dest}")
                elif not _same_file(src, dest):
                    report.warnings.append(
                        f"{label} differs from {AI_DIR}/{action.dest}; kept only in backup "
                        f"({_rel(backup_dir, root)})"
                    )
                continue

            if action.managed is not None and _same_file(src, canonical / action.managed):
                log_verbose(f"{label} matches installed plugin copy, skipping", args)
                continue
            if dest.is_symlink() or dest.is_dir():
                report.warnings.append(
                    f"{label} collides with {AI_DIR}/{action.dest}; kept only in backup "
                    f"({_rel(backup_dir, root)})"
                )
                continue
            if dest.exists():
                if _same_file(src, dest):
                    continue
                displaced = backup_dir / "displaced" / action.dest
                displaced.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(dest, displaced)
                report.warnings.append(
                    f"{AI_DIR}/{action.dest} overwritten by {label} "
                    f"(previous version in {_rel(displaced, root)})"
                )
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
            report.absorbed.append(str(action.dest))
            log(f"{C.GREEN}✓{C.RESET} Preserved {label} -> {AI_DIR}/{action.dest}")
    except OSError as exc:
        raise IOFailure(
            f"could not preserve custom files from {_rel(folder, root)}: {exc}. "
            f"Nothing was removed; backup at {_rel(backup_dir, root)}"
        ) from exc
    return kept


def target_prefix(root: Path, folder: Path) -> str:
    return f"{_rel(folder, root)}/"


def clear_folder(root: Path, folder: Path) -> None:
    try:
        if folder.is_symlink() or folder.is_file():
            folder.unlink()
        else:
            shutil.rmtree(folder)
    except OSError as exc:
        raise IOFailure(f"could not remove {_rel(folder, root)}: {exc}") from exc
    log(f"{C.GREEN}✓{C.RESET} Old {_rel(folder, root)} removed")


def _symlink(source: Path, dest: Path) -> None:
    relative = os.path.relpath(source, dest.parent)
    try:
        os.symlink(relative, dest, target_is_directory=source.is_dir())
    except (OSError, NotImplementedError) as exc:
        raise LinkUnsupported(f"symlink {dest.name} -> {relative} failed: {exc}") from exc


def relink(
    root: Path,
    target: IDETarget,
    report: ReconcileReport,
    args: argparse.Namespace,
    kept: Optional[list[PurePosixPath]] = None,
    assets_dir: Optional[Path] = None,
) -> None:
    canonical = ai_dir(root)
    folder = root / target.folder
    prefix = target_prefix(root, folder)
    folder.mkdir(parents=True, exist_ok=True)

    for link in target.links:
        source = canonical / link.source
        if not source.exists():
            log_verbose(f"{AI_DIR}/{link.source} not found, skipping {prefix}{link.dest}", args)
            continue
        dest = folder / link.dest
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if link.kind == "copy":
                _copy_entry(source, dest)
                verb = "Copied"
            else:
                try:
                    _symlink(source, dest)
                    verb = "Linked"
                except LinkUnsupported as exc:
                    report.warnings.append(f"{prefix}{link.dest}: {exc}; copied instead")
                    _copy_entry(source, dest)
                    verb = "Copied"
        except OSError as exc:
            report.failures.append(f"{prefix}{link.dest}: {exc}")
            continue
        report.linked.append(link.dest)
        log(f"{C.GREEN}✓{C.RESET} {verb} {prefix}{link.dest} -> {AI_DIR}/{link.source}")

    kept = kept or []
    for entry in kept:
        saved = report.backup / "files" / entry if report.backup else None
        if saved is None or not saved.exists():
            continue
        dest = folder / entry
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(saved, dest)
        except OSError as exc:
            report.failures.append(f"{prefix}{entry}: {exc}")
            continue
        log_verbose(f"Kept {prefix}{entry}", args)

    kept_names = {str(e) for e in kept}
    for asset in target.assets:
        src = assets_dir / asset if assets_dir else None
        if asset in kept_names or src is None or not src.is_file():
            continue
        dest = folder / asset
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        except OSError as exc:
            report.failures.append(f"{prefix}{asset}: {exc}")
            continue
        log(f"{C.GREEN}✓{C.RESET} Copied {asset} -> {prefix}{asset}")


def reconcile_ide(
    root: Path,
    target: IDETarget,
    plugins: list[str],
    args: argparse.Namespace,
    assets_dir: Optional[Path] = None,
    command: str = "configure",
) -> ReconcileReport:
    """Backup -> Absorb -> Clear -> Relink for one IDE folder."""
    if not ai_dir(root).is_dir():
        raise ConfigMissing(f"{AI_DIR}/ not found. Run 'install' first.")
    folder = root / target.folder
    report = ReconcileReport(ide=target.id)
    kept: list[PurePosixPath] = []

    if target.shared:
        entries = [link.dest for link in target.links] + list(target.preserve)
        present = [e for e in entries if (folder / e).exists() or (folder / e).is_symlink()]
        if present:
            report.backup = backup_folder(root, folder, target.id, command, only=present)
            actions = plan_absorb(snapshot_tree(folder), target, plugins)
            kept = apply_absorb(root, folder, actions, report.backup, report, args)
            for entry in present:
                clear_folder(root, folder / entry)
    elif folder.exists() or folder.is_symlink():
        report.backup = backup_folder(root, folder, target.id, command)
        actions = plan_absorb(snapshot_tree(folder), target, plugins)
        kept = apply_absorb(root, folder, actions, report.backup, report, args)
        clear_folder(root, folder)

    relink(root, target, report, args, kept=kept, assets_dir=assets_dir)
    return report


def print_reconcile_report(report: ReconcileReport, root: Path) -> None:
    summary_line("Linked", len(report.linked), "entries")
    summary_line("Preserved", len(report.absorbed), "custom files")
    if report.backup:
        log(f"{C.BLUE}Backup:{C.RESET} {_rel(report.backup, root)}")
    for w in report.warnings:
        warn(w)
    for f in report.failures:
        log(f"{C.BOLD_RED}Failed:{C.RESET} {f}")


def configure_ides(
    root: Path,
    ides: list[str],
    plugins: list[str],
    source: Optional[Path],
    parser: ConfigParser,
    args: argparse.Namespace,
    command: str = "configure",
) -> list[ReconcileReport]:
    targets = [load_ide_target(ide, source, parser) for ide in ides]
    reports = []
    for target in targets:
        section_header(f"Configuring {target.label}")
        assets_dir = source / "ides" / target.id if source else None
        report = reconcile_ide(root, target, plugins, args, assets_dir=assets_dir, command=command)
        if update_gitignore(root, target.id, gitignore_fragment(target, assets_dir)):
            log(f"{C.GREEN}✓{C.RESET} Updated .gitignore for {target.label}")
        print_reconcile_report(report, root)
        reports.append(report)
    return reports


# ---------------------------------------------------------------------------
# Install / update orchestration
# ---------------------------------------------------------------------------


def install_project(
    root: Path,
    source: Path,
    ides: list[str],
    parser: ConfigParser,
    args: argparse.Namespace,
) -> ConfigDocument:
    skeleton = source / AI_DIR
    if not skeleton.is_dir():
        raise IOFailure(f"template source has no {AI_DIR}/ skeleton: {source}")
    for ide in ides:
        load_ide_target(ide, source, parser)

    section_header(f"Creating {AI_DIR}/")
    try:
        shutil.copytree(
            skeleton, ai_dir(root), dirs_exist_ok=True,
            ignore=shutil.ignore_patterns(CONFIG_NAME, LOCK_NAME),
        )
        for group in GROUPS:
            (ai_dir(root) / group).mkdir(exist_ok=True)
    except OSError as exc:
        raise IOFailure(f"could not create {AI_DIR}/: {exc}") from exc
    log(f"{C.GREEN}✓{C.RESET} Created {AI_DIR}/ structure")

    section_header(f"Installing {CORE_PLUGIN} plugin")
    install_plugin(root, CORE_PLUGIN, source, parser, args)

    doc = load_config(root, parser)
    if any([doc.add_ide(ide) for ide in ides]):
        save_config(root, doc)

    configure_ides(root, ides, doc.plugins, source, parser, args, command="install")
    ensure_gitignore_entries(root)
    return doc


def update_project(
    root: Path,
    fetcher: Callable[[], ContextManager[Path]],
    parser: ConfigParser,
    args: argparse.Namespace,
) -> UpdateReport:
    """Refresh plugins, base templates and IDE folders from a fresh source."""
    ensure_clean_tree(root)
    doc = load_config(root, parser)
    report = UpdateReport()

    with fetcher() as source, project_lock(root):
        section_header("Updating plugins")
        for plugin in doc.plugins:
            try:
                copy_plugin(root, plugin, source, args)
            except PluginNotFound:
                msg = f"plugin '{plugin}' no longer exists upstream, skipped"
                warn(msg)
                report.skipped.append(plugin)
                report.warnings.append(msg)
                continue
            report.plugins.append(plugin)

        section_header("Updating base templates")
        refresh_base_templates(root, source, args)

        for ide in doc.ides:
            try:
                report.ides.extend(
                    configure_ides(root, [ide], doc.plugins, source, parser, args, command="update")
                )
            except AiCliError as exc:
                msg = f"{ide} setup failed: {exc}"
                warn(msg)
                report.warnings.append(msg)
    return report


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def project_root() -> Path:
    return Path.cwd().resolve()


def cmd_install(args: argparse.Namespace) -> None:
    root = project_root()
    parser = select_parser(args.parser)
    print(f"\n{C.BOLD_CYAN}=== ai-cli - AI configuration setup ==={C.RESET}\n")

    ensure_clean_tree(root)
    if ai_dir(root).exists():
        warn(f"{AI_DIR}/ already exists; plugin and template files will be overwritten.")
        if not args.yes and not confirm("  Proceed?", default=False):
            print(f"  {C.DIM}Installation cancelled.{C.RESET}")
            return

    ides = list(dict.fromkeys(args.ides))
    if not ides:
        options = [(ide, f"{t.label}  ({t.folder}/)") for ide, t in IDE_TARGETS.items()]
        ides = multi_select("Which IDE(s) do you use?", options,
                            defaults=detect_ides(root), auto_accept=args.yes)
    if not ides:
        raise AiCliError("no IDE selected (pass --ide)")

    with fetch_template_source(args.source) as source, project_lock(root):
        doc = install_project(root, source, ides, parser, args)

    section_header("Done")
    print(f"  {C.BOLD}IDE(s):{C.RESET}  {', '.join(doc.ides)}")
    print(f"  {C.BOLD}Plugins:{C.RESET} {', '.join(doc.plugins)}")
    print(f"\n  Commit {AI_DIR}/ to git. Add plugins with 'ai-cli plugins add <name>'.\n")


def cmd_update(args: argparse.Namespace) -> None:
    root = project_root()
    parser = select_parser(args.parser)
    print(f"\n{C.BOLD_CYAN}=== ai-cli - Update ==={C.RESET}")

    report = update_project(root, lambda: fetch_template_source(args.source), parser, args)

    section_header("Summary")
    summary_line("Plugins", len(report.plugins), ", ".join(report.plugins))
    summary_line("IDEs", len(report.ides), ", ".join(r.ide for r in report.ides))
    for w in report.warnings:
        warn(w)
    print("\n  Review the changes with 'git diff' before committing.\n")


def cmd_plugins(args: argparse.Namespace) -> None:
    if args.plugins_command == "add":
        cmd_plugins_add(args)
    else:
        cmd_plugins_list(args)


def cmd_plugins_list(args: argparse.Namespace) -> None:
    root = project_root()
    installed: list[str] = []
    if config_path(root).exists():
        installed = load_config(root, select_parser(args.parser)).plugins
    with fetch_template_source(args.source) as source:
        available = list_plugins(source)

    section_header(f"Plugins ({len(available)})")
    if not available:
        print(f"  {C.DIM}(none){C.RESET}")
    for name in available:
        mark = f"{C.GREEN}installed{C.RESET}" if name in installed else ""
        print(f"  {C.BOLD}{name:30s}{C.RESET} {mark}")
    print()


def cmd_plugins_add(args: argparse.Namespace) -> None:
    root = project_root()
    parser = select_parser(args.parser)
    doc = load_config(root, parser)

    with fetch_template_source(args.source) as source, project_lock(root):
        section_header(f"Installing {args.name}")
        install_plugin(root, args.name, source, parser, args)
        doc = load_config(root, parser)
        # Static copies do not follow .ai/ changes, refresh them now.
        copied = [
            ide for ide in doc.ides
            if any(link.kind == "copy" for link in load_ide_target(ide, source, parser).links)
        ]
        if copied:
            configure_ides(root, copied, doc.plugins, source, parser, args, command="plugins add")

    print(f"\n  {C.BOLD_GREEN}Done!{C.RESET} Plugins: {', '.join(doc.plugins)}\n")


def cmd_configure(args: argparse.Namespace) -> None:
    root = project_root()
    parser = select_parser(args.parser)
    doc = load_config(root, parser)
    ides = list(dict.fromkeys(args.ides)) or list(doc.ides)
    if not ides:
        raise AiCliError("no IDE configured yet. Pass one, e.g. 'ai-cli configure claude'")

    with project_lock(root):
        # Assets and link maps need a template source; only clone when asked to.
        if args.source is not None or LOCAL_TEMPLATES.is_dir():
            with fetch_template_source(args.source) as source:
                reports = configure_ides(root, ides, doc.plugins, source, parser, args)
        else:
            reports = configure_ides(root, ides, doc.plugins, None, parser, args)
        if any([doc.add_ide(ide) for ide in ides]):
            save_config(root, doc)

    failed = sum(len(r.failures) for r in reports)
    section_header("Summary")
    summary_line("IDEs", len(reports), ", ".join(r.ide for r in reports))
    if failed:
        summary_line("Failed links", failed)
    print()


def cmd_status(args: argparse.Namespace) -> None:
    root = project_root()
    doc = load_config(root, select_parser(args.parser))

    section_header("Config")
    print(f"  {C.BOLD_WHITE}Version{C.RESET}  {doc.version}")
    print(f"  {C.BOLD_WHITE}Plugins{C.RESET}  {C.GREEN}{', '.join(doc.plugins) or '(none)'}{C.RESET}")
    print(f"  {C.BOLD_WHITE}IDEs{C.RESET}     {C.GREEN}{', '.join(doc.ides) or '(none)'}{C.RESET}")

    section_header("Canonical folder")
    for group in GROUPS:
        group_dir = ai_dir(root) / group
        if not group_dir.is_dir():
            summary_line(group, 0, "missing")
            continue
        custom = [p for p in group_dir.iterdir() if p.is_file() and not p.name.startswith(".")]
        owned = [p.name for p in group_dir.iterdir() if p.is_dir() and p.name in doc.plugins]
        summary_line(group, len(custom), f"custom; plugins: {', '.join(sorted(owned)) or '-'}")

    section_header("IDE folders")
    for ide in doc.ides:
        target = IDE_TARGETS.get(ide)
        if target is None:
            print(f"  {ide:10s} {C.DIM}(custom link map){C.RESET}")
            continue
        present = target_present(root, target)
        state = f"{C.GREEN}present{C.RESET}" if present else f"{C.YELLOW}missing{C.RESET}"
        backup = latest_backup(root, ide)
        extra = f"  {C.DIM}last backup {backup.name}{C.RESET}" if backup else ""
        print(f"  {ide:10s} {target.folder:24s} {state}{extra}")
    print()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        if args.command == "install":
            cmd_install(args)
        elif args.command == "update":
            cmd_update(args)
        elif args.command == "plugins":
            cmd_plugins(args)
        elif args.command == "configure":
            cmd_configure(args)
        elif args.command == "status":
            cmd_status(args)
    except AiCliError as exc:
        print(f"{C.BOLD_RED}Error:{C.RESET} {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Context resolution for heartbeats.

Given the active file path, work out:
- language: from the file extension (or a well-known filename), falling back
  to the interpreter named on a shebang line
- project: the nearest ancestor directory holding a project marker
  (.git, pyproject.toml, Cargo.toml, ...)

Resolution only reads the filesystem (stat calls plus at most one bounded read
of the file's first line). It costs O(directory depth) probes per call, which
is why the pump runs it only for signals the debouncer lets through.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .models import HeartbeatContext

logger = logging.getLogger(__name__)


# ---------------------------- Lookup tables ----------------------------

LANGUAGE_BY_EXTENSION: Dict[str, str] = {
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".cs": "cs",
    ".clj": "clojure",
    ".css": "css",
    ".scss": "scss",
    ".dart": "dart",
    ".ex": "elixir",
    ".exs": "elixir",
    ".erl": "erlang",
    ".go": "go",
    ".hs": "haskell",
    ".html": "html",
    ".htm": "html",
    ".java": "java",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".json": "json",
    ".jl": "julia",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".lua": "lua",
    ".md": "markdown",
    ".markdown": "markdown",
    ".ml": "ocaml",
    ".php": "php",
    ".pl": "perl",
    ".py": "python",
    ".pyi": "python",
    ".r": "r",
    ".rb": "ruby",
    ".rs": "rust",
    ".scala": "scala",
    ".sh": "sh",
    ".bash": "bash",
    ".zsh": "zsh",
    ".fish": "fish",
    ".sql": "sql",
    ".swift": "swift",
    ".tex": "tex",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".vim": "vim",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zig": "zig",
}

LANGUAGE_BY_FILENAME: Dict[str, str] = {
    "makefile": "make",
    "gnumakefile": "make",
    "dockerfile": "dockerfile",
    "cmakelists.txt": "cmake",
    "gemfile": "ruby",
    "rakefile": "ruby",
    "justfile": "just",
}

# Interpreter basename (after stripping version digits) -> language
LANGUAGE_BY_INTERPRETER: Dict[str, str] = {
    "python": "python",
    "sh": "sh",
    "bash": "bash",
    "zsh": "zsh",
    "fish": "fish",
    "node": "javascript",
    "deno": "typescript",
    "ruby": "ruby",
    "perl": "perl",
    "php": "php",
    "lua": "lua",
    "Rscript": "r",
}

DEFAULT_PROJECT_MARKERS: Tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "pyproject.toml",
    "setup.py",
    "Cargo.toml",
    "package.json",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "mix.exs",
    "Gemfile",
)

SHEBANG_READ_LIMIT = 256


# ---------------------------- Helpers ----------------------------


def language_from_name(path: Path) -> Optional[str]:
    by_name = LANGUAGE_BY_FILENAME.get(path.name.lower())
    if by_name:
        return by_name
    return LANGUAGE_BY_EXTENSION.get(path.suffix.lower())


def language_from_shebang(first_line: str) -> Optional[str]:
    """Map '#!/usr/bin/env python3' style lines to a language tag."""
    if not first_line.startswith("#!"):
        return None
    parts = first_line[2:].strip().split()
    if not parts:
        return None
    interpreter = os.path.basename(parts[0])
    if interpreter == "env":
        # skip env flags such as '-S'
        args = [p for p in parts[1:] if not p.startswith("-")]
        if not args:
            return None
        interpreter = os.path.basename(args[0])
    return LANGUAGE_BY_INTERPRETER.get(interpreter.rstrip("0123456789.-"))


def _read_first_line(path: Path) -> str:
    # FIFOs and device nodes would block open() on the editor thread
    try:
        if not path.is_file():
            return ""
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.readline(SHEBANG_READ_LIMIT)
    except OSError:
        return ""


# ---------------------------- Resolver ----------------------------


class ContextResolver:
    def __init__(
        self,
        project_markers: Sequence[str] = DEFAULT_PROJECT_MARKERS,
        cwd: Optional[str] = None,
    ) -> None:
        self.project_markers = tuple(project_markers)
        self.cwd = cwd

    def resolve(self, file_path: Optional[str]) -> HeartbeatContext:
        if not file_path:
            return HeartbeatContext()

        path = Path(file_path).expanduser()
        if not path.is_absolute():
            base = Path(self.cwd) if self.cwd else Path.cwd()
            path = base / path

        language = self.detect_language(path)
        project = self.find_project_root(path)
        logger.debug("Resolved %s -> project=%s language=%s", path, project, language)
        return HeartbeatContext(
            file_path=str(path),
            project_path=str(project) if project is not None else None,
            language_tag=language,
        )

    def detect_language(self, path: Path) -> Optional[str]:
        language = language_from_name(path)
        if language:
            return language
        return language_from_shebang(_read_first_line(path))

    def find_project_root(self, path: Path) -> Optional[Path]:
        for directory in path.parents:
            for marker in self.project_markers:
                if (directory / marker).exists():
                    return directory
        return None


__all__ = [
    "ContextResolver",
    "DEFAULT_PROJECT_MARKERS",
    "LANGUAGE_BY_EXTENSION",
    "language_from_name",
    "language_from_shebang",
]

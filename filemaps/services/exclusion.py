"""Gitignore-style exclusion rules for directory scans.

Patterns are evaluated from last to first and the first matching pattern
decides, so later lines override earlier ones:

* blank lines and lines starting with ``#`` are skipped
* ``!pattern`` negates: a match means "keep"
* a leading ``/`` is stripped (paths are always relative to the scan root)
* a trailing ``/`` restricts the pattern to directories
* patterns without ``/`` match the base name, others the whole relative path
  (and everything below it)

Each rule is compiled on its own with pathspec's ``gitwildmatch`` syntax, so
``*`` and ``?`` never cross a ``/`` and a broken line only disables itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, Optional

import pathspec

logger = logging.getLogger("filemaps.scanner")


@dataclass(frozen=True)
class ExclusionRule:
    raw: str
    negate: bool
    dir_only: bool
    match_path: bool
    spec: Optional[pathspec.PathSpec]  # None for malformed patterns

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if self.spec is None:
            return False
        if self.dir_only and not is_dir:
            return False
        name = rel_path if self.match_path else PurePosixPath(rel_path).name
        return self.spec.match_file(name)


def parse_rule(line: str) -> Optional[ExclusionRule]:
    """Parse one pattern line. Returns None for blanks and comments."""
    pattern = line.strip(" \t\r\n")
    if not pattern or pattern.startswith("#"):
        return None

    negate = False
    if pattern.startswith("!"):
        negate = True
        pattern = pattern[1:]
    if pattern.startswith("/"):
        pattern = pattern[1:]
    dir_only = False
    if pattern.endswith("/"):
        dir_only = True
        pattern = pattern[:-1]
    if not pattern:
        return None

    match_path = "/" in pattern
    # anchor path patterns so they only match from the scan root
    compiled = "/" + pattern if match_path else pattern
    spec: Optional[pathspec.PathSpec]
    try:
        spec = pathspec.PathSpec.from_lines("gitwildmatch", [compiled])
    except Exception as exc:
        logger.error("Invalid exclude pattern %r: %s", line, exc)
        spec = None

    return ExclusionRule(raw=line, negate=negate, dir_only=dir_only, match_path=match_path, spec=spec)


class ExclusionMatcher:
    """Pre-parsed, immutable set of exclusion rules."""

    def __init__(self, patterns: Iterable[str] | None = None):
        self.patterns = list(patterns or [])
        self._rules = [rule for rule in (parse_rule(line) for line in self.patterns) if rule is not None]

    def is_excluded(self, rel_path: str, is_dir: bool = False) -> bool:
        rel = (rel_path or "").replace("\\", "/").strip("/")
        if not rel:
            return False
        for rule in reversed(self._rules):
            if rule.matches(rel, is_dir):
                return not rule.negate
        return False


def is_excluded(rel_path: str, is_dir: bool, patterns: Iterable[str]) -> bool:
    return ExclusionMatcher(patterns).is_excluded(rel_path, is_dir)

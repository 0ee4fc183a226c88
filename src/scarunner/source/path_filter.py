"""
Path Filter - Glob-style inclusion and folder exclusion for source files.

Patterns are comma separated. A pattern starting with ``!`` excludes, any
other pattern includes. Patterns without a slash match the file name only
(``*.json``, ``pom.xml``); patterns with a slash match the path relative to
the scanned root and understand ``**`` (``src/**/*.gradle``).
"""

import re
from pathlib import PurePosixPath
from typing import List, Optional, Pattern

import structlog


def _split(patterns: Optional[str]) -> List[str]:
    if not patterns:
        return []
    return [p.strip() for p in re.split(r"[,;]", patterns) if p.strip()]


def _compile(pattern: str) -> Pattern:
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


class _Glob:
    def __init__(self, pattern: str):
        self.pattern = pattern
        self.match_name_only = "/" not in pattern
        self.regex = _compile(pattern)

    def matches(self, path: str) -> bool:
        target = PurePosixPath(path).name if self.match_name_only else path
        return self.regex.match(target) is not None


class PathFilter:
    """
    Decides which files under a root are sent for scanning.

    Example:
        >>> f = PathFilter("*.json, !**/test/**", "node_modules, .git")
        >>> f.includes("web/package.json")
        True
        >>> f.includes("node_modules/lib/package.json")
        False
    """

    def __init__(self, file_patterns: str = "", folder_exclusion: str = ""):
        self.include: List[_Glob] = []
        self.exclude: List[_Glob] = []

        for pattern in _split(file_patterns):
            if pattern.startswith("!"):
                if pattern[1:].strip():
                    self.exclude.append(_Glob(pattern[1:].strip()))
            else:
                self.include.append(_Glob(pattern))

        self.excluded_folders = [
            folder.strip("/\\") for folder in _split(folder_exclusion) if folder.strip("/\\")
        ]
        for folder in self.excluded_folders:
            self.exclude.append(_Glob(f"**/{folder}/**"))

        self.logger = structlog.get_logger(__name__)
        self.logger.debug(
            "path_filter_initialized",
            include=[g.pattern for g in self.include] or ["**/*"],
            exclude=[g.pattern for g in self.exclude],
        )

    @property
    def has_include_patterns(self) -> bool:
        return bool(self.include)

    def includes(self, path: str) -> bool:
        """
        Check a file path relative to the scanned root.

        Args:
            path: Relative path, either separator style

        Returns:
            True if the path matches an include pattern (or there are none)
            and no exclude pattern
        """
        normalized = path.replace("\\", "/")
        if normalized.startswith("./"):
            normalized = normalized[2:]
        if self.excludes(normalized):
            return False
        if not self.include:
            return True
        return any(g.matches(normalized) for g in self.include)

    def excludes(self, path: str) -> bool:
        """True if an exclude pattern or excluded folder matches the path"""
        normalized = path.replace("\\", "/")
        return any(g.matches(normalized) for g in self.exclude)

    def is_excluded_folder(self, relative_dir: str) -> bool:
        """True if a directory (relative to the root) must not be walked"""
        name = PurePosixPath(relative_dir.replace("\\", "/")).name
        return name in self.excluded_folders

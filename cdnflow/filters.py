from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Iterable, Union


ExcludePredicate = Callable[[str], bool]
ExcludeSpec = Union[None, str, "re.Pattern[str]", ExcludePredicate, Iterable[str]]

REGEX_PREFIX = "re:"


def normalize_filename(path: str) -> str:
    return path.replace("\\", "/")


def _normalize_pattern(pattern: str) -> str:
    normalized = pattern.strip().replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _match_pattern(path: str, pattern: str) -> bool:
    path_obj = PurePosixPath(path)
    norm = _normalize_pattern(pattern)
    if not norm:
        return False
    # Support both root anchored and recursive matching styles.
    return (
        path_obj.match(norm)
        or path_obj.match(f"**/{norm}")
        or (norm.endswith("/") and path.startswith(norm))
    )


@dataclass(slots=True)
class PathFilter:
    """Exclude predicate built from glob patterns and ``re:`` regular expressions."""

    glob_patterns: tuple[str, ...] = ()
    regex_patterns: tuple["re.Pattern[str]", ...] = ()

    def __call__(self, path: str) -> bool:
        path = normalize_filename(path)
        if any(pattern.search(path) for pattern in self.regex_patterns):
            return True
        return any(_match_pattern(path, pattern) for pattern in self.glob_patterns)

    def __bool__(self) -> bool:
        return bool(self.glob_patterns or self.regex_patterns)


def build_path_filter(patterns: Iterable[str] | None = None) -> PathFilter:
    globs: list[str] = []
    regexes: list[re.Pattern[str]] = []
    for pattern in patterns or []:
        if not pattern:
            continue
        if pattern.startswith(REGEX_PREFIX):
            regexes.append(re.compile(pattern[len(REGEX_PREFIX):]))
        else:
            globs.append(_normalize_pattern(pattern))
    return PathFilter(glob_patterns=tuple(globs), regex_patterns=tuple(regexes))


def _never(path: str) -> bool:
    return False


def build_exclude(spec: ExcludeSpec) -> ExcludePredicate:
    """Adapt any supported exclude form into a ``path -> bool`` predicate."""
    if spec is None:
        return _never
    if isinstance(spec, re.Pattern):
        pattern = spec
        return lambda path: bool(pattern.search(normalize_filename(path)))
    if isinstance(spec, str):
        return build_path_filter([spec])
    if callable(spec):
        return spec
    return build_path_filter(list(spec))

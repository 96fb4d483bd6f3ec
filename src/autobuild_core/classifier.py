"""Change classification: decide whether a changed path should trigger a build.

Glob semantics:
- Patterns are anchored at the project root and use `/` as separator.
- `**` as a whole segment matches zero or more path segments.
- `*` matches any run of characters inside a single segment.
- `?` matches exactly one character inside a single segment.
- Everything else is literal.

Matching is case-sensitive on every platform, extensions included.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path, PurePath

from autobuild_core.models import BuildConfig, ClassificationResult

logger = logging.getLogger(__name__)


def _strip_dot_prefix(text: str) -> str:
    while text.startswith("./"):
        text = text[2:]
    return text


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern:
    """Translate a glob pattern into an anchored regular expression."""
    pattern = _strip_dot_prefix(pattern.replace("\\", "/")).strip("/")
    segments = pattern.split("/")
    parts: list[str] = []

    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            # Trailing ** swallows the rest, inner ** consumes whole segments
            parts.append(".*" if last else "(?:[^/]+/)*")
            continue

        regex = ""
        for ch in segment:
            if ch == "*":
                regex += "[^/]*"
            elif ch == "?":
                regex += "[^/]"
            else:
                regex += re.escape(ch)
        parts.append(regex if last else regex + "/")

    return re.compile("".join(parts) + r"\Z")


def glob_match(pattern: str, rel_path: str) -> bool:
    """Return True if a root-relative POSIX path matches the glob."""
    return compile_glob(pattern).match(rel_path) is not None


def normalize_path(path: str | PurePath, root: Path) -> str | None:
    """Normalize a changed path to a root-relative, `/`-separated form.

    Returns None when the path lies outside the root.
    """
    text = str(path).replace("\\", "/")
    candidate = PurePath(text)

    if candidate.is_absolute():
        root_text = str(root).replace("\\", "/").rstrip("/")
        if text == root_text:
            return ""
        if not text.startswith(root_text + "/"):
            return None
        text = text[len(root_text) + 1 :]

    return _strip_dot_prefix(text).strip("/")


def _extension(rel_path: str) -> str:
    return PurePath(rel_path).suffix


def classify(path: str | PurePath, config: BuildConfig) -> ClassificationResult:
    """Classify a changed path against the config's rules.

    Order: ignore rules win over watch rules, then the extension filter.
    """
    rel_path = normalize_path(path, config.project.root)
    if rel_path is None or rel_path == "":
        return ClassificationResult.REJECTED_BY_WATCH_PATH

    if any(glob_match(p, rel_path) for p in config.ignore_paths):
        return ClassificationResult.REJECTED_BY_IGNORE

    if not any(glob_match(p, rel_path) for p in config.watch_paths):
        return ClassificationResult.REJECTED_BY_WATCH_PATH

    if _extension(rel_path) not in config.file_extensions:
        return ClassificationResult.REJECTED_BY_EXTENSION

    return ClassificationResult.ACCEPTED

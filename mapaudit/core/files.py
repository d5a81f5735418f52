"""
File system helpers shared by discovery and the codebase index.
"""

import fnmatch
import logging
import os
import posixpath
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

# Stand-in child used to ask "would anything below this directory be excluded?"
_PROBE = "\x00"


def to_posix(path: str) -> str:
    return path.replace("\\", "/")


def normalize_declared_path(path: str) -> str:
    """
    Normalize a path written in a system map.

    "./src/Foo.ts", "/src/Foo.ts" and "src\\Foo.ts" all become "src/Foo.ts".
    """
    result = to_posix(path.strip())
    while result.startswith("./"):
        result = result[2:]
    result = result.lstrip("/")
    if not result:
        return ""
    return posixpath.normpath(result)


def relative_posix(path: Path, root: Path) -> str:
    rel = os.path.relpath(path, root)
    if rel == ".":
        return ""
    return Path(rel).as_posix()


def join_rel(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


def candidate_paths(declared: str, source_roots: Sequence[str]) -> List[str]:
    """
    Project-relative locations a declared path may refer to, in lookup order.

    Args:
        declared: Path as written in the system map
        source_roots: Directories tried as prefixes ("" means the project root)
    """
    normalized = normalize_declared_path(declared)
    if not normalized:
        return []
    candidates = []
    for source_root in source_roots:
        prefix = normalize_declared_path(source_root)
        candidate = join_rel(prefix, normalized) if prefix else normalized
        if candidate not in candidates:
            candidates.append(candidate)
    if normalized not in candidates:
        candidates.insert(0, normalized)
    return candidates


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    """
    Glob match of a project-relative posix path against any pattern.

    "*" crosses directory separators, and a leading "**/" also matches at the root,
    so "**/node_modules/**" excludes both "node_modules/x" and "a/node_modules/x".
    """
    for pattern in patterns:
        pattern = to_posix(pattern)
        if fnmatch.fnmatchcase(rel_path, pattern):
            return True
        while pattern.startswith("**/"):
            pattern = pattern[3:]
            if fnmatch.fnmatchcase(rel_path, pattern):
                return True
    return False


def is_excluded_dir(rel_dir: str, patterns: Sequence[str]) -> bool:
    return matches_any(f"{rel_dir}/{_PROBE}/{_PROBE}", patterns)


def walk_files(
    root: Path,
    exclude_patterns: Sequence[str] = (),
    should_stop: Optional[Callable[[], bool]] = None,
) -> Iterator[Tuple[Path, str]]:
    """
    Lazily yield (absolute path, project-relative posix path) for non-excluded files.

    Symlinked directories are followed, but each directory (by device and inode)
    is entered at most once, so link cycles terminate. Entries are sorted per
    directory so the order is stable between runs.
    """
    root = Path(root)
    visited: Set[Tuple[int, int]] = set()

    def _on_error(error: OSError) -> None:
        logger.warning(f"Cannot read directory {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(root, followlinks=True, onerror=_on_error):
        if should_stop is not None and should_stop():
            logger.info("Directory walk stopped early")
            return

        try:
            stat = os.stat(dirpath)
        except OSError as e:
            logger.warning(f"Cannot stat directory {dirpath}: {e}")
            dirnames[:] = []
            continue

        key = (stat.st_dev, stat.st_ino)
        if key in visited:
            logger.debug(f"Skipping already visited directory {dirpath}")
            dirnames[:] = []
            continue
        visited.add(key)

        rel_dir = relative_posix(Path(dirpath), root)
        dirnames[:] = [
            d for d in sorted(dirnames)
            if not is_excluded_dir(join_rel(rel_dir, d), exclude_patterns)
        ]

        for filename in sorted(filenames):
            rel = join_rel(rel_dir, filename)
            if matches_any(rel, exclude_patterns):
                continue
            yield Path(dirpath) / filename, rel

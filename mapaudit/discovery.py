"""
Discovery of system map documents.
"""

import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

from .config import AuditConfig
from .core.files import matches_any, walk_files

logger = logging.getLogger(__name__)

ROOT_MANIFEST_NAME = "root.map.json"


def is_system_map_name(filename: str, config: AuditConfig) -> bool:
    return filename == ROOT_MANIFEST_NAME or filename.endswith(tuple(config.scanning.map_suffixes))


def discover_system_maps(
    root: Path,
    config: AuditConfig,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Iterator[Path]:
    """
    Lazily yield candidate system map files under ``root``.

    A file qualifies when its name carries a map suffix, it matches the map include
    patterns (if any) and it matches none of the exclude patterns. Finding nothing
    is not an error; the aggregator reports it.
    """
    scanning = config.scanning
    found = 0
    for path, rel in walk_files(root, scanning.exclude_patterns, should_stop=should_stop):
        if not is_system_map_name(path.name, config):
            continue
        if scanning.map_include_patterns and not matches_any(rel, scanning.map_include_patterns):
            continue
        found += 1
        logger.debug(f"Discovered system map: {rel}")
        yield path
    logger.info(f"Discovery finished: {found} system map file(s) under {root}")

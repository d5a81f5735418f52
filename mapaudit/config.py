"""
Configuration for the system map auditor.

Settings are resolved once, per key, from four layers (later wins):

    built-in defaults <- config file <- environment (MAPAUDIT_*) <- explicit overrides

The result is a frozen AuditConfig that is passed explicitly to every component.
Nothing reads the environment after load_config() returns.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "mapaudit.config.json"
REPORT_FORMATS = ("console", "structured", "document")

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/.git/**",
    "**/__pycache__/**",
    "**/.pytest_cache/**",
    "**/.venv/**",
    "**/venv/**",
)


@dataclass(frozen=True)
class ValidationSettings:
    """Which validator categories run."""

    components: bool = True
    apis: bool = True
    flows: bool = True
    references: bool = True
    orphaned_endpoints: bool = True
    map_size_guideline: int = 100


@dataclass(frozen=True)
class ScanningSettings:
    """What the discovery step and the codebase index look at."""

    # Empty include list means "the whole project"
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    file_extensions: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".py", ".sql")
    map_suffixes: Tuple[str, ...] = (".map.json", ".feature.json")
    map_include_patterns: Tuple[str, ...] = ()
    source_roots: Tuple[str, ...] = ("", "src", "client/src", "server", "shared")
    max_file_size: int = 1_000_000


@dataclass(frozen=True)
class ReportingSettings:
    format: str = "console"
    verbose: bool = False
    show_suggestions: bool = True


@dataclass(frozen=True)
class PerformanceSettings:
    max_execution_time: float = 30.0  # seconds
    parallel: bool = True
    cache_enabled: bool = True
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 1)


@dataclass(frozen=True)
class AuditConfig:
    """Resolved, read-only audit configuration."""

    validation: ValidationSettings = field(default_factory=ValidationSettings)
    scanning: ScanningSettings = field(default_factory=ScanningSettings)
    reporting: ReportingSettings = field(default_factory=ReportingSettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    source_path: Optional[Path] = None

    @property
    def worker_count(self) -> int:
        if not self.performance.parallel:
            return 1
        return max(1, self.performance.max_workers)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Camel-cased nested dict, the same shape a config file uses."""
        result = {}
        for section_name in _SECTIONS:
            section = getattr(self, section_name)
            values = {}
            for f in fields(section):
                value = getattr(section, f.name)
                if isinstance(value, tuple):
                    value = list(value)
                elif f.name == "max_execution_time":
                    value = int(round(value * 1000))
                values[_snake_to_camel(f.name)] = value
            result[section_name] = values
        return result


_SECTIONS = {
    "validation": ValidationSettings,
    "scanning": ScanningSettings,
    "reporting": ReportingSettings,
    "performance": PerformanceSettings,
}


class EnvOverrides(BaseSettings):
    """Environment layer (MAPAUDIT_* variables, optionally from a .env file)."""

    model_config = SettingsConfigDict(env_prefix="MAPAUDIT_", extra="ignore")

    config_file: Optional[str] = None
    format: Optional[str] = None
    verbose: Optional[bool] = None
    show_suggestions: Optional[bool] = None
    max_execution_time: Optional[str] = None
    parallel: Optional[bool] = None
    max_workers: Optional[int] = None
    cache_enabled: Optional[bool] = None
    exclude_patterns: Optional[List[str]] = None
    file_extensions: Optional[List[str]] = None

    def to_overrides(self) -> Dict[str, Dict[str, Any]]:
        """Nested camelCase overrides containing only the variables that were set."""
        placement = {
            "format": ("reporting", "format"),
            "verbose": ("reporting", "verbose"),
            "show_suggestions": ("reporting", "showSuggestions"),
            "max_execution_time": ("performance", "maxExecutionTime"),
            "parallel": ("performance", "parallel"),
            "max_workers": ("performance", "maxWorkers"),
            "cache_enabled": ("performance", "cacheEnabled"),
            "exclude_patterns": ("scanning", "excludePatterns"),
            "file_extensions": ("scanning", "fileExtensions"),
        }
        overrides: Dict[str, Dict[str, Any]] = {}
        for attr, (section, key) in placement.items():
            value = getattr(self, attr)
            if value is not None:
                overrides.setdefault(section, {})[key] = value
        return overrides


# === Loading ===

def load_config(
    project_root: Optional[Path] = None,
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    use_env: bool = True,
    env_file: Optional[Path] = None,
) -> AuditConfig:
    """
    Resolve configuration from all layers.

    Args:
        project_root: Where to look for mapaudit.config.json when no path is given
        config_path: Explicit config file; must exist if given
        overrides: Nested mapping with the highest precedence
        use_env: Read MAPAUDIT_* environment variables
        env_file: .env file for the environment layer

    Returns:
        Frozen AuditConfig

    Raises:
        ConfigError: unreadable file or invalid values
    """
    env = EnvOverrides(_env_file=env_file) if use_env else None

    if config_path is None and env is not None and env.config_file:
        config_path = Path(env.config_file)

    source_path = None
    file_layer: Dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        file_layer = _read_config_file(config_path)
        source_path = config_path
    elif project_root is not None:
        candidate = Path(project_root) / DEFAULT_CONFIG_FILENAME
        if candidate.is_file():
            file_layer = _read_config_file(candidate)
            source_path = candidate

    merged = AuditConfig().to_dict()
    merged = deep_merge(merged, _normalize_keys(file_layer))
    if env is not None:
        merged = deep_merge(merged, env.to_overrides())
    if overrides:
        merged = deep_merge(merged, _normalize_keys(overrides))

    config = build_config(merged, source_path=source_path)
    logger.debug(f"Configuration resolved (file={source_path})")
    return config


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge per key; nested mappings merge recursively, everything else is replaced."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def build_config(data: Mapping[str, Any], source_path: Optional[Path] = None) -> AuditConfig:
    """Validate a merged camelCase mapping and build the frozen config."""
    sections = {}
    for section_name, section_cls in _SECTIONS.items():
        raw = data.get(section_name, {})
        if not isinstance(raw, Mapping):
            raise ConfigError(f"'{section_name}' must be an object")
        sections[section_name] = _build_section(section_name, section_cls, raw)

    if sections["reporting"].format not in REPORT_FORMATS:
        raise ConfigError(
            f"reporting.format must be one of: {', '.join(REPORT_FORMATS)}"
        )

    return AuditConfig(source_path=source_path, **sections)


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Bare numbers are milliseconds; strings may carry a unit: "500ms", "30s", "2m".
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value) / 1000.0
    if isinstance(value, str):
        match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*", value)
        if match:
            amount = float(match.group(1))
            unit = match.group(2) or "ms"
            return amount * {"ms": 0.001, "s": 1.0, "m": 60.0}[unit]
    raise ConfigError(f"Invalid duration: {value!r}")


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _build_section(section_name: str, section_cls: type, raw: Mapping[str, Any]):
    known = {f.name: f for f in fields(section_cls)}
    kwargs = {}
    for key, value in raw.items():
        name = _camel_to_snake(key)
        if name not in known:
            logger.warning(f"Ignoring unknown config key: {section_name}.{key}")
            continue
        kwargs[name] = _coerce(f"{section_name}.{key}", name, known[name].default, value)
    return section_cls(**kwargs)


def _coerce(label: str, name: str, default: Any, value: Any) -> Any:
    if name == "max_execution_time":
        seconds = parse_duration(value)
        if seconds < 1.0:
            raise ConfigError(f"{label} must be at least 1000ms")
        return seconds

    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{label} must be a boolean")
        return value

    if isinstance(default, tuple):
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return tuple(value)
        raise ConfigError(f"{label} must be a list of strings")

    if isinstance(default, str):
        if not isinstance(value, str):
            raise ConfigError(f"{label} must be a string")
        return value

    # Integers; max_workers has a factory default, so it lands here too
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{label} must be a positive integer")
    return value


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept snake_case keys in overrides by turning them into camelCase."""
    result: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            value = _normalize_keys(value)
        result[_snake_to_camel(key)] = value
    return result


def _camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)

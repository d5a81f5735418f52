"""
Pytest configuration and fixtures.

Usage:
    pytest tests/ -v
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from mapaudit.config import AuditConfig, PerformanceSettings, load_config  # noqa: E402
from mapaudit.index import CodebaseIndex, build_index  # noqa: E402


# ═══════════════════════════════════════════════════════
# ENVIRONMENT
# ═══════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MAPAUDIT_* variables from the developer's shell out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("MAPAUDIT_"):
            monkeypatch.delenv(name, raising=False)


# ═══════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════

@pytest.fixture
def audit_config() -> AuditConfig:
    """Default configuration with a fixed worker count."""
    return AuditConfig(performance=PerformanceSettings(max_workers=4))


@pytest.fixture
def loaded_config(tmp_path) -> Callable[..., AuditConfig]:
    """Resolve configuration for the temporary project without the environment layer."""
    def _load(**overrides) -> AuditConfig:
        return load_config(tmp_path, overrides=overrides or None, use_env=False)
    return _load


# ═══════════════════════════════════════════════════════
# PROJECT FIXTURES
# ═══════════════════════════════════════════════════════

@pytest.fixture
def project(tmp_path) -> Callable[[str, Any], Path]:
    """
    Write files into a temporary project.

    Dicts and lists are stored as JSON, bytes as-is, anything else as text.
    """
    def _write(rel_path: str, content: Any = "") -> Path:
        path = tmp_path / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, (dict, list)):
            path.write_text(json.dumps(content, indent=2), encoding="utf-8")
        elif isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def indexed(tmp_path, audit_config) -> Callable[[], CodebaseIndex]:
    """Build the index of the temporary project on demand."""
    def _build() -> CodebaseIndex:
        return build_index(tmp_path, audit_config)
    return _build


EXPRESS_ROUTES = """
import express from "express";

const router = express.Router();

router.get("/api/users/:id", getUser);
router.post('/api/users', createUser);
router.all(`/api/health`, health);

export default router;
"""

USERS_SCHEMA = """
import { pgTable, serial, text } from "drizzle-orm/pg-core";

export const users = pgTable("users", {
  id: serial("id").primaryKey(),
  name: text("name"),
});
"""


@pytest.fixture
def sample_project(project, tmp_path) -> Path:
    """Small project whose system map fully resolves."""
    project("client/src/components/UserCard.tsx", "export const UserCard = () => null;\n")
    project("server/routes.ts", EXPRESS_ROUTES)
    project("shared/schema.ts", USERS_SCHEMA)
    project("docs/users.map.json", {
        "name": "users",
        "lastUpdated": "2024-01-01",
        "components": {"UserCard": "components/UserCard.tsx"},
        "apiEndpoints": {
            "GET /api/users/:id": "server/routes.ts",
            "POST /api/users": "routes.ts",
            "GET /api/health": "server/routes.ts",
        },
        "database": {"users": "shared/schema.ts"},
    })
    return tmp_path

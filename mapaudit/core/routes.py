"""Route key helpers shared by the parser, the index and the API validator."""

import re
from typing import List, Optional, Tuple

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD")

# Registered with app.all(...) / router.all(...): answers every verb
ANY_METHOD = "ALL"

PARAM_SEGMENT = ":param"

_PARAM_PATTERNS: List[re.Pattern] = [
    re.compile(r"^:[A-Za-z_][A-Za-z0-9_]*(\(.*\))?\??$"),  # Express  :id, :id?, :id(\d+)
    re.compile(r"^\{[^{}]+\}$"),                            # FastAPI  {id}, {id:int}
    re.compile(r"^<[^<>]+>$"),                              # Flask    <id>, <int:id>
    re.compile(r"^\[{1,2}(\.\.\.)?[^\[\]]+\]{1,2}$"),       # Next.js  [id], [...slug]
]


def is_param_segment(segment: str) -> bool:
    return any(p.match(segment) for p in _PARAM_PATTERNS)


def canonical_path(path: str) -> str:
    """
    Reduce a route template to its structural form.

    "/api/users/:id", "/api/users/{user_id}" and "/api/users/<int:id>/" all become
    "/api/users/:param". Concrete values such as "/api/users/42" stay literal.
    """
    segments = [s for s in path.strip().split("/") if s]
    canonical = [PARAM_SEGMENT if is_param_segment(s) else s for s in segments]
    return "/" + "/".join(canonical)


def endpoint_key(method: str, path: str) -> str:
    return f"{method.strip().upper()} {canonical_path(path)}"


def split_endpoint_key(key: str) -> Optional[Tuple[str, str]]:
    """Split a declared "METHOD /path" key; None when the key is malformed."""
    parts = key.strip().split(None, 1)
    if len(parts) != 2:
        return None
    method, path = parts[0].upper(), parts[1].strip()
    if method not in HTTP_METHODS:
        return None
    if not path.startswith("/") or any(ch.isspace() for ch in path):
        return None
    return method, path

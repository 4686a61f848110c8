"""Cache key construction.

Two key families share the store:

    Response keys:  {prefix}:{identity}:{path}[?{query}]
        api:U1:/api/courses?page=1
        api:anonymous:/api/lessons/7

    Function keys:  cache:{namespace}:{function_name}:{arg_hash}
        cache:courses:list_published_courses:a1b2c3d4e5f6a7b8
"""

import hashlib
import string
from datetime import date, datetime
from typing import Any, Mapping, Optional

import orjson
from pydantic import BaseModel

ANONYMOUS = "anonymous"
# Key separator and Redis glob metacharacters.
RESERVED_IDENTITY_CHARS = frozenset(":*?[]\\")
FUNCTION_KEY_PREFIX = "cache"


def response_cache_key(prefix: str, identity: Optional[str], path: str, query: str = "") -> str:
    """Build the key for a read response.

    The same identity, path and query string always give the same key, and
    the query string is kept verbatim so ``?page=1&size=5`` and
    ``?size=5&page=1`` are cached separately.

    Identities that could collide with another caller's keys are rejected:
    ones containing ``:`` or a glob metacharacter, and the literal
    ``anonymous`` which names unauthenticated callers.
    """
    if not path:
        raise ValueError("cannot derive a response cache key without a request path")
    if identity:
        if identity == ANONYMOUS:
            raise ValueError(f"identity {ANONYMOUS!r} is reserved for unauthenticated callers")
        if RESERVED_IDENTITY_CHARS.intersection(identity):
            raise ValueError(f"identity {identity!r} contains a reserved key character")
    target = f"{path}?{query}" if query else path
    return f"{prefix}:{identity or ANONYMOUS}:{target}"


def identity_pattern(prefix: str, identity: str) -> str:
    """Return a glob matching every cached response of one caller."""
    return f"{prefix}:{identity}:*"


def path_pattern(prefix: str, path: str) -> str:
    """Return a glob matching cached responses under a path, for all callers.

    ``path_pattern("api", "/api/courses")`` -> ``api:*:/api/courses*``
    """
    return f"{prefix}:*:{path}*"


def expand_pattern(pattern: str, params: Mapping[str, Any]) -> str:
    """Fill ``{name}`` fields of an invalidation pattern from path parameters.

    Patterns that reference an unknown field, or that are not valid format
    strings, are returned unchanged.
    """
    if "{" not in pattern:
        return pattern
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(pattern) if name is not None]
        if not fields or any(name not in params for name in fields):
            return pattern
        return pattern.format_map({k: str(v) for k, v in params.items()})
    except (ValueError, IndexError, KeyError, AttributeError):
        return pattern


def build_cache_key(namespace: str, func_name: str, args: tuple, kwargs: dict) -> str:
    """Build a deterministic key from function identity and arguments.

    Args:
        namespace: Cache namespace (e.g., "courses", "progress")
        func_name: Function name (e.g., "list_published_courses")
        args: Positional arguments
        kwargs: Keyword arguments

    Returns:
        Key string like "cache:courses:list_published_courses:a1b2c3d4e5f6a7b8"
    """
    key_data = orjson.dumps(
        {"a": _normalize(args), "k": _normalize(kwargs)},
        option=orjson.OPT_SORT_KEYS,
    )
    arg_hash = hashlib.sha256(key_data).hexdigest()[:16]
    return f"{FUNCTION_KEY_PREFIX}:{namespace}:{func_name}:{arg_hash}"


def namespace_pattern(namespace: str) -> str:
    """Return a glob for all function keys in a namespace.

    Returns pattern like "cache:courses:*"
    """
    return f"{FUNCTION_KEY_PREFIX}:{namespace}:*"


def _normalize(obj):
    """Normalize arguments for deterministic hashing."""
    if isinstance(obj, (str, int, float, bool, type(None))):
        return obj
    elif isinstance(obj, (date, datetime)):
        return obj.isoformat()
    elif isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    elif isinstance(obj, dict):
        return {str(k): _normalize(v) for k, v in sorted(obj.items(), key=lambda item: str(item[0]))}
    elif isinstance(obj, (list, tuple)):
        return [_normalize(item) for item in obj]
    else:
        return str(obj)

"""
RBAC helpers and canonical action definitions for agent permissions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    PRINT = "print"
    EXPORT = "export"
    ALL = "all"


class RolePrefix(str, Enum):
    ADMIN = "admin_"
    CLINIC = "clinic_"
    DOCTOR = "doctor_"
    AGENT = "agent_"


# Prefixes the permission authority stores module keys under.
MODULE_PREFIXES: tuple[RolePrefix, ...] = (
    RolePrefix.ADMIN,
    RolePrefix.CLINIC,
    RolePrefix.DOCTOR,
)

# The all-permissions map is also addressed with agent-prefixed keys.
LOOKUP_PREFIXES: tuple[RolePrefix, ...] = MODULE_PREFIXES + (RolePrefix.AGENT,)

GRANULAR_ACTIONS: tuple[Action, ...] = tuple(a for a in Action if a is not Action.ALL)


def coerce_boolean(value: Any) -> bool:
    """
    Strict truthiness for loosely-typed permission flags.

    Only ``True`` and strings equal to "true" (any case) grant; everything
    else, including 1, "1", "yes" and "false", denies.
    """
    if value is True:
        return True
    if isinstance(value, str):
        return value.lower() == "true"
    return False


def parse_action(action: str | Action) -> Action:
    if isinstance(action, Action):
        return action
    try:
        return Action(str(action).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown permission action: {action!r}") from None


def normalize_module_key(module_key: str, prefixes: Iterable[RolePrefix] = MODULE_PREFIXES) -> str:
    """Strip a single leading role prefix, if any."""
    for prefix in prefixes:
        if module_key.startswith(prefix.value):
            return module_key[len(prefix.value):]
    return module_key


def module_key_candidates(module_key: str, prefixes: Iterable[RolePrefix] = MODULE_PREFIXES) -> list[str]:
    """Every key a record for *module_key* may be stored under, in lookup order."""
    prefixes = tuple(prefixes)
    candidates = [module_key, normalize_module_key(module_key, prefixes)]
    candidates.extend(f"{prefix.value}{module_key}" for prefix in prefixes)

    seen: set[str] = set()
    ordered = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return ordered


def module_matches(stored_module: str, requested_key: str, prefixes: Iterable[RolePrefix] = MODULE_PREFIXES) -> bool:
    """Whether a stored record's module key answers a request for *requested_key*."""
    if not stored_module or not requested_key:
        return False
    prefixes = tuple(prefixes)
    if stored_module in module_key_candidates(requested_key, prefixes):
        return True
    return normalize_module_key(stored_module, prefixes) == normalize_module_key(requested_key, prefixes)

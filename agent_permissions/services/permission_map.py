"""
All-permissions lookup for the current agent.

Loads every permission record once and answers ``has_permission`` queries
for any module key alias (role-prefixed or not) without further requests.
"""

from __future__ import annotations

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from agent_permissions.core.config import settings
from agent_permissions.core.credentials import bearer_headers
from agent_permissions.core.exceptions import PermissionErrorKind
from agent_permissions.core.rbac import (
    LOOKUP_PREFIXES,
    Action,
    coerce_boolean,
    module_matches,
    normalize_module_key,
    parse_action,
)
from agent_permissions.schemas.permissions import (
    AgentPermissionsResponse,
    PermissionRecord,
    SubModulePermission,
)
from agent_permissions.services.permission_resolver import ResolutionError

logger = structlog.get_logger()


def _aliases(module_key: str) -> list[str]:
    bare = normalize_module_key(module_key, LOOKUP_PREFIXES)
    return [module_key, bare] + [f"{prefix.value}{bare}" for prefix in LOOKUP_PREFIXES]


class PermissionMap:
    def __init__(self, records: list[PermissionRecord] | None = None) -> None:
        self._records: list[PermissionRecord] = list(records or [])
        self._index: dict[str, PermissionRecord] = {}
        # stored keys first; an alias never replaces another record's own key
        for record in self._records:
            if record.module:
                self._index.setdefault(record.module, record)
        for record in self._records:
            if not record.module:
                continue
            for alias in _aliases(record.module):
                self._index.setdefault(alias, record)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def keys(self) -> list[str]:
        return sorted(self._index)

    def find_module(self, module_key: str) -> Optional[PermissionRecord]:
        for alias in _aliases(module_key):
            if alias in self._index:
                return self._index[alias]
        for record in self._records:
            if module_matches(record.module, module_key, LOOKUP_PREFIXES):
                return record
        return None

    @staticmethod
    def find_sub_module(record: PermissionRecord, sub_module_name: str) -> Optional[SubModulePermission]:
        """Exact name, then case-insensitive, then whitespace-trimmed."""
        for sub_module in record.sub_modules:
            if sub_module.name == sub_module_name:
                return sub_module
        for sub_module in record.sub_modules:
            if sub_module.name and sub_module.name.lower() == sub_module_name.lower():
                return sub_module
        for sub_module in record.sub_modules:
            if sub_module.name and sub_module.name.strip() == sub_module_name.strip():
                return sub_module
        return None

    def has_permission(
        self,
        module_key: str | None,
        action: str | Action | None,
        sub_module_name: str | None = None,
    ) -> bool:
        if not module_key or not action:
            return False
        try:
            action = parse_action(action)
        except ValueError:
            return False

        record = self.find_module(module_key)
        if record is None:
            logger.debug("Module not found in permission map", module_key=module_key)
            return False

        module_all = coerce_boolean(record.actions.get(Action.ALL.value))

        if sub_module_name:
            if module_all:
                return True
            sub_module = self.find_sub_module(record, sub_module_name)
            if sub_module is None:
                logger.debug("Submodule not found in permission map", module_key=module_key, sub_module=sub_module_name)
                return False
            return (
                coerce_boolean(sub_module.actions.get(action.value))
                or coerce_boolean(sub_module.actions.get(Action.ALL.value))
            )

        return module_all or coerce_boolean(record.actions.get(action.value))


async def load_permission_map(
    credential: str | None,
    *,
    url: str | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> tuple[PermissionMap, Optional[ResolutionError]]:
    """Fetch every record of the agent; failures yield an empty map and an error."""
    if not credential:
        return PermissionMap(), ResolutionError(PermissionErrorKind.MISSING_CREDENTIAL, "No agent token found")

    timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
    client_kwargs = {}
    if timeout is not None:
        client_kwargs["timeout"] = timeout

    url = url or settings.MY_PERMISSIONS_URL
    try:
        if client is not None:
            response = await client.get(url, headers=bearer_headers(credential))
        else:
            async with httpx.AsyncClient(**client_kwargs) as owned_client:
                response = await owned_client.get(url, headers=bearer_headers(credential))
        response.raise_for_status()
        payload = AgentPermissionsResponse.model_validate(response.json())
    except httpx.HTTPStatusError as exc:
        status_code = exc.response.status_code
        kind = {
            401: PermissionErrorKind.UNAUTHORIZED,
            403: PermissionErrorKind.FORBIDDEN,
            404: PermissionErrorKind.NOT_FOUND,
        }.get(status_code, PermissionErrorKind.NETWORK_ERROR)
        logger.warning("Error fetching permissions", status_code=status_code)
        return PermissionMap(), ResolutionError(kind, f"HTTP {status_code}")
    except httpx.HTTPError as exc:
        logger.warning("Error fetching permissions", error=repr(exc))
        return PermissionMap(), ResolutionError(PermissionErrorKind.NETWORK_ERROR, repr(exc))
    except (ValueError, ValidationError) as exc:
        logger.warning("Malformed permissions payload", error=str(exc))
        return PermissionMap(), ResolutionError(PermissionErrorKind.MALFORMED_PAYLOAD, str(exc))

    if not payload.success or payload.data is None:
        return PermissionMap(), ResolutionError(
            PermissionErrorKind.NOT_FOUND, payload.message or "No permissions found for this agent"
        )

    permission_map = PermissionMap(payload.data.permissions)
    logger.debug("Permissions loaded", permission_count=len(permission_map))
    return permission_map, None

"""
Permission resolver.

Reads an agent's stored permission record from the permission authority and
folds it into a CapabilitySet. Every failure path resolves to the all-false
set plus a ResolutionError; nothing raises past the resolver boundary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from agent_permissions.core.config import settings
from agent_permissions.core.credentials import bearer_headers
from agent_permissions.core.exceptions import (
    AuthorityAccessError,
    AuthorityUnavailableError,
    MalformedPayloadError,
    MissingCredentialError,
    ModuleMismatchError,
    PermissionErrorKind,
    PermissionNotFoundError,
    PermissionServiceError,
)
from agent_permissions.core.rbac import (
    Action,
    GRANULAR_ACTIONS,
    coerce_boolean,
    module_matches,
    parse_action,
)
from agent_permissions.schemas.permissions import (
    CapabilitySet,
    ModulePermissionResponse,
    PermissionCheckResponse,
    PermissionRecord,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolutionError:
    kind: PermissionErrorKind
    message: str

    @classmethod
    def from_exception(cls, exc: PermissionServiceError) -> "ResolutionError":
        return cls(kind=exc.kind, message=exc.message)


@dataclass(frozen=True)
class ResolutionResult:
    capabilities: CapabilitySet
    error: Optional[ResolutionError] = None
    record: Optional[PermissionRecord] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def evaluate_capabilities(record: PermissionRecord, sub_module_name: str | None = None) -> CapabilitySet:
    """
    Fold a permission record into a CapabilitySet.

    Module-level ``all`` grants everything. Otherwise each action is granted by
    the module-level flag, the matched submodule's flag, or the submodule's
    ``all``. An unknown submodule name falls back to module-level evaluation.
    """
    module_actions = record.actions
    module_all = coerce_boolean(module_actions.get(Action.ALL.value))

    sub_module = record.find_sub_module(sub_module_name) if sub_module_name else None
    sub_actions = sub_module.actions if sub_module is not None else {}
    sub_all = coerce_boolean(sub_actions.get(Action.ALL.value))

    flags = {
        action: (
            module_all
            or coerce_boolean(module_actions.get(action.value))
            or coerce_boolean(sub_actions.get(action.value))
            or sub_all
        )
        for action in GRANULAR_ACTIONS
    }
    flags[Action.ALL] = module_all or sub_all
    return CapabilitySet.from_actions(flags)


def evaluate_action(
    record: PermissionRecord,
    action: str | Action,
    sub_module_name: str | None = None,
) -> tuple[bool, Optional[str]]:
    """
    Decide a single action the way the permission authority does.

    Order: module ``all``, module action, then (the submodule must exist)
    submodule ``all``, submodule action. Returns ``(granted, reason)`` where
    *reason* explains a denial.
    """
    action = parse_action(action)
    module_actions = record.actions

    if coerce_boolean(module_actions.get(Action.ALL.value)):
        return True, None
    if coerce_boolean(module_actions.get(action.value)):
        return True, None

    if not sub_module_name:
        return False, f"Permission denied: {action.value} action not allowed for module {record.module}"

    sub_module = record.find_sub_module(sub_module_name)
    if sub_module is None:
        return False, f"Submodule {sub_module_name} not found in permissions"

    if coerce_boolean(sub_module.actions.get(Action.ALL.value)):
        return True, None
    if coerce_boolean(sub_module.actions.get(action.value)):
        return True, None

    return False, f"Permission denied: {action.value} action not allowed for submodule {sub_module_name}"


class PermissionResolver(ABC):
    @abstractmethod
    async def resolve(
        self,
        module_key: str | None,
        sub_module_name: str | None = None,
        credential: str | None = None,
    ) -> ResolutionResult:
        raise NotImplementedError

    @abstractmethod
    async def check_single_action(
        self,
        module_key: str | None,
        action: str | Action | None,
        sub_module_name: str | None = None,
        credential: str | None = None,
    ) -> bool:
        raise NotImplementedError


class HTTPPermissionResolver(PermissionResolver):
    """
    Permission resolver backed by the permission authority's REST endpoints.

    Stateless per call: nothing is cached between resolutions. When no client
    is supplied a short-lived ``httpx.AsyncClient`` is opened per request.
    """

    def __init__(
        self,
        authority_url: str | None = None,
        check_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        reject_module_mismatch: bool | None = None,
    ) -> None:
        self._authority_url = authority_url or settings.PERMISSION_AUTHORITY_URL
        self._check_url = check_url or settings.PERMISSION_CHECK_URL
        self._client = client
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._reject_module_mismatch = (
            settings.REJECT_MODULE_MISMATCH if reject_module_mismatch is None else reject_module_mismatch
        )

    async def resolve(
        self,
        module_key: str | None,
        sub_module_name: str | None = None,
        credential: str | None = None,
    ) -> ResolutionResult:
        if not module_key:
            return ResolutionResult(capabilities=CapabilitySet.denied())

        try:
            record = await self.fetch_record(module_key, credential)
        except PermissionServiceError as exc:
            log = logger.info if exc.kind == PermissionErrorKind.NOT_FOUND else logger.warning
            log(
                "Permission resolution failed",
                module_key=module_key,
                sub_module=sub_module_name,
                kind=exc.kind.value,
                error=exc.message,
            )
            return ResolutionResult(
                capabilities=CapabilitySet.denied(),
                error=ResolutionError.from_exception(exc),
            )

        capabilities = evaluate_capabilities(record, sub_module_name)
        logger.debug(
            "Agent permissions resolved",
            module_key=module_key,
            sub_module=sub_module_name,
            capabilities=capabilities.to_dict(),
        )
        return ResolutionResult(capabilities=capabilities, record=record)

    async def fetch_record(self, module_key: str, credential: str | None) -> PermissionRecord:
        """Read the stored record for *module_key*; raises PermissionServiceError."""
        if not credential:
            raise MissingCredentialError("No agent token found")

        payload = await self._get_json(self._authority_url, {"moduleKey": module_key}, credential)
        try:
            response = ModulePermissionResponse.model_validate(payload)
        except ValidationError as exc:
            raise MalformedPayloadError(f"Unexpected permission payload: {exc.error_count()} invalid field(s)")

        if not response.success or response.permissions is None:
            raise PermissionNotFoundError(
                response.message or f"No permissions found for module: {module_key}"
            )

        record = response.permissions
        if not module_matches(record.module, module_key):
            logger.warning("Module key mismatch", requested=module_key, stored=record.module)
            if self._reject_module_mismatch:
                raise ModuleMismatchError(
                    f"Permission record for {record.module!r} returned for module {module_key!r}"
                )
        return record

    async def check_single_action(
        self,
        module_key: str | None,
        action: str | Action | None,
        sub_module_name: str | None = None,
        credential: str | None = None,
        *,
        record: PermissionRecord | None = None,
    ) -> bool:
        """
        Point-in-time authorization check, independent of any CapabilitySet.

        Evaluated locally when an already-fetched *record* is given, otherwise
        asked of the authority. Fails closed.
        """
        if not module_key or not action:
            return False
        try:
            action = parse_action(action)
        except ValueError as exc:
            logger.warning("Permission check rejected", module_key=module_key, error=str(exc))
            return False

        if record is not None:
            granted, reason = evaluate_action(record, action, sub_module_name)
            if not granted:
                logger.debug("Permission check denied", module_key=module_key, action=action.value, reason=reason)
            return granted

        if not credential:
            return False

        params = {"moduleKey": module_key, "action": action.value}
        if sub_module_name:
            params["subModuleName"] = sub_module_name

        try:
            payload = await self._get_json(self._check_url, params, credential)
            response = PermissionCheckResponse.model_validate(payload)
        except PermissionServiceError as exc:
            logger.warning("Error checking permission", module_key=module_key, action=action.value, error=exc.message)
            return False
        except ValidationError as exc:
            logger.warning("Error checking permission", module_key=module_key, action=action.value, error=str(exc))
            return False

        return response.success and coerce_boolean(response.has_permission)

    async def _get_json(self, url: str, params: dict[str, str], credential: str) -> dict[str, Any]:
        if self._client is not None:
            return await self._request(self._client, url, params, credential)

        client_kwargs = {}
        if self._timeout is not None:
            client_kwargs["timeout"] = self._timeout
        async with httpx.AsyncClient(**client_kwargs) as client:
            return await self._request(client, url, params, credential)

    async def _request(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, str],
        credential: str,
    ) -> dict[str, Any]:
        try:
            response = await client.get(url, params=params, headers=bearer_headers(credential))
        except httpx.TimeoutException as exc:
            raise AuthorityUnavailableError(f"Permission authority timed out: {exc!r}")
        except httpx.HTTPError as exc:
            raise AuthorityUnavailableError(f"Permission authority unreachable: {exc!r}")

        if response.status_code == 401:
            raise AuthorityAccessError(_server_message(response) or "Unauthorized")
        if response.status_code == 403:
            raise AuthorityAccessError(
                _server_message(response) or "Forbidden", kind=PermissionErrorKind.FORBIDDEN
            )
        if response.status_code == 404:
            raise PermissionNotFoundError(_server_message(response) or "No permissions found")
        if not response.is_success:
            raise AuthorityUnavailableError(
                _server_message(response) or f"Permission authority returned HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise MalformedPayloadError("Permission authority returned a non-JSON body")
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Permission authority returned a non-object body")
        return payload


def _server_message(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return None


permission_resolver = HTTPPermissionResolver()

"""
Agent permission state for a single view.

``AgentPermissions`` tracks one (module key, submodule) target, re-resolves
when the target changes, and exposes the outcome as a tagged state so
callers can tell "still resolving" apart from "resolved to no access".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import structlog

from agent_permissions.core.credentials import CredentialKey, CredentialProvider
from agent_permissions.core.rbac import Action
from agent_permissions.schemas.permissions import CapabilitySet
from agent_permissions.services.identity import IdentityDecision, Role
from agent_permissions.services.permission_resolver import (
    PermissionResolver,
    ResolutionError,
    permission_resolver,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Pending:
    module_key: Optional[str] = None
    sub_module_name: Optional[str] = None


@dataclass(frozen=True)
class Resolved:
    capabilities: CapabilitySet
    module_key: Optional[str] = None
    sub_module_name: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    error: ResolutionError
    module_key: Optional[str] = None
    sub_module_name: Optional[str] = None
    capabilities: CapabilitySet = field(default_factory=CapabilitySet.denied)


ResolutionState = Union[Pending, Resolved, Failed]


class AccessVerdict(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


def access_verdict(
    identity: IdentityDecision | Role,
    state: ResolutionState,
    action: str | Action,
) -> AccessVerdict:
    """
    Administrators are always allowed; agents are allowed when the resolved
    capability for *action* (or ``all``) is set. An agent whose resolution is
    still pending is undetermined, never denied.
    """
    role = identity.role if isinstance(identity, IdentityDecision) else Role(identity)

    if role == Role.ADMINISTRATOR:
        return AccessVerdict.ALLOWED
    if role != Role.AGENT:
        return AccessVerdict.DENIED
    if isinstance(state, Pending):
        return AccessVerdict.UNDETERMINED
    if isinstance(state, Resolved) and state.capabilities.allows(action):
        return AccessVerdict.ALLOWED
    return AccessVerdict.DENIED


def can_perform(
    identity: IdentityDecision | Role,
    state: ResolutionState,
    action: str | Action,
) -> Optional[bool]:
    """``access_verdict`` as ``True``/``False``, or ``None`` while undetermined."""
    verdict = access_verdict(identity, state, action)
    if verdict == AccessVerdict.UNDETERMINED:
        return None
    return verdict == AccessVerdict.ALLOWED


class AgentPermissions:
    """
    Per-view permission state (module key + optional submodule).

    Each resolution is tagged with a generation; a result arriving after the
    target changed, or after ``close()``, is discarded.
    """

    def __init__(
        self,
        provider: CredentialProvider,
        resolver: PermissionResolver | None = None,
        module_key: str | None = None,
        sub_module_name: str | None = None,
    ) -> None:
        self._provider = provider
        self._resolver = resolver or permission_resolver
        self._module_key = module_key
        self._sub_module_name = sub_module_name
        self._generation = 0
        self._closed = False
        self._state: ResolutionState = Pending(module_key, sub_module_name)

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def permissions(self) -> CapabilitySet:
        if isinstance(self._state, Pending):
            return CapabilitySet.denied()
        return self._state.capabilities

    @property
    def loading(self) -> bool:
        return isinstance(self._state, Pending)

    @property
    def error(self) -> Optional[str]:
        if isinstance(self._state, Failed):
            return self._state.error.message
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    async def watch(self, module_key: str | None, sub_module_name: str | None = None) -> ResolutionState:
        """Point at a new target; re-resolves only when the target changed."""
        unchanged = (module_key, sub_module_name) == (self._module_key, self._sub_module_name)
        if unchanged and not isinstance(self._state, Pending):
            return self._state

        self._module_key = module_key
        self._sub_module_name = sub_module_name
        return await self.refresh()

    async def refresh(self) -> ResolutionState:
        if self._closed:
            return self._state

        self._generation += 1
        generation = self._generation
        module_key, sub_module_name = self._module_key, self._sub_module_name
        self._state = Pending(module_key, sub_module_name)

        result = await self._resolver.resolve(
            module_key,
            sub_module_name,
            self._provider.get(CredentialKey.AGENT) if module_key else None,
        )

        if self._closed or generation != self._generation:
            logger.debug(
                "Discarding stale permission result",
                module_key=module_key,
                sub_module=sub_module_name,
                closed=self._closed,
            )
            return self._state

        if result.error is not None:
            self._state = Failed(result.error, module_key, sub_module_name)
        else:
            self._state = Resolved(result.capabilities, module_key, sub_module_name)
        return self._state

    async def check_permission(self, action: str | Action | None) -> bool:
        """Fresh single-action check against the authority; fails closed."""
        if not self._module_key or not action:
            return False
        return await self._resolver.check_single_action(
            self._module_key,
            action,
            self._sub_module_name,
            self._provider.get(CredentialKey.AGENT),
        )

    def close(self) -> None:
        self._closed = True


async def use_agent_permissions(
    module_key: str | None,
    sub_module_name: str | None = None,
    *,
    provider: CredentialProvider,
    resolver: PermissionResolver | None = None,
) -> AgentPermissions:
    """Build the permission state for a view and run its first resolution."""
    agent_permissions = AgentPermissions(provider, resolver, module_key, sub_module_name)
    await agent_permissions.refresh()
    return agent_permissions

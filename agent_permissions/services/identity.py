"""
Identity context: which actor is authoritative for the current view.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

import structlog

from agent_permissions.core.config import settings
from agent_permissions.core.credentials import (
    TOKEN_PRIORITY,
    CredentialKey,
    CredentialProvider,
    MappingCredentialProvider,
)

logger = structlog.get_logger()


class Role(str, Enum):
    ADMINISTRATOR = "administrator"
    AGENT = "agent"
    NONE = "none"


@dataclass(frozen=True)
class IdentityDecision:
    role: Role
    credential: Optional[str] = None

    @property
    def is_administrator(self) -> bool:
        return self.role == Role.ADMINISTRATOR

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT

    @property
    def requires_authentication(self) -> bool:
        """No credential at all: the view must not fetch and should ask for login."""
        return self.role == Role.NONE


def pick_stored_credential(
    provider: CredentialProvider,
    priority: Iterable[CredentialKey | str] = TOKEN_PRIORITY,
) -> Optional[str]:
    """Return whichever credential exists first in *priority* order."""
    for key in priority:
        value = provider.get(key)
        if value:
            return value
    return None


class IdentityContext:
    """
    Resolves administrator vs. agent for permission-gated views.

    Route context outranks credential presence: with both credentials stored,
    an agent-prefixed path is an agent view.
    """

    def __init__(
        self,
        provider: CredentialProvider,
        agent_route_prefixes: Sequence[str] | None = None,
    ) -> None:
        self._provider = provider
        self._agent_route_prefixes = tuple(
            agent_route_prefixes if agent_route_prefixes is not None else settings.AGENT_ROUTE_PREFIXES
        )

    @classmethod
    def from_mapping(cls, stored_credentials: Mapping[str, str], **kwargs) -> "IdentityContext":
        return cls(MappingCredentialProvider(stored_credentials), **kwargs)

    def is_agent_route(self, current_path: str | None) -> bool:
        if not current_path:
            return False
        return any(current_path.startswith(prefix) for prefix in self._agent_route_prefixes)

    def determine_role(self, current_path: str | None) -> IdentityDecision:
        admin_token = self._provider.get(CredentialKey.ADMIN)
        agent_token = self._provider.get(CredentialKey.AGENT)

        if self.is_agent_route(current_path) and agent_token:
            decision = IdentityDecision(role=Role.AGENT, credential=agent_token)
        elif admin_token:
            decision = IdentityDecision(role=Role.ADMINISTRATOR, credential=admin_token)
        elif agent_token:
            decision = IdentityDecision(role=Role.AGENT, credential=agent_token)
        else:
            decision = IdentityDecision(role=Role.NONE)

        logger.debug("Identity determined", path=current_path, role=decision.role.value)
        return decision

    def data_credential(self) -> Optional[str]:
        """Credential the administrator/agent pages present to data APIs."""
        return pick_stored_credential(self._provider, (CredentialKey.ADMIN, CredentialKey.AGENT))

    def any_credential(self) -> Optional[str]:
        return pick_stored_credential(self._provider)


def determine_role(current_path: str | None, stored_credentials: Mapping[str, str]) -> IdentityDecision:
    return IdentityContext.from_mapping(stored_credentials).determine_role(current_path)

"""
Credential providers.

Credentials are written by login/logout flows elsewhere; everything here
only reads them.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Mapping, Optional


class CredentialKey(str, Enum):
    CLINIC = "clinicToken"
    DOCTOR = "doctorToken"
    AGENT = "agentToken"
    STAFF = "staffToken"
    USER = "userToken"
    ADMIN = "adminToken"


TOKEN_PRIORITY: tuple[CredentialKey, ...] = (
    CredentialKey.CLINIC,
    CredentialKey.DOCTOR,
    CredentialKey.AGENT,
    CredentialKey.STAFF,
    CredentialKey.USER,
    CredentialKey.ADMIN,
)


def _key_name(key: CredentialKey | str) -> str:
    return key.value if isinstance(key, CredentialKey) else key


class CredentialProvider(ABC):
    @abstractmethod
    def get(self, key: CredentialKey | str) -> Optional[str]:
        raise NotImplementedError

    def has(self, key: CredentialKey | str) -> bool:
        return bool(self.get(key))


class MappingCredentialProvider(CredentialProvider):
    """Reads bearer tokens from a plain mapping (e.g. a persisted store snapshot)."""

    def __init__(self, tokens: Mapping[str, str] | None = None) -> None:
        self._tokens = dict(tokens or {})

    def get(self, key: CredentialKey | str) -> Optional[str]:
        return self._tokens.get(_key_name(key)) or None


class ChainedCredentialProvider(CredentialProvider):
    """First store holding a non-empty value wins (local store before session store)."""

    def __init__(self, providers: Iterable[CredentialProvider]) -> None:
        self._providers = list(providers)

    def get(self, key: CredentialKey | str) -> Optional[str]:
        for provider in self._providers:
            value = provider.get(key)
            if value:
                return value
        return None


class EnvCredentialProvider(CredentialProvider):
    """Tokens from environment variables, e.g. ``AGENT_TOKEN`` for ``agentToken``."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    @staticmethod
    def env_name(key: CredentialKey | str) -> str:
        name = _key_name(key)
        if name.endswith("Token"):
            name = name[: -len("Token")] + "_token"
        return name.upper()

    def get(self, key: CredentialKey | str) -> Optional[str]:
        return self._environ.get(self.env_name(key)) or None


def bearer_headers(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}

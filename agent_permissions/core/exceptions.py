"""
Error taxonomy for permission resolution.
"""

from __future__ import annotations

from enum import Enum


class PermissionErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NETWORK_ERROR = "network_error"
    MALFORMED_PAYLOAD = "malformed_payload"
    MODULE_MISMATCH = "module_mismatch"


class PermissionServiceError(Exception):
    """Raised by the transport layer; caught at the resolver boundary."""

    kind: PermissionErrorKind = PermissionErrorKind.NETWORK_ERROR

    def __init__(self, message: str, kind: PermissionErrorKind | None = None):
        if kind is not None:
            self.kind = kind
        self.message = message
        super().__init__(message)


class MissingCredentialError(PermissionServiceError):
    kind = PermissionErrorKind.MISSING_CREDENTIAL


class PermissionNotFoundError(PermissionServiceError):
    kind = PermissionErrorKind.NOT_FOUND


class AuthorityAccessError(PermissionServiceError):
    """401/403 from the permission authority."""

    kind = PermissionErrorKind.UNAUTHORIZED


class AuthorityUnavailableError(PermissionServiceError):
    kind = PermissionErrorKind.NETWORK_ERROR


class MalformedPayloadError(PermissionServiceError):
    kind = PermissionErrorKind.MALFORMED_PAYLOAD


class ModuleMismatchError(PermissionServiceError):
    kind = PermissionErrorKind.MODULE_MISMATCH

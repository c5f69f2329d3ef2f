"""
Shared fixtures for the permission client test suite.
"""

import httpx
import pytest
import pytest_asyncio

from agent_permissions.core.credentials import MappingCredentialProvider
from agent_permissions.services.permission_resolver import HTTPPermissionResolver


class FakeAuthority:
    """Permission authority double served through httpx.MockTransport."""

    def __init__(self):
        self.records = {}
        self.checks = {}
        self.status_code = 200
        self.body = None
        self.error = None
        self.requests = []

    def add_record(self, module_key, record):
        self.records[module_key] = record

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error

        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)

        params = request.url.params
        module_key = params.get("moduleKey")

        if request.url.path.endswith("/check"):
            key = (module_key, params.get("action"), params.get("subModuleName"))
            return httpx.Response(
                self.status_code,
                json={"success": True, "hasPermission": self.checks.get(key, False)},
            )

        record = self.records.get(module_key)
        if record is None:
            return httpx.Response(
                self.status_code,
                json={"success": False, "message": f"No permissions found for module: {module_key}"},
            )
        return httpx.Response(self.status_code, json={"success": True, "permissions": record})


AUTHORITY_URL = "http://authority.test/api/agent/permissions"
CHECK_URL = "http://authority.test/api/agent/permissions/check"


@pytest.fixture
def authority():
    return FakeAuthority()


@pytest_asyncio.fixture
async def http_client(authority):
    client = httpx.AsyncClient(transport=httpx.MockTransport(authority))
    yield client
    await client.aclose()


@pytest.fixture
def resolver(http_client):
    return HTTPPermissionResolver(
        AUTHORITY_URL,
        CHECK_URL,
        client=http_client,
        reject_module_mismatch=False,
    )


@pytest.fixture
def agent_store():
    return MappingCredentialProvider({"agentToken": "agent-tok"})


@pytest.fixture
def both_tokens_store():
    return MappingCredentialProvider({"adminToken": "admin-tok", "agentToken": "agent-tok"})

"""
Tests for the all-permissions map.
"""

import httpx
import pytest

from agent_permissions.core.exceptions import PermissionErrorKind
from agent_permissions.schemas.permissions import PermissionRecord
from agent_permissions.services import permission_map as permission_map_module
from agent_permissions.services.permission_map import PermissionMap, load_permission_map


MY_PERMISSIONS_URL = "http://authority.test/api/agent/my-permissions"

RECORDS = [
    {
        "module": "clinic_staff_management",
        "actions": {"read": True, "all": False},
        "subModules": [
            {"name": "Add Staff", "actions": {"create": True}},
            {"name": "Payroll ", "actions": {"all": "true"}},
        ],
    },
    {"module": "admin_job_manage", "actions": {"all": True}, "subModules": []},
    {"module": "lead", "actions": {"delete": "false", "export": "TRUE"}},
]


@pytest.fixture
def permission_map():
    return PermissionMap([PermissionRecord.model_validate(r) for r in RECORDS])


# ── module lookup ───────────────────────────────────────────────


@pytest.mark.parametrize(
    "key",
    [
        "clinic_staff_management",
        "staff_management",
        "agent_staff_management",
        "doctor_staff_management",
        "admin_staff_management",
    ],
)
def test_find_module_by_any_alias(permission_map, key):
    assert permission_map.find_module(key).module == "clinic_staff_management"


def test_unknown_module_denies(permission_map):
    assert permission_map.find_module("blogs") is None
    assert permission_map.has_permission("blogs", "read") is False


def test_keys_include_aliases(permission_map):
    assert "agent_lead" in permission_map.keys
    assert "job_manage" in permission_map.keys
    assert len(permission_map) == 3


def test_alias_never_shadows_stored_key():
    permission_map = PermissionMap(
        [
            PermissionRecord.model_validate({"module": "clinic_lead", "actions": {"read": True}}),
            PermissionRecord.model_validate({"module": "doctor_lead", "actions": {"all": True}}),
        ]
    )

    assert permission_map.find_module("clinic_lead").module == "clinic_lead"
    assert permission_map.find_module("doctor_lead").module == "doctor_lead"
    assert permission_map.has_permission("clinic_lead", "read") is True
    assert permission_map.has_permission("clinic_lead", "delete") is False
    assert permission_map.has_permission("doctor_lead", "delete") is True


# ── module-level checks ─────────────────────────────────────────


def test_module_level_action(permission_map):
    assert permission_map.has_permission("staff_management", "read") is True
    assert permission_map.has_permission("staff_management", "delete") is False


def test_module_all(permission_map):
    assert permission_map.has_permission("job_manage", "approve") is True
    assert permission_map.has_permission("agent_job_manage", "delete", "Any Tab") is True


def test_strict_coercion(permission_map):
    assert permission_map.has_permission("lead", "delete") is False
    assert permission_map.has_permission("lead", "export") is True


def test_bad_arguments_deny(permission_map):
    assert permission_map.has_permission(None, "read") is False
    assert permission_map.has_permission("lead", None) is False
    assert permission_map.has_permission("lead", "destroy") is False


# ── submodule checks ────────────────────────────────────────────


def test_submodule_exact_and_case_insensitive(permission_map):
    assert permission_map.has_permission("staff_management", "create", "Add Staff") is True
    assert permission_map.has_permission("staff_management", "create", "add staff") is True
    assert permission_map.has_permission("staff_management", "update", "Add Staff") is False


def test_submodule_trimmed_name(permission_map):
    assert permission_map.has_permission("staff_management", "delete", "Payroll") is True


def test_submodule_ignores_module_level_action(permission_map):
    # module grants read, but submodule scope only looks at the submodule
    assert permission_map.has_permission("staff_management", "read", "Add Staff") is False


def test_missing_submodule_denies(permission_map):
    assert permission_map.has_permission("staff_management", "create", "Nope") is False
    assert permission_map.has_permission("lead", "export", "Anything") is False


# ── loading ─────────────────────────────────────────────────────


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_load_permission_map():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"permissions": RECORDS}})

    async with make_client(handler) as client:
        permission_map, error = await load_permission_map("tok", url=MY_PERMISSIONS_URL, client=client)

    assert error is None
    assert len(permission_map) == 3
    assert permission_map.has_permission("clinic_job_manage", "print") is True
    assert seen[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_load_without_credential_reports_missing_credential():
    permission_map, error = await load_permission_map(None, url=MY_PERMISSIONS_URL)
    assert len(permission_map) == 0
    assert error.kind == PermissionErrorKind.MISSING_CREDENTIAL


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, kind",
    [
        (httpx.Response(401), PermissionErrorKind.UNAUTHORIZED),
        (httpx.Response(403), PermissionErrorKind.FORBIDDEN),
        (httpx.Response(503), PermissionErrorKind.NETWORK_ERROR),
        (httpx.Response(200, text="<html>"), PermissionErrorKind.MALFORMED_PAYLOAD),
        (httpx.Response(200, json={"success": False}), PermissionErrorKind.NOT_FOUND),
    ],
)
async def test_load_failures_yield_empty_map(response, kind):
    async with make_client(lambda request: response) as client:
        permission_map, error = await load_permission_map("tok", url=MY_PERMISSIONS_URL, client=client)
    assert len(permission_map) == 0
    assert error.kind == kind


@pytest.mark.asyncio
async def test_load_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler) as client:
        permission_map, error = await load_permission_map("tok", url=MY_PERMISSIONS_URL, client=client)
    assert len(permission_map) == 0
    assert error.kind == PermissionErrorKind.NETWORK_ERROR


@pytest.mark.asyncio
async def test_owned_client_uses_timeout(monkeypatch):
    created = []
    real_client = httpx.AsyncClient

    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"permissions": RECORDS}})

    def recording_client(**kwargs):
        created.append(kwargs)
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(permission_map_module.httpx, "AsyncClient", recording_client)
    permission_map, error = await load_permission_map("tok", url=MY_PERMISSIONS_URL, timeout=2.5)

    assert error is None
    assert len(permission_map) == 3
    assert created == [{"timeout": 2.5}]

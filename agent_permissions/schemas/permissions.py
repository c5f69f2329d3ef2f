"""
Permission Schemas
Wire models for the permission authority and the derived capability set
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_permissions.core.rbac import Action, parse_action


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )


class ActionsMixin(BaseSchema):
    """Loosely-typed action flags as stored by the authority"""
    actions: Dict[str, Any] = Field(default_factory=dict, description="Action name to stored flag")

    @field_validator("actions", mode="before")
    @classmethod
    def parse_actions(cls, v):
        """Ill-typed action mappings read as empty (every flag denies)"""
        return v if isinstance(v, dict) else {}


class SubModulePermission(ActionsMixin):
    """Named permission scope nested under a module"""
    name: str = Field("", description="Submodule name, matched exactly")

    @field_validator("name", mode="before")
    @classmethod
    def parse_name(cls, v):
        return v if isinstance(v, str) else ""


class PermissionRecord(ActionsMixin):
    """Stored permission record for one module"""
    module: str = Field("", description="Module key, possibly role-prefixed")
    sub_modules: List[SubModulePermission] = Field(
        default_factory=list, alias="subModules", description="Ordered submodule scopes"
    )

    @field_validator("module", mode="before")
    @classmethod
    def parse_module(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("sub_modules", mode="before")
    @classmethod
    def parse_sub_modules(cls, v):
        """Drop entries that are not mappings"""
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, (dict, SubModulePermission))]

    def find_sub_module(self, name: str) -> Optional[SubModulePermission]:
        for sub_module in self.sub_modules:
            if sub_module.name == name:
                return sub_module
        return None


class AuthorityResponse(BaseSchema):
    success: bool = False
    message: Optional[str] = None

    @field_validator("success", mode="before")
    @classmethod
    def parse_success(cls, v):
        return False if v is None else v

    @field_validator("message", mode="before")
    @classmethod
    def parse_message(cls, v):
        return v if isinstance(v, str) else None


class ModulePermissionResponse(AuthorityResponse):
    """GET {authority}?moduleKey=..."""
    permissions: Optional[PermissionRecord] = None


class PermissionCheckResponse(AuthorityResponse):
    """GET {check}?moduleKey=...&action=..."""
    has_permission: Any = Field(False, alias="hasPermission")


class AgentPermissionsData(BaseSchema):
    permissions: List[PermissionRecord] = Field(default_factory=list)

    @field_validator("permissions", mode="before")
    @classmethod
    def parse_permissions(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, (dict, PermissionRecord))]


class AgentPermissionsResponse(AuthorityResponse):
    """GET {my-permissions}"""
    data: Optional[AgentPermissionsData] = None


class CapabilitySet(BaseSchema):
    """What an actor may do within one module/submodule"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    can_create: bool = Field(False, alias="canCreate")
    can_read: bool = Field(False, alias="canRead")
    can_update: bool = Field(False, alias="canUpdate")
    can_delete: bool = Field(False, alias="canDelete")
    can_approve: bool = Field(False, alias="canApprove")
    can_print: bool = Field(False, alias="canPrint")
    can_export: bool = Field(False, alias="canExport")
    can_all: bool = Field(False, alias="canAll")

    @classmethod
    def denied(cls) -> "CapabilitySet":
        return cls()

    @classmethod
    def from_actions(cls, flags: Dict[Action, bool]) -> "CapabilitySet":
        return cls(**{f"can_{action.value}": bool(flags.get(action, False)) for action in Action})

    def flag(self, action) -> bool:
        """The capability stored for *action*, without the ``all`` fallback"""
        return getattr(self, f"can_{parse_action(action).value}")

    def allows(self, action) -> bool:
        """Specific capability or the ``all`` capability"""
        return self.flag(action) or self.can_all

    def to_dict(self) -> Dict[str, bool]:
        return self.model_dump(by_alias=True)

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from uema_data.schemas.models import UserRole

CAPABILITIES: Tuple[str, ...] = (
    "canCreateDocument",
    "canEditDocument",
    "canDeleteDocument",
    "canPublishDocument",
    "canCreateProcess",
    "canApproveProcess",
    "canRejectProcess",
    "canViewReports",
    "canExportReports",
    "canManageUsers",
    "canAccessSettings",
    "canAccessChat",
)


@dataclass(frozen=True)
class RoleDefinition:
    role: UserRole
    description: str
    grants: frozenset[str]

    def allows(self, capability: str) -> bool:
        return capability in self.grants


def _role(role: UserRole, description: str, *grants: str) -> RoleDefinition:
    unknown = set(grants) - set(CAPABILITIES)
    if unknown:
        raise ValueError(f"Unknown capabilities for {role.value}: {sorted(unknown)}")
    return RoleDefinition(role=role, description=description, grants=frozenset(grants))


ROLE_PERMISSIONS: Mapping[UserRole, RoleDefinition] = MappingProxyType(
    {
        UserRole.ADMIN: _role(UserRole.ADMIN, "Acesso total ao sistema", *CAPABILITIES),
        UserRole.MANAGER: _role(
            UserRole.MANAGER,
            "Gerencia documentos e processos do setor",
            "canCreateDocument",
            "canEditDocument",
            "canPublishDocument",
            "canCreateProcess",
            "canApproveProcess",
            "canRejectProcess",
            "canViewReports",
            "canExportReports",
            "canAccessSettings",
            "canAccessChat",
        ),
        UserRole.OPERATOR: _role(
            UserRole.OPERATOR,
            "Cria e edita documentos e processos",
            "canCreateDocument",
            "canEditDocument",
            "canCreateProcess",
            "canViewReports",
            "canAccessSettings",
            "canAccessChat",
        ),
        UserRole.VIEWER: _role(
            UserRole.VIEWER,
            "Apenas visualização",
            "canViewReports",
            "canAccessSettings",
            "canAccessChat",
        ),
    }
)


def _coerce_role(role: UserRole | str | None) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    if not isinstance(role, str):
        return None
    try:
        return UserRole(role)
    except ValueError:
        return None


def has_permission(role: UserRole | str | None, capability: str) -> bool:
    """True when ``role`` grants ``capability``; unknown roles or capabilities are denied."""

    resolved = _coerce_role(role)
    if resolved is None or not isinstance(capability, str):
        return False
    definition = ROLE_PERMISSIONS.get(resolved)
    if definition is None:
        return False
    return definition.allows(capability)


def permission_set(role: UserRole | str | None) -> Dict[str, bool]:
    resolved = _coerce_role(role)
    return {capability: has_permission(resolved, capability) for capability in CAPABILITIES}


def role_description(role: UserRole | str | None) -> str | None:
    resolved = _coerce_role(role)
    if resolved is None:
        return None
    return ROLE_PERMISSIONS[resolved].description

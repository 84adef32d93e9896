"""Role/level rule table for application areas.

Each area maps every allowed role to the minimum numeric level that role
needs. A caller passes only when their role appears in the area's rule and
their level reaches that role's minimum.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .models import PermissionCheck

VIEW_LEVEL = 1
WORK_LEVEL = 2
EDIT_LEVEL = 5
ADMIN_LEVEL = 10

AreaType = Literal["page", "functionality"]


@dataclass(frozen=True)
class AreaRule:
    roles: dict[str, int]
    type: AreaType


PERMISSION_RULES: dict[str, AreaRule] = {
    "inventory": AreaRule(
        roles={
            "Administrador": VIEW_LEVEL,
            "Gestor": VIEW_LEVEL,
            "Usuario": VIEW_LEVEL,
            "Gerente": VIEW_LEVEL,
            "Consultor": VIEW_LEVEL,
        },
        type="page",
    ),
    "vehicle_details": AreaRule(
        roles={
            "Usuario": VIEW_LEVEL,
            "Gerente": EDIT_LEVEL,
            "Consultor": WORK_LEVEL,
            "Gestor": EDIT_LEVEL,
            "Administrador": VIEW_LEVEL,
        },
        type="page",
    ),
    "add_vehicle": AreaRule(
        roles={"Gestor": WORK_LEVEL, "Gerente": WORK_LEVEL},
        type="page",
    ),
    "sales": AreaRule(
        roles={"Consultor": WORK_LEVEL, "Gestor": VIEW_LEVEL, "Gerente": EDIT_LEVEL},
        type="page",
    ),
    "sales_dashboard": AreaRule(
        roles={"Gestor": EDIT_LEVEL, "Gerente": VIEW_LEVEL, "Administrador": VIEW_LEVEL},
        type="page",
    ),
    # Consultants may only edit a subset of vehicle fields.
    "edit_vehicle": AreaRule(
        roles={"Gestor": EDIT_LEVEL, "Gerente": EDIT_LEVEL, "Consultor": WORK_LEVEL},
        type="functionality",
    ),
    "advertisements": AreaRule(
        roles={"Gestor": EDIT_LEVEL, "Gerente": EDIT_LEVEL, "Consultor": VIEW_LEVEL},
        type="page",
    ),
    "pendings": AreaRule(
        roles={
            "Administrador": VIEW_LEVEL,
            "Gestor": VIEW_LEVEL,
            "Usuario": VIEW_LEVEL,
            "Gerente": VIEW_LEVEL,
            "Consultor": VIEW_LEVEL,
        },
        type="page",
    ),
    "admin_panel": AreaRule(
        roles={"Administrador": ADMIN_LEVEL},
        type="page",
    ),
}


def check_permission(
    area: str,
    role: str | None,
    level: int | None,
    *,
    rules: dict[str, AreaRule] | None = None,
) -> PermissionCheck:
    rule = (rules if rules is not None else PERMISSION_RULES).get(area)
    if rule is None:
        return PermissionCheck(has_access=False, reason=f"area not found: {area}")

    if role is None or role not in rule.roles:
        return PermissionCheck(
            has_access=False,
            reason=f"role {role!r} is not allowed in area {area!r}",
        )

    required_level = rule.roles[role]
    if level is None or level < required_level:
        return PermissionCheck(
            has_access=False,
            reason=(
                f"level {level} is below the minimum {required_level} "
                f"required for role {role!r} in area {area!r}"
            ),
        )
    return PermissionCheck(has_access=True)


def allowed_areas(role: str | None, level: int | None) -> list[str]:
    """List every area the caller can reach, in rule table order."""
    return [area for area in PERMISSION_RULES if check_permission(area, role, level).has_access]

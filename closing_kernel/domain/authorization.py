"""
Role checks at the service boundary.

The kernel never resolves who the actor is; callers pass ``Actor(id, role)``
and the series' ``RoleGrants`` decide.
"""

from closing_config.schema import RoleGrants
from closing_kernel.domain.dtos import Actor
from closing_kernel.exceptions import ForbiddenError


def check_role(grants: RoleGrants, action: str, actor: Actor) -> tuple[bool, str]:
    """Return (allowed, reason); reason is empty when allowed."""
    role = getattr(actor.role, "value", actor.role)
    allowed = grants.roles_for(action)
    if role in allowed:
        return (True, "")
    return (False, f"role '{role}' may not {action}; allowed: {', '.join(allowed) or 'none'}")


def ensure_role(grants: RoleGrants, action: str, actor: Actor) -> None:
    """
    Raises:
        ForbiddenError: If the actor's role is not granted ``action``.
    """
    allowed, _ = check_role(grants, action, actor)
    if not allowed:
        raise ForbiddenError(
            action=action,
            role=getattr(actor.role, "value", actor.role),
            allowed_roles=grants.roles_for(action),
        )

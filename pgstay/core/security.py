# Caller identity as forwarded by the API gateway

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Depends, Header

from pgstay.utils.exceptions import AuthenticationError, AuthorizationError


class Role(str, Enum):
    LANDLORD = "landlord"
    TENANT = "tenant"
    USER = "user"
    ADMIN = "admin"


@dataclass
class Actor:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def landlord_scope(self) -> Optional[str]:
        """Owner filter for landlord-owned data; admins see everything."""
        return None if self.is_admin else self.user_id


async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    if not x_user_id:
        raise AuthenticationError("Missing caller identity")
    try:
        role = Role((x_user_role or Role.USER.value).lower())
    except ValueError:
        raise AuthenticationError(f"Unknown role '{x_user_role}'") from None
    return Actor(user_id=x_user_id, role=role)


def require_roles(*roles: Role):
    """Dependency factory: admit only the given roles (admins always pass)."""
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.is_admin or actor.role in roles:
            return actor
        raise AuthorizationError(f"This action requires role: {', '.join(r.value for r in roles)}")
    return dependency

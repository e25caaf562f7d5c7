"""Bearer authentication.

The bearer value is taken as the user identifier without verification.
Roles are attached from configuration so admin routes check a capability
on the principal rather than comparing identifiers.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, FrozenSet

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Identity of the caller."""
    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(ADMIN_ROLE)


def principal_for(user_id: str) -> Principal:
    """Build a principal with the roles configured for a user id."""
    roles = {ADMIN_ROLE} if user_id in settings.admin_ids else set()
    return Principal(user_id=user_id, roles=frozenset(roles))


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """Resolve the caller from the Authorization header."""
    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(status_code=401, detail="Bearer token not provided")
    return principal_for(credentials.credentials.strip())


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Allow only principals holding the admin role."""
    if not principal.is_admin:
        logger.warning(f"Admin route refused for {principal.user_id}")
        raise HTTPException(status_code=403, detail="Administrator rights required")
    return principal

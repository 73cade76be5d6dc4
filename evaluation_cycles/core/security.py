from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from evaluation_cycles.core.config import settings

MANAGE_CYCLES = "cycles:manage"


@dataclass(frozen=True)
class Principal:
    email: str


CapabilityCheck = Callable[[Principal, str], bool]


def admin_email_capability_check(principal: Principal, capability: str) -> bool:
    if capability == MANAGE_CYCLES:
        return principal.email.lower() in settings.admin_emails_set
    return False


def get_capability_check() -> CapabilityCheck:
    """Override this dependency to plug in the host application's authorization."""
    return admin_email_capability_check


def get_current_principal(x_user_email: str | None = Header(default=None)) -> Principal:
    """
    DEV AUTH: pass X-User-Email header to simulate logged-in user.
    Example: X-User-Email: admin@local.test
    """
    if not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Email header (dev auth)",
        )
    return Principal(email=x_user_email.strip())


def require_capability(capability: str):
    """
    Usage:
      Depends(require_capability(MANAGE_CYCLES))
    """

    def _dep(
        principal: Principal = Depends(get_current_principal),
        check: CapabilityCheck = Depends(get_capability_check),
    ) -> Principal:
        if not check(principal, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden. Requires capability: {capability}",
            )
        return principal

    return _dep

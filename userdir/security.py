"""Request authentication and role gating for the directory API."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .credentials import DUMMY_CREDENTIAL, verify_and_update
from .directory import UserDirectory
from .errors import StoreUnavailable
from .models import Principal, Role

logger = logging.getLogger("userdir.security")


def build_principal_dependency(directory: UserDirectory) -> Callable[..., Principal]:
    """Return a FastAPI dependency resolving HTTP Basic credentials to a principal."""

    basic_security = HTTPBasic(auto_error=False)

    def dependency(
        credentials: Optional[HTTPBasicCredentials] = Depends(basic_security),
    ) -> Principal:
        if credentials is not None:
            record = directory.get_by_email(credentials.username)
            stored = record.password_credential if record is not None else DUMMY_CREDENTIAL
            verified, new_credential = verify_and_update(credentials.password, stored)
            if verified and record is not None:
                if new_credential is not None:
                    try:
                        directory.replace_credential(record.id, stored, new_credential)
                    except StoreUnavailable:
                        # The legacy credential keeps working; the upgrade is retried next login.
                        logger.warning("Could not upgrade stored credential for user %s", record.id)
                return Principal(id=record.id, role=record.role)

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return dependency


def require_role(current_principal: Callable[..., Principal], role: Role) -> Callable[..., Principal]:
    """Wrap ``current_principal`` so that callers lacking ``role`` get a 403."""

    def dependency(principal: Principal = Depends(current_principal)) -> Principal:
        if principal.role != role.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return dependency


__all__ = ["build_principal_dependency", "require_role"]

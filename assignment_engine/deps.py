"""Shared FastAPI dependencies for identity and roles."""

from typing import Optional

from fastapi import Depends, Header

from assignment_engine.errors import PermissionDenied
from assignment_engine.identity import REVIEWER, Identity, bearer_token, verify_identity_token


def get_identity(authorization: Optional[str] = Header(None)) -> Identity:
    """Return the verified caller; rejects the request before any ledger access otherwise."""
    return verify_identity_token(bearer_token(authorization))


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in required_roles:
            raise PermissionDenied()
        return identity

    return wrapper


require_reviewer = require_role([REVIEWER])

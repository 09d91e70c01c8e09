"""
Service and identity dependencies
"""

from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import get_config
from ..service import LoanService


security = HTTPBearer(auto_error=False)

_loan_service: Optional[LoanService] = None


def get_loan_service() -> LoanService:
    """Lazily build the process-wide loan service from configuration"""
    global _loan_service
    if _loan_service is None:
        _loan_service = LoanService()
    return _loan_service


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None)
) -> str:
    """
    Resolve the acting user

    With authentication enabled the user is the ``sub`` claim of a bearer
    JWT. With it disabled the caller must name itself in ``X-User-Id``.
    There is never an implicit default identity.
    """
    config = get_config()
    if not config.auth_enabled:
        if not x_user_id or not x_user_id.strip():
            raise HTTPException(status_code=401, detail="X-User-Id header required")
        return x_user_id.strip()

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id

import os
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

ALGORITHM = "HS256"

bearer_scheme_optional = HTTPBearer(auto_error=False)


def _decode(token: str) -> dict:
    return jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=[ALGORITHM])


def get_current_user_optional(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_optional)):
    if not token:
        return None

    try:
        return _decode(token.credentials)
    except JWTError:
        return None

bearer_scheme_required = HTTPBearer(auto_error=True)

def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_required)):
    try:
        payload = _decode(token.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Token has no subject")

    return payload


def is_admin(current_user) -> bool:
    return bool(current_user) and current_user.get("role") == "admin"


def require_admin(current_user=Depends(get_current_user_required)):
    if not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from storefront.core.config import settings

ADMIN_ROLE = "admin"

security = HTTPBearer(auto_error=False)

@dataclass(frozen=True)
class Principal:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

def _decode(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return Principal(id=str(payload["sub"]), role=payload.get("role") or "customer")

def get_optional_principal(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[Principal]:
    if not creds:
        return None
    return _decode(creds.credentials)

def get_current_principal(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _decode(creds.credentials)

def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return principal

def admin_or_internal(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    # trusted service-to-service calls skip the token check
    if x_internal_key and x_internal_key == (settings.SVC_INTERNAL_KEY or ""):
        return None
    if not creds:
        raise HTTPException(status_code=401, detail="Unauthorized")
    principal = _decode(creds.credentials)
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin required")
    return principal

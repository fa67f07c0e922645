from datetime import datetime, timedelta, timezone
from typing import List
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from examprep.core.config import get_settings

STUDENT = "student"
ADMIN = "admin"
ROLES = (STUDENT, ADMIN)


class TokenData(BaseModel):
    sub: str
    roles: List[str]

    def is_admin(self) -> bool:
        return ADMIN in self.roles

    def can_view(self, owner_id: str) -> bool:
        """Candidates see their own attempts, admins see everyone's."""
        return self.sub == owner_id or self.is_admin()


bearer = HTTPBearer()


def create_token(user_id: str, roles: List[str], ttl_minutes: int | None = None) -> str:
    unknown = set(roles) - set(ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {sorted(unknown)}")
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": user_id, "roles": list(roles), "iat": int(now.timestamp()),
               "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.APP_SECRET, algorithm=settings.JWT_ALGORITHM)


def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> TokenData:
    settings = get_settings()
    try:
        payload = jwt.decode(creds.credentials, settings.APP_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return TokenData(sub=payload["sub"], roles=[r for r in payload.get("roles", []) if r in ROLES])
    except (jwt.PyJWTError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        if not set(user.roles).intersection(required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user
    return checker


# any signed-in candidate or admin
require_user = require_roles(*ROLES)

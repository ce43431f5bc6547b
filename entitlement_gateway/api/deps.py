from datetime import datetime

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from entitlement_gateway.core.clock import Clock
from entitlement_gateway.core.config import Settings
from entitlement_gateway.core.security import decode_token
from entitlement_gateway.db.profile_store import ProfileStore

bearer_scheme = HTTPBearer(auto_error=False)

# Everything below is wired once in create_app and read back from app.state

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store

def get_clock(request: Request) -> Clock:
    return request.app.state.clock

def get_received_at(clock: Clock = Depends(get_clock)) -> datetime:
    return clock()

def get_current_user_id(
        creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
        settings: Settings = Depends(get_settings),
) -> str:
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        payload = decode_token(creds.credentials, settings)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token (missing sub)")
    return str(sub)

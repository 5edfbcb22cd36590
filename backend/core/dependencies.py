"""
FastAPI dependencies for authentication and store access
"""
from typing import Optional

from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from .config import SECRET_KEY, ALGORITHM
from .database import db
from stores.mongo import MongoLedgerStore, MongoEventStore, MongoGuestStore

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Resolve the caller identity from the access_token cookie or a Bearer token"""
    token = request.cookies.get("access_token") or (credentials.credentials if credentials else None)
    if not token:
        raise HTTPException(status_code=401, detail="Missing auth token")

    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"verify_aud": False}
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return {"id": user_id, "email": payload.get("email")}


def get_ledger_store() -> MongoLedgerStore:
    return MongoLedgerStore(db)


def get_event_store() -> MongoEventStore:
    return MongoEventStore(db)


def get_guest_store() -> MongoGuestStore:
    return MongoGuestStore(db)

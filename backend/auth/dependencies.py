from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.auth import jwt_handler
from backend.database import SessionLocal
from backend.models.user import User

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"


def _load_user_from_token(token: str) -> User:
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
    finally:
        db.close()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    return _load_user_from_token(credentials.credentials)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
) -> User | None:
    if credentials is None:
        return None
    return _load_user_from_token(credentials.credentials)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if (current_user.role or "").strip().lower() != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return current_user

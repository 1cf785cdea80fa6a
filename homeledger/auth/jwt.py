from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db, get_settings
from ..config import Settings
from ..models.models import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _create_token(data: dict, expires_minutes: int, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode = data.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, settings: Settings, expires_minutes: Optional[int] = None) -> str:
    payload = data.copy()
    payload.setdefault("type", "access")
    return _create_token(payload, expires_minutes or settings.access_token_expire_minutes, settings)


def create_token_for_user(user: User, settings: Settings, **extra_claims) -> str:
    payload = {"sub": str(user.id), "role": user.role}
    payload.update(extra_claims)
    return create_access_token(payload, settings)


def decode_token(token: str, settings: Settings) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def _load_user(db: Session, user_id: str) -> Optional[User]:
    return (
        db.query(User)
        .options(joinedload(User.pro_profile))
        .filter(User.id == int(user_id))
        .first()
    )


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception
    try:
        payload = decode_token(token, settings)
        user_id: Optional[str] = payload.get("sub")
        token_type = payload.get("type")
        if user_id is None or token_type not in (None, "access"):
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = _load_user(db, user_id)
    if user is None:
        raise credentials_exception
    if user.is_suspended:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")
    request.state.impersonated_by = payload.get("impersonated_by")
    return user


def require_roles(*allowed_roles: str):
    allowed = set(allowed_roles)

    def role_checker(user: User = Depends(get_current_user)) -> User:
        if not allowed:
            return user
        if user.has_any_role(*allowed):
            return user
        raise HTTPException(status_code=403, detail="Operation not permitted for your role")

    return role_checker


def require_approved_pro(user: User = Depends(get_current_user)) -> User:
    if not user.has_role("PRO"):
        raise HTTPException(status_code=403, detail="Operation not permitted for your role")
    if not user.is_approved_pro:
        raise HTTPException(status_code=403, detail="Your pro account is not approved yet")
    return user

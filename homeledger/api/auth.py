from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_settings
from ..auth.jwt import create_token_for_user, get_current_user
from ..config import Settings
from ..core.rate_limit import rate_limit_dependency
from ..models.models import User
from ..schemas.schemas import Token, UserCreate, UserRead
from ..services import users as user_service

router = APIRouter()

login_rate_limit = rate_limit_dependency("login", "login_rate_limit", "login_rate_window_seconds")


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Session = Depends(get_db)) -> User:
    return user_service.register_user(
        db,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
    )


@router.post("/login", response_model=Token, dependencies=[Depends(login_rate_limit)])
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Token:
    user = user_service.authenticate(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.is_suspended:
        raise HTTPException(status_code=403, detail="Account suspended")
    return Token(access_token=create_token_for_user(user, settings), role=user.role)


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from ..config import Settings
from ..services.email import EmailService
from ..services.storage import StorageService


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email

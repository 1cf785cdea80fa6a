from collections.abc import Callable, Generator
from typing import Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from homeledger.auth.jwt import create_token_for_user, get_password_hash
from homeledger.config import Settings
from homeledger.main import create_app
from homeledger.models.models import Connection, Home, User
from homeledger.services.access import normalize_address
from homeledger.services.storage import StorageService


class FakeS3Client:
    """Stands in for the boto3 client; records every presign call."""

    def __init__(self) -> None:
        self.calls: List[Dict] = []

    def generate_presigned_url(self, operation: str, Params: Dict, ExpiresIn: int) -> str:
        self.calls.append({"operation": operation, "params": Params, "expires_in": ExpiresIn})
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        app_env="test",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret-key",
        log_format="plain",
        email_backend="local",
        email_output_dir=str(tmp_path / "emails"),
        s3_bucket="test-bucket",
        aws_region="us-east-1",
        public_s3_url_prefix="https://cdn.example.com/",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def app(settings: Settings, s3_client: FakeS3Client) -> Generator[FastAPI, None, None]:
    application = create_app(settings)
    application.state.storage = StorageService(settings, client=s3_client)
    yield application
    application.state.engine.dispose()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()


@pytest.fixture
def db_session(app: FastAPI) -> Generator[Session, None, None]:
    """A session on the same database the app writes to."""
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def password_hash() -> str:
    return get_password_hash("changeme")


@pytest.fixture
def create_user(db_session: Session, password_hash: str) -> Callable[..., User]:
    def _create(
        email: str = "user@example.com",
        role: str = "HOMEOWNER",
        pro_status: Optional[str] = None,
        name: Optional[str] = None,
        suspended: bool = False,
    ) -> User:
        if role == "PRO" and pro_status is None:
            pro_status = "APPROVED"
        user = User(
            email=email,
            name=name,
            hashed_password=password_hash,
            role=role,
            pro_status=pro_status,
            is_suspended=suspended,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_home(db_session: Session) -> Callable[..., Home]:
    def _create(
        owner: Optional[User],
        address: str = "12 Oak Lane",
        city: str = "Austin",
        state: str = "TX",
        zip_code: str = "78701",
    ) -> Home:
        home = Home(
            owner_id=owner.id if owner else None,
            address=address,
            city=city,
            state=state,
            zip=zip_code,
            normalized_address=normalize_address(address, city, state, zip_code),
        )
        db_session.add(home)
        db_session.commit()
        return home

    return _create


@pytest.fixture
def create_connection(db_session: Session) -> Callable[..., Connection]:
    def _create(home: Home, contractor: User, status: str = "ACTIVE", **extra) -> Connection:
        connection = Connection(
            home_id=home.id,
            homeowner_id=home.owner_id,
            contractor_id=contractor.id,
            status=status,
            established_via="INVITATION",
            **extra,
        )
        db_session.add(connection)
        db_session.commit()
        return connection

    return _create


@pytest.fixture
def auth_headers(settings: Settings) -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_token_for_user(user, settings)}"}

    return _headers

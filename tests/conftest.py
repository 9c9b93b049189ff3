import os
import tempfile
from datetime import datetime, timedelta

# Configuração precisa existir antes de importar o app (settings é carregado no import)
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAILS_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
# Mesmo diretório gravado pelo LocalImageStore e servido em /media
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="onboarding-uploads-")

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import get_account_service, get_token_issuer
from app.core.lockout import LockoutTracker
from app.core.security import CredentialHasher, ResetTokenIssuer, VerificationCodeIssuer
from app.crud.crud_user import user as crud_user
from app.db.initial_data import init_db
from app.db.session import dispose_engine, get_session_local
from app.services.account_service import AccountService
from app.services.image_storage import LocalImageStore
from app.schemas.user import UserCreate
from app.core.config import settings

T0 = datetime(2025, 1, 15, 12, 0, 0)
PASSWORD = "Secret123"


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    """Guarda os emails 'enviados' para inspeção nos testes."""

    def __init__(self):
        self.verification_codes: list[tuple[str, str]] = []
        self.reset_tokens: list[tuple[str, str]] = []
        self.welcomes: list[str] = []
        self.fail = False

    async def send_verification_code(self, email, name, code):
        if self.fail:
            raise ConnectionError("SMTP down")
        self.verification_codes.append((email, code))
        return True

    async def send_password_reset(self, email, name, token):
        if self.fail:
            raise ConnectionError("SMTP down")
        self.reset_tokens.append((email, token))
        return True

    async def send_welcome(self, email, name):
        if self.fail:
            raise ConnectionError("SMTP down")
        self.welcomes.append(email)
        return True

    def last_code(self, email: str) -> str:
        return [code for to, code in self.verification_codes if to == email][-1]

    def last_reset_token(self, email: str) -> str:
        return [token for to, token in self.reset_tokens if to == email][-1]


async def register_user(service, db, email="ana@example.com", name="Ana Souza", password=PASSWORD, verify=True):
    """Registra (e opcionalmente verifica) um usuário pelo próprio AccountService."""
    user = await service.register(db, user_in=UserCreate(full_name=name, email=email, password=password))
    if verify:
        code = service.notifier.last_code(user.email)
        await service.verify_email(db, code=code)
    return user


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def image_store() -> LocalImageStore:
    return LocalImageStore(settings)


@pytest.fixture
def service(clock, notifier, image_store) -> AccountService:
    return AccountService(
        store=crud_user,
        hasher=CredentialHasher(rounds=4),
        code_issuer=VerificationCodeIssuer(expire_minutes=60),
        reset_issuer=ResetTokenIssuer(expire_minutes=10),
        token_issuer=get_token_issuer(),
        lockout=LockoutTracker(max_failed_attempts=5, lockout_minutes=120),
        notifier=notifier,
        image_store=image_store,
        clock=clock,
    )


@pytest.fixture
async def database():
    # Banco em memória novo por teste: dispose descarta a conexão única do StaticPool
    await init_db()
    yield
    await dispose_engine()


@pytest.fixture
async def db(database):
    async with get_session_local()() as session:
        yield session


@pytest.fixture
async def client(database, service):
    from main import app

    app.dependency_overrides[get_account_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

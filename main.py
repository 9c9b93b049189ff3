# auth_api/main.py
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

# --- Adicionar imports do slowapi ---
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
# --- Fim imports slowapi ---

from app.api.dependencies import client_ip, get_token_issuer
from app.api.endpoints import auth, users
from app.core.config import settings
from app.core.exceptions import AccountError, AccountLockedError, InternalError, ValidationFailedError
from app.core.logging import setup_logging
from app.db.initial_data import init_db
from app.db.session import dispose_engine

setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)

app = FastAPI(
    title="User Onboarding Auth API",
    description="Registro, verificação de email, login com bloqueio, reset de senha e perfil",
    version="1.0.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_request_context(request: Request, call_next):
    # IP e User-Agent entram em todos os logs desta requisição (trilha de auth)
    with logger.contextualize(ip=client_ip(request), user_agent=request.headers.get("user-agent")):
        return await call_next(request)


# --- Tradução dos erros de domínio para HTTP ---
@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    content: dict = {"detail": exc.message, "error": exc.kind}
    if isinstance(exc, InternalError):
        # Contexto completo só no log; o cliente recebe mensagem genérica
        logger.opt(exception=exc).error(f"Erro interno em {request.method} {request.url.path}: {exc.message}")
    if isinstance(exc, ValidationFailedError) and exc.errors:
        content["errors"] = exc.errors
    if isinstance(exc, AccountLockedError) and exc.locked_until:
        content["locked_until"] = exc.locked_until.isoformat()
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
# --- Fim tradução ---


# Incluir routers da API
api_prefix = "/api/v1"

app.include_router(auth.router, prefix=f"{api_prefix}/auth", tags=["Authentication"])
app.include_router(users.router, prefix=f"{api_prefix}/users", tags=["Users"])

# Imagens de perfil gravadas pelo LocalImageStore (PUBLIC_MEDIA_URL aponta para cá)
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount(settings.MEDIA_MOUNT_PATH, StaticFiles(directory=settings.UPLOAD_DIR), name="media")


@app.on_event("startup")
async def startup_event():
    # Falha aqui (ex: SECRET_KEY vazia) impede o boot, nunca uma requisição
    get_token_issuer()
    if settings.DB_CREATE_TABLES:
        await init_db()
    logger.info("Auth API iniciada.")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down: Disposing database engine...")
    await dispose_engine()
    logger.info("Database engine disposed.")

@app.get("/")
def read_root():
    return {"message": "Auth API is running!"}

# auth_api/app/core/logging.py
import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Encaminha registros do logging padrão (uvicorn, sqlalchemy) para o loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        # Arquivo JSON com rotação para a trilha de auditoria
        logger.add(
            log_file,
            level=level,
            rotation="5 MB",
            retention=5,
            enqueue=True,
            serialize=True,
        )
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False


def log_auth_event(event: str, user_id: int | None = None, email: str | None = None) -> None:
    """
    Trilha de auditoria de autenticação. Nunca recebe senhas, códigos ou tokens.

    IP e User-Agent chegam pelo `logger.contextualize` do middleware HTTP.
    """
    logger.bind(auth_event=event, user_id=user_id, email=email).info(
        f"AUTH {event} user_id={user_id} email={email}"
    )

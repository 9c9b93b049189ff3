# auth_api/app/services/image_storage.py
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from loguru import logger

from app.core.config import Settings
from app.core.exceptions import ValidationFailedError

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}


@dataclass
class ImageUpload:
    content: bytes
    filename: str | None = None
    content_type: str | None = None


class ImageStore(Protocol):
    def validate(self, content: bytes, content_type: str | None) -> None: ...
    async def store(self, content: bytes, filename: str | None, content_type: str | None) -> str: ...


def get_file_extension(filename: str | None, content_type: str | None) -> str:
    """Extensão em minúsculas; cai para a do content-type se o nome não tiver."""
    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix in {".jpg", ".jpeg", ".png", ".gif"}:
            return suffix
    return CONTENT_TYPE_EXTENSIONS.get(content_type or "", ".img")


def generate_unique_filename(filename: str | None, content_type: str | None) -> str:
    return f"{uuid4()}{get_file_extension(filename, content_type)}"


class LocalImageStore:
    """
    Grava imagens de perfil em UPLOAD_DIR e devolve a URL pública
    (PUBLIC_MEDIA_URL/<arquivo>). Um CDN pode servir o diretório.
    """

    def __init__(self, settings: Settings):
        self.upload_dir = Path(settings.UPLOAD_DIR)
        self.public_base_url = settings.PUBLIC_MEDIA_URL.rstrip("/")
        self.max_size = settings.MAX_IMAGE_SIZE_BYTES
        self.allowed_types = set(settings.ALLOWED_IMAGE_TYPES)

    def validate(self, content: bytes, content_type: str | None) -> None:
        if not content:
            raise ValidationFailedError("Profile image is required", field="profile_image")
        if content_type not in self.allowed_types:
            raise ValidationFailedError("Only JPEG, PNG, and GIF images are allowed", field="profile_image")
        if len(content) > self.max_size:
            raise ValidationFailedError(
                f"File size cannot exceed {self.max_size / (1024 * 1024):.0f}MB", field="profile_image"
            )

    def _write(self, filename: str, content: bytes) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / filename).write_bytes(content)

    async def store(self, content: bytes, filename: str | None, content_type: str | None) -> str:
        self.validate(content, content_type)
        unique_name = generate_unique_filename(filename, content_type)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, unique_name, content)
        url = f"{self.public_base_url}/{unique_name}"
        logger.info(f"Imagem de perfil gravada: {unique_name} ({len(content)} bytes)")
        return url

# auth_api/app/api/endpoints/users.py
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_account_service, get_current_user
from app.core.exceptions import ValidationFailedError
from app.db.session import get_db
from app.models.user import User as UserModel
from app.schemas.user import ChangePasswordRequest, Message, UserCreate, UserPublic, UserUpdate
from app.services.account_service import AccountService
from app.services.image_storage import ImageUpload

router = APIRouter()


def validation_failed(e: ValidationError) -> ValidationFailedError:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]
    return ValidationFailedError("Validation failed", errors=errors)


async def read_image(upload: Optional[UploadFile]) -> Optional[ImageUpload]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return ImageUpload(content=content, filename=upload.filename, content_type=upload.content_type)


@router.post("/", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def create_user(
    *,
    db: AsyncSession = Depends(get_db),
    full_name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    profile_image: Optional[UploadFile] = File(None),
    service: AccountService = Depends(get_account_service),
) -> Any:
    """
    Cria um novo usuário (registro) e envia o código de verificação por email.
    Aceita multipart/form-data com uma imagem de perfil opcional.
    """
    try:
        user_in = UserCreate(full_name=full_name, email=email, password=password)
    except ValidationError as e:
        raise validation_failed(e)
    image = await read_image(profile_image)
    return await service.register(db, user_in=user_in, image=image)


@router.get("/me", response_model=UserPublic)
async def read_user_me(
    current_user: UserModel = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> Any:
    return service.get_profile(current_user)


@router.put("/me", response_model=UserPublic)
async def update_user_me(
    *,
    db: AsyncSession = Depends(get_db),
    full_name: Optional[str] = Form(None),
    profile_image: Optional[UploadFile] = File(None),
    current_user: UserModel = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> Any:
    """Atualiza nome e/ou imagem de perfil do usuário logado."""
    try:
        user_in = UserUpdate(full_name=full_name)
    except ValidationError as e:
        raise validation_failed(e)
    image = await read_image(profile_image)
    return await service.update_profile(
        db, account_id=current_user.id, full_name=user_in.full_name, image=image
    )


@router.put("/me/password", response_model=Message)
async def change_password(
    *,
    db: AsyncSession = Depends(get_db),
    request_body: ChangePasswordRequest,
    current_user: UserModel = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.change_password(
        db,
        account_id=current_user.id,
        current_password=request_body.current_password,
        new_password=request_body.new_password,
    )

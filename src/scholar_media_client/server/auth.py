from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from scholar_media_client.config import AuthConfig, get_settings

# Токены выпускает внешний сервис аутентификации; здесь они только проверяются
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class TokenData(BaseModel):
    sub: str | None = None


def get_auth_config() -> AuthConfig:
    return get_settings().auth


async def get_current_user_id(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    auth: Annotated[AuthConfig, Depends(get_auth_config)],
) -> UUID:
    """
    Зависимость для защищённых эндпоинтов.

    1. Получает токен из заголовка Authorization.
    2. Проверяет подпись и срок действия.
    3. Возвращает id пользователя из поля sub или 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception
    try:
        payload = jwt.decode(token, auth.secret_key, algorithms=[auth.algorithm])
        token_data = TokenData(sub=payload.get("sub"))
        if token_data.sub is None:
            raise credentials_exception
        return UUID(token_data.sub)
    except (JWTError, ValueError):
        raise credentials_exception

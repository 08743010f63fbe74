"""HTTP Basic-Auth guard for the documentation and admin endpoints."""

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.dependencies import ServiceContainer, get_container

__all__ = ["require_docs_access", "require_admin"]

_basic = HTTPBasic(realm="Swagger Documentation", auto_error=False)


def _check_credentials(credentials: HTTPBasicCredentials | None, username: str, password: str) -> None:
    # Empty configured credentials mean the protected endpoint does not exist.
    if not username or not password:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    given_user = credentials.username if credentials else ""
    given_pass = credentials.password if credentials else ""
    user_ok = secrets.compare_digest(given_user.encode("utf-8"), username.encode("utf-8"))
    pass_ok = secrets.compare_digest(given_pass.encode("utf-8"), password.encode("utf-8"))
    if credentials is None or not (user_ok and pass_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": 'Basic realm="Swagger Documentation"'},
        )


def require_docs_access(
    credentials: HTTPBasicCredentials | None = Depends(_basic),
    container: ServiceContainer = Depends(get_container),
) -> None:
    settings = container.settings
    if not settings.SWAGGER_ENABLED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    _check_credentials(credentials, settings.SWAGGER_USERNAME, settings.SWAGGER_PASSWORD)


def require_admin(
    credentials: HTTPBasicCredentials | None = Depends(_basic),
    container: ServiceContainer = Depends(get_container),
) -> None:
    settings = container.settings
    _check_credentials(credentials, settings.SWAGGER_USERNAME, settings.SWAGGER_PASSWORD)

import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.database import get_db
from backend.models.user import Role, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(token: str, db: Session, expected_type: str = jwt_handler.ACCESS_TOKEN_TYPE) -> User:
    try:
        payload = jwt_handler.decode_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Not authorized, token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Not authorized, invalid token") from exc

    if payload.get("type") != expected_type:
        raise _unauthorized("Invalid token type")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise _unauthorized("Invalid token subject") from exc

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User account is deactivated")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authorized, no token")
    return user_from_token(credentials.credentials, db)


def require_roles(*roles: Role):
    allowed = frozenset(roles)

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if Role(current_user.role) not in allowed:
            logger.info("Denied %s access for user %s", current_user.role.value, current_user.id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role {current_user.role.value} is not authorized to access this route",
            )
        return current_user

    return dependency

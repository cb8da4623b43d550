import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user, security, user_from_token
from backend.auth.passwords import hash_password, verify_password
from backend.core.schemas import CamelModel, Email, MessageResponse, Password, Username
from backend.database import get_db
from backend.models.user import Role, User, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])


class UserResponse(CamelModel):
    id: int
    username: str
    email: str
    role: Role
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RegisterRequest(CamelModel):
    username: Username
    email: Email
    password: Password
    role: Role = Role.PATIENT


class LoginRequest(CamelModel):
    email: Email
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: Password


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class AuthResponse(CamelModel):
    success: bool = True
    access_token: str
    refresh_token: str
    user: UserResponse


class ValidateResponse(CamelModel):
    valid: bool
    user: UserResponse


def issue_tokens(user: User) -> AuthResponse:
    tokens = jwt_handler.create_token_pair(str(user.id))
    return AuthResponse(
        access_token=tokens['access_token'],
        refresh_token=tokens['refresh_token'],
        user=UserResponse.model_validate(user),
    )


@router.post('/register', response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(or_(User.email == data.email, User.username == data.username)).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='User with this email or username already exists',
        )

    user = User(
        username=data.username,
        email=data.email,
        hashed_password=hash_password(data.password),
        role=data.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info('Registered user %s with role %s', user.id, user.role.value)

    return issue_tokens(user)


@router.post('/login', response_model=AuthResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Account is deactivated')
    if not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')

    user.last_login = utcnow()
    db.commit()
    db.refresh(user)

    return issue_tokens(user)


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.post('/logout', response_model=MessageResponse)
def logout(current_user: User = Depends(get_current_user)):
    # Tokens are stateless; the client drops them.
    return MessageResponse(message='Logged out successfully')


@router.put('/change-password', response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = db.get(User, current_user.id)
    if not verify_password(data.current_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Current password is incorrect')

    user.hashed_password = hash_password(data.new_password)
    db.commit()
    return MessageResponse(message='Password changed successfully')


@router.post('/refresh', response_model=AuthResponse)
def refresh(data: RefreshRequest, db: Session = Depends(get_db)):
    if not data.refresh_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Refresh token is required')

    user = user_from_token(data.refresh_token, db, expected_type=jwt_handler.REFRESH_TOKEN_TYPE)
    return issue_tokens(user)


@router.post('/validate', response_model=ValidateResponse)
def validate(credentials=Depends(security), db: Session = Depends(get_db)):
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='No token provided')

    user = user_from_token(credentials.credentials, db)
    return ValidateResponse(valid=True, user=UserResponse.model_validate(user))

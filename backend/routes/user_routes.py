import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_roles
from backend.auth.passwords import hash_password
from backend.core import config
from backend.core.schemas import CamelModel, Email, MessageResponse, Pagination, Password, Username, build_pagination
from backend.database import get_db
from backend.models.user import Role, User
from backend.routes.auth_routes import UserResponse
from backend.services.accounts import count_associated_data, linked_profiles

logger = logging.getLogger(__name__)

router = APIRouter(tags=['users'])

admin_only = require_roles(Role.ADMIN)


class CreateUserRequest(CamelModel):
    username: Username
    email: Email
    password: Password
    role: Role
    is_active: bool = True


class UpdateUserRequest(CamelModel):
    username: Username | None = None
    email: Email | None = None
    password: Password | None = None
    role: Role | None = None
    is_active: bool | None = None


class SetPasswordRequest(CamelModel):
    password: Password


class UserListResponse(CamelModel):
    users: list[UserResponse]
    pagination: Pagination


class RoleCount(CamelModel):
    role: Role
    count: int


class UserStatsResponse(CamelModel):
    total: int
    active: int
    inactive: int
    by_role: list[RoleCount]
    recent: list[UserResponse]


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
    return user


def ensure_unique_identity(db: Session, username: str | None, email: str | None, exclude_id: int | None = None) -> None:
    if username:
        query = db.query(User).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Username already exists')
    if email:
        query = db.query(User).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email already exists')


@router.get('', response_model=UserListResponse)
def list_users(
    search: str | None = Query(default=None),
    role: Role | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias='isActive'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(User.username.ilike(pattern), User.email.ilike(pattern)))
    if role is not None:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return UserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        pagination=build_pagination(page, limit, total),
    )


@router.post('', response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(data: CreateUserRequest, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    ensure_unique_identity(db, data.username, data.email)

    user = User(
        username=data.username,
        email=data.email,
        hashed_password=hash_password(data.password),
        role=data.role,
        is_active=data.is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


@router.get('/stats/overview', response_model=UserStatsResponse)
def user_stats(current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    by_role = db.query(User.role, func.count(User.id)).group_by(User.role).all()
    recent = db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(5).all()

    return UserStatsResponse(
        total=db.query(User).count(),
        active=db.query(User).filter(User.is_active.is_(True)).count(),
        inactive=db.query(User).filter(User.is_active.is_(False)).count(),
        by_role=[RoleCount(role=role, count=count) for role, count in by_role],
        recent=[UserResponse.model_validate(user) for user in recent],
    )


@router.get('/{user_id}', response_model=UserResponse)
def get_user(user_id: int, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    return UserResponse.model_validate(get_user_or_404(db, user_id))


@router.put('/{user_id}', response_model=UserResponse)
def update_user(
    user_id: int,
    data: UpdateUserRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    user = get_user_or_404(db, user_id)
    ensure_unique_identity(
        db,
        data.username if data.username != user.username else None,
        data.email if data.email != user.email else None,
        exclude_id=user.id,
    )

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    password = changes.pop('password', None)
    for field, value in changes.items():
        setattr(user, field, value)
    if password:
        user.hashed_password = hash_password(password)

    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


@router.delete('/{user_id}', response_model=MessageResponse)
def delete_user(user_id: int, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot delete your own account')

    patient, doctor = linked_profiles(db, user)
    appointments_count, records_count = count_associated_data(db, patient, doctor)
    if appointments_count or records_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                'message': 'Cannot delete user with associated appointments or medical records. '
                           'Please deactivate instead.',
                'hasAssociatedData': True,
                'appointmentsCount': appointments_count,
                'medicalRecordsCount': records_count,
            },
        )

    if patient is not None:
        db.delete(patient)
    if doctor is not None:
        db.delete(doctor)
    db.delete(user)
    db.commit()
    logger.info('User %s permanently deleted by admin %s', user_id, current_user.id)

    return MessageResponse(message='User permanently deleted successfully')


@router.put('/{user_id}/deactivate', response_model=MessageResponse)
def deactivate_user(user_id: int, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot deactivate your own account')

    user.is_active = False
    db.commit()
    return MessageResponse(message='User deactivated successfully')


@router.put('/{user_id}/activate', response_model=MessageResponse)
def activate_user(user_id: int, current_user: User = Depends(admin_only), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    user.is_active = True
    db.commit()
    return MessageResponse(message='User activated successfully')


@router.put('/{user_id}/password', response_model=MessageResponse)
def set_user_password(
    user_id: int,
    data: SetPasswordRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    user = get_user_or_404(db, user_id)
    user.hashed_password = hash_password(data.password)
    db.commit()
    return MessageResponse(message='Password updated successfully')

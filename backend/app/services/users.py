from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.models.clinic import Clinic
from app.models.user import Role, User


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    clinic_id: int | None,
    full_name: str = "",
    role: Role = Role.front_desk,
    is_active: bool = True,
) -> User:
    now = datetime.now(timezone.utc)
    user = User(
        email=email.lower().strip(),
        clinic_id=clinic_id,
        full_name=full_name,
        role=role,
        is_active=is_active,
        hashed_password=hash_password(password),
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def user_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id))) or 0)


def seed_initial_admin(db: Session, *, email: str, password: str, clinic_name: str) -> bool:
    if user_count(db) > 0:
        return False
    clinic = Clinic(name=clinic_name)
    db.add(clinic)
    db.flush()
    create_user(
        db,
        email=email,
        password=password,
        clinic_id=clinic.id,
        full_name="Admin",
        role=Role.admin,
        is_active=True,
    )
    return True

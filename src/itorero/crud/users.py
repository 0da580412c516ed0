# src/itorero/crud/users.py
from typing import Optional, Tuple, Union

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.user import User
from src.itorero.schemas.user import RegisterRequest, UserCreate, UserUpdate
from src.itorero.utils.exceptions import ValidationFailedError
from src.itorero.utils.security import hash_password
from src.itorero.utils.timezone import now_local
from src.itorero.utils.validators import (
    ValidationResult,
    validate_hierarchy,
    validate_parent_chain,
    validate_password,
    validate_phone_number,
    validate_unique_email,
    validate_username,
)


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def list_users(
    db: AsyncSession,
    q: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[list[User], int]:
    base = select(User)
    if q:
        like = f"%{q.strip()}%"
        base = base.where(
            or_(
                User.username.ilike(like),
                User.email.ilike(like),
                User.first_name.ilike(like),
                User.last_name.ilike(like),
            )
        )
    if role:
        base = base.where(User.role == role)
    if status:
        base = base.where(User.status == status)
    for col, value in (scope or {}).items():
        base = base.where(getattr(User, col) == value)

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    res = await db.execute(base.order_by(User.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def _check_new_user(db: AsyncSession, data: RegisterRequest) -> ValidationResult:
    result = await validate_username(db, data.username)
    result.extend(await validate_unique_email(db, str(data.email)))
    result.extend(validate_password(data.password.get_secret_value()))
    if not validate_phone_number(data.phone_number):
        result.add("Invalid phone number.")
    result.extend(await validate_hierarchy(db, data.role, data.district_id, data.sector_id, data.cell_id))
    return result


async def create_user(
    db: AsyncSession,
    data: Union[RegisterRequest, UserCreate],
    created_by: Optional[str] = None,
) -> User:
    """Validate every user rule, then insert; raises ValidationFailedError with all messages."""
    result = await _check_new_user(db, data)
    intore_group_id = getattr(data, "intore_group_id", None)
    if intore_group_id:
        result.extend(await validate_parent_chain(db, cell_id=data.cell_id, intore_group_id=intore_group_id))
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    row = User(
        username=data.username,
        email=str(data.email).lower(),
        password=hash_password(data.password.get_secret_value()),
        first_name=data.first_name,
        last_name=data.last_name,
        phone_number=data.phone_number,
        date_of_birth=data.date_of_birth,
        role=data.role,
        status=getattr(data, "status", None) or ("active" if created_by else "pending"),
        district_id=data.district_id,
        sector_id=data.sector_id,
        cell_id=data.cell_id,
        intore_group_id=intore_group_id,
    )
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_user(db: AsyncSession, row: User, data: UserUpdate) -> User:
    """Apply the given fields; role/hierarchy changes are re-validated on the final values."""
    values = data.model_dump(exclude_unset=True)

    result = ValidationResult()
    if "email" in values:
        values["email"] = str(values["email"]).lower()
        result.extend(await validate_unique_email(db, values["email"], exclude_user_id=row.id))
    if "phone_number" in values and not validate_phone_number(values["phone_number"]):
        result.add("Invalid phone number.")

    final = {k: values.get(k, getattr(row, k)) for k in ("role", "district_id", "sector_id", "cell_id", "intore_group_id")}
    if {"role", "district_id", "sector_id", "cell_id"} & values.keys():
        result.extend(
            await validate_hierarchy(db, final["role"], final["district_id"], final["sector_id"], final["cell_id"])
        )
    if final["intore_group_id"] and {"intore_group_id", "cell_id"} & values.keys():
        result.extend(
            await validate_parent_chain(db, cell_id=final["cell_id"], intore_group_id=final["intore_group_id"])
        )
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    for key, value in values.items():
        setattr(row, key, value)
    row.updated_dt = now_local()
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def set_status(db: AsyncSession, row: User, status: str) -> User:
    row.status = status
    row.updated_dt = now_local()
    await db.commit()
    await db.refresh(row)
    return row


async def change_password(db: AsyncSession, row: User, new_password: str) -> User:
    result = validate_password(new_password)
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)
    row.password = hash_password(new_password)
    row.updated_dt = now_local()
    await db.commit()
    return row

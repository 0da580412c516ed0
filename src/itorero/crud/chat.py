# src/itorero/crud/chat.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.ops.chat import ChatGroup, ChatGroupMember, Message, MessageRead
from src.itorero.models.user import User
from src.itorero.schemas.chat import ChatGroupCreate, MessageCreate
from src.itorero.utils.exceptions import (
    ConflictError,
    DanglingReferenceError,
    NotFoundError,
    PermissionDeniedError,
)
from src.itorero.utils.hierarchy import derive_scope, load_user
from src.itorero.utils.timezone import now_local


# ---------- groups ----------

async def get_group(db: AsyncSession, group_id: str) -> Optional[ChatGroup]:
    return await db.get(ChatGroup, group_id)


async def load_group(db: AsyncSession, group_id: Optional[str]) -> ChatGroup:
    row = await db.get(ChatGroup, group_id) if group_id else None
    if row is None:
        raise NotFoundError("Chat group not found")
    return row


async def get_membership(db: AsyncSession, group_id: str, user_id: str) -> Optional[ChatGroupMember]:
    return await db.scalar(
        select(ChatGroupMember).where(
            ChatGroupMember.group_id == group_id,
            ChatGroupMember.user_id == user_id,
        )
    )


async def member_count(db: AsyncSession, group_id: str) -> int:
    n = await db.scalar(
        select(func.count()).select_from(ChatGroupMember).where(ChatGroupMember.group_id == group_id)
    )
    return int(n or 0)


async def list_groups_for_user(db: AsyncSession, user_id: str) -> List[ChatGroup]:
    res = await db.execute(
        select(ChatGroup)
        .join(ChatGroupMember, ChatGroupMember.group_id == ChatGroup.id)
        .where(ChatGroupMember.user_id == user_id)
        .order_by(ChatGroup.last_activity.desc())
    )
    return list(res.scalars().all())


async def list_members(db: AsyncSession, group_id: str) -> List[ChatGroupMember]:
    res = await db.execute(
        select(ChatGroupMember).where(ChatGroupMember.group_id == group_id).order_by(ChatGroupMember.joined_at)
    )
    return list(res.scalars().all())


async def create_group(db: AsyncSession, data: ChatGroupCreate, creator: User) -> ChatGroup:
    """Create a group with the creator as admin; hierarchy-typed groups take the creator's node by default."""
    district_id, sector_id, cell_id = data.district_id, data.sector_id, data.cell_id
    if data.type in ("district", "sector", "cell") and not (district_id or sector_id or cell_id):
        district_id = creator.district_id
        sector_id = creator.sector_id if data.type in ("sector", "cell") else None
        cell_id = creator.cell_id if data.type == "cell" else None
    scope = await derive_scope(db, district_id=district_id, sector_id=sector_id, cell_id=cell_id)
    scope.pop("intore_group_id", None)

    member_ids = [m for m in dict.fromkeys(data.member_ids) if m != creator.id]
    if len(member_ids) + 1 > data.max_members:
        raise ConflictError("Too many members for this group")
    if member_ids:
        found = set((await db.scalars(select(User.id).where(User.id.in_(member_ids)))).all())
        missing = [m for m in member_ids if m not in found]
        if missing:
            raise DanglingReferenceError("Member not found", errors=missing)

    group = ChatGroup(
        name=data.name,
        description=data.description,
        type=data.type,
        created_by=creator.id,
        is_public=data.is_public,
        join_approval_required=data.join_approval_required,
        max_members=data.max_members,
        **scope,
    )
    db.add(group)
    await db.flush()
    db.add(ChatGroupMember(group_id=group.id, user_id=creator.id, role="admin"))
    for uid in member_ids:
        db.add(ChatGroupMember(group_id=group.id, user_id=uid, role="member"))
    try:
        await db.commit()
        await db.refresh(group)
    except IntegrityError:
        await db.rollback()
        raise
    return group


async def add_member(db: AsyncSession, group: ChatGroup, user_id: str, role: str = "member") -> ChatGroupMember:
    await load_user(db, user_id)
    if await get_membership(db, group.id, user_id):
        raise ConflictError("User is already a member")
    if await member_count(db, group.id) >= group.max_members:
        raise ConflictError("Group is full")

    row = ChatGroupMember(group_id=group.id, user_id=user_id, role=role)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def remove_member(db: AsyncSession, group: ChatGroup, user_id: str) -> None:
    row = await get_membership(db, group.id, user_id)
    if row is None:
        raise NotFoundError("Member not found")
    if row.role == "admin":
        admins = await db.scalar(
            select(func.count()).select_from(ChatGroupMember).where(
                ChatGroupMember.group_id == group.id, ChatGroupMember.role == "admin"
            )
        )
        if int(admins or 0) <= 1:
            raise ConflictError("A group needs at least one admin")
    await db.delete(row)
    await db.commit()


async def ensure_group_admin(db: AsyncSession, group: ChatGroup, user: User) -> None:
    if user.role == "super_admin":
        return
    membership = await get_membership(db, group.id, user.id)
    if membership is None or membership.role != "admin":
        raise PermissionDeniedError("Only group admins can do this.")


# ---------- messages ----------

async def send_message(db: AsyncSession, data: MessageCreate, sender: User) -> Message:
    if data.group_id:
        group = await load_group(db, data.group_id)
        if await get_membership(db, group.id, sender.id) is None:
            raise PermissionDeniedError("You are not a member of this group.")
        group.last_activity = now_local()
    else:
        await load_user(db, data.recipient_id)

    if data.reply_to_id:
        parent = await db.get(Message, data.reply_to_id)
        if parent is None:
            raise DanglingReferenceError("Replied message not found")

    row = Message(
        sender_id=sender.id,
        recipient_id=data.recipient_id,
        group_id=data.group_id,
        content=data.content,
        message_type=data.message_type,
        media_id=data.media_id,
        reply_to_id=data.reply_to_id,
    )
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def get_message(db: AsyncSession, message_id: str) -> Optional[Message]:
    return await db.get(Message, message_id)


async def group_messages(
    db: AsyncSession, group_id: str, limit: int = 50, offset: int = 0
) -> Tuple[List[Message], int]:
    stmt = select(Message).where(Message.group_id == group_id, Message.is_deleted.is_(False))
    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Message.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def direct_messages(
    db: AsyncSession, user_id: str, other_id: str, limit: int = 50, offset: int = 0
) -> Tuple[List[Message], int]:
    stmt = select(Message).where(
        Message.is_deleted.is_(False),
        or_(
            and_(Message.sender_id == user_id, Message.recipient_id == other_id),
            and_(Message.sender_id == other_id, Message.recipient_id == user_id),
        ),
    )
    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Message.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


def _ensure_author(row: Message, user: User) -> None:
    if row.sender_id != user.id and user.role != "super_admin":
        raise PermissionDeniedError("You can only change your own messages.")


async def edit_message(db: AsyncSession, row: Message, content: str, user: User) -> Message:
    if row.is_deleted:
        raise ConflictError("Message was deleted")
    _ensure_author(row, user)
    row.content = content
    row.is_edited = True
    row.edited_at = now_local()
    await db.commit()
    await db.refresh(row)
    return row


async def delete_message(db: AsyncSession, row: Message, user: User) -> Message:
    """Soft delete; the row stays for read receipts and replies."""
    _ensure_author(row, user)
    if not row.is_deleted:
        row.is_deleted = True
        row.deleted_at = now_local()
        row.deleted_by = user.id
        await db.commit()
        await db.refresh(row)
    return row


async def mark_message_read(db: AsyncSession, row: Message, user_id: str) -> MessageRead:
    existing = await db.scalar(
        select(MessageRead).where(MessageRead.message_id == row.id, MessageRead.user_id == user_id)
    )
    if existing:
        return existing
    receipt = MessageRead(message_id=row.id, user_id=user_id)
    db.add(receipt)
    try:
        await db.commit()
        await db.refresh(receipt)
    except IntegrityError:
        await db.rollback()
        raise
    return receipt


async def read_receipts(db: AsyncSession, message_id: str) -> List[MessageRead]:
    res = await db.execute(
        select(MessageRead).where(MessageRead.message_id == message_id).order_by(MessageRead.read_at)
    )
    return list(res.scalars().all())


async def can_read_message(db: AsyncSession, row: Message, user: User) -> bool:
    if user.role == "super_admin" or user.id in (row.sender_id, row.recipient_id):
        return True
    if row.group_id:
        return await get_membership(db, row.group_id, user.id) is not None
    return False

# src/itorero/routes/chat_api.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import chat as crud
from src.itorero.models.ops.chat import Message
from src.itorero.models.user import User
from src.itorero.schemas.chat import (
    ChatGroupCreate,
    ChatGroupRead,
    MemberAdd,
    MemberRead,
    MessageCreate,
    MessageEdit,
    MessageRead,
    ReceiptRead,
)
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import DuplicateKeyError, NotFoundError, PermissionDeniedError
from src.itorero.utils.responses import dump, dump_many, ok, page

router = APIRouter(prefix="/api/chat", tags=["Chat"])


async def _load_message(db: AsyncSession, message_id: str, user: User) -> Message:
    row = await crud.get_message(db, message_id)
    if row is None or not await crud.can_read_message(db, row, user):
        raise NotFoundError("Message not found")
    return row


# ---------- groups ----------

@router.get("/groups")
async def api_my_groups(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(dump_many(ChatGroupRead, await crud.list_groups_for_user(db, current_user.id)))


@router.post("/groups", status_code=201)
async def api_create_group(
    payload: ChatGroupCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        group = await crud.create_group(db, payload, current_user)
    except IntegrityError:
        raise DuplicateKeyError("Duplicate group member")
    await audit.record_action(
        db, request, current_user.id, "CREATE", "chat", group.id,
        after=audit.snapshot(group), description=f"Created chat group {group.name}",
    )
    return ok(dump(ChatGroupRead, group), "Chat group created")


@router.get("/groups/{group_id}")
async def api_get_group(
    group_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group = await crud.load_group(db, group_id)
    if not group.is_public and await crud.get_membership(db, group.id, current_user.id) is None:
        raise NotFoundError("Chat group not found")
    data = dump(ChatGroupRead, group)
    data["members"] = dump_many(MemberRead, await crud.list_members(db, group.id))
    return ok(data)


@router.post("/groups/{group_id}/members", status_code=201)
async def api_add_member(
    group_id: str,
    payload: MemberAdd,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group = await crud.load_group(db, group_id)
    # anyone may join an open public group themselves
    self_join = (
        payload.user_id == current_user.id
        and payload.role == "member"
        and group.is_public
        and not group.join_approval_required
    )
    if not self_join:
        await crud.ensure_group_admin(db, group, current_user)
    try:
        member = await crud.add_member(db, group, payload.user_id, payload.role)
    except IntegrityError:
        raise DuplicateKeyError("User is already a member")
    await audit.record_action(
        db, request, current_user.id, "ADD_MEMBER", "chat", group.id,
        metadata={"user_id": payload.user_id, "role": payload.role},
    )
    return ok(dump(MemberRead, member), "Member added")


@router.delete("/groups/{group_id}/members/{user_id}")
async def api_remove_member(
    group_id: str,
    user_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group = await crud.load_group(db, group_id)
    if user_id != current_user.id:
        await crud.ensure_group_admin(db, group, current_user)
    await crud.remove_member(db, group, user_id)
    await audit.record_action(
        db, request, current_user.id, "REMOVE_MEMBER", "chat", group.id, metadata={"user_id": user_id},
    )
    return ok(message="Member removed")


@router.get("/groups/{group_id}/messages")
async def api_group_messages(
    group_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group = await crud.load_group(db, group_id)
    if await crud.get_membership(db, group.id, current_user.id) is None and current_user.role != "super_admin":
        raise PermissionDeniedError("You are not a member of this group.")
    rows, total = await crud.group_messages(db, group.id, limit=limit, offset=offset)
    return page(MessageRead, rows, total, limit, offset)


# ---------- messages ----------

@router.get("/direct/{user_id}")
async def api_direct_messages(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await crud.direct_messages(db, current_user.id, user_id, limit=limit, offset=offset)
    return page(MessageRead, rows, total, limit, offset)


@router.post("/messages", status_code=201)
async def api_send_message(
    payload: MessageCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.send_message(db, payload, current_user)
    await audit.record_action(
        db, request, current_user.id, "SEND", "chat", row.id,
        metadata={"group_id": row.group_id, "recipient_id": row.recipient_id, "type": row.message_type},
    )
    return ok(dump(MessageRead, row), "Message sent")


@router.put("/messages/{message_id}")
async def api_edit_message(
    message_id: str,
    payload: MessageEdit,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_message(db, message_id, current_user)
    row = await crud.edit_message(db, row, payload.content, current_user)
    await audit.record_action(
        db, request, current_user.id, "UPDATE", "chat", row.id, metadata={"edited_at": row.edited_at},
    )
    return ok(dump(MessageRead, row), "Message updated")


@router.delete("/messages/{message_id}")
async def api_delete_message(
    message_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_message(db, message_id, current_user)
    row = await crud.delete_message(db, row, current_user)
    await audit.record_action(
        db, request, current_user.id, "DELETE", "chat", row.id,
        metadata={"group_id": row.group_id, "recipient_id": row.recipient_id},
    )
    return ok(message="Message deleted")


@router.post("/messages/{message_id}/read")
async def api_mark_message_read(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_message(db, message_id, current_user)
    receipt = await crud.mark_message_read(db, row, current_user.id)
    return ok(dump(ReceiptRead, receipt), "Message marked as read")


@router.get("/messages/{message_id}/reads")
async def api_read_receipts(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_message(db, message_id, current_user)
    return ok(dump_many(ReceiptRead, await crud.read_receipts(db, row.id)))

"""
api/routes/v1/messages.py -- Household message board.

Routes:
  GET    /messages                  -- ?pinned=true, ?type=ANNOUNCEMENT, ?limit=N
  POST   /messages                  -- author is the caller
  PUT    /messages/{message_id}     -- author, or MODERATE_MESSAGES
  DELETE /messages/{message_id}     -- author, or MODERATE_MESSAGES

Pinned messages sort first, then newest first.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from api.models import MessageCreate, MessageType, MessageUpdate, validated
from auth.dependencies import get_current_identity
from auth.roles import Capability, can
from auth.session import SessionIdentity
from core.errors import Forbidden, NotFound, ValidationFailed
from household.scope import TenantScope
from household.tables import messages

router = APIRouter()


def _editable(data: TenantScope, identity: SessionIdentity, message_id: int) -> dict:
    message = data.require(messages, message_id, "Message")
    if message["author_id"] != identity.member_id and not can(identity.role, Capability.MODERATE_MESSAGES):
        raise Forbidden("Only the author or an admin can change this message.")
    return message


@router.get("/messages")
def list_messages(
    request: Request,
    pinned: Optional[bool] = None,
    type: Optional[MessageType] = None,
    limit: int = Query(default=50, ge=1, le=200),
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    store = request.app.state.store
    data = store.scoped(identity.household_id)
    criteria = []
    if pinned is not None:
        criteria.append(messages.c.pinned.is_(pinned))
    if type is not None:
        criteria.append(messages.c.type == type)
    members = store.member_summaries(identity.household_id)
    rows = data.list(
        messages,
        *criteria,
        order_by=(messages.c.pinned.desc(), messages.c.created_at.desc(), messages.c.id.desc()),
        limit=limit,
    )
    return [{**row, "author": members.get(row["author_id"])} for row in rows]


@router.post("/messages", status_code=201)
def create_message(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(MessageCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    return data.insert(
        messages,
        content=body.content,
        type=body.type,
        pinned=body.pinned,
        author_id=identity.member_id,
    )


@router.put("/messages/{message_id}")
def update_message(
    request: Request,
    message_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(MessageUpdate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    _editable(data, identity, message_id)
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if not fields:
        raise ValidationFailed("Nothing to update.")
    row = data.update(messages, message_id, **fields)
    if row is None:
        raise NotFound("Message not found.")
    return row


@router.delete("/messages/{message_id}", status_code=204)
def delete_message(request: Request, message_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    _editable(data, identity, message_id)
    data.delete(messages, message_id)
    return Response(status_code=204)

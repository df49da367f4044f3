"""
api/routes/v1/vault.py -- Household document vault.

Routes:
  GET    /vault                         -- restricted items hidden without VIEW_RESTRICTED_VAULT
  GET    /vault/{item_id}               -- restricted item: 403 without VIEW_RESTRICTED_VAULT
  POST   /vault                         -- MANAGE_VAULT
  PUT    /vault/{item_id}               -- MANAGE_VAULT
  DELETE /vault/{item_id}               -- MANAGE_VAULT; removes its documents
  POST   /vault/upload                  -- MANAGE_VAULT; multipart (file, vault_item_id)
  DELETE /vault/documents/{document_id} -- MANAGE_VAULT

Children can read unrestricted items only, and cannot write at all, so a
child can never set or clear the restricted flag.

File uploads:
  Stored inline as a base64 data: URL on the document row. Capped at 1 MB.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Form, Request, Response, UploadFile

from api.models import VaultItemCreate, VaultItemUpdate, validated
from auth.dependencies import get_current_identity, require
from auth.roles import Capability, can
from auth.session import SessionIdentity
from core.errors import Forbidden, NotFound, ValidationFailed
from household.tables import vault_documents, vault_items

logger = logging.getLogger("homebase.api.vault")

router = APIRouter()

_MAX_UPLOAD_BYTES = 1 * 1024 * 1024  # 1 MB

_manage = require(Capability.MANAGE_VAULT)


def _documents(data, item_id: int) -> list[dict]:
    # file_url holds the whole file; listings carry metadata only.
    return [
        {k: v for k, v in doc.items() if k != "file_url"}
        for doc in data.list(
            vault_documents,
            vault_documents.c.vault_item_id == item_id,
            order_by=(vault_documents.c.created_at, vault_documents.c.id),
        )
    ]


@router.get("/vault")
def list_items(
    request: Request,
    category: Optional[str] = None,
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    criteria = []
    if not can(identity.role, Capability.VIEW_RESTRICTED_VAULT):
        criteria.append(vault_items.c.restricted.is_(False))
    if category:
        criteria.append(vault_items.c.category == category)
    rows = data.list(vault_items, *criteria, order_by=(vault_items.c.category, vault_items.c.title, vault_items.c.id))
    counts: dict[int, int] = {}
    for doc in data.list(vault_documents):
        counts[doc["vault_item_id"]] = counts.get(doc["vault_item_id"], 0) + 1
    return [{**row, "document_count": counts.get(row["id"], 0)} for row in rows]


@router.get("/vault/{item_id}")
def get_item(request: Request, item_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    data = request.app.state.store.scoped(identity.household_id)
    item = data.require(vault_items, item_id, "Vault item")
    if item["restricted"] and not can(identity.role, Capability.VIEW_RESTRICTED_VAULT):
        raise Forbidden()
    item["documents"] = _documents(data, item_id)
    return item


@router.post("/vault", status_code=201)
def create_item(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_manage),
) -> dict:
    body = validated(VaultItemCreate, payload)
    return request.app.state.store.scoped(identity.household_id).insert(vault_items, **body.model_dump())


@router.put("/vault/{item_id}")
def update_item(
    request: Request,
    item_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_manage),
) -> dict:
    body = validated(VaultItemUpdate, payload)
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    row = request.app.state.store.scoped(identity.household_id).update(vault_items, item_id, **fields)
    if row is None:
        raise NotFound("Vault item not found.")
    return row


@router.delete("/vault/{item_id}", status_code=204)
def delete_item(request: Request, item_id: int, identity: SessionIdentity = Depends(_manage)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    children = [(vault_documents, vault_documents.c.vault_item_id == item_id)]
    if not data.delete_with_children(vault_items, item_id, children):
        raise NotFound("Vault item not found.")
    return Response(status_code=204)


@router.post("/vault/upload", status_code=201)
async def upload_document(
    request: Request,
    file: UploadFile,
    vault_item_id: int = Form(...),
    identity: SessionIdentity = Depends(_manage),
) -> dict:
    """Attach a file to a vault item as an inline data URL."""
    data = request.app.state.store.scoped(identity.household_id)
    data.require(vault_items, vault_item_id, "Vault item")

    # Read one byte past the limit to detect oversized files without loading them whole.
    raw = await file.read(_MAX_UPLOAD_BYTES + 1)
    if len(raw) > _MAX_UPLOAD_BYTES:
        raise ValidationFailed("File exceeds the 1 MB upload limit.")
    if not raw:
        raise ValidationFailed("File is empty.")

    file_type = file.content_type or "application/octet-stream"
    document = data.insert(
        vault_documents,
        vault_item_id=vault_item_id,
        file_name=file.filename or "upload",
        file_type=file_type,
        file_url=f"data:{file_type};base64,{base64.b64encode(raw).decode('ascii')}",
        uploaded_by_id=identity.member_id,
    )
    logger.info(
        "Document %d (%d bytes) attached to vault item %d by member %d",
        document["id"],
        len(raw),
        vault_item_id,
        identity.member_id,
    )
    return document


@router.delete("/vault/documents/{document_id}", status_code=204)
def delete_document(request: Request, document_id: int, identity: SessionIdentity = Depends(_manage)) -> Response:
    if not request.app.state.store.scoped(identity.household_id).delete(vault_documents, document_id):
        raise NotFound("Document not found.")
    return Response(status_code=204)

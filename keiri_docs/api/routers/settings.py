import sqlite3
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..deps import CurrentUser, get_current_user, store_dependency, to_http_exception
from ...models.settings import (
    ClassificationRule,
    ClassificationRuleCreate,
    ClassificationRuleUpdate,
    ContactEntry,
    DocumentTypeCreate,
    DocumentTypeDefinition,
    DocumentTypeUpdate,
    SettingEntry,
)
from ...services import document_types
from ...services.errors import KeiriDocsError
from ...services.storage import AccountingStoreBase

router = APIRouter(prefix="/settings", tags=["settings"])

ContactKind = Literal["allowed_senders", "notify_recipients"]


class ContactCreate(BaseModel):
    email: str
    display_name: str | None = None


# ---------- classification rules ----------

@router.get("/rules", response_model=list[ClassificationRule])
async def list_rules(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    return store.list_rules(user.id)


@router.post("/rules", response_model=ClassificationRule, status_code=201)
async def create_rule(
    req: ClassificationRuleCreate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    try:
        return store.create_rule(user.id, req.model_dump())
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Keyword already has a rule: {req.keyword}")


@router.patch("/rules/{rule_id}", response_model=ClassificationRule)
async def update_rule(
    rule_id: str,
    req: ClassificationRuleUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    try:
        rule = store.update_rule(user.id, rule_id, req.model_dump(exclude_none=True))
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Keyword already has a rule: {req.keyword}")
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    if not store.delete_rule(user.id, rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"success": True}


# ---------- document types ----------

@router.get("/document-types", response_model=list[DocumentTypeDefinition])
async def list_document_types(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    """Built-in types merged with the owner's own, in display order"""
    return document_types.merge_document_types(store.list_document_types(user.id))


@router.post("/document-types", response_model=DocumentTypeDefinition, status_code=201)
async def create_document_type(
    req: DocumentTypeCreate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    try:
        return document_types.create_document_type(store, user.id, req.model_dump())
    except KeiriDocsError as e:
        raise to_http_exception(e)


@router.patch("/document-types/{type_id}", response_model=DocumentTypeDefinition)
async def update_document_type(
    type_id: str,
    req: DocumentTypeUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    try:
        return document_types.update_document_type(store, user.id, type_id, req.model_dump(exclude_unset=True))
    except KeiriDocsError as e:
        raise to_http_exception(e)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Document type already exists: {req.name}")


@router.delete("/document-types/{type_id}")
async def delete_document_type(
    type_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    try:
        document_types.delete_document_type(store, user.id, type_id)
    except KeiriDocsError as e:
        raise to_http_exception(e)
    return {"success": True}


# ---------- key/value settings ----------

@router.get("/values")
async def list_settings(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    return store.list_settings(user.id)


@router.put("/values")
async def put_setting(
    req: SettingEntry,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    store.set_setting(user.id, req.key, req.value)
    return {"key": req.key, "value": req.value}


# ---------- allowed senders / notify recipients ----------

@router.get("/contacts/{kind}", response_model=list[ContactEntry])
async def list_contacts(
    kind: ContactKind,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    return store.list_contacts(user.id, kind)


@router.post("/contacts/{kind}", response_model=ContactEntry, status_code=201)
async def add_contact(
    kind: ContactKind,
    req: ContactCreate,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    email = req.email.strip()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="有効なメールアドレスを入力してください")
    return store.add_contact(user.id, kind, email, req.display_name)


@router.delete("/contacts/{kind}/{contact_id}")
async def delete_contact(
    kind: ContactKind,
    contact_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
):
    if not store.delete_contact(user.id, kind, contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"success": True}


from typing import Any, Literal
from pydantic import BaseModel, Field

UserRole = Literal["admin", "staff", "viewer"]


class ClassificationRule(BaseModel):
    id: str | None = None
    keyword: str
    document_type: str
    priority: int = 0
    is_active: bool = True
    owner_id: str | None = None
    created_at: str | None = None


class ClassificationRuleCreate(BaseModel):
    keyword: str = Field(min_length=1)
    document_type: str = Field(min_length=1)
    priority: int = 0
    is_active: bool = True


class ClassificationRuleUpdate(BaseModel):
    keyword: str | None = Field(default=None, min_length=1)
    document_type: str | None = Field(default=None, min_length=1)
    priority: int | None = None
    is_active: bool | None = None


class DocumentTypeDefinition(BaseModel):
    id: str | None = None
    name: str
    storage_folder: str | None = None
    icon: str | None = None
    sort_order: int = 0
    is_default: bool = False
    owner_id: str | None = None


class DocumentTypeCreate(BaseModel):
    name: str
    storage_folder: str | None = None
    icon: str | None = None
    sort_order: int = 0


class DocumentTypeUpdate(BaseModel):
    name: str | None = None
    storage_folder: str | None = None
    icon: str | None = None
    sort_order: int | None = None


class SettingEntry(BaseModel):
    key: str = Field(min_length=1)
    value: Any | None = None


class ContactEntry(BaseModel):
    """Allowed sender or notification recipient"""
    id: str | None = None
    email: str
    display_name: str | None = None

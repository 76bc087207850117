"""
SQLite-based accounting store.

Provides persistent, owner-scoped storage of documents, mail intake items,
classification rules, document types and settings.
"""

import json
import sqlite3
import uuid
from datetime import datetime, UTC
from typing import Any, Optional

from .store_base import AccountingStoreBase
from ...models.document import Document
from ...models.mail import PendingMailItem
from ...models.settings import ClassificationRule, ContactEntry, DocumentTypeDefinition

SORTABLE_DOCUMENT_FIELDS = ["type", "vendor_name", "amount", "issue_date", "due_date", "status", "created_at"]

CONTACT_TABLES = ("allowed_senders", "notify_recipients")

DOCUMENT_COLUMNS = [
    "type", "vendor_name", "amount", "issue_date", "due_date", "description",
    "input_method", "status", "storage_path", "ocr_raw",
]

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    vendor_name TEXT NOT NULL,
    amount REAL,
    issue_date TEXT,
    due_date TEXT,
    description TEXT,
    input_method TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT '未処理',
    storage_path TEXT,
    ocr_raw TEXT,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (input_method IN ('camera', 'upload', 'email')),
    CHECK (status IN ('未処理', '処理済み', 'アーカイブ'))
);
CREATE INDEX IF NOT EXISTS idx_documents_owner_issue ON documents(owner_id, issue_date);

CREATE TABLE IF NOT EXISTS mail_pending (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    sender TEXT NOT NULL,
    received_at TEXT,
    ai_type TEXT,
    ai_confidence REAL,
    temp_path TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    CHECK (status IN ('pending', 'approved', 'rejected'))
);
CREATE INDEX IF NOT EXISTS idx_mail_owner_status ON mail_pending(owner_id, status);

CREATE TABLE IF NOT EXISTS classification_rules (
    id TEXT PRIMARY KEY,
    keyword TEXT NOT NULL,
    document_type TEXT NOT NULL,
    priority INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (keyword, owner_id)
);

CREATE TABLE IF NOT EXISTS document_types (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    storage_folder TEXT,
    icon TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    is_default INTEGER NOT NULL DEFAULT 0,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (owner_id, name)
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT NOT NULL,
    value TEXT,
    owner_id TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (owner_id, key)
);

CREATE TABLE IF NOT EXISTS allowed_senders (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    display_name TEXT,
    owner_id TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notify_recipients (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    display_name TEXT,
    owner_id TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id TEXT PRIMARY KEY,
    role TEXT NOT NULL DEFAULT 'staff',
    CHECK (role IN ('admin', 'staff', 'viewer'))
);
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


class SQLiteAccountingStore(AccountingStoreBase):
    """
    SQLite-backed accounting store.

    Features:
    - Persistent storage across application restarts
    - One short-lived connection per call (safe to share between requests)
    - JSON columns for raw OCR payloads and setting values
    """

    def __init__(self, db_path: str = "keiri_docs.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: keiri_docs.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist"""
        conn = sqlite3.connect(self.db_path)
        conn.executescript(SCHEMA)
        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._get_connection()
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return rows

    def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = self._get_connection()
        row = conn.execute(sql, params).fetchone()
        conn.close()
        return row

    def _execute(self, sql: str, params: tuple = ()) -> int:
        """Run a write statement and return the number of affected rows"""
        conn = self._get_connection()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    # ---------- documents ----------

    @staticmethod
    def _to_document(row: sqlite3.Row) -> Document:
        data = dict(row)
        data["ocr_raw"] = json.loads(data["ocr_raw"]) if data["ocr_raw"] is not None else None
        return Document(**data)

    @staticmethod
    def _encode_document_values(data: dict) -> dict:
        values = {k: v for k, v in data.items() if k in DOCUMENT_COLUMNS}
        if "ocr_raw" in values and values["ocr_raw"] is not None:
            values["ocr_raw"] = json.dumps(values["ocr_raw"], ensure_ascii=False)
        return values

    def create_document(self, owner_id: str, data: dict) -> Document:
        values = self._encode_document_values(data)
        values.setdefault("status", "未処理")
        now = _now()
        values.update({"id": str(uuid.uuid4()), "owner_id": owner_id, "created_at": now, "updated_at": now})

        columns = list(values)
        self._execute(
            f"INSERT INTO documents ({', '.join(columns)}) VALUES ({_placeholders(columns)})",
            tuple(values[c] for c in columns),
        )
        return self.get_document(owner_id, values["id"])

    def get_document(self, owner_id: str, document_id: str) -> Optional[Document]:
        row = self._fetch_one(
            "SELECT * FROM documents WHERE id = ? AND owner_id = ?",
            (document_id, owner_id),
        )
        return self._to_document(row) if row else None

    def list_documents(
        self,
        owner_id: str,
        status: str | None = None,
        doc_type: str | None = None,
        search: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        sort: str = "created_at",
        direction: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Document], int]:
        where = ["owner_id = ?"]
        params: list[Any] = [owner_id]

        if status:
            where.append("status = ?")
            params.append(status)
        if doc_type:
            where.append("type = ?")
            params.append(doc_type)
        if search:
            where.append("(lower(vendor_name) LIKE ? OR lower(coalesce(description, '')) LIKE ?)")
            pattern = f"%{search.lower()}%"
            params.extend([pattern, pattern])
        if date_from:
            where.append("issue_date >= ?")
            params.append(date_from)
        if date_to:
            where.append("issue_date <= ?")
            params.append(date_to)

        # Only whitelisted columns reach the ORDER BY clause
        safe_sort = sort if sort in SORTABLE_DOCUMENT_FIELDS else "created_at"
        order = "ASC" if direction == "asc" else "DESC"
        clause = " AND ".join(where)

        total = self._fetch_one(f"SELECT COUNT(*) AS n FROM documents WHERE {clause}", tuple(params))["n"]
        rows = self._fetch_all(
            f"SELECT * FROM documents WHERE {clause} ORDER BY {safe_sort} {order} LIMIT ? OFFSET ?",
            tuple(params + [limit, offset]),
        )
        return [self._to_document(r) for r in rows], total

    def update_document(self, owner_id: str, document_id: str, changes: dict) -> Optional[Document]:
        values = self._encode_document_values(changes)
        values["updated_at"] = _now()

        assignments = ", ".join(f"{column} = ?" for column in values)
        changed = self._execute(
            f"UPDATE documents SET {assignments} WHERE id = ? AND owner_id = ?",
            tuple(values.values()) + (document_id, owner_id),
        )
        if changed == 0:
            return None
        return self.get_document(owner_id, document_id)

    def delete_document(self, owner_id: str, document_id: str) -> bool:
        return self._execute(
            "DELETE FROM documents WHERE id = ? AND owner_id = ?",
            (document_id, owner_id),
        ) > 0

    def find_documents_by_issue_date(
        self,
        owner_id: str,
        types: list[str],
        date_from: str,
        date_to: str,
    ) -> list[Document]:
        if not types:
            return []
        rows = self._fetch_all(
            f"""
            SELECT * FROM documents
            WHERE owner_id = ?
              AND type IN ({_placeholders(types)})
              AND issue_date >= ? AND issue_date <= ?
            ORDER BY type ASC, issue_date ASC
            """,
            (owner_id, *types, date_from, date_to),
        )
        return [self._to_document(r) for r in rows]

    def find_documents_due_between(self, owner_id: str, status: str, date_from: str, date_to: str) -> list[Document]:
        rows = self._fetch_all(
            """
            SELECT * FROM documents
            WHERE owner_id = ? AND status = ? AND due_date >= ? AND due_date <= ?
            ORDER BY due_date ASC
            """,
            (owner_id, status, date_from, date_to),
        )
        return [self._to_document(r) for r in rows]

    def find_documents_created_between(self, owner_id: str, start: str, end: str) -> list[Document]:
        rows = self._fetch_all(
            """
            SELECT * FROM documents
            WHERE owner_id = ? AND created_at >= ? AND created_at <= ?
            ORDER BY created_at ASC
            """,
            (owner_id, start, end),
        )
        return [self._to_document(r) for r in rows]

    # ---------- mail intake ----------

    def create_mail_item(self, owner_id: str, data: dict) -> PendingMailItem:
        item_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO mail_pending
                (id, file_name, sender, received_at, ai_type, ai_confidence, temp_path, status, owner_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            """,
            (
                item_id,
                data["file_name"],
                data["sender"],
                data.get("received_at"),
                data.get("ai_type"),
                data.get("ai_confidence"),
                data.get("temp_path"),
                owner_id,
                _now(),
            ),
        )
        row = self._fetch_one("SELECT * FROM mail_pending WHERE id = ?", (item_id,))
        return PendingMailItem(**dict(row))

    def list_mail_items(self, owner_id: str, status: str | None = None) -> list[PendingMailItem]:
        if status:
            rows = self._fetch_all(
                "SELECT * FROM mail_pending WHERE owner_id = ? AND status = ? ORDER BY created_at DESC",
                (owner_id, status),
            )
        else:
            rows = self._fetch_all(
                "SELECT * FROM mail_pending WHERE owner_id = ? ORDER BY created_at DESC",
                (owner_id,),
            )
        return [PendingMailItem(**dict(r)) for r in rows]

    def get_pending_mail_items(self, owner_id: str, ids: list[str]) -> list[PendingMailItem]:
        if not ids:
            return []
        rows = self._fetch_all(
            f"""
            SELECT * FROM mail_pending
            WHERE owner_id = ? AND status = 'pending' AND id IN ({_placeholders(ids)})
            ORDER BY created_at ASC
            """,
            (owner_id, *ids),
        )
        return [PendingMailItem(**dict(r)) for r in rows]

    def decide_mail_items(self, owner_id: str, ids: list[str], status: str) -> int:
        if not ids:
            return 0
        return self._execute(
            f"""
            UPDATE mail_pending SET status = ?
            WHERE owner_id = ? AND status = 'pending' AND id IN ({_placeholders(ids)})
            """,
            (status, owner_id, *ids),
        )

    # ---------- classification rules ----------

    @staticmethod
    def _to_rule(row: sqlite3.Row) -> ClassificationRule:
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        return ClassificationRule(**data)

    def list_rules(self, owner_id: str) -> list[ClassificationRule]:
        rows = self._fetch_all(
            "SELECT * FROM classification_rules WHERE owner_id = ? ORDER BY priority DESC, created_at ASC",
            (owner_id,),
        )
        return [self._to_rule(r) for r in rows]

    def create_rule(self, owner_id: str, data: dict) -> ClassificationRule:
        rule_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO classification_rules (id, keyword, document_type, priority, is_active, owner_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rule_id,
                data["keyword"],
                data["document_type"],
                data.get("priority", 0),
                int(data.get("is_active", True)),
                owner_id,
                _now(),
            ),
        )
        return self._to_rule(self._fetch_one("SELECT * FROM classification_rules WHERE id = ?", (rule_id,)))

    def update_rule(self, owner_id: str, rule_id: str, changes: dict) -> Optional[ClassificationRule]:
        values = {k: v for k, v in changes.items() if k in ("keyword", "document_type", "priority", "is_active")}
        if "is_active" in values:
            values["is_active"] = int(values["is_active"])
        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            self._execute(
                f"UPDATE classification_rules SET {assignments} WHERE id = ? AND owner_id = ?",
                tuple(values.values()) + (rule_id, owner_id),
            )
        row = self._fetch_one(
            "SELECT * FROM classification_rules WHERE id = ? AND owner_id = ?",
            (rule_id, owner_id),
        )
        return self._to_rule(row) if row else None

    def delete_rule(self, owner_id: str, rule_id: str) -> bool:
        return self._execute(
            "DELETE FROM classification_rules WHERE id = ? AND owner_id = ?",
            (rule_id, owner_id),
        ) > 0

    # ---------- document types ----------

    @staticmethod
    def _to_document_type(row: sqlite3.Row) -> DocumentTypeDefinition:
        data = dict(row)
        data.pop("created_at", None)
        data["is_default"] = bool(data["is_default"])
        return DocumentTypeDefinition(**data)

    def list_document_types(self, owner_id: str) -> list[DocumentTypeDefinition]:
        rows = self._fetch_all(
            "SELECT * FROM document_types WHERE owner_id = ? ORDER BY sort_order ASC, created_at ASC",
            (owner_id,),
        )
        return [self._to_document_type(r) for r in rows]

    def get_document_type(self, owner_id: str, type_id: str) -> Optional[DocumentTypeDefinition]:
        row = self._fetch_one(
            "SELECT * FROM document_types WHERE id = ? AND owner_id = ?",
            (type_id, owner_id),
        )
        return self._to_document_type(row) if row else None

    def create_document_type(self, owner_id: str, data: dict) -> DocumentTypeDefinition:
        type_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO document_types (id, name, storage_folder, icon, sort_order, is_default, owner_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                type_id,
                data["name"],
                data.get("storage_folder"),
                data.get("icon"),
                data.get("sort_order", 0),
                int(data.get("is_default", False)),
                owner_id,
                _now(),
            ),
        )
        return self.get_document_type(owner_id, type_id)

    def update_document_type(self, owner_id: str, type_id: str, changes: dict) -> Optional[DocumentTypeDefinition]:
        values = {k: v for k, v in changes.items() if k in ("name", "storage_folder", "icon", "sort_order")}
        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            self._execute(
                f"UPDATE document_types SET {assignments} WHERE id = ? AND owner_id = ?",
                tuple(values.values()) + (type_id, owner_id),
            )
        return self.get_document_type(owner_id, type_id)

    def delete_document_type(self, owner_id: str, type_id: str) -> bool:
        return self._execute(
            "DELETE FROM document_types WHERE id = ? AND owner_id = ?",
            (type_id, owner_id),
        ) > 0

    # ---------- settings ----------

    def get_setting(self, owner_id: str, key: str) -> Any:
        row = self._fetch_one(
            "SELECT value FROM settings WHERE owner_id = ? AND key = ?",
            (owner_id, key),
        )
        if row is None or row["value"] is None:
            return None
        return json.loads(row["value"])

    def set_setting(self, owner_id: str, key: str, value: Any) -> None:
        self._execute(
            """
            INSERT INTO settings (key, value, owner_id, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT (owner_id, key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), owner_id, _now()),
        )

    def list_settings(self, owner_id: str) -> dict[str, Any]:
        rows = self._fetch_all("SELECT key, value FROM settings WHERE owner_id = ? ORDER BY key", (owner_id,))
        return {r["key"]: json.loads(r["value"]) if r["value"] is not None else None for r in rows}

    def owners_with_setting(self, key: str) -> list[tuple[str, Any]]:
        rows = self._fetch_all("SELECT owner_id, value FROM settings WHERE key = ? ORDER BY owner_id", (key,))
        return [(r["owner_id"], json.loads(r["value"]) if r["value"] is not None else None) for r in rows]

    # ---------- contacts and roles ----------

    @staticmethod
    def _contact_table(kind: str) -> str:
        if kind not in CONTACT_TABLES:
            raise ValueError(f"Unknown contact list: {kind}")
        return kind

    def list_contacts(self, owner_id: str, kind: str) -> list[ContactEntry]:
        table = self._contact_table(kind)
        rows = self._fetch_all(f"SELECT id, email, display_name FROM {table} WHERE owner_id = ?", (owner_id,))
        return [ContactEntry(**dict(r)) for r in rows]

    def add_contact(self, owner_id: str, kind: str, email: str, display_name: str | None = None) -> ContactEntry:
        table = self._contact_table(kind)
        contact_id = str(uuid.uuid4())
        self._execute(
            f"INSERT INTO {table} (id, email, display_name, owner_id) VALUES (?, ?, ?, ?)",
            (contact_id, email, display_name, owner_id),
        )
        return ContactEntry(id=contact_id, email=email, display_name=display_name)

    def delete_contact(self, owner_id: str, kind: str, contact_id: str) -> bool:
        table = self._contact_table(kind)
        return self._execute(
            f"DELETE FROM {table} WHERE id = ? AND owner_id = ?",
            (contact_id, owner_id),
        ) > 0

    def get_user_role(self, user_id: str) -> str:
        row = self._fetch_one("SELECT role FROM user_roles WHERE user_id = ?", (user_id,))
        return row["role"] if row else "staff"

    def set_user_role(self, user_id: str, role: str) -> None:
        self._execute(
            """
            INSERT INTO user_roles (user_id, role) VALUES (?, ?)
            ON CONFLICT (user_id) DO UPDATE SET role = excluded.role
            """,
            (user_id, role),
        )

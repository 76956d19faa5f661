"""
db.py
Remote store backends: SQLite for local runs, Supabase for the hosted console.
Both expose the same row CRUD surface keyed by `id`.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from errors import RemoteStoreError
from logger import get_logger
from settings import Settings

logger = get_logger(__name__)

# Known columns per table; anything else is rejected like the hosted store would
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "members": (
        "id", "membership_number", "first_name", "last_name", "national_id", "category",
        "gender", "email", "phone", "birth_date", "join_date", "last_payment_date",
        "chapter_name", "role", "photo_url",
    ),
    "chapters": (
        "id", "name", "city", "country", "address", "email", "phone", "website",
        "social_instagram", "chief_officer_name", "chief_officer_id",
        "liaison_officer_name", "liaison_officer_id", "vice_president", "secretary",
        "treasurer", "is_official", "official_since", "logo_url", "banner_url",
    ),
    "transfer_requests": (
        "id", "member_id", "member_name", "from_chapter_id", "from_chapter_name",
        "to_chapter_id", "to_chapter_name", "request_date", "status", "comment",
    ),
    "uploaded_files": (
        "id", "file_path", "file_name", "bucket_name", "file_type", "file_size",
        "uploaded_by", "entity_type", "entity_id", "field_name", "public_url",
        "is_active", "uploaded_at",
    ),
    "admin_users": (
        "id", "username", "password_hash", "full_name", "role", "chapter_id", "active",
        "created_at",
    ),
}


def _check_columns(table: str, names) -> None:
    known = TABLE_COLUMNS.get(table)
    if known is None:
        raise RemoteStoreError(f"Unknown table: {table}")
    unknown = [n for n in names if n not in known]
    if unknown:
        raise RemoteStoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


def _order_clause(table: str, order_by: str | None) -> str:
    if not order_by:
        return ""
    column = order_by.lstrip("-")
    _check_columns(table, [column])
    return f" ORDER BY {column} {'DESC' if order_by.startswith('-') else 'ASC'}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SqliteStore:
    """Local file-backed store; same tables as the hosted project."""

    def __init__(self, db_file: str | Path):
        self.db_file = Path(db_file)

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_file, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> int:
        try:
            with self.get_conn() as conn:
                cur = conn.execute(sql, params)
                return cur.rowcount
        except sqlite3.Error as exc:
            raise RemoteStoreError(str(exc)) from exc

    def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        try:
            with self.get_conn() as conn:
                return [dict(r) for r in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as exc:
            raise RemoteStoreError(str(exc)) from exc

    # ----- row CRUD -----

    def select(self, table: str, order_by: str | None = None, **equals) -> list[dict]:
        _check_columns(table, equals.keys())
        sql = f"SELECT * FROM {table} WHERE 1=1"
        params = []
        for column, value in equals.items():
            sql += f" AND {column} = ?"
            params.append(value)
        sql += _order_clause(table, order_by)
        return self.fetch_all(sql, tuple(params))

    def insert(self, table: str, row: dict) -> None:
        _check_columns(table, row.keys())
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        self.execute(f"INSERT INTO {table}({cols}) VALUES({marks})", tuple(row.values()))

    def update(self, table: str, row_id: str, values: dict) -> None:
        values = {k: v for k, v in values.items() if k != "id"}
        if not values:
            return
        _check_columns(table, values.keys())
        assignments = ", ".join(f"{k} = ?" for k in values)
        self.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", (*values.values(), row_id))

    def upsert(self, table: str, row: dict) -> None:
        _check_columns(table, row.keys())
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        updates = ", ".join(f"{k}=excluded.{k}" for k in row if k != "id")
        self.execute(
            f"INSERT INTO {table}({cols}) VALUES({marks}) ON CONFLICT(id) DO UPDATE SET {updates}",
            tuple(row.values()),
        )

    def delete(self, table: str, row_id: str) -> None:
        _check_columns(table, [])
        self.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))

    # ----- settings -----

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        rows = self.fetch_all("SELECT value FROM app_settings WHERE key = ?", (key,))
        if rows:
            return str(rows[0]["value"])
        return default

    def set_setting(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO app_settings(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )

    # ----- schema -----

    def _create_tables(self) -> None:
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                membership_number TEXT UNIQUE,
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL,
                national_id TEXT,
                category TEXT NOT NULL,
                gender TEXT NOT NULL CHECK(gender IN ('M','F','X')),
                email TEXT,
                phone TEXT,
                birth_date TEXT,
                join_date TEXT,
                last_payment_date TEXT,
                chapter_name TEXT,
                role TEXT NOT NULL,
                photo_url TEXT
            )
            """
        )
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS chapters (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                city TEXT,
                country TEXT,
                address TEXT,
                email TEXT,
                phone TEXT,
                website TEXT,
                social_instagram TEXT,
                chief_officer_name TEXT,
                chief_officer_id TEXT,
                liaison_officer_name TEXT,
                liaison_officer_id TEXT,
                vice_president TEXT,
                secretary TEXT,
                treasurer TEXT,
                is_official INTEGER NOT NULL DEFAULT 0,
                official_since TEXT,
                logo_url TEXT,
                banner_url TEXT
            )
            """
        )
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS transfer_requests (
                id TEXT PRIMARY KEY,
                member_id TEXT NOT NULL,
                member_name TEXT NOT NULL,
                from_chapter_id TEXT,
                from_chapter_name TEXT,
                to_chapter_id TEXT NOT NULL,
                to_chapter_name TEXT NOT NULL,
                request_date TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('PENDING','APPROVED','REJECTED','CANCELLED')),
                comment TEXT
            )
            """
        )
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS uploaded_files (
                id TEXT PRIMARY KEY,
                file_path TEXT NOT NULL,
                file_name TEXT,
                bucket_name TEXT NOT NULL,
                file_type TEXT,
                file_size INTEGER,
                uploaded_by TEXT,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                field_name TEXT NOT NULL,
                public_url TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                uploaded_at TEXT NOT NULL
            )
            """
        )
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS admin_users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                full_name TEXT,
                role TEXT NOT NULL,
                chapter_id TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
            """
        )
        # Small settings table (used to force password change on first login)
        self.execute(
            """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )

    def init_db(self, default_admin_hash: str, default_admin_username: str = "admin") -> None:
        """
        Create tables, then seed the default console account.
        """
        self._create_tables()
        seed_default_admin(self, default_admin_hash, default_admin_username)


class SupabaseStore:
    """Hosted store through supabase-py; tables are provisioned in the project."""

    PAGE_SIZE = 1000

    def __init__(self, url: str, key: str, client: Client | None = None):
        self.client: Client = client or create_client(url, key)

    def _run(self, query):
        try:
            return query.execute()
        except (APIError, httpx.HTTPError) as exc:
            raise RemoteStoreError(str(exc)) from exc

    def select(self, table: str, order_by: str | None = None, **equals) -> list[dict]:
        _check_columns(table, equals.keys())
        rows: list[dict] = []
        start = 0
        while True:
            query = self.client.table(table).select("*")
            for column, value in equals.items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by.lstrip("-"), desc=order_by.startswith("-"))
            response = self._run(query.range(start, start + self.PAGE_SIZE - 1))
            batch = response.data or []
            rows.extend(batch)
            if len(batch) < self.PAGE_SIZE:
                return rows
            start += self.PAGE_SIZE

    def insert(self, table: str, row: dict) -> None:
        _check_columns(table, row.keys())
        self._run(self.client.table(table).insert(row))

    def update(self, table: str, row_id: str, values: dict) -> None:
        values = {k: v for k, v in values.items() if k != "id"}
        if not values:
            return
        _check_columns(table, values.keys())
        self._run(self.client.table(table).update(values).eq("id", row_id))

    def upsert(self, table: str, row: dict) -> None:
        _check_columns(table, row.keys())
        self._run(self.client.table(table).upsert(row))

    def delete(self, table: str, row_id: str) -> None:
        _check_columns(table, [])
        self._run(self.client.table(table).delete().eq("id", row_id))

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        response = self._run(self.client.table("app_settings").select("value").eq("key", key).limit(1))
        if response.data:
            return str(response.data[0]["value"])
        return default

    def set_setting(self, key: str, value: str) -> None:
        self._run(self.client.table("app_settings").upsert({"key": key, "value": value}, on_conflict="key"))

    def init_db(self, default_admin_hash: str, default_admin_username: str = "admin") -> None:
        seed_default_admin(self, default_admin_hash, default_admin_username)


def seed_default_admin(store, default_admin_hash: str, username: str = "admin") -> None:
    """
    Insert the default console account if none exists and force a password
    change on its first login.
    """
    if store.select("admin_users"):
        if store.get_setting("force_password_change") is None:
            store.set_setting("force_password_change", "0")
        return
    store.insert(
        "admin_users",
        {
            "id": str(uuid.uuid4()),
            "username": username,
            "password_hash": default_admin_hash,
            "full_name": "Administrador",
            "role": "SUPERADMIN",
            "chapter_id": None,
            "active": True,
            "created_at": utc_now_iso(),
        },
    )
    store.set_setting("force_password_change", "1")
    logger.info("Seeded default console account %r", username)


def is_force_password_change(store) -> bool:
    return store.get_setting("force_password_change") == "1"


def clear_force_password_change(store) -> None:
    store.set_setting("force_password_change", "0")


def build_store(settings: Settings):
    if settings.STORE_BACKEND == "supabase":
        return SupabaseStore(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    return SqliteStore(settings.DATABASE_FILE)

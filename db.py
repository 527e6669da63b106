import sqlite3
import aiosqlite
import datetime
import json
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Any, List, Tuple, Optional

from config import YamlConfig
from models import (
    ActivityEntry,
    FoodEntry,
    ReminderConfig,
    SportDefinition,
    Supplement,
    UserProfile,
    WorkoutPlan,
)
from seed_data import default_plans, default_sports, default_supplements
from settings_schema import BOOL_KEYS, SettingsSchema, validate_settings

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "1.0", "true", "True"}


class StoreError(RuntimeError):
    """Raised when the underlying store cannot be read or written."""


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "records": (
            """CREATE TABLE records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "scheduled_triggers": (
            """CREATE TABLE scheduled_triggers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fire_at TEXT NOT NULL,
                    supplement_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL DEFAULT 0,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL
                );""",
            ["id", "fire_at", "supplement_id", "sequence", "title", "body"],
        ),
        "notifications": (
            """CREATE TABLE notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "timestamp", "title", "message", "read"],
        ),
    }

    def __init__(self, db_path: str = "fitledger.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = SettingsSchema().model_dump()
        with self._connection() as conn:
            for key, value in defaults.items():
                if key in BOOL_KEYS:
                    value = "1" if value else "0"
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, str(value)),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
                return list(rows)
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    async def _delete_all(self, table: str) -> None:
        await self.execute(f"DELETE FROM {table};")


class RecordStore(AsyncBaseRepository):
    """Key to JSON document store backing every domain record."""

    async def get(self, key: str) -> Any | None:
        rows = await self.fetch_all("SELECT value FROM records WHERE key = ?;", (key,))
        if not rows:
            return None
        return json.loads(rows[0][0])

    async def set(self, key: str, value: Any) -> None:
        await self.execute(
            "INSERT INTO records (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, json.dumps(value)),
        )

    async def remove(self, key: str) -> None:
        await self.execute("DELETE FROM records WHERE key = ?;", (key,))

    async def keys(self) -> list[str]:
        rows = await self.fetch_all("SELECT key FROM records ORDER BY key;")
        return [r[0] for r in rows]

    async def dump(self) -> dict[str, Any]:
        rows = await self.fetch_all("SELECT key, value FROM records ORDER BY key;")
        return {k: json.loads(v) for k, v in rows}

    async def load(self, data: dict[str, Any]) -> None:
        """Replace every record with ``data``."""
        await self._delete_all("records")
        for key, value in data.items():
            await self.set(key, value)


class KeyedRepository(RecordStore):
    """Repository bound to one logical key that remembers its last good value."""

    KEY = ""

    def __init__(self, db_path: str = "fitledger.db") -> None:
        super().__init__(db_path)
        self._cached: Any | None = None

    async def _read(self, default: Any) -> Any:
        value = await self.get(self.KEY)
        if value is None:
            value = default
        self._cached = value
        return value

    async def _write(self, value: Any) -> None:
        await self.set(self.KEY, value)
        self._cached = value

    async def _clear(self) -> None:
        await self.remove(self.KEY)
        self._cached = None

    def cached(self, default: Any = None) -> Any:
        """Return the last value read or written, or ``default``."""
        return default if self._cached is None else self._cached


class ActivityRepository(KeyedRepository):
    """Repository for the activity ledger."""

    KEY = "activity_ledger"

    async def entries(self) -> list[ActivityEntry]:
        raw = await self._read([])
        return [ActivityEntry.model_validate(r) for r in raw]

    async def save_entries(self, entries: list[ActivityEntry]) -> None:
        await self._write([e.model_dump(mode="json") for e in entries])

    async def clear(self) -> None:
        await self._clear()

    def cached_entries(self) -> list[ActivityEntry]:
        return [ActivityEntry.model_validate(r) for r in self.cached([])]


class FoodRepository(KeyedRepository):
    """Repository for the food ledger."""

    KEY = "food_ledger"

    async def entries(self) -> list[FoodEntry]:
        raw = await self._read([])
        return [FoodEntry.model_validate(r) for r in raw]

    async def save_entries(self, entries: list[FoodEntry]) -> None:
        await self._write([e.model_dump(mode="json") for e in entries])

    def cached_entries(self) -> list[FoodEntry]:
        return [FoodEntry.model_validate(r) for r in self.cached([])]


class IntakeRepository(KeyedRepository):
    """Daily supplement records keyed by date then supplement id."""

    KEY = "supplement_intake"

    async def records(self) -> dict[str, dict[str, bool | int]]:
        return await self._read({})

    async def for_day(self, day: datetime.date) -> dict[str, bool | int]:
        data = await self.records()
        return dict(data.get(day.isoformat(), {}))

    async def set_value(
        self, day: datetime.date, supplement_id: str, value: bool | int
    ) -> None:
        """Store ``value``; a falsy value clears the record."""
        data = dict(await self.records())
        key = day.isoformat()
        day_data = dict(data.get(key, {}))
        if value:
            day_data[supplement_id] = value
        else:
            day_data.pop(supplement_id, None)
        if day_data:
            data[key] = day_data
        else:
            data.pop(key, None)
        await self._write(data)

    async def drop_supplement(self, supplement_id: str) -> None:
        data = await self.records()
        cleaned = {}
        for day, values in data.items():
            values = {k: v for k, v in values.items() if k != supplement_id}
            if values:
                cleaned[day] = values
        await self._write(cleaned)


class ReminderConfigRepository(KeyedRepository):
    """Per-supplement reminder configuration."""

    KEY = "reminder_configs"

    async def configs(self) -> dict[str, ReminderConfig]:
        raw = await self._read({})
        return {k: ReminderConfig.model_validate(v) for k, v in raw.items()}

    async def put_config(self, supplement_id: str, config: ReminderConfig) -> None:
        raw = dict(await self._read({}))
        raw[supplement_id] = config.model_dump(mode="json")
        await self._write(raw)

    async def drop_config(self, supplement_id: str) -> None:
        raw = dict(await self._read({}))
        if raw.pop(supplement_id, None) is not None:
            await self._write(raw)


class PlanRepository(KeyedRepository):
    """Ordered workout plans plus the rotation pointer."""

    KEY = "workout_plans"
    POINTER_KEY = "next_plan_id"

    async def plans(self) -> list[WorkoutPlan]:
        raw = await self.get(self.KEY)
        if raw is None:
            plans = default_plans()
            await self.save_plans(plans)
            return plans
        self._cached = raw
        return [WorkoutPlan.model_validate(v) for v in raw.values()]

    async def save_plans(self, plans: list[WorkoutPlan]) -> None:
        await self._write({p.id: p.model_dump(mode="json") for p in plans})

    def cached_plans(self) -> list[WorkoutPlan]:
        return [WorkoutPlan.model_validate(v) for v in self.cached({}).values()]

    async def next_plan_id(self) -> str | None:
        return await self.get(self.POINTER_KEY)

    async def set_next_plan_id(self, plan_id: str | None) -> None:
        if plan_id is None:
            await self.remove(self.POINTER_KEY)
        else:
            await self.set(self.POINTER_KEY, plan_id)


class SportRepository(KeyedRepository):
    """Sport definitions, seeded on first read."""

    KEY = "sports"

    async def sports(self) -> list[SportDefinition]:
        raw = await self.get(self.KEY)
        if raw is None:
            sports = default_sports()
            await self.save_sports(sports)
            return sports
        self._cached = raw
        return [SportDefinition.model_validate(r) for r in raw]

    async def save_sports(self, sports: list[SportDefinition]) -> None:
        await self._write([s.model_dump(mode="json") for s in sports])

    def cached_sports(self) -> list[SportDefinition]:
        return [SportDefinition.model_validate(r) for r in self.cached([])]


class SupplementRepository(KeyedRepository):
    """Configured supplements, seeded on first read."""

    KEY = "supplements"

    async def supplements(self) -> list[Supplement]:
        raw = await self.get(self.KEY)
        if raw is None:
            items = default_supplements()
            await self.save_supplements(items)
            return items
        self._cached = raw
        return [Supplement.model_validate(r) for r in raw]

    async def save_supplements(self, items: list[Supplement]) -> None:
        await self._write([s.model_dump(mode="json") for s in items])


class ProfileRepository(KeyedRepository):
    """Singleton user profile."""

    KEY = "user_profile"

    async def profile(self) -> UserProfile | None:
        raw = await self._read(None)
        return UserProfile.model_validate(raw) if raw else None

    async def save_profile(self, profile: UserProfile) -> None:
        await self._write(profile.model_dump(mode="json"))

    def cached_profile(self) -> UserProfile | None:
        raw = self.cached()
        return UserProfile.model_validate(raw) if raw else None


class TriggerRepository(AsyncBaseRepository):
    """Durable notification triggers handed to the host."""

    @staticmethod
    def _stamp(when: datetime.datetime) -> str:
        return when.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")

    async def add(
        self,
        fire_at: datetime.datetime,
        supplement_id: str,
        sequence: int,
        title: str,
        body: str,
    ) -> int:
        return await self.execute(
            "INSERT INTO scheduled_triggers (fire_at, supplement_id, sequence, title, body) "
            "VALUES (?, ?, ?, ?, ?);",
            (self._stamp(fire_at), supplement_id, sequence, title, body),
        )

    async def fetch_pending(
        self, due_before: Optional[datetime.datetime] = None
    ) -> list[dict[str, object]]:
        sql = (
            "SELECT id, fire_at, supplement_id, sequence, title, body "
            "FROM scheduled_triggers"
        )
        params: Tuple = ()
        if due_before is not None:
            sql += " WHERE fire_at <= ?"
            params = (self._stamp(due_before),)
        sql += " ORDER BY fire_at, id;"
        rows = await self.fetch_all(sql, params)
        return [
            {
                "id": r[0],
                "fire_at": datetime.datetime.fromisoformat(r[1]).replace(
                    tzinfo=datetime.timezone.utc
                ),
                "supplement_id": r[2],
                "sequence": r[3],
                "title": r[4],
                "body": r[5],
            }
            for r in rows
        ]

    async def delete(self, trigger_id: int) -> None:
        await self.execute("DELETE FROM scheduled_triggers WHERE id=?;", (trigger_id,))

    async def delete_all(self) -> None:
        await self._delete_all("scheduled_triggers")


class NotificationRepository(AsyncBaseRepository):
    """Repository for delivered notifications."""

    async def add(self, title: str, message: str, timestamp: str | None = None) -> int:
        return await self.execute(
            "INSERT INTO notifications (timestamp, title, message, read) VALUES (?, ?, ?, 0);",
            (timestamp or datetime.datetime.now().isoformat(), title, message),
        )

    async def fetch_notifications(
        self, unread_only: bool = False
    ) -> list[dict[str, object]]:
        sql = "SELECT id, timestamp, title, message, read FROM notifications"
        if unread_only:
            sql += " WHERE read=0"
        sql += " ORDER BY id;"
        rows = await self.fetch_all(sql)
        result: list[dict[str, object]] = []
        for r in rows:
            result.append(
                {
                    "id": r[0],
                    "timestamp": r[1],
                    "title": r[2],
                    "message": r[3],
                    "read": bool(r[4]),
                }
            )
        return result

    async def mark_read(self, nid: int) -> None:
        await self.execute("UPDATE notifications SET read=1 WHERE id=?;", (nid,))

    async def unread_count(self) -> int:
        rows = await self.fetch_all("SELECT COUNT(*) FROM notifications WHERE read=0;")
        return rows[0][0] if rows else 0


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    def __init__(
        self, db_path: str = "fitledger.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    @staticmethod
    def _coerce(key: str, raw: str) -> object:
        if key in BOOL_KEYS:
            return raw in TRUE_VALUES
        field = SettingsSchema.model_fields.get(key)
        annotation = field.annotation if field is not None else None
        try:
            if annotation is int:
                return int(float(raw))
            if annotation is float:
                return float(raw)
        except ValueError:
            return raw
        return raw

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        return {k: self._coerce(k, v) for k, v in rows}

    def _store(self, conn: sqlite3.Connection, key: str, value: object) -> None:
        val = str(value)
        if key in BOOL_KEYS:
            val = "1" if val in TRUE_VALUES else "0"
        conn.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, val),
        )

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                self._store(conn, key, value)

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in TRUE_VALUES

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def update(self, values: dict) -> dict:
        """Validate and store ``values``; returns the merged settings."""
        merged = self._raw_all_settings()
        merged.update(values)
        validate_settings(merged)
        with self._connection() as conn:
            for key, value in values.items():
                self._store(conn, key, value)
        self._sync_to_yaml()
        logger.info("settings updated: %s", ", ".join(sorted(values)))
        return self._raw_all_settings()

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        for k in BOOL_KEYS:
            data[k] = bool(data.get(k, False))
        return data


class Repositories:
    """The typed repositories sharing one database file."""

    def __init__(self, db_path: str = "fitledger.db") -> None:
        self.db_path = db_path
        self.store = RecordStore(db_path)
        self.activities = ActivityRepository(db_path)
        self.foods = FoodRepository(db_path)
        self.intake = IntakeRepository(db_path)
        self.reminders = ReminderConfigRepository(db_path)
        self.plans = PlanRepository(db_path)
        self.sports = SportRepository(db_path)
        self.supplements = SupplementRepository(db_path)
        self.profile = ProfileRepository(db_path)
        self.triggers = TriggerRepository(db_path)
        self.notifications = NotificationRepository(db_path)

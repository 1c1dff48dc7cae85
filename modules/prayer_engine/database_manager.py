# modules/prayer_engine/database_manager.py
"""
PostgreSQL Override Store
Persists prayer time overrides plus the mosque-wide Iqamah and Tarawih
records through the shared asyncpg DatabaseManager.

Layout:
- prayer_time_overrides: one row per override; a partial unique index keeps
  at most one active row per (date, prayer)
- mosque_prayer_settings: JSONB key/value rows for 'iqamah' and 'tarawih'
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from ..core.database import DatabaseManager, db_manager
from .errors import OverrideValidationError
from .models import PrayerName
from .override_store import (
    DEFAULT_IQAMAH_TIMES,
    DEFAULT_TARAWIH_CONFIG,
    IqamahTimes,
    OverrideStore,
    PrayerOverride,
    TarawihConfig,
    parse_iqamah_input,
    parse_override_input,
    parse_tarawih_input,
    sort_overrides,
)
from .time_expressions import AbsoluteTime, expression_from_dict, expression_to_dict, parse_clock_time

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS prayer_time_overrides (
        id SERIAL PRIMARY KEY,
        override_date DATE NOT NULL,
        prayer TEXT NOT NULL CHECK (prayer IN ('fajr', 'dhuhr', 'asr', 'maghrib', 'isha')),
        override_time TIME NOT NULL,
        reason TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS prayer_time_overrides_one_active
        ON prayer_time_overrides (override_date, prayer) WHERE is_active
    """,
    """
    CREATE TABLE IF NOT EXISTS mosque_prayer_settings (
        key TEXT PRIMARY KEY,
        value JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
)

_OVERRIDE_COLUMNS = "id, override_date, prayer, override_time, reason, is_active, created_at, updated_at"


def override_from_row(row: Mapping[str, Any]) -> PrayerOverride:
    return PrayerOverride(
        id=row["id"],
        date=row["override_date"],
        prayer=PrayerName(row["prayer"]),
        override_time=row["override_time"],
        reason=row["reason"],
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def iqamah_to_json(iqamah: IqamahTimes) -> Dict[str, Any]:
    data = {prayer: expression_to_dict(getattr(iqamah, prayer)) for prayer in ("fajr", "dhuhr", "asr", "maghrib", "isha")}
    data["jumuah"] = [str(entry) for entry in iqamah.jumuah]
    return data


def iqamah_from_json(data: Mapping[str, Any], updated_at=None) -> IqamahTimes:
    return IqamahTimes(
        fajr=expression_from_dict(data["fajr"]),
        dhuhr=expression_from_dict(data["dhuhr"]),
        asr=expression_from_dict(data["asr"]),
        maghrib=expression_from_dict(data["maghrib"]),
        isha=expression_from_dict(data["isha"]),
        jumuah=tuple(AbsoluteTime(parse_clock_time(value)) for value in data.get("jumuah", [])),
        updated_at=updated_at,
    )


def tarawih_to_json(config: TarawihConfig) -> Dict[str, Any]:
    return {"enabled": config.enabled, "time": expression_to_dict(config.time)}


def tarawih_from_json(data: Mapping[str, Any], updated_at=None) -> TarawihConfig:
    return TarawihConfig(
        enabled=bool(data.get("enabled", False)),
        time=expression_from_dict(data["time"]),
        updated_at=updated_at,
    )


def _decode_json(value: Any) -> Dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else dict(value)


class PostgresOverrideStore(OverrideStore):
    """
    OverrideStore on PostgreSQL.

    Writes for one (date, prayer) are serialized with a transaction-scoped
    advisory lock; the partial unique index is the final guard.
    """

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager
        self._schema_ready = False

    async def initialize(self) -> None:
        """Create tables if they do not exist yet."""
        if self._schema_ready:
            return
        await self.db.ensure_schema(SCHEMA_STATEMENTS)
        self._schema_ready = True
        logger.info("🕌 Prayer override store initialized")

    async def close(self) -> None:
        await self.db.disconnect()

    # -------------------------------------------------------------------------
    # Overrides
    # -------------------------------------------------------------------------

    @staticmethod
    async def _lock_key(conn, on_date: date, prayer: PrayerName) -> None:
        await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"prayer_override:{on_date}:{prayer.value}")

    @staticmethod
    async def _deactivate_active(conn, on_date: date, prayer: PrayerName, keep_id: Optional[int] = None) -> None:
        await conn.execute(
            """
            UPDATE prayer_time_overrides
               SET is_active = FALSE, updated_at = NOW()
             WHERE override_date = $1 AND prayer = $2 AND is_active AND id IS DISTINCT FROM $3
            """,
            on_date, prayer.value, keep_id,
        )

    async def create_override(self, data: Mapping[str, Any]) -> PrayerOverride:
        on_date, prayer, override_time, reason, is_active = parse_override_input(data)
        await self.initialize()

        async with self.db.transaction() as conn:
            await self._lock_key(conn, on_date, prayer)
            if is_active:
                await self._deactivate_active(conn, on_date, prayer)
            row = await conn.fetchrow(
                f"""
                INSERT INTO prayer_time_overrides (override_date, prayer, override_time, reason, is_active)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_OVERRIDE_COLUMNS}
                """,
                on_date, prayer.value, override_time, reason, is_active,
            )

        record = override_from_row(row)
        logger.info(f"🕌 Override {record.id} created: {prayer.value} on {on_date} at {override_time:%H:%M}")
        return record

    async def update_override(self, override_id: int, changes: Mapping[str, Any]) -> PrayerOverride:
        existing = await self.get_override(override_id)
        if existing is None:
            raise OverrideValidationError(f"Override {override_id} not found")

        merged = {
            "date": existing.date,
            "prayer": existing.prayer.value,
            "override_time": existing.override_time,
            "reason": existing.reason,
            "is_active": existing.is_active,
        }
        merged.update(changes)
        on_date, prayer, override_time, reason, is_active = parse_override_input(merged)

        async with self.db.transaction() as conn:
            await self._lock_key(conn, on_date, prayer)
            if is_active:
                await self._deactivate_active(conn, on_date, prayer, keep_id=override_id)
            row = await conn.fetchrow(
                f"""
                UPDATE prayer_time_overrides
                   SET override_date = $2, prayer = $3, override_time = $4, reason = $5,
                       is_active = $6, updated_at = NOW()
                 WHERE id = $1
                RETURNING {_OVERRIDE_COLUMNS}
                """,
                override_id, on_date, prayer.value, override_time, reason, is_active,
            )

        if row is None:
            raise OverrideValidationError(f"Override {override_id} not found")
        logger.info(f"✏️ Override {override_id} updated")
        return override_from_row(row)

    async def get_override(self, override_id: int) -> Optional[PrayerOverride]:
        await self.initialize()
        row = await self.db.fetch_one(
            f"SELECT {_OVERRIDE_COLUMNS} FROM prayer_time_overrides WHERE id = $1", override_id
        )
        return override_from_row(row) if row else None

    async def list_overrides(self, on_date: Optional[date] = None,
                             active_only: bool = False) -> List[PrayerOverride]:
        await self.initialize()
        rows = await self.db.fetch_all(
            f"""
            SELECT {_OVERRIDE_COLUMNS} FROM prayer_time_overrides
             WHERE ($1::date IS NULL OR override_date = $1) AND (NOT $2 OR is_active)
            """,
            on_date, active_only,
        )
        return sort_overrides(override_from_row(row) for row in rows)

    async def delete_override(self, override_id: int) -> bool:
        await self.initialize()
        result = await self.db.execute("DELETE FROM prayer_time_overrides WHERE id = $1", override_id)
        deleted = result.endswith(" 1")
        if deleted:
            logger.info(f"🗑️ Override {override_id} deleted")
        return deleted

    async def active_overrides_for(self, on_date: date) -> Dict[PrayerName, PrayerOverride]:
        records = await self.list_overrides(on_date, active_only=True)
        return {record.prayer: record for record in records}

    # -------------------------------------------------------------------------
    # Mosque-wide settings
    # -------------------------------------------------------------------------

    async def _get_setting(self, key: str):
        await self.initialize()
        return await self.db.fetch_one("SELECT value, updated_at FROM mosque_prayer_settings WHERE key = $1", key)

    async def _put_setting(self, key: str, value: Dict[str, Any]):
        await self.initialize()
        return await self.db.fetch_one(
            """
            INSERT INTO mosque_prayer_settings (key, value, updated_at)
            VALUES ($1, $2::jsonb, NOW())
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            RETURNING updated_at
            """,
            key, json.dumps(value),
        )

    async def get_iqamah_times(self) -> IqamahTimes:
        row = await self._get_setting("iqamah")
        if row is None:
            return DEFAULT_IQAMAH_TIMES
        return iqamah_from_json(_decode_json(row["value"]), updated_at=row["updated_at"])

    async def set_iqamah_times(self, data: Mapping[str, Any]) -> IqamahTimes:
        iqamah = parse_iqamah_input(data)
        row = await self._put_setting("iqamah", iqamah_to_json(iqamah))
        logger.info("🕰️ Iqamah times updated")
        return iqamah_from_json(iqamah_to_json(iqamah), updated_at=row["updated_at"] if row else None)

    async def get_tarawih_config(self) -> TarawihConfig:
        row = await self._get_setting("tarawih")
        if row is None:
            return DEFAULT_TARAWIH_CONFIG
        return tarawih_from_json(_decode_json(row["value"]), updated_at=row["updated_at"])

    async def set_tarawih_config(self, data: Mapping[str, Any]) -> TarawihConfig:
        config = parse_tarawih_input(data)
        row = await self._put_setting("tarawih", tarawih_to_json(config))
        logger.info(f"🌙 Tarawih config updated (enabled={config.enabled})")
        return tarawih_from_json(tarawih_to_json(config), updated_at=row["updated_at"] if row else None)

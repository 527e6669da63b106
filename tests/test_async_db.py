import os
import sys
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    AsyncBaseRepository,
    IntakeRepository,
    PlanRepository,
    RecordStore,
    SettingsRepository,
    SportRepository,
    StoreError,
)


class NumberRepository(AsyncBaseRepository):
    async def init_db(self) -> None:
        async with self._async_connection() as conn:
            await conn.execute("CREATE TABLE IF NOT EXISTS numbers (val INTEGER)")
            await conn.commit()

    async def add(self, val: int) -> int:
        return await self.execute("INSERT INTO numbers (val) VALUES (?)", (val,))

    async def all(self):
        rows = await self.fetch_all("SELECT val FROM numbers")
        return [r[0] for r in rows]


@pytest.mark.asyncio
async def test_async_repository(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    await repo.init_db()
    await repo.add(5)
    assert await repo.all() == [5]


@pytest.mark.asyncio
async def test_record_store_roundtrip(tmp_path):
    store = RecordStore(str(tmp_path / "records.db"))
    assert await store.get("missing") is None
    await store.set("user_profile", {"name": "Ana", "weight_kg": 61.5})
    assert (await store.get("user_profile"))["weight_kg"] == 61.5
    await store.set("user_profile", {"name": "Ana"})
    assert await store.dump() == {"user_profile": {"name": "Ana"}}
    await store.remove("user_profile")
    assert await store.keys() == []


@pytest.mark.asyncio
async def test_store_failure_raises_store_error(tmp_path):
    store = RecordStore(str(tmp_path / "records.db"))
    store._db_path = str(tmp_path)
    with pytest.raises(StoreError):
        await store.get("activity_ledger")


@pytest.mark.asyncio
async def test_defaults_seeded_once(tmp_path):
    db_file = str(tmp_path / "seed.db")
    plans = PlanRepository(db_file)
    assert [p.id for p in await plans.plans()] == ["A", "B", "C"]
    await plans.save_plans((await plans.plans())[:1])
    assert [p.id for p in await PlanRepository(db_file).plans()] == ["A"]

    sports = SportRepository(db_file)
    ids = [s.id for s in await sports.sports()]
    assert ids[0] == "resistance_training"
    assert [s.id for s in sports.cached_sports()] == ids


@pytest.mark.asyncio
async def test_intake_records_clear_keys(tmp_path):
    intake = IntakeRepository(str(tmp_path / "intake.db"))
    day = datetime.date(2026, 10, 19)
    await intake.set_value(day, "supp_whey", 2)
    await intake.set_value(day, "supp_creatine", True)
    assert await intake.for_day(day) == {"supp_whey": 2, "supp_creatine": True}
    await intake.set_value(day, "supp_whey", 0)
    await intake.set_value(day, "supp_creatine", False)
    assert await intake.records() == {}


def test_settings_failure_raises_store_error(tmp_path):
    settings = SettingsRepository(str(tmp_path / "settings.db"), str(tmp_path / "s.yaml"))
    settings._db_path = str(tmp_path)
    with pytest.raises(StoreError):
        settings.get_text("timezone", "UTC")
    with pytest.raises(StoreError):
        settings.update({"body_weight": 70})

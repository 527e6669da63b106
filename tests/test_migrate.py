import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Repositories
from migrate import LEGACY_HISTORY_KEY, LEGACY_POINTER_KEY, category_id, migrate


LEGACY_HISTORY = [
    "2026-10-01",
    {"date": "2026-10-02", "type": "B"},
    {
        "date": "2026-10-03T10:00:00",
        "category": "Musculação",
        "details": {"type": "C", "performance": {"C1": 40}},
    },
    {
        "date": "2026-10-03",
        "category": "Vôlei de Praia",
        "details": {"duration": 90, "intensity": "Moderada"},
    },
    {"date": "2026-10-04", "category": "Curling"},
    {"date": "2026-10-02", "type": "A"},
]


def test_category_labels_fold_accents():
    assert category_id("Musculação", {}) == "resistance_training"
    assert category_id("BOXE", {}) == "boxing"
    assert category_id("boxing", {"boxing": "boxing"}) == "boxing"
    assert category_id("Curling", {}) is None


@pytest.mark.asyncio
async def test_legacy_history_is_rewritten(tmp_path):
    db_file = str(tmp_path / "legacy.db")
    repos = Repositories(db_file)
    await repos.store.set(LEGACY_HISTORY_KEY, LEGACY_HISTORY)
    await repos.store.set(LEGACY_POINTER_KEY, "B")

    assert await migrate(db_file) == 7

    repos = Repositories(db_file)
    entries = await repos.activities.entries()
    assert [(e.date.isoformat(), e.category) for e in entries] == [
        ("2026-10-01", "resistance_training"),
        ("2026-10-02", "resistance_training"),
        ("2026-10-03", "resistance_training"),
        ("2026-10-03", "volleyball_beach"),
    ]
    assert entries[0].details.plan_id == "A"
    assert entries[1].details.plan_id == "A"
    assert entries[2].details.performance == {"C1": 40.0}
    assert entries[3].details.duration_minutes == 90
    assert entries[3].details.intensity.value == "moderate"
    assert len({e.id for e in entries}) == 4

    assert await repos.store.get(LEGACY_HISTORY_KEY) is None
    assert await repos.store.get(LEGACY_POINTER_KEY) is None
    assert await repos.plans.next_plan_id() == "B"


@pytest.mark.asyncio
async def test_migration_is_idempotent(tmp_path):
    db_file = str(tmp_path / "legacy.db")
    repos = Repositories(db_file)
    await repos.store.set(LEGACY_HISTORY_KEY, LEGACY_HISTORY)
    await migrate(db_file)
    before = await repos.store.get(repos.activities.KEY)
    assert await migrate(db_file) == 0
    assert await repos.store.get(repos.activities.KEY) == before

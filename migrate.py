"""Rewrite legacy activity records into the current entry format.

Older exports stored the history under ``workoutHistory`` as bare date strings,
``{date, type}`` pairs or entries whose ``category`` was a display label such
as "Musculação". Categories are rewritten to stable sport ids and every entry
gets an id.
"""

import asyncio
import logging
import sys
import unicodedata

from db import Repositories
from models import RESISTANCE_TRAINING, ActivityEntry, new_id

logger = logging.getLogger(__name__)

LEGACY_HISTORY_KEY = "workoutHistory"
LEGACY_POINTER_KEY = "nextWorkoutId"

LEGACY_CATEGORY_NAMES = {
    "musculacao": RESISTANCE_TRAINING,
    "academia": RESISTANCE_TRAINING,
    "gym": RESISTANCE_TRAINING,
    "resistance training": RESISTANCE_TRAINING,
    "volei de quadra": "volleyball_court",
    "volei de praia": "volleyball_beach",
    "futebol society": "society_football",
    "futebol": "society_football",
    "boxe": "boxing",
}

LEGACY_INTENSITIES = {
    "leve": "light",
    "moderada": "moderate",
    "alta": "high",
}


def _fold(label: str) -> str:
    text = unicodedata.normalize("NFKD", label)
    return "".join(c for c in text if not unicodedata.combining(c)).strip().lower()


def category_id(label: str, sport_names: dict[str, str]) -> str | None:
    """Map a legacy display label or id to a stable category id."""
    if label in sport_names.values():
        return label
    folded = _fold(label)
    if folded in sport_names:
        return sport_names[folded]
    return LEGACY_CATEGORY_NAMES.get(folded)


def migrate_entry(raw, sport_names: dict[str, str]) -> dict | None:
    """Return ``raw`` in the current format, or None when it cannot be read."""
    if isinstance(raw, str):
        raw = {"date": raw, "type": "A"}
    if not isinstance(raw, dict) or "date" not in raw:
        return None
    details = raw.get("details") or {}
    if isinstance(details, dict) and details.get("kind") in ("resistance", "sport"):
        entry = dict(raw)
        entry.setdefault("id", new_id("act"))
        return entry

    if "type" in raw and "category" not in raw:
        category = RESISTANCE_TRAINING
        details = {"type": raw["type"]}
    else:
        category = category_id(str(raw.get("category", "")), sport_names)
    if category is None:
        return None

    if category == RESISTANCE_TRAINING:
        new_details = {
            "kind": "resistance",
            "plan_id": str(details.get("plan_id") or details.get("type") or "A"),
            "performance": {
                str(k): float(v) for k, v in (details.get("performance") or {}).items()
            },
        }
    else:
        intensity = details.get("intensity")
        if isinstance(intensity, str):
            intensity = LEGACY_INTENSITIES.get(_fold(intensity), intensity)
        new_details = {
            "kind": "sport",
            "duration_minutes": int(details.get("duration") or details.get("duration_minutes") or 60),
            "intensity": intensity,
            "notes": details.get("notes") or "",
        }
    return {
        "id": raw.get("id") or new_id("act"),
        "date": raw["date"][:10],
        "category": category,
        "details": new_details,
    }


async def migrate(db_path: str = "fitledger.db") -> int:
    """Migrate stored history in place and return the number of rewritten entries."""
    repos = Repositories(db_path)
    store = repos.store
    sports = await repos.sports.sports()
    sport_names = {_fold(s.name): s.id for s in sports}

    current = await store.get(repos.activities.KEY) or []
    legacy = await store.get(LEGACY_HISTORY_KEY) or []
    migrated: list[dict] = []
    changed = 0
    for raw in list(current) + list(legacy):
        entry = migrate_entry(raw, sport_names)
        if entry is not None:
            try:
                ActivityEntry.model_validate(entry)
            except ValueError:
                entry = None
        if entry is None:
            logger.warning("dropping unreadable legacy record: %r", raw)
            changed += 1
            continue
        if entry != raw:
            changed += 1
        migrated.append(entry)

    # keep one resistance session per day; the last one logged wins
    seen: dict[str, int] = {}
    deduped: list[dict] = []
    for entry in migrated:
        if entry["category"] == RESISTANCE_TRAINING:
            if entry["date"] in seen:
                deduped[seen[entry["date"]]] = entry
                changed += 1
                continue
            seen[entry["date"]] = len(deduped)
        deduped.append(entry)

    if changed or legacy:
        await store.set(repos.activities.KEY, deduped)
        logger.warning("migrated %d legacy activity record(s)", changed)
    if legacy:
        await store.remove(LEGACY_HISTORY_KEY)
    pointer = await store.get(LEGACY_POINTER_KEY)
    if pointer is not None:
        if await repos.plans.next_plan_id() is None:
            await repos.plans.set_next_plan_id(str(pointer))
        await store.remove(LEGACY_POINTER_KEY)
    return changed


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "fitledger.db"
    print(asyncio.run(migrate(path)))

import logging

from db import SportRepository
from models import IconRef, SportDefinition, new_id
from seed_data import DEFAULT_SPORTS

logger = logging.getLogger(__name__)


class ProtectedRecordError(ValueError):
    """Raised when deleting a system-reserved record."""


class SportService:
    """Sport definitions with the reserved resistance-training entry."""

    def __init__(self, sport_repo: SportRepository) -> None:
        self.sports = sport_repo

    async def list_sports(self) -> list[SportDefinition]:
        sports = await self.sports.sports()
        present = {s.id for s in sports}
        missing = [d for d in DEFAULT_SPORTS if d.reserved and d.id not in present]
        if missing:
            logger.warning(
                "restoring reserved sports: %s", ", ".join(m.id for m in missing)
            )
            sports = [m.model_copy(deep=True) for m in missing] + sports
            await self.sports.save_sports(sports)
        return sports

    async def get_sport(self, sport_id: str) -> SportDefinition | None:
        for sport in await self.list_sports():
            if sport.id == sport_id:
                return sport
        return None

    async def add_sport(self, name: str, icon: IconRef | str | None = None) -> SportDefinition:
        name = name.strip()
        if not name:
            raise ValueError("name must not be empty")
        if isinstance(icon, str):
            icon = IconRef.parse(icon)
        sports = await self.list_sports()
        if any(s.name.lower() == name.lower() for s in sports):
            raise ValueError("sport exists")
        sport = SportDefinition(id=new_id("sport"), name=name, icon=icon or IconRef())
        sports.append(sport)
        await self.sports.save_sports(sports)
        return sport

    async def delete_sport(self, sport_id: str) -> None:
        sports = await self.list_sports()
        target = next((s for s in sports if s.id == sport_id), None)
        if target is None:
            raise ValueError(f"sport not found: {sport_id}")
        if target.reserved:
            raise ProtectedRecordError(f"sport {sport_id} is reserved")
        await self.sports.save_sports([s for s in sports if s.id != sport_id])

"""Notification hosts that hold armed reminder triggers until they fire."""

from __future__ import annotations

import abc
import asyncio
import datetime
import logging

import requests

from db import NotificationRepository, SettingsRepository, TriggerRepository

logger = logging.getLogger(__name__)


class NotificationHost(abc.ABC):
    """Interface the reminder scheduler arms triggers against."""

    @abc.abstractmethod
    async def request_permission(self) -> bool:
        """Return whether notifications may be delivered."""

    @abc.abstractmethod
    async def schedule_at(self, when: datetime.datetime, payload: dict) -> str:
        """Register a trigger firing at ``when`` and return its handle."""

    @abc.abstractmethod
    async def cancel_all(self) -> None:
        """Drop every pending trigger."""


class DatabaseNotificationHost(NotificationHost):
    """Keeps triggers in SQLite so they survive restarts.

    Due triggers are moved into the notification inbox by ``dispatch_due``
    and, when ``webhook_url`` is configured, posted to it as JSON.
    """

    def __init__(
        self,
        trigger_repo: TriggerRepository,
        notification_repo: NotificationRepository,
        settings_repo: SettingsRepository,
        timeout: float = 5.0,
    ) -> None:
        self.triggers = trigger_repo
        self.notifications = notification_repo
        self.settings = settings_repo
        self.timeout = timeout

    async def request_permission(self) -> bool:
        return self.settings.get_bool("notifications_enabled", True)

    async def schedule_at(self, when: datetime.datetime, payload: dict) -> str:
        if when.tzinfo is None:
            raise ValueError("trigger time must be timezone-aware")
        tid = await self.triggers.add(
            when,
            payload.get("supplement_id", ""),
            int(payload.get("sequence", 0)),
            payload.get("title", ""),
            payload.get("body", ""),
        )
        return str(tid)

    async def cancel_all(self) -> None:
        await self.triggers.delete_all()

    async def pending(self) -> list[dict[str, object]]:
        return await self.triggers.fetch_pending()

    def _webhook_url(self) -> str | None:
        url = self.settings.get_text("webhook_url", "")
        if url.startswith(("http://", "https://")):
            return url
        return None

    def _post(self, url: str, item: dict[str, object]) -> None:
        payload = {
            "title": item["title"],
            "body": item["body"],
            "supplement_id": item["supplement_id"],
            "sequence": item["sequence"],
            "fire_at": item["fire_at"].isoformat(),
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("webhook delivery to %s failed: %s", url, e)

    async def dispatch_due(
        self, now: datetime.datetime | None = None
    ) -> list[dict[str, object]]:
        """Deliver every trigger due at ``now`` and return them.

        Without permission due triggers are dropped undelivered.
        """
        now = now or datetime.datetime.now(datetime.timezone.utc)
        due = await self.triggers.fetch_pending(due_before=now)
        if due and not await self.request_permission():
            for item in due:
                await self.triggers.delete(int(item["id"]))
            logger.info("notifications disabled; dropped %d due reminder(s)", len(due))
            return []
        url = self._webhook_url()
        for item in due:
            await self.notifications.add(
                str(item["title"]),
                str(item["body"]),
                timestamp=item["fire_at"].isoformat(),
            )
            await self.triggers.delete(int(item["id"]))
            if url:
                await asyncio.to_thread(self._post, url, item)
        if due:
            logger.info("dispatched %d reminder(s)", len(due))
        return due

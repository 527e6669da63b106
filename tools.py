import datetime
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WINDOWS = ("day", "week", "month")


class DateTools:
    """Calendar helpers shared by the ledger, statistics and reminders."""

    @staticmethod
    def zone(name: str | None) -> datetime.tzinfo:
        """Return the tzinfo for ``name`` falling back to UTC."""
        if not name:
            return datetime.timezone.utc
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return datetime.timezone.utc

    @classmethod
    def now(cls, tz_name: str | None = None) -> datetime.datetime:
        return datetime.datetime.now(cls.zone(tz_name))

    @classmethod
    def today(cls, tz_name: str | None = None) -> datetime.date:
        """Return the local calendar day in ``tz_name``."""
        return cls.now(tz_name).date()

    @staticmethod
    def parse_time(value: str | datetime.time) -> datetime.time:
        """Parse ``HH:MM`` into a time with minute precision."""
        if isinstance(value, datetime.time):
            return value.replace(second=0, microsecond=0, tzinfo=None)
        hour, _, minute = value.strip().partition(":")
        if not (hour.isdigit() and minute.isdigit()):
            raise ValueError(f"invalid time of day: {value!r}")
        return datetime.time(int(hour), int(minute))

    @staticmethod
    def window_bounds(
        ref: datetime.date, window: str
    ) -> tuple[datetime.date, datetime.date]:
        """Return the inclusive (start, end) of the window containing ``ref``.

        ``week`` is the ISO week (Monday to Sunday) and ``month`` the calendar
        month.
        """
        if window == "day":
            return ref, ref
        if window == "week":
            start = ref - datetime.timedelta(days=ref.weekday())
            return start, start + datetime.timedelta(days=6)
        if window == "month":
            start = ref.replace(day=1)
            if start.month == 12:
                nxt = start.replace(year=start.year + 1, month=1)
            else:
                nxt = start.replace(month=start.month + 1)
            return start, nxt - datetime.timedelta(days=1)
        raise ValueError(f"window must be one of {', '.join(WINDOWS)}")

    @staticmethod
    def days(start: datetime.date, end: datetime.date) -> Iterator[datetime.date]:
        day = start
        while day <= end:
            yield day
            day += datetime.timedelta(days=1)

    @staticmethod
    def age_on(birth_date: datetime.date, today: datetime.date) -> int:
        """Return completed years between ``birth_date`` and ``today``."""
        age = today.year - birth_date.year
        if (today.month, today.day) < (birth_date.month, birth_date.day):
            age -= 1
        return max(age, 0)

    @staticmethod
    def at_time(
        day: datetime.date, time_of_day: datetime.time, tz: datetime.tzinfo
    ) -> datetime.datetime:
        return datetime.datetime.combine(day, time_of_day, tzinfo=tz)

import requests
from typing import Optional


class TrackerClient:
    """Simple REST client for the tracker API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, **params):
        resp = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def log_resistance(
        self,
        plan_id: str,
        performance: Optional[dict[str, float]] = None,
        date: Optional[str] = None,
        confirm: bool = False,
    ) -> dict:
        """Log a session; a same-day conflict comes back with status ``needs_confirmation``."""
        resp = requests.post(
            f"{self.base_url}/activities/resistance",
            json={
                "plan_id": plan_id,
                "performance": performance or {},
                "date": date,
                "confirm": confirm,
            },
            timeout=self.timeout,
        )
        if resp.status_code == 409:
            return resp.json()
        resp.raise_for_status()
        return resp.json()

    def log_sport(self, sport_id: str, duration_minutes: int, **fields) -> dict:
        resp = requests.post(
            f"{self.base_url}/activities/sport",
            json={"sport_id": sport_id, "duration_minutes": duration_minutes, **fields},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def list_activities(self, **params: str) -> list:
        return self._get("/activities", **params)

    def mark_taken(self, supplement_id: str, taken: bool = True) -> dict:
        resp = requests.post(
            f"{self.base_url}/supplements/{supplement_id}/taken",
            params={"taken": str(taken).lower()},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def set_reminder(
        self, supplement_id: str, enabled: bool, time_of_day: Optional[str] = None
    ) -> dict:
        resp = requests.put(
            f"{self.base_url}/reminders/{supplement_id}",
            json={"enabled": enabled, "time_of_day": time_of_day},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def summary(self, window: str = "week", date: Optional[str] = None) -> dict:
        params = {"window": window}
        if date:
            params["date"] = date
        return self._get("/stats/summary", **params)

    def dashboard(self) -> dict:
        return self._get("/dashboard")

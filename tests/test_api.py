import os
import sys
import datetime
import unittest
from unittest import mock

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import StoreError
from notification_host import NotificationHost
from rest_api import TrackerAPI


class RecordingHost(NotificationHost):
    def __init__(self) -> None:
        self.scheduled: list = []

    async def request_permission(self) -> bool:
        return True

    async def schedule_at(self, when, payload):
        self.scheduled.append((when, payload))
        return str(len(self.scheduled))

    async def cancel_all(self) -> None:
        self.scheduled.clear()


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_fitledger.db"
        self.yaml_path = "test_settings.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        self.host = RecordingHost()
        self.api = TrackerAPI(
            db_path=self.db_path, yaml_path=self.yaml_path, host=self.host
        )
        self.client = TestClient(self.api.app)
        self.day = "2026-10-19"

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_resistance_reconciliation_flow(self) -> None:
        response = self.client.post(
            "/activities/resistance",
            json={"plan_id": "A", "performance": {"A1": 22.5}, "date": self.day},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "inserted")
        entry_id = response.json()["entry"]["id"]

        response = self.client.post(
            "/activities/resistance", json={"plan_id": "A", "date": self.day}
        )
        self.assertEqual(response.json()["status"], "already_logged")

        response = self.client.post(
            "/activities/resistance", json={"plan_id": "B", "date": self.day}
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["status"], "needs_confirmation")
        self.assertEqual(response.json()["previous"]["id"], entry_id)
        self.assertEqual(self.client.get("/plans/next").json()["id"], "B")

        response = self.client.post(
            "/activities/resistance",
            json={"plan_id": "B", "date": self.day, "confirm": True},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "replaced")
        self.assertEqual(response.json()["entry"]["id"], entry_id)
        self.assertEqual(self.client.get("/plans/next").json()["id"], "C")

        activities = self.client.get(
            "/activities", params={"start": self.day, "end": self.day}
        ).json()
        self.assertEqual(len(activities), 1)
        self.assertEqual(activities[0]["details"]["plan_id"], "B")

        response = self.client.delete(f"/activities/{entry_id}")
        self.assertEqual(response.status_code, 200)
        response = self.client.delete(f"/activities/{entry_id}")
        self.assertEqual(response.status_code, 404)

    def test_unknown_plan_rejected(self) -> None:
        response = self.client.post(
            "/activities/resistance", json={"plan_id": "Z", "date": self.day}
        )
        self.assertEqual(response.status_code, 400)

    def test_sport_and_energy(self) -> None:
        response = self.client.post(
            "/activities/sport",
            json={
                "sport_id": "boxing",
                "duration_minutes": 60,
                "intensity": "moderate",
                "date": self.day,
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["entry"]["details"]["calories"], 672.0)

        response = self.client.post(
            "/food",
            json={
                "description": "Pasta",
                "meal_slot": "dinner",
                "nutrition": {"calories": 900, "carbs": 120},
                "date": self.day,
            },
        )
        self.assertEqual(response.status_code, 200)

        energy = self.client.get("/stats/energy", params={"date": self.day}).json()
        self.assertEqual(energy["consumed"], 900)
        self.assertEqual(energy["spent"], 672.0)
        self.assertEqual(energy["net"], 228.0)

        nutrition = self.client.get("/stats/nutrition", params={"date": self.day}).json()
        self.assertEqual(nutrition["carbs"], 120)

        counts = self.client.get(
            "/stats/categories", params={"date": self.day, "window": "week"}
        ).json()
        self.assertEqual(counts["boxing"], 1)
        self.assertEqual(counts["resistance_training"], 0)

        response = self.client.get("/stats/summary", params={"window": "year"})
        self.assertEqual(response.status_code, 400)

    def test_records_and_series(self) -> None:
        self.assertIsNone(self.client.get("/stats/records/A1").json()["record"])
        for offset, load in enumerate([20, 25, 30]):
            day = (datetime.date(2026, 10, 19) + datetime.timedelta(days=offset)).isoformat()
            self.client.post(
                "/activities/resistance",
                json={"plan_id": "A", "performance": {"A1": load}, "date": day},
            )
        self.assertEqual(self.client.get("/stats/records/A1").json()["record"], 30)
        series = self.client.get("/stats/series/A1", params={"limit": 2}).json()
        self.assertEqual([p["load"] for p in series], [25, 30])

    def test_sports_reserved(self) -> None:
        sports = self.client.get("/sports").json()
        self.assertTrue(
            any(s["id"] == "resistance_training" and s["reserved"] for s in sports)
        )
        response = self.client.delete("/sports/resistance_training")
        self.assertEqual(response.status_code, 403)
        response = self.client.delete("/sports/unknown")
        self.assertEqual(response.status_code, 404)

        response = self.client.post(
            "/sports", json={"name": "Padel", "icon": "material-community:tennis"}
        )
        self.assertEqual(response.status_code, 200)
        sport_id = response.json()["id"]
        self.assertEqual(response.json()["icon"], "material-community:tennis")
        self.assertEqual(self.client.delete(f"/sports/{sport_id}").status_code, 200)

    def test_reminders_and_intake(self) -> None:
        response = self.client.put(
            "/reminders/supp_creatine", json={"enabled": True, "time_of_day": "23:59"}
        )
        self.assertEqual(response.status_code, 200)
        armed = self.client.get("/reminders/armed").json()
        self.assertTrue(armed["triggers"])
        self.assertTrue(self.host.scheduled)

        response = self.client.post("/supplements/supp_creatine/taken")
        self.assertEqual(response.status_code, 200)
        armed = self.client.get("/reminders/armed").json()
        self.assertEqual(armed["triggers"], [])
        self.assertEqual(self.host.scheduled, [])

        intake = self.client.get("/supplements/intake").json()
        self.assertEqual(intake, {"supp_creatine": True})

        response = self.client.post("/supplements/supp_whey/increment")
        self.assertEqual(response.json()["value"], 1)
        response = self.client.post("/supplements/supp_creatine/increment")
        self.assertEqual(response.status_code, 400)

        response = self.client.put(
            "/reminders/supp_whey", json={"time_of_day": "99:00"}
        )
        self.assertEqual(response.status_code, 400)
        reminders = self.client.get("/reminders").json()
        self.assertEqual(reminders["supp_creatine"]["time_of_day"], "23:59")
        self.assertFalse(reminders["supp_whey"]["enabled"])

    def test_plans_crud(self) -> None:
        response = self.client.post("/plans", json={"name": "Full body"})
        self.assertEqual(response.status_code, 200)
        plan_id = response.json()["id"]
        response = self.client.post(
            f"/plans/{plan_id}/exercises",
            json={"id": "FB1", "name": "Deadlift", "sets": 3, "reps": "5"},
        )
        self.assertEqual(response.status_code, 200)
        self.client.post(
            f"/plans/{plan_id}/exercises", json={"id": "FB2", "name": "Dips"}
        )
        response = self.client.post(
            f"/plans/{plan_id}/exercises/reorder", json=["FB2", "FB1"]
        )
        self.assertEqual(response.json(), ["FB2", "FB1"])
        response = self.client.post(
            f"/plans/{plan_id}/exercises/reorder", json=["FB2"]
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post("/plans/reorder", json=[plan_id, "A", "B", "C"])
        self.assertEqual(response.json(), [plan_id, "A", "B", "C"])
        self.assertEqual(self.client.get("/plans/next").json()["id"], plan_id)

        self.assertEqual(self.client.delete(f"/plans/{plan_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/plans/{plan_id}").status_code, 404)

    def test_profile_energy(self) -> None:
        self.assertEqual(self.client.get("/profile").status_code, 404)
        profile = {
            "name": "Rui",
            "weight_kg": 80,
            "height_cm": 180,
            "birth_date": "1996-01-15",
            "sex": "male",
            "activity_level": "moderate",
        }
        self.assertEqual(self.client.put("/profile", json=profile).status_code, 200)
        energy = self.client.get("/profile/energy", params={"date": self.day}).json()
        self.assertEqual(energy["bmr"], 1780)
        self.assertEqual(energy["tdee"], 2759)
        self.assertEqual(energy["bmi_category"], "normal")

    def test_settings(self) -> None:
        settings = self.client.get("/settings").json()
        self.assertEqual(settings["body_weight"], 80.0)
        self.assertTrue(settings["notifications_enabled"])
        response = self.client.post("/settings", json={"body_weight": 72.5})
        self.assertEqual(response.json()["body_weight"], 72.5)
        response = self.client.post("/settings", json={"bmr_formula": "katch"})
        self.assertEqual(response.status_code, 400)

    def test_store_failure_maps_to_503_and_stale_dashboard(self) -> None:
        fresh = self.client.get("/dashboard").json()
        self.assertFalse(fresh["stale"])
        broken = mock.AsyncMock(side_effect=StoreError("disk I/O error"))
        with mock.patch.object(self.api.repos.activities, "entries", broken):
            response = self.client.get("/activities")
            self.assertEqual(response.status_code, 503)
            dashboard = self.client.get("/dashboard").json()
        self.assertTrue(dashboard["stale"])
        self.assertEqual(dashboard["next_plan"], "A")

    def test_notifications_dispatch(self) -> None:
        response = self.client.post("/notifications/dispatch")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"dispatched": 0})
        self.assertEqual(self.client.get("/notifications/unread_count").json(), {"count": 0})

    def test_disabling_notifications_cancels_armed_reminders(self) -> None:
        api = TrackerAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        client = TestClient(api.app)
        client.put(
            "/reminders/supp_creatine", json={"enabled": True, "time_of_day": "23:59"}
        )
        self.assertTrue(client.get("/notifications/pending").json())

        response = client.post("/settings", json={"notifications_enabled": False})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(client.get("/notifications/pending").json(), [])
        armed = client.get("/reminders/armed").json()
        self.assertEqual(armed["triggers"], [])
        self.assertFalse(armed["permission_granted"])

    def test_settings_store_failure_maps_to_503(self) -> None:
        self.api.settings._db_path = os.getcwd()
        response = self.client.get("/settings")
        self.assertEqual(response.status_code, 503)


if __name__ == "__main__":
    unittest.main()

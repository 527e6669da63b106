import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository
from settings_schema import validate_settings


class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1

    def __init__(self):
        self.store = {}

    def get_password(self, service, username):
        return self.store.get((service, username))

    def set_password(self, service, username, password):
        self.store[(service, username)] = password

    def delete_password(self, service, username):
        self.store.pop((service, username), None)


class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.keyring = DummyKeyring()
        keyring.set_keyring(self.keyring)
        os.environ["ENCRYPT_SETTINGS"] = "1"
        self.path = "enc_settings.yaml"
        self.db_path = "enc_settings.db"
        for p in (self.path, self.db_path):
            if os.path.exists(p):
                os.remove(p)

    def tearDown(self) -> None:
        for p in (self.path, self.db_path):
            if os.path.exists(p):
                os.remove(p)
        os.environ.pop("ENCRYPT_SETTINGS", None)

    def test_webhook_kept_out_of_yaml(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({"webhook_url": "https://hooks.example/abc", "timezone": "Europe/Lisbon"})
        with open(self.path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw["webhook_url"], True)
        self.assertEqual(
            self.keyring.get_password("fitledger", "webhook_url"),
            "https://hooks.example/abc",
        )
        data = cfg.load()
        self.assertEqual(data["webhook_url"], "https://hooks.example/abc")
        self.assertEqual(data["timezone"], "Europe/Lisbon")

    def test_missing_secret_is_dropped(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"webhook_url": True, "body_weight": 70.0}, f)
        data = YamlConfig(self.path).load()
        self.assertNotIn("webhook_url", data)
        self.assertEqual(data["body_weight"], 70.0)

    def test_repository_round_trip(self) -> None:
        settings = SettingsRepository(self.db_path, self.path)
        settings.set_text("webhook_url", "https://hooks.example/xyz")
        reopened = SettingsRepository(self.db_path, self.path)
        self.assertEqual(reopened.get_text("webhook_url"), "https://hooks.example/xyz")

    def test_placeholder_resolved_without_encryption(self) -> None:
        os.environ.pop("ENCRYPT_SETTINGS", None)
        self.keyring.set_password("fitledger", "webhook_url", "https://hooks.example/k")
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"webhook_url": True}, f)
        data = YamlConfig(self.path).load()
        self.assertEqual(data["webhook_url"], "https://hooks.example/k")
        validate_settings(data)

    def test_schema_rejects_placeholder_value(self) -> None:
        with self.assertRaises(ValueError):
            validate_settings({"webhook_url": True})


if __name__ == "__main__":
    unittest.main()

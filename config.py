import os
import yaml
import keyring

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "fitledger"


class YamlConfig:
    """Settings file mirrored from the database.

    With ``ENCRYPT_SETTINGS=1`` sensitive values are kept in the system keyring
    and the file only records that one is set.
    """

    SENSITIVE_KEYS = frozenset({"webhook_url"})

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = KEYRING_SERVICE

    def _reveal(self, data: dict) -> dict:
        """Swap keyring placeholders for their secrets, dropping unknown ones."""
        for key in self.SENSITIVE_KEYS & data.keys():
            if data[key] is not True:
                continue
            secret = keyring.get_password(self.service, key)
            if secret is None:
                del data[key]
            else:
                data[key] = secret
        return data

    def _conceal(self, data: dict) -> dict:
        out = dict(data)
        for key in self.SENSITIVE_KEYS & out.keys():
            if out[key]:
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = True
            elif keyring.get_password(self.service, key) is not None:
                keyring.delete_password(self.service, key)
        return out

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return self._reveal(data)

    def save(self, data: dict) -> None:
        out = self._conceal(data) if self.encrypt else dict(data)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f, sort_keys=True)

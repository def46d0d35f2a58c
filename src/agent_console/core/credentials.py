"""Bearer credential persistence.

The credential is an opaque string. It is never parsed or validated here;
the gateway is the only judge of whether it is acceptable.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "agent_console.gateway.token"


class CredentialStore:
    """Holds a single bearer token, persisted to a JSON file under a fixed key.

    The file may hold other keys; only ``namespace`` is ever touched.
    """

    def __init__(self, path: Path, namespace: str = DEFAULT_NAMESPACE):
        self.path = Path(path).expanduser()
        self.namespace = namespace
        self._token: Optional[str] = None
        self._loaded = False

    def get(self) -> Optional[str]:
        """Return the held token, or None when no credential is set."""
        if not self._loaded:
            self._token = self._load_file().get(self.namespace) or None
            self._loaded = True
        return self._token

    def set(self, value: str) -> None:
        """Persist a token. Surrounding whitespace is dropped; empty clears."""
        token = (value or "").strip()
        if not token:
            self.clear()
            return

        data = self._load_file()
        data[self.namespace] = token
        self._save_file(data)
        self._token = token
        self._loaded = True
        logger.info(f"Credential saved to {self.path}")

    def clear(self) -> None:
        """Forget the token and remove the persisted entry."""
        data = self._load_file()
        if self.namespace in data:
            del data[self.namespace]
            self._save_file(data)
        self._token = None
        self._loaded = True
        logger.info("Credential cleared")

    def _load_file(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read credential file {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Ignoring credential file {self.path}: expected a JSON object")
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}

    def _save_file(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
        os.chmod(self.path, 0o600)

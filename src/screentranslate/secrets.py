"""Secret store interface and simple implementations.

The platform keychain is an external collaborator; the core only reads and
writes credentials through SecretStore.
"""

import os
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .errors import RegistryError


@dataclass(frozen=True)
class StoredCredentials:
    api_key: str = field(repr=False)
    app_id: str | None = None
    extra: dict = field(default_factory=dict, repr=False, compare=False)


class SecretStore(ABC):
    """Credential storage keyed by engine or instance id ('openai', 'custom:0', 'vlm:claude')."""

    @abstractmethod
    def get_secret(self, secret_id: str) -> StoredCredentials | None:
        """Return stored credentials, or None."""

    @abstractmethod
    def set_secret(self, secret_id: str, credentials: StoredCredentials) -> None:
        pass

    @abstractmethod
    def delete_secret(self, secret_id: str) -> None:
        pass

    def has_secret(self, secret_id: str) -> bool:
        credentials = self.get_secret(secret_id)
        return credentials is not None and bool(credentials.api_key)


class MemorySecretStore(SecretStore):
    """Thread-safe in-process store."""

    def __init__(self, initial: dict[str, StoredCredentials] | None = None):
        self._lock = threading.Lock()
        self._secrets: dict[str, StoredCredentials] = dict(initial or {})

    def get_secret(self, secret_id: str) -> StoredCredentials | None:
        with self._lock:
            return self._secrets.get(secret_id)

    def set_secret(self, secret_id: str, credentials: StoredCredentials) -> None:
        with self._lock:
            self._secrets[secret_id] = credentials

    def delete_secret(self, secret_id: str) -> None:
        with self._lock:
            self._secrets.pop(secret_id, None)


class EnvSecretStore(SecretStore):
    """Read-only store backed by environment variables.

    'custom:0' maps to SCREENTRANSLATE_CUSTOM_0_API_KEY and
    SCREENTRANSLATE_CUSTOM_0_APP_ID.
    """

    prefix = "SCREENTRANSLATE"

    def __init__(self, environ: dict[str, str] | None = None):
        self._environ = environ if environ is not None else os.environ

    def _var(self, secret_id: str, suffix: str) -> str:
        name = re.sub(r"[^A-Za-z0-9]+", "_", secret_id).upper()
        return f"{self.prefix}_{name}_{suffix}"

    def get_secret(self, secret_id: str) -> StoredCredentials | None:
        api_key = self._environ.get(self._var(secret_id, "API_KEY"))
        if not api_key:
            return None
        return StoredCredentials(api_key=api_key, app_id=self._environ.get(self._var(secret_id, "APP_ID")))

    def set_secret(self, secret_id: str, credentials: StoredCredentials) -> None:
        raise RegistryError.read_only_store("Environment secret store")

    def delete_secret(self, secret_id: str) -> None:
        raise RegistryError.read_only_store("Environment secret store")

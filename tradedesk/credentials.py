"""Credential management: validate, hold and persist the API key pair.

The exchange issues both the access token and the secret key as UUID-v4
strings. The format is checked once, when a pair is stored.

Priority order for ``load_credentials``:
1. Environment variables: TD_ACCESS_TOKEN, TD_SECRET_KEY
2. Credential file: explicit path, TD_CREDENTIALS_PATH, or ~/.tradedesk_credentials.json
"""
import json
import os
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import NamedTuple, Optional

from cryptography.fernet import Fernet, InvalidToken

from .errors import InvalidCredentialFormat, NotConfigured
from .logging_setup import logger

UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

DEFAULT_CREDENTIALS_PATH = "~/.tradedesk_credentials.json"


class Credentials(NamedTuple):
    access_token: str
    secret_key: str


def is_valid_key(value: object) -> bool:
    return isinstance(value, str) and UUID_V4_PATTERN.match(value) is not None


def validate_credentials(access_token: str, secret_key: str) -> Credentials:
    """Return a Credentials pair, or raise InvalidCredentialFormat naming the bad field."""
    if not is_valid_key(access_token):
        raise InvalidCredentialFormat("access_token")
    if not is_valid_key(secret_key):
        raise InvalidCredentialFormat("secret_key")
    return Credentials(access_token=access_token, secret_key=secret_key)


class CredentialStore(ABC):
    """Holds at most one credential pair.

    ``get`` returns an immutable snapshot, so a caller that reads once
    can never observe a half-updated pair.
    """

    @abstractmethod
    def get(self) -> Optional[Credentials]:
        pass

    @abstractmethod
    def set(self, credentials: Credentials) -> bool:
        """Store a pair. Raises InvalidCredentialFormat if either key is malformed."""
        pass

    @abstractmethod
    def clear(self) -> bool:
        pass


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, credentials: Optional[Credentials] = None):
        self._lock = threading.Lock()
        self._credentials: Optional[Credentials] = None
        if credentials is not None:
            self.set(credentials)

    def get(self) -> Optional[Credentials]:
        with self._lock:
            return self._credentials

    def set(self, credentials: Credentials) -> bool:
        creds = validate_credentials(*credentials)
        with self._lock:
            self._credentials = creds
        return True

    def clear(self) -> bool:
        with self._lock:
            self._credentials = None
        return True


class FileCredentialStore(CredentialStore):
    """JSON file store, optionally Fernet-encrypted.

    WARNING: without ``encryption_key`` the secret is stored in plaintext.
    The file is restricted to the owner (0600) where the OS allows it.
    """

    def __init__(self, path: str = DEFAULT_CREDENTIALS_PATH, encryption_key: Optional[str] = None):
        self.path = Path(path).expanduser()
        self._fernet = Fernet(encryption_key.encode() if isinstance(encryption_key, str) else encryption_key) if encryption_key else None
        self._lock = threading.Lock()

    def get(self) -> Optional[Credentials]:
        with self._lock:
            if not self.path.exists():
                return None
            raw = self.path.read_bytes()
        try:
            if self._fernet is not None:
                raw = self._fernet.decrypt(raw)
            data = json.loads(raw.decode("utf-8"))
        except (InvalidToken, ValueError) as e:
            raise InvalidCredentialFormat(f"credential file {self.path} ({e.__class__.__name__})")
        if not isinstance(data, dict):
            raise InvalidCredentialFormat(f"credential file {self.path}")
        return validate_credentials(data.get("access_token"), data.get("secret_key"))

    def set(self, credentials: Credentials) -> bool:
        creds = validate_credentials(*credentials)
        raw = json.dumps(creds._asdict(), indent=2).encode("utf-8")
        if self._fernet is not None:
            raw = self._fernet.encrypt(raw)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self.path.with_suffix(".tmp")
                tmp.write_bytes(raw)
                try:
                    tmp.chmod(0o600)
                except NotImplementedError:
                    pass  # platform without POSIX permissions
                tmp.replace(self.path)
            except OSError as e:
                logger.error(f"Failed to save credentials | path={self.path} error={e}")
                return False
        return True

    def clear(self) -> bool:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to remove credentials | path={self.path} error={e}")
                return False
        return True


def load_credentials(config_path: Optional[str] = None, encryption_key: Optional[str] = None) -> Credentials:
    """Load credentials from env or credential file.

    Args:
        config_path: Optional override path to the credential file. If not provided,
                     checks TD_CREDENTIALS_PATH env var, then ~/.tradedesk_credentials.json
        encryption_key: Fernet key if the file was written encrypted

    Returns:
        Validated Credentials

    Raises:
        NotConfigured: If no credentials are found
        InvalidCredentialFormat: If the found credentials are malformed
    """
    access_token = os.getenv("TD_ACCESS_TOKEN")
    secret_key = os.getenv("TD_SECRET_KEY")
    if access_token and secret_key:
        return validate_credentials(access_token, secret_key)

    if config_path is None:
        config_path = os.getenv("TD_CREDENTIALS_PATH", DEFAULT_CREDENTIALS_PATH)

    creds = FileCredentialStore(config_path, encryption_key=encryption_key).get()
    if creds is None:
        raise NotConfigured(
            "Missing credentials. Provide TD_ACCESS_TOKEN and TD_SECRET_KEY, "
            f"or a credential file at {config_path}"
        )
    return creds

"""Configuration loader for the trade desk.

Supports YAML format with environment variable interpolation.
"""
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_BASE_URL = "https://api.coinone.co.kr"


@dataclass
class ExchangeConfig:
    """Exchange endpoint and request settings."""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 10.0  # seconds per attempt
    max_attempts: int = 3
    backoff_base: float = 1.0  # first retry delay; doubles per attempt
    payload_header: str = "X-SIGNED-PAYLOAD"
    signature_header: str = "X-SIGNATURE"
    user_agent: str = "trade-desk/0.1.0"


@dataclass
class CredentialStoreConfig:
    """Where the access-token/secret-key pair is kept."""
    path: str = "~/.tradedesk_credentials.json"
    encryption_key: Optional[str] = None  # Fernet key; plaintext JSON when unset


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    session_key: Optional[str] = None  # Fernet key for the cookie session


@dataclass
class LoggingConfig:
    log_file: Optional[str] = "tradedesk.log"
    log_level: str = "INFO"
    enable_console: bool = True
    serialize: bool = False


@dataclass
class DeskConfig:
    """Complete trade desk configuration."""
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    credentials: CredentialStoreConfig = field(default_factory=CredentialStoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "DeskConfig":
        return cls()

    @classmethod
    def from_yaml(cls, config_path: str) -> "DeskConfig":
        """Load configuration from YAML file with env var interpolation.

        Args:
            config_path: Path to YAML config file

        Returns:
            DeskConfig instance; sections missing from the file keep defaults

        Example YAML:
            exchange:
              timeout: 5
              payload_header: X-COINONE-PAYLOAD
            credentials:
              path: "${HOME}/.tradedesk/credentials.json"
            logging:
              log_level: DEBUG
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with config_file.open("r") as f:
            raw = f.read()

        # Interpolate environment variables: ${VAR_NAME}
        for key, value in os.environ.items():
            raw = raw.replace(f"${{{key}}}", value)

        data = yaml.safe_load(raw) or {}

        return cls(
            exchange=ExchangeConfig(**data.get("exchange", {})),
            credentials=CredentialStoreConfig(**data.get("credentials", {})),
            server=ServerConfig(**data.get("server", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        data = {
            "exchange": asdict(self.exchange),
            "credentials": asdict(self.credentials),
            "server": asdict(self.server),
            "logging": asdict(self.logging),
        }

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with output_file.open("w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

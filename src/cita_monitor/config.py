import json
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigError

DEFAULT_PAGE_URL = "https://www.cgeonline.com.ar/informacion/apertura-de-citas.html"


class RunMode(str, Enum):
    """Update ingestion mode"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class StorageType(str, Enum):
    """Subscriber persistence backend"""
    SQLITE = "sqlite"
    REDIS = "redis"
    MEMORY = "memory"


class AppConfig(BaseModel):
    """Application configuration"""

    bot_token: str = Field(description="Telegram Bot Token")

    # Tracked page
    page_url: str = Field(
        default=DEFAULT_PAGE_URL,
        description="URL of the appointment table page"
    )
    row_keyword: str = Field(
        default="Pasaportesrenova",
        description="Text identifying the tracked table row (whitespace ignored)"
    )
    confirm_marker: str = Field(
        default="confirmar",
        description="Substring meaning the date is still a placeholder"
    )

    # Timing
    check_interval: int = Field(
        default=600,
        ge=60,
        le=86400,
        description="Seconds between page checks"
    )
    fetch_timeout: int = Field(default=20, ge=1, description="Page fetch timeout in seconds")
    delivery_timeout: int = Field(default=15, ge=1, description="Per-recipient send timeout in seconds")
    run_on_start: bool = Field(default=True, description="Run one check right after startup")
    heartbeat: bool = Field(
        default=False,
        description="Send a 'bot running' message to every subscriber each cycle"
    )

    # Update ingestion
    env: RunMode = Field(
        default=RunMode.DEVELOPMENT,
        description="development uses long polling, production uses a webhook"
    )
    webhook_url: Optional[str] = Field(default=None, description="Public base URL for the webhook")
    webhook_secret: Optional[str] = Field(default=None, description="Webhook secret token")
    webhook_listen: str = Field(default="0.0.0.0", description="Webhook listen address")
    webhook_port: int = Field(default=8443, description="Webhook listen port")

    # Storage
    storage: StorageType = Field(default=StorageType.SQLITE, description="Subscriber storage backend")
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)

    @model_validator(mode='after')
    def check_webhook(self) -> 'AppConfig':
        """Production mode needs a webhook URL and secret"""
        if self.env == RunMode.PRODUCTION:
            if not self.webhook_url:
                raise ValueError("webhook_url is required in production mode")
            if not self.webhook_secret:
                raise ValueError("webhook_secret is required in production mode")
        if self.webhook_url:
            self.webhook_url = self.webhook_url.rstrip("/")
            if "://" not in self.webhook_url:
                self.webhook_url = f"https://{self.webhook_url}"
        return self

    @property
    def is_development(self) -> bool:
        return self.env == RunMode.DEVELOPMENT

    @property
    def webhook_endpoint(self) -> str:
        return f"{self.webhook_url}/webhook"


# Environment variable -> config field
ENV_OVERRIDES = {
    "TELEGRAM_BOT_TOKEN": "bot_token",
    "WEBHOOK_SECRET_TOKEN": "webhook_secret",
    "WEBHOOK_URL": "webhook_url",
    "PAGE_URL": "page_url",
    "CHECK_INTERVAL": "check_interval",
    "PORT": "webhook_port",
    "STORAGE": "storage",
    "REDIS_HOST": "redis_host",
}


def read_env_overrides() -> dict:
    """Collect config values from the environment"""
    data = {}
    for var, field_name in ENV_OVERRIDES.items():
        value = os.getenv(var)
        if value:
            data[field_name] = value

    # DENO_ENV kept for deployments configured for the previous service
    mode = os.getenv("APP_ENV") or os.getenv("DENO_ENV")
    if mode:
        data["env"] = mode.strip().lower()
    return data


class ConfigManager:
    """Manages application configuration"""

    CONFIG_FILE = "config.json"
    DB_FILE = "data.db"
    ENV_FILE = ".env"

    def __init__(self, config_dir: Optional[Path] = None):
        # Default to current working directory
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self.config_path = self.config_dir / self.CONFIG_FILE
        self.db_path = self.config_dir / self.DB_FILE
        self.env_path = self.config_dir / self.ENV_FILE

    def ensure_config_dir(self) -> None:
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_raw(self) -> Optional[dict]:
        """Load raw configuration as dict

        Raises:
            ConfigError: the file is not valid JSON
        """
        if not self.config_path.exists():
            return None
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed {self.config_path}: {e}") from e

    def load(self, use_env: bool = True) -> AppConfig:
        """Load configuration from file, overridden by environment variables

        Raises:
            ConfigError: nothing configured, or the merged values are invalid
        """
        if use_env:
            load_dotenv(dotenv_path=self.env_path, override=False)

        data = self.load_raw() or {}
        if use_env:
            data.update(read_env_overrides())

        if not data:
            raise ConfigError(
                f"No configuration found in {self.config_path} or the environment"
            )
        try:
            return AppConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def save(self, config: AppConfig) -> None:
        """Save configuration to file"""
        self.ensure_config_dir()
        with open(self.config_path, "w", encoding="utf-8") as f:
            # Only save non-None fields
            data = config.model_dump(mode="json", exclude_none=True)
            json.dump(data, f, indent=2, ensure_ascii=False)

    def exists(self) -> bool:
        """Check if configuration file exists"""
        return self.config_path.exists()

    def get_db_path(self) -> Path:
        """Get database file path"""
        self.ensure_config_dir()
        return self.db_path

"""Configuration settings for the trainer."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent
PACKAGE_DIR = Path(__file__).parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
DEVICES_DIR = DATA_DIR / "devices"
DEFAULT_CATALOG = PACKAGE_DIR / "data" / "messages.json"

# Local per-device file names
IDENTITY_FILE = "identity.json"
PROGRESS_FILE = "progress.json"


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        DEVICES_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    devices_dir: Path = DEVICES_DIR
    catalog_source: str = os.getenv("CATALOG_SOURCE", str(DEFAULT_CATALOG))


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///smishdefense.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class BotSettings:
    """Bot configuration settings."""
    token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    menu_page_size: int = int(os.getenv("MENU_PAGE_SIZE", "20"))


@dataclass
class ApiSettings:
    """Stats API settings, for both the server and the forwarding client."""
    url: str = os.getenv("STATS_API_URL", "http://localhost:3000/api")
    host: str = os.getenv("STATS_API_HOST", "0.0.0.0")
    port: int = int(os.getenv("STATS_API_PORT", "3000"))
    timeout: float = float(os.getenv("STATS_API_TIMEOUT", "5.0"))


@dataclass
class LedgerSettings:
    """Server-side ledger settings."""
    document: str = os.getenv("LEDGER_DOCUMENT", "user-statistics")
    write_retries: int = int(os.getenv("LEDGER_WRITE_RETRIES", "3"))


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_bot_settings() -> BotSettings:
    """Get bot settings."""
    return BotSettings()


def get_api_settings() -> ApiSettings:
    """Get stats API settings."""
    return ApiSettings()


def get_ledger_settings() -> LedgerSettings:
    """Get ledger settings."""
    return LedgerSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    bot: BotSettings = field(default_factory=get_bot_settings)
    api: ApiSettings = field(default_factory=get_api_settings)
    ledger: LedgerSettings = field(default_factory=get_ledger_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.api.timeout <= 0:
            raise ValueError("STATS_API_TIMEOUT must be positive")

        if self.ledger.write_retries < 1:
            raise ValueError("LEDGER_WRITE_RETRIES must be at least 1")

        if self.bot.menu_page_size < 1:
            raise ValueError("MENU_PAGE_SIZE must be positive")

        if not self.ledger.document:
            raise ValueError("LEDGER_DOCUMENT cannot be empty")

    def validate_bot(self) -> None:
        """Validate the settings only the Telegram bot needs."""
        self.validate()
        if not self.bot.token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")


# Create global settings instance
settings = Settings()
settings.validate()

"""Configuration management for the live-auction system."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml


@dataclass
class AuctionConfig:
    """Auction round configuration."""
    default_duration_seconds: int = 30
    top_bidders_k: int = 3
    bid_increment: int = 10
    countdown_interval_seconds: float = 0.1
    default_item_name: str = "Item"
    currency_symbol: str = "₹"


@dataclass
class PresenceConfig:
    """Viewer presence configuration."""
    track_sessions: bool = True
    session_id_length: int = 13


@dataclass
class ChatConfig:
    """Chat log configuration."""
    history_limit: int = 50


@dataclass
class AnalyticsConfig:
    """Post-event analytics configuration."""
    bucket_minutes: int = 5
    top_bidders_limit: int = 5
    test_user_prefix: str = "TEST-"
    test_user_marker: str = "TEST"
    inventory_path: str = "./src/inventory.csv"
    output_dir: str = "."


@dataclass
class DatabaseConfig:
    """Realtime database configuration."""
    url: str = ""
    auth_token_env: str = "LIVE_AUCTION_DB_TOKEN"
    timeout_seconds: float = 10.0


@dataclass
class DashboardConfig:
    """Dashboard server configuration."""
    host: str = "127.0.0.1"
    port: int = 8080
    push_interval_seconds: float = 1.0


@dataclass
class Config:
    """Main configuration for the live-auction system."""
    auction: AuctionConfig = field(default_factory=AuctionConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)

    def _sections(self) -> dict:
        return {
            "auction": self.auction,
            "presence": self.presence,
            "chat": self.chat,
            "analytics": self.analytics,
            "database": self.database,
            "dashboard": self.dashboard,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        config = cls()
        for section_name, section_obj in config._sections().items():
            if section_name in data:
                for key, value in (data[section_name] or {}).items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)
        return config

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            name: section.__dict__.copy()
            for name, section in self._sections().items()
        }

    @property
    def database_token(self) -> Optional[str]:
        """Auth token for the realtime database, read from the environment."""
        return os.environ.get(self.database.auth_token_env) or None


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for:
            1. LIVE_AUCTION_CONFIG env var
            2. ./config/default.yaml
            3. Uses default config

    Returns:
        Config object
    """
    if config_path is None:
        config_path = os.environ.get("LIVE_AUCTION_CONFIG")

    if config_path is None:
        default_path = Path("./config/default.yaml")
        if default_path.exists():
            config_path = str(default_path)

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f)
                return Config.from_dict(data or {})

    return Config()


def save_config(config: Config, config_path: str) -> None:
    """Save configuration to YAML file."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)

"""
Configuration management for RoomBot.

Handles loading, validation, and access to configuration settings.
Configuration is read once at startup; any unreadable or invalid
value raises ConfigError so the process never starts half-configured.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any, List
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from roombot.core.errors import ConfigError


# Default configuration paths
CONFIG_PATHS = [
    "/etc/roombot/config.yaml",
    os.path.expanduser("~/.config/roombot/config.yaml"),
    "config.yaml",
]

CONFIG_ENV_VAR = "ROOMBOT_CONFIG"

# Secrets that may be supplied through the environment instead of the file
SECRET_ENV_VARS = {
    "ROOMBOT_SLACK_API_TOKEN": ("slack", "api_token"),
    "ROOMBOT_SLACK_APP_TOKEN": ("slack", "app_token"),
    "ROOMBOT_SLACK_SLASH_TOKEN": ("slack", "slash_token"),
}


@dataclass
class CalendarConfig:
    """Calendar provider configuration."""
    calendar_id: str = ""
    timezone: str = ""
    credentials_file: str = ""
    delegate_email: str = ""
    calendar_url: str = ""
    sync_interval_seconds: float = 5
    fetch_timeout_seconds: float = 30

    @property
    def link(self) -> str:
        """Link to the full calendar, shown in booking lists."""
        if self.calendar_url:
            return self.calendar_url
        return (
            "https://calendar.google.com/calendar/embed"
            f"?src={quote(self.calendar_id)}&ctz={quote(self.timezone)}"
        )


@dataclass
class SlackConfig:
    """Slack credentials and channel selection."""
    api_token: str = ""
    app_token: str = ""  # Socket Mode; optional
    slash_token: str = ""
    channels: List[str] = field(default_factory=list)  # empty = all joined channels


@dataclass
class DigestConfig:
    """Daily digest and reminder configuration."""
    enabled: bool = True
    hour: int = 8
    reminder_minutes: int = 10  # 0 disables reminders


@dataclass
class WebConfig:
    """Slash-command webhook server configuration."""
    host: str = "0.0.0.0"
    port: int = 4000
    path: str = "/slash"


def _section(cls, data: Any, name: str):
    """Build a section dataclass, turning bad shapes into ConfigError."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    return cls(**data)


@dataclass
class Config:
    """Main configuration class."""
    version: int = 1
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    digest: DigestConfig = field(default_factory=DigestConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        unknown = sorted(set(data) - {"version", "calendar", "slack", "digest", "web"})
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        config = cls()

        if "version" in data:
            config.version = data["version"]

        config.calendar = _section(CalendarConfig, data.get("calendar"), "calendar")
        config.slack = _section(SlackConfig, data.get("slack"), "slack")
        config.digest = _section(DigestConfig, data.get("digest"), "digest")
        config.web = _section(WebConfig, data.get("web"), "web")

        return config

    def apply_environment(self, environ: Optional[Dict[str, str]] = None) -> None:
        """Override secrets from environment variables."""
        environ = os.environ if environ is None else environ
        for var, (section, key) in SECRET_ENV_VARS.items():
            value = environ.get(var)
            if value:
                setattr(getattr(self, section), key, value)

    @property
    def tzinfo(self) -> ZoneInfo:
        """Display timezone, resolved once."""
        return ZoneInfo(self.calendar.timezone)

    def validate(self) -> None:
        """
        Validate required fields and value ranges.

        Raises:
            ConfigError: On the first invalid value found.
        """
        required = [
            ("calendar.calendar_id", self.calendar.calendar_id),
            ("calendar.timezone", self.calendar.timezone),
            ("calendar.credentials_file", self.calendar.credentials_file),
            ("slack.api_token", self.slack.api_token),
            ("slack.slash_token", self.slack.slash_token),
        ]
        for name, value in required:
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"Missing required setting: {name}")

        try:
            ZoneInfo(self.calendar.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone '{self.calendar.timezone}': {e}")

        numbers = [
            ("calendar.sync_interval_seconds", self.calendar.sync_interval_seconds),
            ("calendar.fetch_timeout_seconds", self.calendar.fetch_timeout_seconds),
        ]
        for name, value in numbers:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number")

        if isinstance(self.digest.hour, bool) or not isinstance(self.digest.hour, int) \
                or not 0 <= self.digest.hour <= 23:
            raise ConfigError("digest.hour must be an integer between 0 and 23")

        if isinstance(self.digest.reminder_minutes, bool) \
                or not isinstance(self.digest.reminder_minutes, int) \
                or self.digest.reminder_minutes < 0:
            raise ConfigError("digest.reminder_minutes must be a non-negative integer")

        if isinstance(self.web.port, bool) or not isinstance(self.web.port, int) \
                or not 0 < self.web.port < 65536:
            raise ConfigError("web.port must be a valid TCP port")

        if not isinstance(self.slack.channels, list):
            raise ConfigError("slack.channels must be a list of channel ids")


def get_config_path(path: Optional[str] = None) -> Optional[str]:
    """Get the path to the active config file."""
    if path is not None:
        return path

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path

    for candidate in CONFIG_PATHS:
        if os.path.exists(candidate):
            return candidate
    return None


def load_config(path: Optional[str] = None) -> Config:
    """
    Load and validate configuration.

    Args:
        path: Path to config file. If None, uses $ROOMBOT_CONFIG or
            searches the default locations.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If no file is found, it cannot be parsed, or
            validation fails.
    """
    config_path = get_config_path(path)
    if config_path is None:
        raise ConfigError(
            f"No configuration file found (searched: {', '.join(CONFIG_PATHS)})"
        )

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read config file {config_path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Unable to parse config file {config_path}: {e}")

    config = Config.from_dict(data or {})
    config.apply_environment()
    config.validate()
    return config

"""Application configuration"""

import getpass
import json
import logging
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from issuesync.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Format of the `since` watermark, e.g. 2020-01-01T00:00:00+0000
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
DEFAULT_SINCE = "1970-01-01T00:00:00+0000"

# Looked up in the working directory when no --config is given
DEFAULT_CONFIG_FILES = ("config-issue-sync.yaml", "config-issue-sync.yml", "config-issue-sync.json")


class Organisation(BaseModel):
    """A GitHub organisation to sync, optionally narrowed to some repositories"""

    name: str
    repos: List[str] = []


class Settings(BaseSettings):
    """Application settings"""

    # GitHub
    github_token: Optional[str] = None
    # Members of this organisation make up the `involves:` part of the search
    github_user_source_org: Optional[str] = None
    repos: List[Organisation] = []

    # Jira
    jira_uri: Optional[str] = None
    jira_project: Optional[str] = None
    # Basic auth is used whenever jira_user is set; OAuth 1.0a otherwise.
    jira_user: Optional[str] = None
    # Password for basic auth, access token secret for OAuth
    jira_secret: Optional[str] = None
    jira_token: Optional[str] = None
    jira_consumer_key: Optional[str] = None
    jira_private_key_path: Optional[str] = None

    # Sync
    since: datetime = datetime.strptime(DEFAULT_SINCE, DATE_FORMAT)
    # Budget for retrying a single API call, in seconds
    timeout_seconds: float = 60.0
    dry_run: bool = False
    # 0 runs once and exits
    period_seconds: int = 0
    max_comment_length: int = 1 << 15

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "ISSUE_SYNC_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Config file values arrive as init kwargs; the environment overrides them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("since", mode="before")
    @classmethod
    def _parse_since(cls, value: Any) -> Any:
        if value is None or value == "":
            return datetime.strptime(DEFAULT_SINCE, DATE_FORMAT)
        if isinstance(value, str):
            try:
                return datetime.strptime(value, DATE_FORMAT)
            except ValueError:
                try:
                    return datetime.fromisoformat(value)
                except ValueError:
                    raise ValueError("Since date must be in ISO-8601 format") from None
        return value

    @field_validator("since")
    @classmethod
    def _since_is_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("jira_uri")
    @classmethod
    def _check_uri(cls, value: Optional[str]) -> Optional[str]:
        if value:
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError("JIRA URI must be valid URI")
        return value

    @model_validator(mode="after")
    def _check_required(self) -> "Settings":
        if not self.github_token:
            raise ValueError("GitHub token required")

        if not self.basic_auth:
            if not self.jira_token:
                raise ValueError("JIRA access token required")
            if not self.jira_secret:
                raise ValueError("JIRA access token secret required")
            if not self.jira_consumer_key:
                raise ValueError("JIRA consumer key required for OAuth handshake")
            if not self.jira_private_key_path:
                raise ValueError("JIRA private key required for OAuth handshake")
            if not os.path.isfile(self.jira_private_key_path):
                raise ValueError("JIRA private key must point to existing PEM file")

        if not self.jira_uri:
            raise ValueError("JIRA URI required")
        if not self.jira_project:
            raise ValueError("JIRA project required")
        return self

    @property
    def basic_auth(self) -> bool:
        return bool(self.jira_user)

    @property
    def is_daemon(self) -> bool:
        return self.period_seconds > 0


def find_config_file(path: Optional[str] = None) -> Optional[Path]:
    """Return the config file to use, or None if there is none"""
    if path:
        p = Path(path)
        if not p.is_file():
            raise ConfigurationError(f"Config file not found: {path}")
        return p
    for name in DEFAULT_CONFIG_FILES:
        p = Path(name)
        if p.is_file():
            return p
    return None


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) if _is_yaml(path) else json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error reading config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map config file keys onto Settings fields; `jira-uri` and `jira_uri` are the same key"""
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_").lower()
        if name not in Settings.model_fields:
            logger.warning(f"Ignoring unknown config key '{key}'")
            continue
        normalized[name] = value
    return normalized


def _validation_message(error: ValidationError) -> str:
    messages = []
    for err in error.errors():
        msg = str(err.get("msg", ""))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages)


def _prompt_password() -> str:
    if not sys.stdin.isatty():
        return ""
    return getpass.getpass("Enter your JIRA password: ")


def load_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
    """Load settings from `path` (JSON or YAML) and the environment.

    `overrides` (command line flags) win over both. Raises ConfigurationError
    if the result is not usable.
    """
    data = _normalize_keys(read_config_file(path)) if path else {}
    try:
        settings = Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(_validation_message(e)) from e

    if overrides:
        settings = settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    if settings.basic_auth and not settings.jira_secret:
        password = _prompt_password()
        if not password:
            raise ConfigurationError("JIRA password required")
        settings.jira_secret = password

    logger.debug("All config variables are valid!")
    return settings


def save_since(path: Path, when: datetime):
    """Rewrite the `since` key of the config file, leaving everything else as it was"""
    data = read_config_file(path)
    data["since"] = when.strftime(DATE_FORMAT)

    directory = path.resolve().parent
    fd, tmp = tempfile.mkstemp(prefix=".issue-sync-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            if _is_yaml(path):
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)
                f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    logger.debug(f"Saved since={data['since']} to {path}")

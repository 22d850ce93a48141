"""
config.py
=========
User preferences stored as JSON under the XDG config directory
(``$XDG_CONFIG_HOME/macpracs/config.json``, falling back to ``~/.config``).

The file keeps camelCase keys; in code it is a typed ``Settings`` tree with
every default declared once, here.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_ENV_VAR = "MACPRACS_CONFIG"
DEFAULT_REGION = "us-east-1"
DEFAULT_GITHUB_HOST = "github.com"
DEFAULT_REFRESH_INTERVAL = 10


class ConfigError(Exception):
    pass


# ── Data models ───────────────────────────────────────────────────────────────


@dataclass
class AwsSettings:
    default_profile: str | None = None
    default_region: str = DEFAULT_REGION


@dataclass
class GitHubSettings:
    hostname: str = DEFAULT_GITHUB_HOST


@dataclass
class Settings:
    aws: AwsSettings = field(default_factory=AwsSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Settings":
        if not isinstance(raw, dict):
            raise ConfigError("Config root must be a JSON object")
        aws = raw.get("aws") or {}
        github = raw.get("github") or {}
        settings = cls(
            aws=AwsSettings(
                default_profile=_optional_str(aws, "defaultProfile"),
                default_region=_optional_str(aws, "defaultRegion") or DEFAULT_REGION,
            ),
            github=GitHubSettings(
                hostname=_optional_str(github, "hostname") or DEFAULT_GITHUB_HOST,
            ),
            refresh_interval=raw.get("refreshInterval", DEFAULT_REFRESH_INTERVAL),
        )
        if (
            isinstance(settings.refresh_interval, bool)
            or not isinstance(settings.refresh_interval, int)
            or settings.refresh_interval < 1
        ):
            raise ConfigError(
                f"refreshInterval must be a positive integer, got {settings.refresh_interval!r}"
            )
        return settings

    def to_dict(self) -> dict[str, Any]:
        return {
            "aws": {
                "defaultProfile": self.aws.default_profile,
                "defaultRegion": self.aws.default_region,
            },
            "github": {
                "hostname": self.github.hostname,
            },
            "refreshInterval": self.refresh_interval,
        }


def _optional_str(section: Any, key: str) -> str | None:
    if not isinstance(section, dict):
        raise ConfigError(f"Expected an object around '{key}'")
    value = section.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


# ── File I/O ──────────────────────────────────────────────────────────────────


def config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "macpracs"


def config_path(override: str | Path | None = None) -> Path:
    if override:
        return Path(override).expanduser()
    if os.environ.get(CONFIG_ENV_VAR):
        return Path(os.environ[CONFIG_ENV_VAR]).expanduser()
    return config_dir() / "config.json"


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings; a missing file means defaults, a broken one raises ConfigError."""
    target = config_path(path)
    if not target.exists():
        return Settings()
    try:
        raw = json.loads(target.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {target}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"{target} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {target}: {e.strerror or e}") from e
    return Settings.from_dict(raw)


def save_settings(settings: Settings, path: str | Path | None = None) -> Path:
    target = config_path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(settings.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write {target}: {e.strerror or e}") from e
    return target


# Dotted CLI keys -> (section attribute or None, field name)
SETTABLE_KEYS: dict[str, tuple[str | None, str]] = {
    "aws.defaultProfile": ("aws", "default_profile"),
    "aws.defaultRegion": ("aws", "default_region"),
    "github.hostname": ("github", "hostname"),
    "refreshInterval": (None, "refresh_interval"),
}


def update_setting(key: str, value: str, path: str | Path | None = None) -> Settings:
    """Set one dotted key (e.g. ``aws.defaultRegion``) and persist the file."""
    if key not in SETTABLE_KEYS:
        raise ConfigError(f"Unknown config key '{key}'. Valid keys: {', '.join(SETTABLE_KEYS)}")
    settings = load_settings(path)
    section_name, attr = SETTABLE_KEYS[key]
    target: Any = getattr(settings, section_name) if section_name else settings

    converted: Any = value
    if attr == "refresh_interval":
        try:
            converted = int(value)
        except ValueError as e:
            raise ConfigError(f"{key} must be an integer, got '{value}'") from e
        if converted < 1:
            raise ConfigError(f"{key} must be a positive integer")
    elif value == "":
        # Empty string restores the built-in default
        converted = getattr(type(target)(), attr)

    setattr(target, attr, converted)
    save_settings(settings, path)
    return settings


def reset_settings(path: str | Path | None = None) -> bool:
    target = config_path(path)
    if target.exists():
        target.unlink()
        return True
    return False

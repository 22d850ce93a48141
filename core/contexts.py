"""
contexts.py
===========
Named contexts (one JSON file per job or project under
``$XDG_CONFIG_HOME/macpracs/contexts/``) and the ``~/.secrets`` files that
hold their passwords. Context files are written by hand; nothing here
creates them.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core.config import config_dir
from core.logger import Logger

DEFAULT_QUEUE_PATTERN = "webhook.{exchange}"


class ContextError(Exception):
    pass


# ── Data models ───────────────────────────────────────────────────────────────


@dataclass
class MqEnvironment:
    amqp_url_template: str
    region: str = ""


@dataclass
class EventTemplate:
    exchange: str
    routing_key: str
    event: dict[str, Any]
    queue_name_pattern: str = DEFAULT_QUEUE_PATTERN

    @property
    def queue_name(self) -> str:
        return self.queue_name_pattern.replace("{exchange}", self.exchange)


@dataclass
class MqSettings:
    environments: dict[str, MqEnvironment] = field(default_factory=dict)
    event_templates: dict[str, EventTemplate] = field(default_factory=dict)


@dataclass
class Context:
    name: str
    description: str = ""
    mq: MqSettings | None = None

    @classmethod
    def from_dict(cls, name: str, raw: Any) -> "Context":
        if not isinstance(raw, dict):
            raise ContextError(f"Context '{name}' must be a JSON object")
        mq = raw.get("mq")
        try:
            return cls(
                name=name,
                description=raw.get("description") or "",
                mq=_mq_settings(mq) if mq else None,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ContextError(f"Context '{name}' has an invalid mq section: {e}") from e


def _mq_settings(raw: dict[str, Any]) -> MqSettings:
    environments = {
        env: MqEnvironment(amqp_url_template=cfg["amqpUrlTemplate"], region=cfg.get("region", ""))
        for env, cfg in (raw.get("environments") or {}).items()
    }
    templates = {
        event_type: EventTemplate(
            exchange=cfg["exchange"],
            routing_key=cfg["routingKey"],
            event=dict(cfg.get("event") or {}),
            queue_name_pattern=cfg.get("queueNamePattern") or DEFAULT_QUEUE_PATTERN,
        )
        for event_type, cfg in (raw.get("eventTemplates") or {}).items()
    }
    return MqSettings(environments, templates)


# ── Context files ─────────────────────────────────────────────────────────────


def contexts_dir() -> Path:
    return config_dir() / "contexts"


def list_contexts() -> list[str]:
    folder = contexts_dir()
    if not folder.is_dir():
        return []
    return sorted(path.stem for path in folder.glob("*.json") if path.is_file())


def load_context(name: str) -> Context:
    """Load ``<name>.json``; the context's name always comes from the filename."""
    path = contexts_dir() / f"{name}.json"
    if not path.is_file():
        raise ContextError(f"Context '{name}' not found at {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ContextError(f"Invalid JSON in context file {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ContextError(f"Cannot read context file {path}: {e}") from e
    return Context.from_dict(name, raw)


def find_mq_contexts(logger: Logger | None = None) -> list[Context]:
    """Every loadable context with an ``mq`` section; broken files are reported and skipped."""
    found = []
    for name in list_contexts():
        try:
            context = load_context(name)
        except ContextError as e:
            if logger is not None:
                logger.detail(f"Warning: {e}", style="yellow")
            continue
        if context.mq is not None:
            found.append(context)
    return found


# ── Secrets ───────────────────────────────────────────────────────────────────


def secrets_dir() -> Path:
    return Path.home() / ".secrets"


def read_secret(relative: str) -> str:
    """Contents of ``~/.secrets/<relative>`` with surrounding whitespace removed."""
    path = secrets_dir() / relative
    if not path.is_file():
        raise ContextError(f"Secret file not found: {path}")
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        raise ContextError(f"Failed to read secret file {path}: {e}") from e

"""
mq.py
=====
Publish test events to RabbitMQ for the webhook consumers of a context.
The exchange (topic, durable) and the consumer queue are declared before
publishing, and the broker must confirm the message.
"""

import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pika
from pika.exceptions import AMQPError

from core.contexts import Context, EventTemplate, MqEnvironment

PASSWORD_PLACEHOLDER = "{password}"


class MqError(Exception):
    pass


@dataclass(frozen=True)
class PublishPlan:
    context: str
    environment: str
    event_type: str
    env: MqEnvironment
    template: EventTemplate

    @property
    def needs_password(self) -> bool:
        return PASSWORD_PLACEHOLDER in self.env.amqp_url_template


def plan_publish(context: Context, environment: str, event_type: str) -> PublishPlan:
    """Validate that the context knows the environment and the event type."""
    if context.mq is None:
        raise MqError(f"Context '{context.name}' does not have MQ configuration")
    env = context.mq.environments.get(environment)
    if env is None:
        available = ", ".join(context.mq.environments) or "none"
        raise MqError(f"Unknown environment '{environment}'. Available: {available}")
    template = context.mq.event_templates.get(event_type)
    if template is None:
        available = ", ".join(context.mq.event_templates) or "none"
        raise MqError(f"Unknown event type '{event_type}'. Available: {available}")
    return PublishPlan(context.name, environment, event_type, env, template)


def amqp_url(plan: PublishPlan, password: str | None = None) -> str:
    if not plan.needs_password:
        return plan.env.amqp_url_template
    if not password:
        raise MqError("Password required for this environment (use --password or --secret-file)")
    return plan.env.amqp_url_template.replace(PASSWORD_PLACEHOLDER, password)


def load_custom_payload(path: str | Path) -> dict[str, Any]:
    target = Path(path).expanduser()
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise MqError(f"Custom payload file not found: {target}") from e
    except json.JSONDecodeError as e:
        raise MqError(f"Invalid JSON in payload file: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise MqError(f"Cannot read payload file {target}: {e}") from e
    if not isinstance(payload, dict):
        raise MqError("Custom payload must be a JSON object")
    return payload


def build_event(
    template: EventTemplate,
    custom_payload: str | Path | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """A fresh copy of the template event (or the custom payload) stamped with the current UTC time."""
    event = load_custom_payload(custom_payload) if custom_payload else copy.deepcopy(template.event)
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    event["eventTimestamp"] = moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return event


def publish_event(url: str, template: EventTemplate, event: dict[str, Any]) -> None:
    connection = None
    try:
        connection = pika.BlockingConnection(pika.URLParameters(url))
        channel = connection.channel()
        channel.confirm_delivery()
        channel.exchange_declare(exchange=template.exchange, exchange_type="topic", durable=True)
        channel.queue_declare(queue=template.queue_name, durable=True)
        channel.queue_bind(queue=template.queue_name, exchange=template.exchange, routing_key="#")
        channel.basic_publish(
            exchange=template.exchange,
            routing_key=template.routing_key,
            body=json.dumps(event).encode("utf-8"),
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=pika.DeliveryMode.Persistent,
            ),
        )
    except (AMQPError, ValueError) as e:
        raise MqError(f"Failed to publish event: {e!r}") from e
    finally:
        if connection is not None and connection.is_open:
            connection.close()

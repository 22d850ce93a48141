"""
mq.py
=====
RabbitMQ test events for the contexts defined under
``$XDG_CONFIG_HOME/macpracs/contexts/``.

Usage:
    macpracs mq publish --context acme --environment staging --event-type order.created --secret-file acme/amqp
    macpracs mq list-contexts
"""

import json

import typer
from rich.markup import escape

from core.contexts import ContextError, find_mq_contexts, load_context, read_secret
from core.mq import MqError, amqp_url, build_event, plan_publish, publish_event
from core.options import OutputFormat
from core.runtime import app_state, fail

app = typer.Typer(no_args_is_help=True)


@app.command("publish")
def publish(
    ctx: typer.Context,
    context: str = typer.Option(..., "--context", "-c", help="Context name"),
    environment: str = typer.Option(..., "--environment", "-e", help="Target environment"),
    event_type: str = typer.Option(..., "--event-type", "-t", help="Event type"),
    password: str | None = typer.Option(
        None, "--password", "-p", help="AMQP password (or use --secret-file)"
    ),
    secret_file: str | None = typer.Option(
        None, "--secret-file", "-s", help="Path to secret file (relative to ~/.secrets/)"
    ),
    custom_payload: str | None = typer.Option(
        None, "--custom-payload", help="Path to custom JSON payload file"
    ),
) -> None:
    """Publish a test event to RabbitMQ."""
    state = app_state(ctx)
    try:
        plan = plan_publish(load_context(context), environment, event_type)
        if plan.needs_password and not password and secret_file:
            password = read_secret(secret_file)
        url = amqp_url(plan, password)
        event = build_event(plan.template, custom_payload)

        region = f" ({plan.env.region})" if plan.env.region else ""
        state.logger.info(f"Publishing {event_type} event to {environment}{region}...")
        state.logger.info(f"Exchange: {plan.template.exchange}")
        state.logger.info(f"Routing Key: {plan.template.routing_key}")
        state.logger.info(f"Event: {json.dumps(event, indent=2)}")
        publish_event(url, plan.template, event)
    except (ContextError, MqError) as e:
        fail(state, "publish event", e)

    state.logger.log(
        f"[green]✓[/green] Successfully published {escape(event_type)} event to {escape(environment)}"
    )


@app.command("list-contexts")
def list_contexts(
    ctx: typer.Context,
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="table | json"),
) -> None:
    """List contexts that have an MQ configuration."""
    state = app_state(ctx)
    contexts = find_mq_contexts(state.logger)

    if output == OutputFormat.JSON:
        state.logger.output(
            [
                {
                    "name": c.name,
                    "description": c.description,
                    "environments": list(c.mq.environments) if c.mq else [],
                    "eventTypes": list(c.mq.event_templates) if c.mq else [],
                }
                for c in contexts
            ]
        )
    elif not contexts:
        state.logger.log("[yellow]No MQ contexts found[/yellow]")
    else:
        for c in contexts:
            state.logger.output(f"{c.name} - {c.description}" if c.description else c.name)
"""CLI entry point for the DataCap allocation pipeline."""

from __future__ import annotations

import json

import click

from .core.config import Settings, load_settings


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


@click.group()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.pass_context
def main(ctx: click.Context, config: str | None) -> None:
    """DataCap allocation pipeline."""
    from .observability.logger import setup_logging

    settings = load_settings(config_path=config)
    setup_logging(settings.observability.log_level, settings.observability.log_format)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command()
@click.option("--events", "events_path", default=None, help="JSONL event file (default from config)")
@click.option("--application", "application_id", default=None, help="Application id to rebuild")
@click.pass_context
def replay(ctx: click.Context, events_path: str | None, application_id: str | None) -> None:
    """Rebuild application state from the event log.

    With --application, prints that application's state. Without it,
    prints one line per application with its current phase.
    """
    import asyncio

    from .infrastructure.event_store import JsonFileEventStore
    from .infrastructure.repository import ApplicationRepository

    settings = _settings(ctx)
    store = JsonFileEventStore(events_path or settings.event_store.path)
    repository = ApplicationRepository.from_settings(settings, event_store=store)

    async def _run() -> None:
        if application_id:
            aggregate = await repository.get_by_id(application_id)
            if aggregate is None:
                raise click.ClickException(f"No events for application {application_id}")
            click.echo(json.dumps(aggregate.snapshot(), indent=2, default=str))
            return

        ids: list[str] = []
        async for event in store.replay():
            if event.aggregate_id not in ids:
                ids.append(event.aggregate_id)
        for guid in ids:
            aggregate = await repository.get_by_id(guid)
            status = aggregate.application_status.value if aggregate.application_status else "-"
            click.echo(f"{guid}  v{aggregate.version}  {status}")

    asyncio.run(_run())


@main.command("resolve-path")
@click.argument("allocator_type")
@click.pass_context
def resolve_path(ctx: click.Context, allocator_type: str) -> None:
    """Show the pathway an allocator type is routed to."""
    from .core.errors import UnknownAllocatorTypeError
    from .resolvers.allocation_path import AllocationPathResolver

    resolver = AllocationPathResolver.from_config(_settings(ctx).registry)
    try:
        path = resolver.resolve(allocator_type.upper())
    except UnknownAllocatorTypeError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        json.dumps(
            {
                "pathway": path.pathway.value,
                "address": path.address,
                "audit_type": path.audit_type.value,
                "is_meta_allocator": path.is_meta_allocator,
            },
            indent=2,
        )
    )


@main.command("audit-outcome")
@click.argument("previous")
@click.argument("current")
def audit_outcome(previous: str, current: str) -> None:
    """Classify the change between two audit DataCap amounts."""
    from .resolvers.audit_outcome import AuditOutcomeResolver

    click.echo(AuditOutcomeResolver().resolve(previous, current).value)


if __name__ == "__main__":
    main()

"""CLI entry point for inspecting a JSONL event log."""

from __future__ import annotations

import click

from .core.config import load_settings
from .core.errors import ConfigError
from .infrastructure.event_store import JsonFileEventStore
from .pipeline import configure_observability


def _open_store(path: str) -> JsonFileEventStore:
    return JsonFileEventStore(path)


def _format_event(event) -> str:
    cause = event.causation_id or "-"
    return (
        f"{event.timestamp}  {event.event_type:<22} "
        f"aggregate={event.aggregate_id}  id={event.event_id}  caused_by={cause}"
    )


@click.group()
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="TOML settings file")
@click.option("--log-level", default=None, help="Override observability.log_level")
def main(config_path: str | None, log_level: str | None) -> None:
    """Workspace event pipeline tools."""
    try:
        settings = load_settings(config_path=config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    if log_level:
        settings.observability.log_level = log_level
    configure_observability(settings)


@main.command()
@click.option("--store", "store_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSONL event log")
@click.option("--aggregate", default=None, help="Only events for this aggregate id")
@click.option("--type", "event_type", default=None, help="Only events of this type")
@click.option("--correlation", default=None, help="Only events in this correlation group")
def history(
    store_path: str,
    aggregate: str | None,
    event_type: str | None,
    correlation: str | None,
) -> None:
    """List stored events in append order."""
    import asyncio

    from .application.queries import QueryEventsRequest, QueryEventsUseCase

    store = _open_store(store_path)

    async def _run():
        if aggregate or event_type or correlation:
            response = await QueryEventsUseCase(store).execute(
                QueryEventsRequest(
                    aggregate_id=aggregate,
                    event_type=event_type,
                    correlation_id=correlation,
                )
            )
            return response.events
        return await store.read_all()

    events = asyncio.run(_run())
    for event in events:
        click.echo(_format_event(event))
    click.echo(f"{len(events)} event(s)")


@main.command()
@click.argument("event_id")
@click.option("--store", "store_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSONL event log")
def chain(event_id: str, store_path: str) -> None:
    """Show the causal chain leading to EVENT_ID."""
    import asyncio

    from .domain.causality import CausalityTracker

    store = _open_store(store_path)

    async def _run():
        events = await store.read_all()
        target = next((e for e in events if e.event_id == event_id), None)
        if target is None:
            return None, None
        tracker = CausalityTracker()
        await tracker.rebuild(store, target.correlation_id)
        return tracker, {e.event_id: e for e in events}

    tracker, by_id = asyncio.run(_run())
    if tracker is None:
        raise click.ClickException(f"Unknown event: {event_id}")

    for depth, eid in enumerate(tracker.get_full_chain(event_id)):
        event = by_id.get(eid)
        label = event.event_type if event is not None else "<not stored>"
        click.echo(f"{'  ' * depth}{label}  {eid}")
    click.echo(f"root cause: {tracker.get_root_cause(event_id)}")


@main.command()
@click.option("--store", "store_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSONL event log")
def stats(store_path: str) -> None:
    """Causality statistics over the whole log."""
    import asyncio

    from .domain.causality import CausalityTracker

    store = _open_store(store_path)
    tracker = CausalityTracker()

    async def _run() -> int:
        events = await store.read_all()
        for event in events:
            tracker.record(event)
        return len(events)

    total = asyncio.run(_run())
    s = tracker.get_statistics()
    click.echo(f"events stored:       {total}")
    click.echo(f"events tracked:      {s.total_events}")
    click.echo(f"correlation groups:  {s.total_correlation_groups}")
    click.echo(f"avg chain length:    {s.average_chain_length:.2f}")

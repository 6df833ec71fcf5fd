"""Command line interface for dashsync."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

import click
import httpx
from rich.console import Console
from rich.table import Table

from . import __version__
from .auth.console import ConsolePopupLauncher
from .auth.exchange import ExchangeServiceClient
from .auth.manager import OAuthManager
from .auth.models import OAuthProvider, OAuthService
from .auth.settings import OAuthSettings
from .auth.token_store import TokenStore
from .config import Config, ConfigModel, load_config
from .exceptions import SyncError
from .logging_config import configure_logging
from .storage import JsonFileKeyValueStore, KeyringKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .sync.list_mapper import ListMapper
from .sync.manager import SyncManager
from .sync.models import CalendarEvent, Entity, SyncResult, Task
from .sync.providers import (
    CollectionSyncProvider,
    GoogleCalendarSyncProvider,
    GoogleTasksSyncProvider,
    NotionSyncProvider,
    OutlookCalendarSyncProvider,
    SyncProvider,
)
from .sync.store import JsonEntityStore
from .sync_config import SyncConfigManager


console = Console()
logger = logging.getLogger(__name__)

T = TypeVar("T")

PROVIDER_KEYS = ["google-tasks", "google-calendar", "outlook-calendar", "notion"]

DEFAULT_SERVICES = {
    OAuthProvider.GOOGLE: OAuthService.GOOGLE_CALENDAR,
    OAuthProvider.MICROSOFT: OAuthService.MICROSOFT_CALENDAR,
    OAuthProvider.NOTION: OAuthService.NOTION_API,
}


@dataclass
class Runtime:
    """Objects wired together for one command invocation."""

    config: ConfigModel
    oauth_manager: OAuthManager
    sync_manager: SyncManager
    exchange_client: ExchangeServiceClient


def build_token_backend(config: ConfigModel) -> KeyValueStore:
    if config.token_backend == "keyring":
        return KeyringKeyValueStore()
    if config.token_backend == "memory":
        return MemoryKeyValueStore()
    return JsonFileKeyValueStore(config.get_tokens_path())


def build_runtime(config: ConfigModel, http_client: httpx.AsyncClient,
                  launcher: Optional[ConsolePopupLauncher] = None) -> Runtime:
    """Wire stores, the OAuth manager and every sync provider."""
    config.ensure_data_dir()

    token_store = TokenStore(build_token_backend(config))
    exchange_client = ExchangeServiceClient(
        config.exchange_service_url,
        http_client=http_client,
        timeout=config.exchange_timeout_seconds,
    )
    manager_config = OAuthSettings().to_manager_config(config.exchange_service_url, config.app_origin)
    oauth_manager = OAuthManager.from_config(
        manager_config,
        token_store,
        exchange_client=exchange_client,
        launcher=launcher,
        http_client=http_client,
    )

    sync_config = SyncConfigManager(Path(config.data_dir))
    list_mapper = ListMapper(JsonFileKeyValueStore(config.get_state_path()))

    tasks_settings = sync_config.get_provider_settings("google-tasks")
    calendar_settings = sync_config.get_provider_settings("google-calendar")

    providers = [
        GoogleTasksSyncProvider(
            oauth_manager,
            list_mapper,
            entity_store=JsonEntityStore(config.get_tasks_path(), Task.from_dict),
            default_collection=tasks_settings.default_collection or config.default_task_list,
            enabled=tasks_settings.enabled,
            http_client=http_client,
        ),
        GoogleCalendarSyncProvider(
            oauth_manager,
            list_mapper,
            entity_store=JsonEntityStore(config.get_events_path(), CalendarEvent.from_dict),
            default_collection=calendar_settings.default_collection,
            window_months=config.calendar_window_months,
            enabled=calendar_settings.enabled,
            http_client=http_client,
        ),
        OutlookCalendarSyncProvider(oauth_manager, enabled=sync_config.is_enabled("outlook-calendar")),
        NotionSyncProvider(oauth_manager, enabled=sync_config.is_enabled("notion")),
    ]

    return Runtime(
        config=config,
        oauth_manager=oauth_manager,
        sync_manager=SyncManager(providers, config_manager=sync_config),
        exchange_client=exchange_client,
    )


def run_with_runtime(ctx: click.Context, action: Callable[[Runtime], Awaitable[T]],
                     launcher: Optional[ConsolePopupLauncher] = None) -> T:
    """Build a runtime around a shared HTTP client and run ``action`` in it."""
    config: ConfigModel = ctx.obj["config"]

    async def runner() -> T:
        async with httpx.AsyncClient(timeout=config.exchange_timeout_seconds) as http_client:
            runtime = build_runtime(config, http_client, launcher=launcher)
            return await action(runtime)

    try:
        return asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(130)
    except SyncError as e:
        console.print(f"[red]{e.user_message}[/red]")
        if ctx.obj.get("debug"):
            console.print(f"[dim]{e}[/dim]")
        sys.exit(1)


def get_sync_provider(runtime: Runtime, key: str) -> SyncProvider:
    provider = runtime.sync_manager.get_provider(key)
    if provider is None:
        raise click.BadParameter(f"Unknown provider: {key}")
    return provider


def _format_expiry(expires_at) -> str:
    return expires_at.strftime("%Y-%m-%d %H:%M") if expires_at else "never"


def print_result(result: SyncResult) -> None:
    status = "[green]ok[/green]" if result.success else "[red]failed[/red]"
    console.print(
        f"{result.provider}: {status} "
        f"(pushed {result.pushed_count}, pulled {result.pulled_count}, skipped {result.skipped_count})"
    )
    for warning in result.warnings:
        console.print(f"  [yellow]! {warning}[/yellow]")
    for error in result.errors:
        console.print(f"  [red]x {error}[/red]")
    if result.reconnect_required:
        console.print("  [yellow]Reconnect with: dashsync connect <provider>[/yellow]")


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False), help="Directory holding config and sync state")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="dashsync")
@click.pass_context
def main(ctx, data_dir, debug):
    """Dashsync - connect accounts and sync tasks and events."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if data_dir:
        config = load_config(Path(data_dir).expanduser() / "config.yaml")
        config.data_dir = str(Path(data_dir).expanduser())
    else:
        config = Config.load()
    ctx.obj["config"] = config

    configure_logging("DEBUG" if debug else config.log_level)


@main.command()
@click.argument("provider", type=click.Choice([p.value for p in OAuthProvider]))
@click.option("--service", type=click.Choice([s.value for s in OAuthService]),
              help="Service to authorize; defaults to the provider's calendar or API")
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening a browser")
@click.pass_context
def connect(ctx, provider, service, no_browser):
    """Connect an account through the OAuth authorization flow."""
    provider_enum = OAuthProvider(provider)
    service_enum = OAuthService(service) if service else DEFAULT_SERVICES[provider_enum]
    config: ConfigModel = ctx.obj["config"]
    launcher = ConsolePopupLauncher(config.app_origin, console=console, open_browser=not no_browser)

    async def action(runtime: Runtime):
        return await runtime.oauth_manager.connect(provider_enum, service_enum)

    connection = run_with_runtime(ctx, action, launcher=launcher)
    who = connection.user.email if connection.user and connection.user.email else "unknown account"
    console.print(f"[green]Connected {provider_enum.value} as {who}[/green]")


@main.command()
@click.argument("provider", type=click.Choice([p.value for p in OAuthProvider]))
@click.pass_context
def disconnect(ctx, provider):
    """Forget the stored connection for a provider."""
    provider_enum = OAuthProvider(provider)

    async def action(runtime: Runtime):
        runtime.oauth_manager.disconnect(provider_enum)

    run_with_runtime(ctx, action)
    console.print(f"Disconnected {provider_enum.value}")


@main.command()
@click.pass_context
def status(ctx):
    """Show connections and sync providers."""

    async def action(runtime: Runtime):
        connections = Table(title="Connections", show_header=True, header_style="bold magenta")
        connections.add_column("Provider", style="cyan")
        connections.add_column("Account")
        connections.add_column("Connected")
        connections.add_column("Expires")
        connections.add_column("Last sync")
        configured = set(runtime.oauth_manager.configured_providers())
        for provider in OAuthProvider:
            connection = runtime.oauth_manager.get_connection(provider)
            if connection is None:
                state = "not connected" if provider in configured else "[dim]not configured[/dim]"
                connections.add_row(provider.value, state, "", "", "")
                continue
            connections.add_row(
                provider.value,
                (connection.user.email if connection.user else None) or "unknown",
                connection.connected_at.strftime("%Y-%m-%d %H:%M"),
                _format_expiry(connection.tokens.expires_at),
                connection.last_sync_at.strftime("%Y-%m-%d %H:%M") if connection.last_sync_at else "never",
            )
        console.print(connections)

        providers = Table(title="Sync providers", show_header=True, header_style="bold magenta")
        providers.add_column("Key", style="cyan")
        providers.add_column("Name")
        providers.add_column("Enabled", justify="center")
        for provider in runtime.sync_manager.get_all_providers():
            providers.add_row(provider.key, provider.name, "yes" if provider.enabled else "no")
        console.print(providers)

    run_with_runtime(ctx, action)


def _set_enabled(ctx: click.Context, key: str, enabled: bool) -> None:
    async def action(runtime: Runtime):
        runtime.sync_manager.set_enabled(key, enabled)

    run_with_runtime(ctx, action)
    console.print(f"{key} {'enabled' if enabled else 'disabled'}")


@main.command()
@click.argument("key", type=click.Choice(PROVIDER_KEYS))
@click.pass_context
def enable(ctx, key):
    """Include a provider in sync runs."""
    _set_enabled(ctx, key, True)


@main.command()
@click.argument("key", type=click.Choice(PROVIDER_KEYS))
@click.pass_context
def disable(ctx, key):
    """Exclude a provider from sync runs."""
    _set_enabled(ctx, key, False)


@main.command()
@click.argument("key", type=click.Choice(PROVIDER_KEYS))
@click.option("--collection", "-c", help="Task list or calendar name")
@click.pass_context
def pull(ctx, key, collection):
    """Pull remote items into the local store."""

    async def action(runtime: Runtime):
        provider = get_sync_provider(runtime, key)
        entities = await provider.pull(collection)
        if provider.entity_store is not None:
            provider.entity_store.upsert(entities)
        return len(entities)

    count = run_with_runtime(ctx, action)
    console.print(f"Pulled {count} items from {key}")


@main.command()
@click.argument("key", type=click.Choice(PROVIDER_KEYS))
@click.option("--collection", "-c", help="Only push items of this task list or calendar")
@click.pass_context
def push(ctx, key, collection):
    """Push local items to the provider."""

    async def action(runtime: Runtime):
        provider = get_sync_provider(runtime, key)
        store = provider.entity_store
        if not isinstance(provider, CollectionSyncProvider) or store is None:
            return len(await provider.push([], collection))

        groups: Dict[Optional[str], List[Entity]] = {}
        for entity in store.load_all():
            name = provider.collection_of(entity)
            if collection is None or name == collection:
                groups.setdefault(name, []).append(entity)

        created_count = 0
        for name, entities in groups.items():
            created = await provider.push(entities, name)
            for old_id, new_id in created.items():
                store.rename(old_id, new_id)
            created_count += len(created)
        return created_count

    created = run_with_runtime(ctx, action)
    console.print(f"Pushed to {key} ({created} created)")


@main.command()
@click.argument("key", type=click.Choice(PROVIDER_KEYS), required=False)
@click.pass_context
def sync(ctx, key):
    """Sync one provider, or every enabled provider."""

    async def action(runtime: Runtime):
        if key:
            result = await runtime.sync_manager.sync_provider(key)
            return [result]
        summary = await runtime.sync_manager.sync_all()
        return list(summary.results.values())

    results = run_with_runtime(ctx, action)
    if not results:
        console.print("[yellow]No sync providers enabled. Use 'dashsync enable <provider>'.[/yellow]")
        return

    for result in results:
        print_result(result)

    if not all(result.success for result in results):
        sys.exit(1)


if __name__ == "__main__":
    main()

"""shared-memory CLI entrypoint.

Command-line interface for the shared agent memory store. Memory commands
go through the daemon, starting it on demand.
"""

from __future__ import annotations

import functools
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

import click

from shared_memory.adapters.daemon.client import (
    DaemonError,
    DaemonUnreachable,
    RemoteCallError,
)
from shared_memory.core.errors import MemoryCliError
from shared_memory.domain.exceptions import MemoryServiceError
from shared_memory.version import __version__

if TYPE_CHECKING:
    from shared_memory.adapters.daemon.client import MemoryClient
    from shared_memory.domain.config import MemoryConfig
    from shared_memory.ports.daemon import DaemonManager


def handle_cli_errors(command_name: str):
    """Decorator converting daemon and service errors into MemoryCliError.

    Args:
        command_name: Name of the command for error messages.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except MemoryCliError:
                raise
            except MemoryServiceError as e:
                raise MemoryCliError(e.message, hint=e.hint) from e
            except RemoteCallError as e:
                raise MemoryCliError(e.message) from e
            except DaemonUnreachable as e:
                raise MemoryCliError(
                    str(e),
                    hint="Check the daemon log, or run 'shared-memory daemon run' "
                    "to see startup errors",
                ) from e
            except DaemonError as e:
                raise MemoryCliError(
                    str(e), hint="Try 'shared-memory daemon status'"
                ) from e
            except RuntimeError as e:
                raise MemoryCliError(
                    str(e), hint="Run with --verbose for more details"
                ) from e
            except Exception as e:
                ctx = click.get_current_context()
                if ctx.obj.get("verbose", False):
                    import traceback

                    traceback.print_exc()
                raise MemoryCliError(
                    f"Unexpected error in {command_name}: {e}",
                    hint="Run with --verbose for more details",
                ) from e

        return wrapper

    return decorator


def _config(ctx: click.Context) -> MemoryConfig:
    return ctx.obj["config"]


def _client(ctx: click.Context) -> MemoryClient:
    from shared_memory.adapters.daemon.client import MemoryClient

    return MemoryClient(config=_config(ctx))


def _lifecycle(ctx: click.Context) -> DaemonManager:
    from shared_memory.adapters.daemon.lifecycle import DaemonLifecycle

    return DaemonLifecycle(_config(ctx).daemon)


def _emit(ctx: click.Context, data: Any, render) -> None:
    if ctx.obj.get("json"):
        click.echo(json.dumps(data, indent=2))
    else:
        render(data)


def _render_results(results: list[dict[str, Any]], empty: str) -> None:
    if not results:
        click.echo(empty)
        return
    for i, r in enumerate(results, start=1):
        tags = ", ".join(r.get("tags") or []) or "none"
        click.echo(
            f"[{i}] (score: {r['score']:.3f}) [{r['agent']}/{r['project']}] {r['id']}"
        )
        click.echo(r["text"])
        click.echo(f"Tags: {tags} | Created: {r['created_at']}")
        click.echo()


@click.group()
@click.version_option(version=__version__, prog_name="shared-memory")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON results")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, as_json: bool) -> None:
    """Shared semantic memory for AI agents."""
    from shared_memory.adapters.config.toml_config_provider import TomlConfigProvider

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = as_json
    ctx.obj["config"] = TomlConfigProvider().load()


@cli.command()
@click.argument("text")
@click.option("--agent", help="Agent identifier (e.g., claude-code)")
@click.option("--project", help="Project the memory belongs to")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.pass_context
@handle_cli_errors("store")
def store(
    ctx: click.Context, text: str, agent: str | None, project: str | None, tags: tuple
) -> None:
    """Store a memory."""
    memory_id = _client(ctx).store(text, agent=agent, project=project, tags=list(tags))
    _emit(
        ctx, {"id": memory_id}, lambda d: click.echo(f"Memory stored with ID: {d['id']}")
    )


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=10, show_default=True)
@click.option("--agent", help="Only memories from this agent")
@click.option("--project", help="Only memories from this project")
@click.option("--tag", "tags", multiple=True, help="Required tag (repeatable, all must match)")
@click.pass_context
@handle_cli_errors("search")
def search(
    ctx: click.Context,
    query: str,
    limit: int,
    agent: str | None,
    project: str | None,
    tags: tuple,
) -> None:
    """Search memories by semantic similarity."""
    results = _client(ctx).search(
        query, limit=limit, agent=agent, project=project, tags=list(tags) or None
    )
    _emit(ctx, results, lambda r: _render_results(r, "No memories found."))


@cli.command()
@click.option("--limit", "-n", type=int, default=10, show_default=True)
@click.option("--days", type=int, default=30, show_default=True)
@click.option("--project", help="Only memories from this project")
@click.pass_context
@handle_cli_errors("recent")
def recent(ctx: click.Context, limit: int, days: int, project: str | None) -> None:
    """List recent memories, newest first."""
    results = _client(ctx).list_recent(limit=limit, days=days, project=project)
    _emit(ctx, results, lambda r: _render_results(r, "No recent memories."))


@cli.command()
@click.argument("memory_id")
@click.argument("text")
@click.option("--project", help="Move the memory to this project")
@click.pass_context
@handle_cli_errors("update")
def update(ctx: click.Context, memory_id: str, text: str, project: str | None) -> None:
    """Replace the text of a memory."""
    _client(ctx).update(memory_id, text, project=project)
    _emit(ctx, {"success": True}, lambda _: click.echo(f"Memory {memory_id} updated."))


@cli.command()
@click.argument("memory_id")
@click.pass_context
@handle_cli_errors("delete")
def delete(ctx: click.Context, memory_id: str) -> None:
    """Delete a memory by ID."""
    _client(ctx).delete(memory_id)
    _emit(ctx, {"success": True}, lambda _: click.echo(f"Memory {memory_id} deleted."))


@cli.command()
@click.pass_context
@handle_cli_errors("ping")
def ping(ctx: click.Context) -> None:
    """Check the daemon, starting it if needed."""
    result = _client(ctx).ping()

    def render(data: dict[str, Any]) -> None:
        state = "ready" if data.get("modelReady") else "loading"
        click.echo(f"✓ Daemon is up (PID {data.get('pid')}), model {state}")

    _emit(ctx, result, render)


@cli.group()
def config() -> None:
    """Show or create the configuration file."""
    pass


@config.command(name="show")
@click.pass_context
@handle_cli_errors("config show")
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration as seen by the daemon."""
    result = _client(ctx).get_config()

    def render(data: dict[str, Any]) -> None:
        for key, value in data.items():
            click.echo(f"{key}: {value}")

    _emit(ctx, result, render)


@config.command(name="path")
def config_path() -> None:
    """Print the global config file path."""
    from shared_memory.shared.config_io import get_global_config_path

    click.echo(get_global_config_path())


@config.command(name="init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
@handle_cli_errors("config init")
def config_init(ctx: click.Context, force: bool) -> None:
    """Write the current configuration to the global config file."""
    from shared_memory.shared.config_io import get_global_config_path, save_config

    path = get_global_config_path()
    if path.exists() and not force:
        raise MemoryCliError(
            f"Config file already exists: {path}", hint="Use --force to overwrite it"
        )
    save_config(_config(ctx), path)
    click.echo(f"✓ Wrote {path}")


# Daemon management commands
@cli.group()
def daemon() -> None:
    """Manage the memory daemon.

    The daemon keeps the embedding model and backend connections warm. It
    starts automatically when needed and shuts down after idle timeout.
    """
    pass


@daemon.command()
@click.pass_context
@handle_cli_errors("daemon start")
def start(ctx: click.Context) -> None:
    """Start the daemon in the background."""
    lifecycle = _lifecycle(ctx)
    if lifecycle.is_running():
        click.echo("✓ Daemon is already running")
        return
    lifecycle.start()
    click.echo("✓ Daemon started successfully")


@daemon.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the daemon in the foreground (blocks)."""
    _lifecycle(ctx).run_foreground()


@daemon.command()
@click.pass_context
@handle_cli_errors("daemon stop")
def stop(ctx: click.Context) -> None:
    """Stop the daemon."""
    lifecycle = _lifecycle(ctx)
    if not lifecycle.is_running():
        click.echo("Daemon is not running")
        return

    click.echo("Stopping daemon...")
    if lifecycle.stop():
        click.echo("✓ Daemon stopped successfully")
    else:
        raise MemoryCliError(
            "Failed to stop daemon",
            hint="The process may have already exited. Check 'shared-memory daemon status'",
        )


@daemon.command(name="status")
@click.pass_context
@handle_cli_errors("daemon status")
def daemon_status(ctx: click.Context) -> None:
    """Show daemon status."""
    status = _lifecycle(ctx).status()

    if ctx.obj.get("json"):
        click.echo(json.dumps(status, indent=2))
        return

    if status["running"]:
        click.echo(f"✓ {status['message']}")
    else:
        click.echo("✗ Daemon is not running")

    click.echo("\nDetails:")
    click.echo(f"  Status: {status['status']}")
    click.echo(f"  Socket: {status['socket']}")
    click.echo(f"  PID file: {status['pid_file']}")
    click.echo(f"  Log file: {status['log_file']}")

    if status["status"] != "running":
        click.echo(f"\n{status['message']}")


def main() -> int:
    """Main entrypoint for the CLI."""
    try:
        cli(obj={})
        return 0
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

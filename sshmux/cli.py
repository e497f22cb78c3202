"""
sshmux/cli.py

Command-line interface for the session manager.

Usage:
    sshmux --hosts hosts.yaml hosts
    sshmux --hosts hosts.yaml exec web-1 "docker ps"
    sshmux -u deploy -k ~/.ssh/id_ed25519 stream 10.0.0.5 "journalctl -f"
    sshmux --hosts hosts.yaml check web-1
"""

import json
import logging
import sys
from collections import namedtuple
from typing import Optional

import click

from .config import get_settings
from .connection.io import load_hosts
from .connection.profile import ConnectionConfig
from .session.errors import ConnectError, CommandFailedError, SessionError
from .session.manager import get_manager

# Exit status for connection failures, same as the ssh client
EXIT_CONNECT_FAILED = 255

HostRow = namedtuple("HostRow", ["name", "host", "port", "username"])


def format_table(items: list, columns: list[tuple[str, str, int]]) -> str:
    """
    Format items as a simple table.

    Args:
        items: List of objects with attributes
        columns: List of (attr_name, header, width) tuples
    """
    if not items:
        return "No results."

    header = ""
    separator = ""
    for attr, name, width in columns:
        header += f"{name:<{width}} "
        separator += "-" * width + " "

    lines = [header.rstrip(), separator.rstrip()]

    for item in items:
        row = ""
        for attr, name, width in columns:
            val = getattr(item, attr, "")
            if val is None:
                val = ""
            val_str = str(val)[:width - 1]  # Truncate if needed
            row += f"{val_str:<{width}} "
        lines.append(row.rstrip())

    return "\n".join(lines)


def configure_logging(level: Optional[str]) -> None:
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_target(ctx, target: str) -> ConnectionConfig:
    """Look target up in the inventory, or build a config from CLI options."""
    opts = ctx.obj
    if opts.get("hosts"):
        try:
            inventory = load_hosts(opts["hosts"])
        except (OSError, ValueError) as e:
            click.echo(f"Cannot load inventory: {e}", err=True)
            sys.exit(2)
        if target in inventory:
            return inventory[target]

    try:
        return ConnectionConfig(
            host=target,
            username=opts.get("user"),
            port=opts.get("port") or 22,
            private_key_path=opts.get("key"),
            passphrase=opts.get("passphrase"),
        )
    except ValueError as e:
        click.echo(f"Cannot connect to '{target}': {e}", err=True)
        sys.exit(2)


def connect_or_exit(config: ConnectionConfig):
    manager = get_manager()
    try:
        manager.connect(config)
    except ConnectError as e:
        click.echo(f"Connection failed: {e}", err=True)
        sys.exit(EXIT_CONNECT_FAILED)
    return manager


@click.group()
@click.option("--hosts", "hosts_file", type=click.Path(dir_okay=False), default=None,
              help="YAML host inventory")
@click.option("-u", "--user", default=None, help="Remote username")
@click.option("-k", "--key", default=None, help="Private key file")
@click.option("-p", "--port", type=int, default=None, help="Remote port (default 22)")
@click.option("--passphrase", default=None, help="Private key passphrase")
@click.option("--log-level", default=None, help="Logging level (default from settings)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx, hosts_file, user, key, port, passphrase, log_level, output_json):
    """Run commands on remote hosts over a shared SSH session."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        hosts=hosts_file,
        user=user,
        key=key,
        port=port,
        passphrase=passphrase,
        json=output_json,
    )
    configure_logging(log_level)


@cli.command("hosts")
@click.pass_context
def list_hosts(ctx):
    """List hosts in the inventory."""
    if not ctx.obj.get("hosts"):
        click.echo("No inventory given. Use --hosts FILE.", err=True)
        sys.exit(2)

    try:
        inventory = load_hosts(ctx.obj["hosts"])
    except (OSError, ValueError) as e:
        click.echo(f"Cannot load inventory: {e}", err=True)
        sys.exit(2)

    if ctx.obj["json"]:
        click.echo(json.dumps({name: c.to_dict() for name, c in inventory.items()}, indent=2))
        return

    rows = [
        HostRow(name, c.host, c.port, c.username) for name, c in inventory.items()
    ]
    columns = [
        ("name", "NAME", 20),
        ("host", "HOST", 25),
        ("port", "PORT", 6),
        ("username", "USER", 15),
    ]
    click.echo(format_table(rows, columns))
    click.echo(f"\n{len(rows)} host(s)")


@cli.command("exec")
@click.argument("target")
@click.argument("command")
@click.pass_context
def exec_command(ctx, target, command):
    """Run COMMAND on TARGET and print its output."""
    manager = connect_or_exit(resolve_target(ctx, target))
    try:
        output = manager.exec(command)
    except CommandFailedError as e:
        if e.stderr:
            click.echo(e.stderr, err=True, nl=not e.stderr.endswith("\n"))
        sys.exit(e.exit_code if 0 < e.exit_code < 256 else 1)
    except SessionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        manager.disconnect()

    if ctx.obj["json"]:
        click.echo(json.dumps({"target": target, "command": command, "output": output}))
    else:
        click.echo(output, nl=False)


@cli.command("stream")
@click.argument("target")
@click.argument("command")
@click.pass_context
def stream_command(ctx, target, command):
    """Run COMMAND on TARGET and print lines as they arrive."""
    manager = connect_or_exit(resolve_target(ctx, target))
    try:
        for line in manager.exec_stream(command):
            click.echo(line)
    except SessionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        manager.disconnect()


@cli.command("check")
@click.argument("target")
@click.pass_context
def check_connection(ctx, target):
    """Check that TARGET accepts an SSH session."""
    config = resolve_target(ctx, target)
    manager = get_manager()
    try:
        manager.connect(config)
        reachable, error = manager.is_connected(), None
    except ConnectError as e:
        reachable, error = False, str(e)
    finally:
        manager.disconnect()

    if ctx.obj["json"]:
        click.echo(json.dumps({"target": config.target, "reachable": reachable, "error": error}))
    elif reachable:
        click.echo(f"{config.target}: reachable")
    else:
        click.echo(f"{config.target}: unreachable ({error})")

    if not reachable:
        sys.exit(1)


def main():
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()

"""
Command-line interface for the kvline client.

Usage:
    kvline set alpha hello world
    kvline get alpha
    kvline del alpha
    kvline raw "GET alpha"

Exit status is 0 for OK, 1 for NOTFOUND and 2 for errors.
"""

import asyncio
import logging
import sys

import click

from ..config import configure_logging
from ..exceptions import KVError
from ..network.protocol import Response, Status
from .client import KVClient, DEFAULT_HOST, DEFAULT_PORT

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NOTFOUND = 1
EXIT_ERROR = 2


def get_client(ctx: click.Context) -> KVClient:
    """Build a client from the group options."""
    opts = ctx.obj
    return KVClient(host=opts["host"], port=opts["port"], timeout=opts["timeout"])


def print_response(response: Response) -> int:
    """Echo a reply and return the matching exit status."""
    if response.status is Status.OK:
        click.echo(click.style("OK", fg="green"))
        if response.value is not None:
            click.echo(response.value)
        return EXIT_OK
    if response.status is Status.NOTFOUND:
        click.echo(click.style("NOTFOUND", fg="yellow"))
        return EXIT_NOTFOUND
    click.echo(click.style(f"ERROR: {response.message}", fg="red"), err=True)
    return EXIT_ERROR


def run_line(ctx: click.Context, line: str) -> None:
    """Send one line, print the reply and exit with its status."""
    client = get_client(ctx)
    try:
        response = asyncio.run(client.send(line))
    except KVError as e:
        click.echo(click.style(f"✗ {e.message}", fg="red"), err=True)
        sys.exit(EXIT_ERROR)
    sys.exit(print_response(response))


@click.group()
@click.option("--host", "-H", default=DEFAULT_HOST, show_default=True, help="Server host")
@click.option("--port", "-p", default=DEFAULT_PORT, show_default=True, type=int, help="Server port")
@click.option("--timeout", "-t", default=5.0, show_default=True, type=float, help="Seconds to wait for a reply")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, host: str, port: int, timeout: float, debug: bool):
    """kvline - one-command-per-connection key-value client"""
    ctx.ensure_object(dict)
    
    configure_logging("DEBUG" if debug else "WARNING")
    
    ctx.obj["host"] = host
    ctx.obj["port"] = port
    ctx.obj["timeout"] = timeout


@cli.command("set")
@click.argument("key")
@click.argument("value", nargs=-1, required=True)
@click.pass_context
def set_cmd(ctx, key: str, value: tuple[str, ...]):
    """Store VALUE under KEY (words are joined by single spaces)."""
    run_line(ctx, f"SET {key} {' '.join(value)}")


@cli.command("get")
@click.argument("key")
@click.pass_context
def get_cmd(ctx, key: str):
    """Print the value stored under KEY."""
    run_line(ctx, f"GET {key}")


@cli.command("del")
@click.argument("key")
@click.pass_context
def del_cmd(ctx, key: str):
    """Delete KEY. Deleting a missing key succeeds."""
    run_line(ctx, f"DEL {key}")


@cli.command("raw")
@click.argument("line")
@click.pass_context
def raw_cmd(ctx, line: str):
    """Send LINE to the server verbatim."""
    run_line(ctx, line)


if __name__ == "__main__":
    cli()

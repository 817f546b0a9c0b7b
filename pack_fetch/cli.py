"""Click-based CLI entrypoint for pack-image-fetch.

Commands:
    fetch          Resolve an image, pulling it if the pull policy says so
    ledger show    Print the pull ledger
    ledger prune   Drop ledger entries older than the pruning interval
    ledger forget  Drop the ledger entry of one image
"""

from __future__ import annotations

import json
import sys

import click

from pack_fetch import __version__
from pack_fetch.config import load_config
from pack_fetch.daemon import DockerDaemon
from pack_fetch.errors import FetchError
from pack_fetch.fetcher import Fetcher
from pack_fetch.ledger import PullLedger
from pack_fetch.models import FetchOptions, LayoutOption
from pack_fetch.policy import parse_pull_policy
from pack_fetch.reference import ledger_key
from pack_fetch.utils import log_error, log_info


def format_kv(key: str, value: str) -> str:
    """Format a key-value pair with 2 spaces indent."""
    return f"  {key}: {value}"


def format_table_row(name: str, *cols: str, name_width: int = 50) -> str:
    """Format a table row with a fixed-width name column."""
    row = f"  {name:<{name_width}}"
    for col in cols:
        row += f" {col}"
    return row


# ---------------------------------------------------------------------------
# Main CLI Group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(__version__, prog_name="pack-fetch")
def cli() -> None:
    """pack-fetch - fetch container images under a pull policy."""


@cli.command()
@click.argument("name")
@click.option(
    "--policy",
    default=None,
    help="always, never, if-not-present, hourly, daily, weekly or interval=<NdNhNm>",
)
@click.option("--platform", default="", help="Platform to pull, e.g. linux/arm64")
@click.option("--no-daemon", is_flag=True, help="Resolve against the registry, not the daemon")
@click.option(
    "--layout",
    "layout_path",
    default="",
    type=click.Path(file_okay=False),
    help="Write the image as an OCI layout into this directory",
)
@click.option("--sparse", is_flag=True, help="With --layout, skip the layer blobs")
def fetch(
    name: str,
    policy: str | None,
    platform: str,
    no_daemon: bool,
    layout_path: str,
    sparse: bool,
) -> None:
    """Resolve NAME, pulling it first when the pull policy requires it."""
    if sparse and not layout_path:
        raise click.UsageError("--sparse requires --layout")

    config = load_config()
    ledger = PullLedger()
    try:
        pull_policy = parse_pull_policy(
            policy if policy is not None else config.pull_policy, ledger
        )
        fetcher = Fetcher(
            DockerDaemon(), ledger=ledger, registry_mirrors=config.registry_mirrors
        )
        image = fetcher.fetch(
            name,
            FetchOptions(
                daemon=not no_daemon,
                platform=platform,
                pull_policy=pull_policy,
                layout_option=LayoutOption(path=layout_path, sparse=sparse),
            ),
        )
    except FetchError as exc:
        log_error(str(exc))
        sys.exit(1)

    if layout_path:
        log_info(f"Saved {image.name} to {layout_path}")
    else:
        log_info(f"Fetched {image.name} (policy: {pull_policy})")


# ---------------------------------------------------------------------------
# Ledger commands
# ---------------------------------------------------------------------------


@cli.group()
def ledger() -> None:
    """Inspect and maintain the image pull ledger."""


@ledger.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output the raw ledger document")
def ledger_show(json_output: bool) -> None:
    """Print the pull ledger."""
    try:
        record = PullLedger().read()
    except FetchError as exc:
        log_error(str(exc))
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(record.to_json_dict(), indent=4))
        return

    click.echo(format_kv("pulling interval", record.pulling_interval or "(unset)"))
    click.echo(format_kv("pruning interval", record.pruning_interval))
    click.echo(format_kv("last prune", record.last_prune or "never"))
    if not record.images:
        click.echo("  No pulls recorded.")
        return
    click.echo()
    for key in sorted(record.images):
        click.echo(format_table_row(key, record.images[key]))


@ledger.command("prune")
def ledger_prune() -> None:
    """Drop entries older than the pruning interval."""
    try:
        removed = PullLedger().prune()
    except FetchError as exc:
        log_error(str(exc))
        sys.exit(1)

    for key in removed:
        click.echo(f"  Removed {key}")
    click.echo(f"Pruned {len(removed)} entries.")


@ledger.command("forget")
@click.argument("name")
def ledger_forget(name: str) -> None:
    """Drop the ledger entry of NAME so its next interval fetch pulls."""
    config = load_config()
    try:
        key = ledger_key(name, config.registry_mirrors)
        removed = PullLedger().evict(key)
    except FetchError as exc:
        log_error(str(exc))
        sys.exit(1)

    if removed:
        click.echo(f"Forgot {key}")
    else:
        click.echo(f"No ledger entry for {key}")


def main() -> None:
    """Entry point for the ``pack-fetch`` console script."""
    cli()


if __name__ == "__main__":
    main()

"""CLI interface for mfssync."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from .api import MfsClient
from .config import config, parse_port
from .exceptions import MfsAPIError, MfsConfigError
from .output import OutputFormatter
from .sync import SyncConfig, SyncEngine, SyncTimestampFile
from .utils import format_size, format_timestamp, parse_duration, parse_timestamp

logger = logging.getLogger(__name__)

EXIT_ERRORS = 1
EXIT_FATAL = -1
EXIT_CANCELLED = 130


def _create_client(ctx: Any, autoflush: bool = True) -> MfsClient:
    """Create a store client from global options and configuration.

    Raises:
        MfsConfigError: If the API port cannot be parsed
    """
    api_port = ctx.obj.get("api_port")
    return MfsClient(
        api_host=ctx.obj.get("api_host"),
        api_port=parse_port(api_port) if api_port is not None else None,
        autoflush=autoflush,
    )


def _fail(out: OutputFormatter, error: Exception) -> None:
    """Report a fatal error as the final output line."""
    logger.debug("Fatal error", exc_info=error)
    if out.json_output:
        out.output_json({"error": str(error)})
    else:
        out.print(f"Error: {error}")


def resolve_sync_from(
    syncfrom: Optional[str],
    syncfrom_file: Optional[Path],
    out: OutputFormatter,
) -> Optional[int]:
    """Determine the change-time threshold for a run.

    An explicit ``--syncfrom`` wins. Otherwise the timestamp file is read;
    if it cannot be read the threshold falls back to 0, which uploads every
    file again. Without either option the run compares sizes.

    Raises:
        MfsConfigError: If ``--syncfrom`` cannot be parsed
    """
    if syncfrom is not None:
        try:
            return parse_timestamp(syncfrom)
        except ValueError as e:
            raise MfsConfigError(f"Could not parse sync-from time: {e}") from e

    if syncfrom_file is not None:
        try:
            return SyncTimestampFile(syncfrom_file).read()
        except (OSError, ValueError) as e:
            out.warning(
                f"Warning: could not read timestamp file {syncfrom_file}: {e}; "
                "syncing all files"
            )
            return 0

    return None


@click.group()
@click.option(
    "--api-host",
    "-h",
    default=None,
    help="Store daemon API host (default: 127.0.0.1 or $MFSSYNC_API_HOST)",
)
@click.option(
    "--api-port",
    "-p",
    default=None,
    help="Store daemon API port (default: 5001 or $MFSSYNC_API_PORT)",
)
@click.option("--json", is_flag=True, help="Output results in JSON format")
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging output",
)
@click.version_option(package_name="mfssync")
@click.pass_context
def main(
    ctx: Any,
    api_host: Optional[str],
    api_port: Optional[str],
    json: bool,
    debug: bool,
) -> None:
    """mfssync - Mirror a local directory into an MFS directory."""
    ctx.ensure_object(dict)
    ctx.obj["api_host"] = api_host
    ctx.obj["api_port"] = api_port
    ctx.obj["json"] = json

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("mfssync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--src", "-s", required=True, help="Local source directory")
@click.option("--dst", "-d", required=True, help="Destination MFS path")
@click.option(
    "--flush",
    "-f",
    "flush_interval",
    default=None,
    help="Flush interval, e.g. '30s' or '5m' (default: flush only at the end)",
)
@click.option(
    "--syncfrom",
    default=None,
    help=(
        "Only re-upload existing files changed after this time "
        "(RFC 3339 timestamp or @<unix-seconds>)"
    ),
)
@click.option(
    "--syncfrom-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=(
        "Timestamp file: read as fallback for --syncfrom, "
        "updated after a run without errors"
    ),
)
@click.option("--nocopy", "-l", is_flag=True, help="Use the filestore (no-copy add)")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Verbosity (-v: uploads, -vv: directories and symlinks, -vvv: diagnostics)",
)
@click.pass_context
def sync(
    ctx: Any,
    src: str,
    dst: str,
    flush_interval: Optional[str],
    syncfrom: Optional[str],
    syncfrom_file: Optional[Path],
    nocopy: bool,
    verbose: int,
) -> None:
    """Sync a local directory to an MFS directory.

    Files are compared by size, or by change time when a sync-from
    threshold is given. Remote entries without a local counterpart are
    removed; symlinks are stored as copies of their targets.

    Examples:
        mfssync sync -s ./photos -d /photos -v
        mfssync sync -s ./data -d /backup/data -f 1m --nocopy
        mfssync sync -s ./data -d /data --syncfrom @1700000000
        mfssync sync -s ./data -d /data --syncfrom-file ~/.data.sync
    """
    out = OutputFormatter(json_output=ctx.obj["json"], verbosity=verbose)
    run_start = int(time.time())
    client: Optional[MfsClient] = None
    exit_code: Optional[int] = None

    try:
        try:
            interval = parse_duration(flush_interval) if flush_interval else None
        except ValueError as e:
            raise MfsConfigError(f"Could not parse flush interval: {e}") from e

        sync_config = SyncConfig(
            verbosity=verbose,
            nocopy=nocopy,
            sync_from=resolve_sync_from(syncfrom, syncfrom_file, out),
            flush_interval=interval,
        )
        client = _create_client(ctx, autoflush=sync_config.store_autoflush)
        engine = SyncEngine(client, out)
        result = engine.run(Path(src), dst, sync_config)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        exit_code = EXIT_CANCELLED
    except Exception as e:
        _fail(out, e)
        exit_code = EXIT_FATAL
    finally:
        if client is not None:
            client.close()

    if exit_code is not None:
        ctx.exit(exit_code)

    if result.errors == 0 and syncfrom_file is not None:
        try:
            SyncTimestampFile(syncfrom_file).write(
                run_start, source=str(Path(src).resolve()), destination=dst
            )
        except OSError as e:
            out.warning(f"Warning: could not write timestamp file: {e}")

    if out.json_output:
        out.output_json(result.to_dict())
    else:
        if result.errors:
            out.warning(f"Finished with {result.errors} error(s)")
        out.print(result.root_hash)

    ctx.exit(result.exit_code)


@main.command()
@click.argument("path", type=str)
@click.pass_context
def stat(ctx: Any, path: str) -> None:
    """Show hash, size and type of an MFS path."""
    out = OutputFormatter(json_output=ctx.obj["json"])
    try:
        with _create_client(ctx) as client:
            info = client.files_stat(path)
    except (MfsAPIError, MfsConfigError) as e:
        _fail(out, e)
        ctx.exit(EXIT_ERRORS)
        return

    if out.json_output:
        out.output_json(
            {
                "path": path,
                "hash": info.hash,
                "size": info.size,
                "cumulative_size": info.cumulative_size,
                "type": info.type,
            }
        )
        return

    out.print(info.hash)
    out.info(f"Type: {info.type}")
    out.info(f"Size: {format_size(info.size)}")
    out.info(f"Cumulative size: {format_size(info.cumulative_size)}")


@main.command()
@click.option(
    "--syncfrom-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also show the time recorded in this timestamp file",
)
@click.pass_context
def status(ctx: Any, syncfrom_file: Optional[Path]) -> None:
    """Check the connection to the store daemon."""
    out = OutputFormatter(json_output=ctx.obj["json"])
    try:
        with _create_client(ctx) as client:
            api_url = client.api_url
            version = client.version()
    except (MfsAPIError, MfsConfigError) as e:
        _fail(out, e)
        ctx.exit(EXIT_ERRORS)
        return

    last_sync: Optional[int] = None
    if syncfrom_file is not None:
        try:
            last_sync = SyncTimestampFile(syncfrom_file).read()
        except (OSError, ValueError) as e:
            out.warning(f"Warning: could not read timestamp file: {e}")

    if out.json_output:
        out.output_json(
            {
                "api_url": api_url,
                "version": version.get("Version"),
                "last_sync": last_sync,
            }
        )
        return

    out.print(f"API: {api_url}")
    out.print(f"Daemon version: {version.get('Version', 'unknown')}")
    if syncfrom_file is not None:
        out.print(f"Last sync: {format_timestamp(last_sync)}")


@main.command()
@click.option(
    "--api-host", "new_host", prompt="Store daemon API host", default="127.0.0.1"
)
@click.option("--api-port", "new_port", prompt="Store daemon API port", default="5001")
@click.pass_context
def init(ctx: Any, new_host: str, new_port: str) -> None:
    """Save store daemon connection settings.

    Stores the settings in ~/.config/mfssync/config for future use.
    """
    out = OutputFormatter(json_output=ctx.obj["json"])

    try:
        port = parse_port(new_port)
    except MfsConfigError as e:
        _fail(out, e)
        ctx.exit(EXIT_ERRORS)
        return

    out.info("Checking connection...")
    try:
        with MfsClient(api_host=new_host, api_port=port, max_retries=0) as client:
            version = client.version()
        out.success(f"Connected to daemon version {version.get('Version', 'unknown')}")
    except MfsAPIError as e:
        out.error(f"Connection check failed: {e}")
        if not click.confirm("Save settings anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(EXIT_ERRORS)
            return

    config.save(new_host, port)
    out.print(f"Configuration saved to {config.get_config_path()}")


if __name__ == "__main__":
    main()

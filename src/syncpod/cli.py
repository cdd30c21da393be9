"""Command-line interface for syncpod."""

from __future__ import annotations

import asyncio
import functools
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

import click
from safir.asyncio import run_with_asyncio
from safir.click import display_help
from structlog.stdlib import get_logger

from . import __version__
from .config import Config
from .constants import CONFIG_FILE_ENV_VAR, ROOT_LOGGER
from .exceptions import SyncPodError
from .factory import Factory, create_api_client
from .models.domain.transfer import Direction, Ownership, TransferOutcome
from .services.sync import SyncJob, TransferRequest

__all__ = ["main"]


def _parse_owner(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> Ownership | None:
    if value is None:
        return None
    try:
        return Ownership.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


def _common[**P, R](
    func: Callable[P, Awaitable[R]],
) -> Callable[P, R]:
    """Add the options and error reporting shared by upload and download."""

    @click.option("--pvc", required=True, help="PersistentVolumeClaim name")
    @click.option(
        "--mount-path",
        required=True,
        help="Where to mount the volume in the helper pod",
    )
    @click.option("--src", required=True, help="Source path")
    @click.option("--dst", required=True, help="Destination path")
    @click.option(
        "--workers",
        "-w",
        type=int,
        default=None,
        help="Number of concurrent transfer workers",
    )
    @click.option(
        "--namespace",
        "-n",
        default="default",
        show_default=True,
        help="Namespace of the PVC",
    )
    @click.option(
        "--kubeconfig",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Path to the kubeconfig file",
    )
    @click.option("--context", default=None, help="Kubeconfig context")
    @click.option(
        "--config-file",
        "-c",
        type=click.Path(dir_okay=False, path_type=Path),
        envvar=CONFIG_FILE_ENV_VAR,
        default=None,
        help="Application configuration file",
    )
    @click.option(
        "--debug",
        "-d",
        is_flag=True,
        help="Enable debug logging",
    )
    @run_with_asyncio
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except SyncPodError as e:
            get_logger(ROOT_LOGGER).debug("Job failed", exc_info=True)
            raise click.ClickException(str(e)) from e

    return wrapper


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, message="%(version)s")
def main() -> None:
    """Copy directory trees into and out of Kubernetes volumes."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.argument("subtopic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None, subtopic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic, subtopic)


@main.command()
@_common
@click.option(
    "--allow-overwrite",
    is_flag=True,
    help="Replace existing files and directories in the volume",
)
@click.option(
    "--owner",
    callback=_parse_owner,
    default=None,
    help="Numeric uid[:gid] to apply to the uploaded tree",
)
async def upload(
    *,
    pvc: str,
    mount_path: str,
    src: str,
    dst: str,
    workers: int | None,
    namespace: str,
    kubeconfig: Path | None,
    context: str | None,
    config_file: Path | None,
    debug: bool,
    allow_overwrite: bool,
    owner: Ownership | None,
) -> None:
    """Upload a local directory into a volume."""
    config = _load_config(config_file, debug=debug)
    request = TransferRequest(
        direction=Direction.UPLOAD,
        pvc=pvc,
        namespace=namespace,
        mount_path=mount_path,
        source=src,
        destination=dst,
        workers=workers if workers is not None else config.workers,
        allow_overwrite=allow_overwrite,
        owner=owner,
    )
    await _run(config, request, kubeconfig=kubeconfig, context=context)


@main.command()
@_common
async def download(
    *,
    pvc: str,
    mount_path: str,
    src: str,
    dst: str,
    workers: int | None,
    namespace: str,
    kubeconfig: Path | None,
    context: str | None,
    config_file: Path | None,
    debug: bool,
) -> None:
    """Download a directory from a volume."""
    config = _load_config(config_file, debug=debug)
    request = TransferRequest(
        direction=Direction.DOWNLOAD,
        pvc=pvc,
        namespace=namespace,
        mount_path=mount_path,
        source=src,
        destination=dst,
        workers=workers if workers is not None else config.workers,
    )
    await _run(config, request, kubeconfig=kubeconfig, context=context)


def _load_config(config_file: Path | None, *, debug: bool) -> Config:
    """Load the configuration and configure logging."""
    config = Config.from_file(config_file)
    if debug:
        config.debug = debug
    config.configure_logging()
    return config


async def _run(
    config: Config,
    request: TransferRequest,
    *,
    kubeconfig: Path | None,
    context: str | None,
) -> None:
    """Run a job and report how many items were transferred."""
    api_client = await create_api_client(
        kubeconfig=kubeconfig, context=context
    )
    factory = Factory(config, api_client, get_logger(ROOT_LOGGER))
    try:
        outcome = await _run_job(factory.create_sync_job(), request)
    finally:
        await factory.aclose()
    click.echo(
        f"Transferred {outcome.completed} of {outcome.planned} changed items"
    )


async def _run_job(job: SyncJob, request: TransferRequest) -> TransferOutcome:
    """Run a job, turning SIGINT and SIGTERM into cancellation."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for signum in signals:
        loop.add_signal_handler(signum, cancel.set)
    try:
        return await job.run(request, cancel)
    finally:
        for signum in signals:
            loop.remove_signal_handler(signum)

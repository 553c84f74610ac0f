"""podfeed command-line interface.

Environment variables (``PODFEED_*``) supply defaults; flags override them.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import click

from podfeed import __version__
from podfeed.config import load_config
from podfeed.models.config import PodFeedConfig


def _apply_overrides(
    config: PodFeedConfig,
    kubeconfig: str | None,
    context: str | None,
    log_level: str | None,
) -> PodFeedConfig:
    kube = config.kube
    if kubeconfig:
        kube = replace(kube, kubeconfig=kubeconfig)
    if context:
        kube = replace(kube, context=context)
    log = replace(config.log, level=log_level) if log_level else config.log
    return replace(config, kube=kube, log=log)


@click.group()
@click.version_option(__version__, prog_name="podfeed")
@click.option("--kubeconfig", type=click.Path(dir_okay=False), default=None, help="Path to a kubeconfig file.")
@click.option("--context", default=None, help="Kubeconfig context to use.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: PODFEED_LOG_LEVEL or info).",
)
@click.pass_context
def cli(ctx: click.Context, kubeconfig: str | None, context: str | None, log_level: str | None) -> None:
    """Watch pod IP changes and trigger debounced feed refreshes."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    ctx.obj = _apply_overrides(config, kubeconfig, context, log_level.lower() if log_level else None)


def _watch_options(f):  # type: ignore[no-untyped-def]
    f = click.option(
        "--interval", type=click.FloatRange(min=0.1), default=None, help="Settlement window in seconds."
    )(f)
    f = click.option("--label-key", default=None, help="Pod label that names the topic (default: app).")(f)
    f = click.option("--command", "trigger_command", default=None, help="Refresh command; the topic is appended.")(f)
    f = click.option("--workers", type=click.IntRange(min=1), default=None, help="Concurrent refresh runs.")(f)
    return f


def _with_watch_overrides(
    config: PodFeedConfig,
    interval: float | None,
    label_key: str | None,
    trigger_command: str | None,
    workers: int | None,
) -> PodFeedConfig:
    watch = config.watch
    if interval is not None:
        watch = replace(watch, check_interval=interval)
    if label_key:
        watch = replace(watch, label_key=label_key)
    trigger = config.trigger
    if trigger_command:
        trigger = replace(trigger, command=trigger_command)
    if workers is not None:
        trigger = replace(trigger, workers=workers)
    return replace(config, watch=watch, trigger=trigger)


def _run(config: PodFeedConfig, watch: bool, serve: bool) -> None:
    from podfeed.app import main

    asyncio.run(main(config, watch=watch, serve=serve))


@cli.command()
@_watch_options
@click.pass_obj
def watch(
    config: PodFeedConfig,
    interval: float | None,
    label_key: str | None,
    trigger_command: str | None,
    workers: int | None,
) -> None:
    """Watch pods and run the refresh command per settled topic."""
    _run(_with_watch_overrides(config, interval, label_key, trigger_command, workers), watch=True, serve=False)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: 0.0.0.0).")
@click.option("--port", type=click.IntRange(1024, 65535), default=None, help="Listen port (default: 9090).")
@click.pass_obj
def serve(config: PodFeedConfig, host: str | None, port: int | None) -> None:
    """Serve the pod query API."""
    api = config.api
    if host:
        api = replace(api, host=host)
    if port is not None:
        api = replace(api, port=port)
    _run(replace(config, api=api), watch=False, serve=True)


@cli.command()
@_watch_options
@click.option("--port", type=click.IntRange(1024, 65535), default=None, help="Listen port (default: 9090).")
@click.pass_obj
def run(
    config: PodFeedConfig,
    interval: float | None,
    label_key: str | None,
    trigger_command: str | None,
    workers: int | None,
    port: int | None,
) -> None:
    """Run the watcher and the pod query API in one process."""
    config = _with_watch_overrides(config, interval, label_key, trigger_command, workers)
    if port is not None:
        config = replace(config, api=replace(config.api, port=port))
    _run(config, watch=True, serve=True)

# cli.py
from __future__ import annotations

import os
import sys

import click

from ciop.cluster.api_client import ClusterClient
from ciop.cluster.kubeconfig import ClusterConfigError, load_cluster_config
from ciop.config import parse_build_config, parse_duration, resolve_job_spec
from ciop.coordinator import RunOptions, run as run_job
from ciop.errors import ConfigurationError
from ciop.model import DEFAULT_BASE_NAMESPACE, DEFAULT_NAMESPACE_TEMPLATE
from ciop.namespace import CLEANUP_POD, DEFAULT_CLEANUP_IMAGE
from ciop.ui.console import Console, get_console, set_console
from ciop.watchdog import run_watchdog


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """ciop: runs a CI pipeline as a step graph inside an ephemeral namespace."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--build-config", default=None, help="Configuration for the build to run, as JSON (defaults to $CONFIG_SPEC)")
@click.option(
    "--namespace",
    default=DEFAULT_NAMESPACE_TEMPLATE,
    show_default=True,
    help="Namespace to create builds into; {id} is replaced by the job hash",
)
@click.option("--base-namespace", default=DEFAULT_BASE_NAMESPACE, show_default=True, help="Namespace to read builds from")
@click.option("--dry-run/--no-dry-run", default=True, show_default=True, help="Do not contact the API server")
@click.option("--write-params", default="", help="If set write an env-compatible file with the output of the job")
@click.option(
    "--delete-when-idle",
    default="0",
    help="If no pod is running for longer than this interval, delete the namespace (e.g. 30m)",
)
@click.option("--workers", default=None, type=int, help="Maximum number of steps running at once")
@click.option("--cleanup-image", default=DEFAULT_CLEANUP_IMAGE, show_default=True, help="Image of the idle watchdog pod")
def run(build_config, namespace, base_namespace, dry_run, write_params, delete_when_idle, workers, cleanup_image):
    """Run the pipeline described by the build configuration."""
    console = get_console()

    # ---- validate ----
    raw_config = build_config or os.environ.get("CONFIG_SPEC", "")
    if not raw_config:
        console.print_fatal("Invalid options", ValueError("job configuration must be provided with `--build-config`"))
        sys.exit(1)
    if workers is not None and workers < 1:
        console.print_fatal("Invalid options", ValueError("--workers must be at least 1"))
        sys.exit(1)
    try:
        idle_seconds = parse_duration(delete_when_idle)
    except ValueError as e:
        console.print_fatal("Invalid options", e)
        sys.exit(1)

    # ---- complete ----
    try:
        config = parse_build_config(raw_config)
        job_spec = resolve_job_spec()
        client = None if dry_run else ClusterClient(load_cluster_config())
    except (ConfigurationError, ValueError, ClusterConfigError) as e:
        console.print_fatal("Invalid environment", e)
        sys.exit(1)

    options = RunOptions(
        build_config=config,
        job_spec=job_spec,
        dry=dry_run,
        write_params=write_params,
        namespace=namespace,
        base_namespace=base_namespace,
        idle_cleanup_seconds=idle_seconds,
        cleanup_image=cleanup_image,
        max_workers=workers,
    )

    # ---- run ----
    try:
        run_job(options, client)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_fatal("error", e)
        sys.exit(1)


@cli.command("watch-idle")
@click.option("--namespace", envvar="NAMESPACE", required=True, help="Namespace to delete once idle")
@click.option("--wait", "wait_for", envvar="WAIT", required=True, help="Idle interval (seconds or e.g. 10m)")
@click.option("--pod-name", envvar="POD_NAME", default=CLEANUP_POD, show_default=True, help="Name of this pod")
def watch_idle(namespace, wait_for, pod_name):
    """Delete NAMESPACE once no run-once pod has been active for WAIT (runs in-cluster)."""
    console = get_console()
    try:
        wait_seconds = parse_duration(wait_for)
    except ValueError as e:
        console.print_fatal("Invalid options", e)
        sys.exit(1)
    if wait_seconds <= 0:
        console.print_fatal("Invalid options", ValueError("--wait must be positive"))
        sys.exit(1)

    try:
        client = ClusterClient(load_cluster_config())
        run_watchdog(client, namespace, wait_seconds, pod_name)
    except Exception as e:
        console.print_fatal("error", e)
        sys.exit(1)


if __name__ == "__main__":
    cli()

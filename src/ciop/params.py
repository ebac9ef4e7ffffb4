# params.py
from __future__ import annotations

import os
import shlex
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .cluster.api_client import ClusterAPIError, ClusterClient, NotFound
from .cluster.models import ImageStream, Route
from .config import BuildConfiguration, ReleaseTagConfiguration
from .errors import ProvisioningError, ResolutionTimeout
from .model import JobSpec
from .step_workflows.release import STABLE_IMAGE_STREAM
from .step_workflows.rpm import RPM_REPO_NAME
from .ui.console import get_console
from .wait import WaitTimeout, poll_immediate

REGISTRY_PLACEHOLDER = "REGISTRY"
ROUTE_POLL_INTERVAL = 1.0
ROUTE_POLL_TIMEOUT = 60.0

Parameters = List[Tuple[str, str]]


def image_format(registry: str, namespace: str, tag_config: ReleaseTagConfiguration) -> str:
    """Pull spec template for component images; `${component}` is left for the consumer."""
    if tag_config.name:
        return f"{registry}/{namespace}/{tag_config.name_prefix}{STABLE_IMAGE_STREAM}:${{component}}"
    return f"{registry}/{namespace}/{tag_config.name_prefix}${{component}}:{tag_config.tag}"


def wait_for_route_host(
    client: ClusterClient,
    namespace: str,
    name: str,
    *,
    interval: float = ROUTE_POLL_INTERVAL,
    timeout: float = ROUTE_POLL_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """
    Poll a route until the router has admitted it and return its host.

    A route that does not exist yet is polled like an unadmitted one.
    """
    found: dict = {}

    def admitted() -> bool:
        try:
            route = Route.from_dict(client.get("route", name, namespace=namespace))
        except NotFound:
            return False
        except ClusterAPIError as e:
            raise ProvisioningError(f"could not read route {name}: {e}", namespace=namespace) from e
        host = route.admitted_host()
        if host:
            found["host"] = host
            return True
        return False

    try:
        poll_immediate(interval, timeout, admitted, sleep=sleep, clock=clock)
    except WaitTimeout as e:
        raise ResolutionTimeout(f"route {name} was not admitted: {e}", namespace=namespace) from e
    return found["host"]


def resolve_parameters(
    job_spec: JobSpec,
    config: BuildConfiguration,
    anchor: Optional[ImageStream],
    client: Optional[ClusterClient],
    *,
    dry: bool,
    interval: float = ROUTE_POLL_INTERVAL,
    timeout: float = ROUTE_POLL_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Parameters:
    params: Parameters = [
        ("JOB_NAME", job_spec.job),
        ("NAMESPACE", job_spec.namespace),
    ]

    if config.release_tag_configuration is not None:
        registry = (anchor.registry if anchor is not None else None) or REGISTRY_PLACEHOLDER
        params.append(("IMAGE_FORMAT", image_format(registry, job_spec.namespace, config.release_tag_configuration)))

    if config.rpm_build_commands:
        if dry:
            params.append(("RPM_REPO", ""))
        else:
            host = wait_for_route_host(
                client, job_spec.namespace, RPM_REPO_NAME,
                interval=interval, timeout=timeout, sleep=sleep, clock=clock,
            )
            params.append(("RPM_REPO", host))

    return params


def format_parameters(params: Parameters) -> str:
    """KEY=value lines, values quoted for a POSIX shell."""
    return "".join(f"{key}={shlex.quote(value)}\n" for key, value in params)


def write_parameters(path: str | Path, params: Parameters, *, dry: bool) -> None:
    console = get_console()
    text = format_parameters(params)
    if dry:
        console.print_info(f"\n{text}")
        return

    console.print_info(f"Writing parameters to {path}")
    # created 0640; an existing file is narrowed before anything is written
    fd = os.open(Path(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o640)
    with os.fdopen(fd, "w") as f:
        os.fchmod(f.fileno(), 0o640)
        f.write(text)

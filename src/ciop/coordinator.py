# coordinator.py
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .cluster.api_client import ClusterClient
from .cluster.models import ImageStream
from .config import BuildConfiguration
from .dag import build_graph
from .errors import CIError, ProvisioningError, RunFailure
from .model import DEFAULT_BASE_NAMESPACE, DEFAULT_NAMESPACE_TEMPLATE, FAILED, SKIPPED, JobSpec
from .namespace import DEFAULT_CLEANUP_IMAGE, NamespaceManager
from .params import resolve_parameters, write_parameters
from .runner import run_graph
from .step_workflows.build import from_config
from .ui.console import get_console


@dataclass
class RunOptions:
    """Everything one run needs, threaded explicitly through the coordinator."""
    build_config: BuildConfiguration
    job_spec: JobSpec
    dry: bool = True
    write_params: str = ""
    namespace: str = DEFAULT_NAMESPACE_TEMPLATE
    base_namespace: str = DEFAULT_BASE_NAMESPACE
    idle_cleanup_seconds: float = 0
    cleanup_image: str = DEFAULT_CLEANUP_IMAGE
    max_workers: Optional[int] = None


def run(options: RunOptions, client: Optional[ClusterClient] = None) -> Dict[str, str]:
    """
    Provision the namespace, run the step graph and export parameters.

    Dry runs never touch the cluster: provisioning is skipped and steps only
    plan. Returns step name -> terminal state when every step succeeded.

    Raises:
        ConfigurationError: bad configuration or step graph
        ProvisioningError: namespace or anchor could not be set up
        RunFailure: at least one step failed
        ResolutionTimeout: a parameter never became available
    """
    console = get_console()
    start = time.monotonic()

    job_spec = options.job_spec
    job_spec.set_namespace(options.namespace)
    job_spec.set_base_namespace(options.base_namespace)

    try:
        anchor: Optional[ImageStream] = None
        if not options.dry:
            if client is None:
                raise ProvisioningError("a cluster client is required outside of dry-run")
            manager = NamespaceManager(client, job_spec)
            manager.provision_namespace()
            anchor = manager.provision_anchor()
            # sub-second idle times still install the watchdog
            manager.install_idle_cleanup(math.ceil(options.idle_cleanup_seconds), options.cleanup_image)

        steps = from_config(options.build_config, job_spec, client)
        graph = build_graph(steps)

        console.print_run_started(
            job=job_spec.job,
            namespace=job_spec.namespace,
            step_count=len(graph.steps),
            dry=options.dry,
        )
        results = run_graph(graph, dry=options.dry, max_workers=options.max_workers)
        console.print_results(results)

        failed = [name for name, state in results.items() if state == FAILED]
        if failed:
            skipped = [name for name, state in results.items() if state == SKIPPED]
            raise RunFailure(failed=failed, skipped=skipped)

        if options.write_params:
            params = resolve_parameters(job_spec, options.build_config, anchor, client, dry=options.dry)
            try:
                write_parameters(options.write_params, params, dry=options.dry)
            except OSError as e:
                raise CIError(kind="export", message=f"failed to write parameters: {e}") from e

        return results
    finally:
        console.print_info(f"Ran for {time.monotonic() - start:.0f}s")

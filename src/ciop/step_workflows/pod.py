# step_workflows/pod.py
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..cluster.api_client import AlreadyExists, ClusterAPIError, ClusterClient, NotFound
from ..cluster.models import POD_FAILED, POD_SUCCEEDED, Pod
from ..errors import StepFailure
from ..model import JobSpec
from ..ui.console import get_console
from ..wait import WaitTimeout, poll_immediate

POD_POLL_INTERVAL = 2.0


# ---------------------------------------------------------------------
# Run-once pod step
# ---------------------------------------------------------------------

@dataclass
class PodStep:
    """
    Runs `commands` once in `image` inside the job namespace and waits for
    the pod to finish. Used for builds, tests and RPM builds alike.
    """
    name: str
    image: str
    commands: str
    job_spec: JobSpec
    client: Optional[ClusterClient]
    requires: List[str] = field(default_factory=list)
    produces: List[str] = field(default_factory=list)
    timeout_seconds: float = 2 * 60 * 60
    poll_interval: float = POD_POLL_INTERVAL
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def inputs(self) -> Set[str]:
        return set(self.requires)

    def outputs(self) -> Set[str]:
        return set(self.produces)

    def manifest(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": self.name,
            "namespace": self.job_spec.namespace,
            "labels": {"created-by-ciop": "true"},
        }
        owners = self.job_spec.owner_references()
        if owners:
            metadata["ownerReferences"] = owners
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": metadata,
            "spec": {
                "restartPolicy": "Never",
                "containers": [{
                    "name": "step",
                    "image": self.image,
                    "command": ["/bin/bash", "-c", f"set -euo pipefail\n{self.commands}"],
                }],
            },
        }

    def execute(self, dry: bool) -> None:
        console = get_console()
        manifest = self.manifest()
        if dry:
            console.print_info(f"[{self.name}] would create pod:\n{json.dumps(manifest, indent=2, sort_keys=True)}")
            return

        ns = self.job_spec.namespace
        try:
            self.client.create("pod", manifest, namespace=ns)
        except AlreadyExists:
            # a previous run of the same job got this far; observe that pod
            console.print_debug(f"[{self.name}] pod already exists, waiting on it")
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not create pod: {e}") from e

        try:
            poll_immediate(self.poll_interval, self.timeout_seconds, self._finished,
                           sleep=self.sleep, clock=self.clock)
        except WaitTimeout as e:
            raise StepFailure(self.name, f"pod did not finish: {e}") from e

    def _finished(self) -> bool:
        try:
            pod = Pod.from_dict(self.client.get("pod", self.name, namespace=self.job_spec.namespace))
        except NotFound as e:
            raise StepFailure(self.name, "pod was deleted before it finished") from e
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not read pod status: {e}") from e

        if pod.phase == POD_SUCCEEDED:
            return True
        if pod.phase == POD_FAILED:
            raise StepFailure(self.name, f"pod failed: {pod.message or 'non-zero exit'}", pod=pod.name)
        return False

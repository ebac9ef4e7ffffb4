# step_workflows/rpm.py
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..cluster.api_client import AlreadyExists, ClusterAPIError, ClusterClient, NotFound
from ..errors import StepFailure
from ..model import JobSpec
from ..namespace import PIPELINE_IMAGE_STREAM
from ..ui.console import get_console
from ..wait import WaitTimeout, poll_immediate

RPM_REPO_NAME = "rpm-repo"
RPMS_ARTIFACT = "rpms"
RPM_REPO_ARTIFACT = "rpm-repo"
RPM_REPO_DIR = "/srv/rpms"
RPM_OUTPUT_DIR = "_output/local/releases/rpms"
RPM_REPO_PORT = 8080
RPM_IMAGE_TAG = "rpms"

BUILD_POLL_INTERVAL = 5.0
BUILD_COMPLETE = "Complete"
BUILD_FAILED_PHASES = ("Failed", "Error", "Cancelled")


def _owned_metadata(job_spec: JobSpec, name: str, labels: Dict[str, str]) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "name": name,
        "namespace": job_spec.namespace,
        "labels": dict(labels, **{"created-by-ciop": "true"}),
    }
    owners = job_spec.owner_references()
    if owners:
        metadata["ownerReferences"] = owners
    return metadata


def rpms_image_reference(stream: Dict[str, Any]) -> Optional[str]:
    """Pull spec of the newest `rpms` image of the pipeline stream, if built."""
    for tag in stream.get("status", {}).get("tags") or []:
        if tag.get("tag") != RPM_IMAGE_TAG:
            continue
        for item in tag.get("items") or []:
            if item.get("dockerImageReference"):
                return item["dockerImageReference"]
    return None


# ---------------------------------------------------------------------
# RPM build: commands run once, RPMs land in pipeline:rpms
# ---------------------------------------------------------------------

@dataclass
class RPMBuildStep:
    """
    Builds the RPMs of the job with an image build on top of `image` and
    pushes the result to `pipeline:rpms`. The repository directory inside
    that image is what the RPM server serves.
    """
    image: str
    commands: str
    job_spec: JobSpec
    client: Optional[ClusterClient]
    name: str = RPMS_ARTIFACT
    timeout_seconds: float = 2 * 60 * 60
    poll_interval: float = BUILD_POLL_INTERVAL
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def inputs(self) -> Set[str]:
        return set()

    def outputs(self) -> Set[str]:
        return {RPMS_ARTIFACT}

    def dockerfile(self) -> str:
        script = (
            f"set -euo pipefail\n{self.commands}\n"
            f"mkdir -p {RPM_REPO_DIR}\n"
            f"cp -r {RPM_OUTPUT_DIR}/. {RPM_REPO_DIR}/"
        )
        return f"FROM {self.image}\nRUN {json.dumps(['/bin/bash', '-c', script])}\n"

    def manifest(self) -> Dict[str, Any]:
        return {
            "apiVersion": "build.openshift.io/v1",
            "kind": "Build",
            "metadata": _owned_metadata(self.job_spec, self.name, {"build": self.name}),
            "spec": {
                "source": {"type": "Dockerfile", "dockerfile": self.dockerfile()},
                "strategy": {"type": "Docker", "dockerStrategy": {"noCache": True}},
                "output": {"to": {"kind": "ImageStreamTag", "name": f"{PIPELINE_IMAGE_STREAM}:{RPM_IMAGE_TAG}"}},
            },
        }

    def execute(self, dry: bool) -> None:
        console = get_console()
        manifest = self.manifest()
        if dry:
            console.print_info(f"[{self.name}] would create build:\n{json.dumps(manifest, indent=2, sort_keys=True)}")
            return

        try:
            self.client.create("build", manifest, namespace=self.job_spec.namespace)
        except AlreadyExists:
            console.print_debug(f"[{self.name}] build already exists, waiting on it")
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not create build: {e}") from e

        try:
            poll_immediate(self.poll_interval, self.timeout_seconds, self._finished,
                           sleep=self.sleep, clock=self.clock)
        except WaitTimeout as e:
            raise StepFailure(self.name, f"build did not finish: {e}") from e

    def _finished(self) -> bool:
        try:
            build = self.client.get("build", self.name, namespace=self.job_spec.namespace)
        except NotFound as e:
            raise StepFailure(self.name, "build was deleted before it finished") from e
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not read build status: {e}") from e

        status = build.get("status", {})
        phase = status.get("phase", "")
        if phase == BUILD_COMPLETE:
            return True
        if phase in BUILD_FAILED_PHASES:
            reason = status.get("message") or status.get("reason") or phase.lower()
            raise StepFailure(self.name, f"build failed: {reason}")
        return False


# ---------------------------------------------------------------------
# RPM server: serves the built image's repository directory
# ---------------------------------------------------------------------

@dataclass
class RPMServerStep:
    """
    Serves the RPMs of the job over HTTP: a long-running pod started from
    the `pipeline:rpms` image, a service in front of it and a route that
    exposes it outside the cluster.

    The server pod restarts forever, so it never counts as an active
    run-once pod for the idle watchdog. A restart only serves the same
    image again; nothing is rebuilt.
    """
    job_spec: JobSpec
    client: Optional[ClusterClient]
    name: str = RPM_REPO_NAME

    def inputs(self) -> Set[str]:
        return {RPMS_ARTIFACT}

    def outputs(self) -> Set[str]:
        return {RPM_REPO_ARTIFACT}

    def _metadata(self) -> Dict[str, Any]:
        return _owned_metadata(self.job_spec, RPM_REPO_NAME, {"app": RPM_REPO_NAME})

    def objects(self, image: str) -> List[tuple[str, Dict[str, Any]]]:
        pod = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": self._metadata(),
            "spec": {
                "restartPolicy": "Always",
                "containers": [{
                    "name": "server",
                    "image": image,
                    "workingDir": RPM_REPO_DIR,
                    "command": ["python3", "-m", "http.server", str(RPM_REPO_PORT)],
                    "ports": [{"containerPort": RPM_REPO_PORT, "protocol": "TCP"}],
                }],
            },
        }
        service = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": self._metadata(),
            "spec": {
                "selector": {"app": RPM_REPO_NAME},
                "ports": [{"port": RPM_REPO_PORT, "targetPort": RPM_REPO_PORT}],
            },
        }
        route = {
            "apiVersion": "route.openshift.io/v1",
            "kind": "Route",
            "metadata": self._metadata(),
            "spec": {"to": {"kind": "Service", "name": RPM_REPO_NAME}},
        }
        return [("pod", pod), ("service", service), ("route", route)]

    def _rpms_image(self) -> str:
        try:
            stream = self.client.get("imagestream", PIPELINE_IMAGE_STREAM, namespace=self.job_spec.namespace)
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not read {PIPELINE_IMAGE_STREAM} image stream: {e}") from e
        image = rpms_image_reference(stream)
        if not image:
            raise StepFailure(self.name, f"no {PIPELINE_IMAGE_STREAM}:{RPM_IMAGE_TAG} image to serve")
        return image

    def execute(self, dry: bool) -> None:
        console = get_console()
        if dry:
            for kind, _ in self.objects(f"{PIPELINE_IMAGE_STREAM}:{RPM_IMAGE_TAG}"):
                console.print_info(f"[{self.name}] would create {kind} {RPM_REPO_NAME}")
            return

        for kind, body in self.objects(self._rpms_image()):
            try:
                self.client.create(kind, body, namespace=self.job_spec.namespace)
            except AlreadyExists:
                pass
            except ClusterAPIError as e:
                raise StepFailure(self.name, f"could not create {kind} {RPM_REPO_NAME}: {e}") from e

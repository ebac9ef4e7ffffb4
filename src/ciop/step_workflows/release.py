# step_workflows/release.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from ..cluster.api_client import AlreadyExists, ClusterAPIError, ClusterClient
from ..config import ReleaseTagConfiguration
from ..errors import StepFailure
from ..model import JobSpec
from ..ui.console import get_console

STABLE_IMAGE_STREAM = "stable"
RELEASE_ARTIFACT = "release"


def _status_tags(stream: Dict[str, Any]) -> List[str]:
    return [t.get("tag") for t in stream.get("status", {}).get("tags") or [] if t.get("tag")]


@dataclass
class ReleaseTagStep:
    """
    Imports the release images the job tests against into the job namespace.

    With a release `name`, every tag of `namespace/name` becomes a tag of
    `{name_prefix}stable`. Without one, each image stream of `namespace`
    carrying `tag` is copied to `{name_prefix}{stream}:{tag}`.
    """
    release: ReleaseTagConfiguration
    job_spec: JobSpec
    client: Optional[ClusterClient]
    name: str = "release-inputs"

    def inputs(self) -> Set[str]:
        return set()

    def outputs(self) -> Set[str]:
        return {RELEASE_ARTIFACT}

    def _stream(self, name: str, source_stream: str, tags: List[str]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": name, "namespace": self.job_spec.namespace}
        owners = self.job_spec.owner_references()
        if owners:
            metadata["ownerReferences"] = owners
        return {
            "apiVersion": "image.openshift.io/v1",
            "kind": "ImageStream",
            "metadata": metadata,
            "spec": {
                "tags": [
                    {
                        "name": tag,
                        "from": {
                            "kind": "ImageStreamTag",
                            "namespace": self.release.namespace,
                            "name": f"{source_stream}:{tag}",
                        },
                    }
                    for tag in tags
                ],
            },
        }

    def plan(self) -> List[Dict[str, Any]]:
        """Image streams to create, empty when the release has no images. Reads the release namespace."""
        rel = self.release
        if rel.name:
            source = self.client.get("imagestream", rel.name, namespace=rel.namespace)
            tags = _status_tags(source)
            if not tags:
                return []
            return [self._stream(f"{rel.name_prefix}{STABLE_IMAGE_STREAM}", rel.name, tags)]

        streams = []
        for source in self.client.list("imagestream", namespace=rel.namespace):
            if rel.tag not in _status_tags(source):
                continue
            source_name = source.get("metadata", {}).get("name", "")
            streams.append(self._stream(f"{rel.name_prefix}{source_name}", source_name, [rel.tag]))
        return streams

    def execute(self, dry: bool) -> None:
        console = get_console()
        rel = self.release
        if dry:
            source = f"{rel.namespace}/{rel.name}" if rel.name else f"{rel.namespace}/*:{rel.tag}"
            console.print_info(f"[{self.name}] would import release images from {source}")
            return

        try:
            streams = self.plan()
        except ClusterAPIError as e:
            raise StepFailure(self.name, f"could not read release images from {rel.namespace}: {e}") from e
        if not streams:
            source = f"{rel.namespace}/{rel.name}" if rel.name else f"{rel.namespace} with tag {rel.tag}"
            raise StepFailure(self.name, f"no release images found in {source}")

        for body in streams:
            try:
                self.client.create("imagestream", body, namespace=self.job_spec.namespace)
            except AlreadyExists:
                pass
            except ClusterAPIError as e:
                raise StepFailure(
                    self.name, f"could not create image stream {body['metadata']['name']}: {e}",
                ) from e

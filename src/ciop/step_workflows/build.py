# step_workflows/build.py
from __future__ import annotations

from typing import List, Optional

from ..cluster.api_client import ClusterClient
from ..config import BuildConfiguration
from ..errors import ConfigurationError
from ..model import JobSpec, Step
from .pod import PodStep
from .release import ReleaseTagStep
from .rpm import RPMBuildStep, RPMServerStep


def from_config(
    config: BuildConfiguration,
    job_spec: JobSpec,
    client: Optional[ClusterClient],
) -> List[Step]:
    """
    Turn the build configuration into executable steps.
    Steps are returned in declaration order; the graph decides run order.
    """
    steps: List[Step] = []

    for sc in config.steps:
        image = sc.image or config.build_root_image
        if not image:
            raise ConfigurationError(f"step '{sc.name}' has no image and no build_root_image is set")
        steps.append(PodStep(
            name=sc.name,
            image=image,
            commands=sc.commands,
            job_spec=job_spec,
            client=client,
            requires=list(sc.inputs),
            produces=list(sc.outputs),
            timeout_seconds=sc.timeout_seconds,
        ))

    if config.rpm_build_commands:
        image = config.rpm_build_image or config.build_root_image
        if not image:
            raise ConfigurationError("rpm_build_commands needs rpm_build_image or build_root_image")
        steps.append(RPMBuildStep(
            image=image,
            commands=config.rpm_build_commands,
            job_spec=job_spec,
            client=client,
        ))
        steps.append(RPMServerStep(job_spec=job_spec, client=client))

    if config.release_tag_configuration is not None:
        steps.append(ReleaseTagStep(
            release=config.release_tag_configuration,
            job_spec=job_spec,
            client=client,
        ))

    return steps

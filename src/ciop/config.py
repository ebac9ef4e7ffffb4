# config.py
from __future__ import annotations

import math
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .model import JobSpec

DEFAULT_STEP_TIMEOUT = 2 * 60 * 60

# -------------------- Build configuration --------------------


class StepConfiguration(BaseModel):
    """One run-once pod in the pipeline."""
    model_config = ConfigDict(extra="forbid")

    name: str
    image: Optional[str] = None
    commands: str
    inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)
    timeout_seconds: int = Field(default=DEFAULT_STEP_TIMEOUT, gt=0)

    @field_validator("name")
    @classmethod
    def _dns_name(cls, v: str) -> str:
        if not re.fullmatch(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?", v) or len(v) > 63:
            raise ValueError(f"step name {v!r} must be a lowercase DNS label")
        return v


class ReleaseTagConfiguration(BaseModel):
    """Where release images are imported from."""
    model_config = ConfigDict(extra="forbid")

    namespace: str
    name: str = ""
    tag: str = ""
    name_prefix: str = ""


class BuildConfiguration(BaseModel):
    model_config = ConfigDict(extra="forbid")

    build_root_image: Optional[str] = None
    steps: List[StepConfiguration] = Field(default_factory=list)
    rpm_build_commands: Optional[str] = None
    rpm_build_image: Optional[str] = None
    release_tag_configuration: Optional[ReleaseTagConfiguration] = None


def parse_build_config(raw: str) -> BuildConfiguration:
    """Decode the JSON build configuration."""
    if not raw or not raw.strip():
        raise ConfigurationError("job configuration must be provided with `--build-config`")
    try:
        return BuildConfiguration.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(f"malformed build configuration: {e}") from e


# -------------------- Job identity --------------------


class Pull(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: int
    author: str = ""
    sha: str = ""


class Refs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    org: str = ""
    repo: str = ""
    base_ref: str = ""
    base_sha: str = ""
    pulls: List[Pull] = Field(default_factory=list)


class JobSpecPayload(BaseModel):
    """JOB_SPEC as handed to us by the CI system."""
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    job: str
    buildid: str = ""
    refs: Refs = Field(default_factory=Refs)


def resolve_job_spec(env: Mapping[str, str] | None = None) -> JobSpec:
    """Build a JobSpec from $JOB_SPEC."""
    env = os.environ if env is None else env
    raw = env.get("JOB_SPEC", "")
    if not raw:
        raise ValueError("$JOB_SPEC unset")
    try:
        payload = JobSpecPayload.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(f"malformed $JOB_SPEC: {e}") from e

    refs: Dict[str, Any] = payload.refs.model_dump()
    return JobSpec(job=payload.job, build_id=payload.buildid, type=payload.type, refs=refs)


# -------------------- Durations --------------------

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def _checked(seconds: float, value: object) -> float:
    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"invalid duration: {value!r} (must be a finite, non-negative length)")
    return seconds


def parse_duration(value: str | int | float | None) -> float:
    """
    Parse plain seconds ("90") or Go-style durations ("1h30m", "45s").
    Empty / None is 0.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return _checked(float(value), value)

    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return _checked(seconds, value)

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return total

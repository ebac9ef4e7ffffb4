# model.py
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Set, runtime_checkable


# ---------------------------------------------------------------------
# Step terminal states
# ---------------------------------------------------------------------

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"

TERMINAL_STATES = (SUCCEEDED, FAILED, SKIPPED)

DEFAULT_NAMESPACE_TEMPLATE = "ci-op-{id}"
DEFAULT_BASE_NAMESPACE = "stable"


@runtime_checkable
class Step(Protocol):
    """
    A unit of pipeline work.

    Any object exposing these members is a step; there is no base class.
    execute() returns normally on success and raises on failure (usually
    StepFailure). With dry=True it must only validate/plan and never
    mutate the cluster.
    """
    name: str

    def inputs(self) -> Set[str]: ...

    def outputs(self) -> Set[str]: ...

    def execute(self, dry: bool) -> None: ...


@dataclass(frozen=True)
class OwnerReference:
    """Owner of objects created during a run (the anchor image stream)."""
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
        }


@dataclass
class JobSpec:
    """
    Identity of one orchestration run.

    namespace, base_namespace and owner are attached by the coordinator
    before any cluster object is created and are not changed afterwards.
    """
    job: str
    build_id: str = ""
    type: str = ""
    refs: Dict[str, Any] = field(default_factory=dict)

    namespace: str = ""
    base_namespace: str = DEFAULT_BASE_NAMESPACE
    owner: Optional[OwnerReference] = None

    def hash(self) -> str:
        """Stable content hash of the refs under test."""
        encoded = json.dumps(self.refs, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:5]

    def set_namespace(self, template: str) -> None:
        self.namespace = (template or DEFAULT_NAMESPACE_TEMPLATE).replace("{id}", self.hash())

    def set_base_namespace(self, base_namespace: str) -> None:
        self.base_namespace = base_namespace

    def set_owner(self, owner: OwnerReference) -> None:
        self.owner = owner

    def owner_references(self) -> list[Dict[str, Any]]:
        """ownerReferences block for objects created inside the namespace."""
        if self.owner is None:
            return []
        return [self.owner.to_dict()]

# cluster/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

NAMESPACE_TERMINATING = "Terminating"
NAMESPACE_ACTIVE = "Active"

POD_PENDING = "Pending"
POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"
POD_UNKNOWN = "Unknown"


@dataclass
class Project:
    """A namespace as seen through the project API."""
    name: str
    phase: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Project:
        return cls(
            name=data.get("metadata", {}).get("name", ""),
            phase=data.get("status", {}).get("phase", ""),
        )

    @property
    def terminating(self) -> bool:
        return self.phase == NAMESPACE_TERMINATING


@dataclass
class ImageStream:
    name: str
    uid: str
    docker_image_repository: str = ""
    public_docker_image_repository: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ImageStream:
        meta = data.get("metadata", {})
        status = data.get("status", {})
        return cls(
            name=meta.get("name", ""),
            uid=meta.get("uid", ""),
            docker_image_repository=status.get("dockerImageRepository", ""),
            public_docker_image_repository=status.get("publicDockerImageRepository", ""),
        )

    @property
    def registry(self) -> Optional[str]:
        """Registry host of this stream, public address preferred."""
        for repo in (self.public_docker_image_repository, self.docker_image_repository):
            if repo:
                return repo.split("/", 1)[0]
        return None


@dataclass
class RouteIngress:
    host: str
    conditions: List[Tuple[str, str]] = field(default_factory=list)  # (type, status)


@dataclass
class Route:
    name: str
    ingress: List[RouteIngress] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Route:
        ingress = []
        for item in data.get("status", {}).get("ingress") or []:
            ingress.append(RouteIngress(
                host=item.get("host", ""),
                conditions=[(c.get("type", ""), c.get("status", "")) for c in item.get("conditions") or []],
            ))
        return cls(name=data.get("metadata", {}).get("name", ""), ingress=ingress)

    def admitted_host(self) -> Optional[str]:
        """First ingress host the router has admitted, if any."""
        for ing in self.ingress:
            if not ing.host:
                continue
            if ("Admitted", "True") in ing.conditions:
                return ing.host
        return None


@dataclass
class Pod:
    name: str
    phase: str
    restart_policy: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Pod:
        status = data.get("status", {})
        return cls(
            name=data.get("metadata", {}).get("name", ""),
            phase=status.get("phase", ""),
            restart_policy=data.get("spec", {}).get("restartPolicy", ""),
            message=status.get("message", "") or status.get("reason", ""),
        )

# namespace.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from .cluster.api_client import AlreadyExists, ClusterAPIError, ClusterClient, NotFound
from .cluster.models import ImageStream, Project
from .errors import ProvisioningError
from .model import JobSpec, OwnerReference
from .ui.console import get_console
from .wait import WaitTimeout, poll_immediate

PIPELINE_IMAGE_STREAM = "pipeline"

CLEANUP_ACCOUNT = "cleanup"
CLEANUP_POD = "cleanup-when-idle"
CLEANUP_CLUSTER_ROLE = "admin"
DEFAULT_CLEANUP_IMAGE = "ciop:latest"
CLEANUP_DEADLINE_SECONDS = 12 * 60 * 60
CLEANUP_GRACE_SECONDS = 30

NAMESPACE_RETRY_INTERVAL = 3.0
NAMESPACE_RETRY_TIMEOUT = 10 * 60.0

# lifecycle states driven by this process; cleaning-up and gone are only
# ever observed by the in-cluster watchdog
ABSENT = "absent"
PROVISIONING = "provisioning"
READY = "ready"


class NamespaceManager:
    """
    Provisions (or recovers) the ephemeral namespace of a run and the objects
    that bound its lifetime.

    Every create here is idempotent: an object that already exists is
    fetched and reused, so running the same job twice lands in the same
    namespace with the same anchor.
    """

    def __init__(
        self,
        client: ClusterClient,
        job_spec: JobSpec,
        *,
        retry_interval: float = NAMESPACE_RETRY_INTERVAL,
        retry_timeout: float = NAMESPACE_RETRY_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.job_spec = job_spec
        self.retry_interval = retry_interval
        self.retry_timeout = retry_timeout
        self._sleep = sleep
        self._clock = clock
        self.state = ABSENT

    @property
    def namespace(self) -> str:
        return self.job_spec.namespace

    # -----------------------------------------------------------------
    # Namespace
    # -----------------------------------------------------------------

    def provision_namespace(self) -> Project:
        """
        Create the namespace, or adopt it if it already exists.

        A namespace left over from a previous run that is still being
        deleted is waited out, then created again.
        """
        console = get_console()
        ns = self.namespace
        console.print_info(f"Creating namespace {ns}")
        self.state = PROVISIONING
        found: Dict[str, Project] = {}

        def attempt() -> bool:
            try:
                data = self.client.create("projectrequest", {
                    "apiVersion": "project.openshift.io/v1",
                    "kind": "ProjectRequest",
                    "metadata": {"name": ns},
                })
            except AlreadyExists:
                try:
                    data = self.client.get("project", ns)
                except NotFound:
                    # deleted between our create and get, start over
                    return False
                except ClusterAPIError as e:
                    raise ProvisioningError(f"cannot retrieve test namespace: {e}", namespace=ns) from e
            except ClusterAPIError as e:
                raise ProvisioningError(f"could not set up namespace for test: {e}", namespace=ns) from e

            project = Project.from_dict(data)
            if project.terminating:
                console.print_info("Waiting for namespace to finish terminating before creating another")
                return False
            found["project"] = Project(name=project.name or ns, phase=project.phase)
            return True

        try:
            poll_immediate(
                self.retry_interval,
                self.retry_timeout,
                attempt,
                sleep=self._sleep,
                clock=self._clock,
            )
        except WaitTimeout as e:
            raise ProvisioningError(
                f"namespace {ns} did not become available: {e}", namespace=ns,
            ) from e

        self.state = READY
        return found["project"]

    # -----------------------------------------------------------------
    # Anchor image stream
    # -----------------------------------------------------------------

    def provision_anchor(self) -> Optional[ImageStream]:
        """
        Create the pipeline image stream (or read it) and make it the owner
        of everything else created during the run.

        Returns None when the stream exists but cannot be read back; the run
        then continues without an owner reference.
        """
        console = get_console()
        ns = self.namespace
        try:
            data = self.client.create("imagestream", {
                "apiVersion": "image.openshift.io/v1",
                "kind": "ImageStream",
                "metadata": {"namespace": ns, "name": PIPELINE_IMAGE_STREAM},
            }, namespace=ns)
        except AlreadyExists:
            try:
                data = self.client.get("imagestream", PIPELINE_IMAGE_STREAM, namespace=ns)
            except ClusterAPIError as e:
                console.print_warning(
                    f"could not read existing {PIPELINE_IMAGE_STREAM} image stream, "
                    f"objects will not be garbage collected with it: {e}"
                )
                return None
        except ClusterAPIError as e:
            raise ProvisioningError(
                f"could not set up pipeline imagestream for test: {e}", namespace=ns,
            ) from e

        stream = ImageStream.from_dict(data)
        if not stream.uid:
            console.print_warning(f"{PIPELINE_IMAGE_STREAM} image stream has no uid, skipping owner reference")
            return stream

        self.job_spec.set_owner(OwnerReference(
            api_version="image.openshift.io/v1",
            kind="ImageStream",
            name=PIPELINE_IMAGE_STREAM,
            uid=stream.uid,
            controller=True,
        ))
        return stream

    # -----------------------------------------------------------------
    # Idle cleanup watchdog
    # -----------------------------------------------------------------

    def _create_if_missing(self, kind: str, body: Dict[str, Any], what: str) -> None:
        try:
            self.client.create(kind, body, namespace=self.namespace)
        except AlreadyExists:
            pass
        except ClusterAPIError as e:
            raise ProvisioningError(f"could not create {what} for cleanup: {e}", namespace=self.namespace) from e

    def install_idle_cleanup(self, idle_seconds: int, image: str = DEFAULT_CLEANUP_IMAGE) -> None:
        """
        Schedule a pod that deletes the namespace once no other run-once pod
        has been active for `idle_seconds`. Does nothing when idle_seconds <= 0.
        """
        if idle_seconds <= 0:
            return
        get_console().print_info(f"Namespace will be deleted after {idle_seconds}s of idle time")

        self._create_if_missing("serviceaccount", {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": CLEANUP_ACCOUNT},
        }, "service account")

        self._create_if_missing("rolebinding", {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "RoleBinding",
            "metadata": {"name": CLEANUP_ACCOUNT},
            "subjects": [{"kind": "ServiceAccount", "name": CLEANUP_ACCOUNT, "namespace": self.namespace}],
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": CLEANUP_CLUSTER_ROLE,
            },
        }, "role binding")

        self._create_if_missing("pod", cleanup_pod(idle_seconds, image), "pod")


def cleanup_pod(idle_seconds: int, image: str = DEFAULT_CLEANUP_IMAGE) -> Dict[str, Any]:
    """Manifest of the in-cluster idle watchdog (see ciop.watchdog)."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": CLEANUP_POD},
        "spec": {
            "activeDeadlineSeconds": CLEANUP_DEADLINE_SECONDS,
            "restartPolicy": "Never",
            "terminationGracePeriodSeconds": CLEANUP_GRACE_SECONDS,
            "serviceAccountName": CLEANUP_ACCOUNT,
            "containers": [{
                "name": "cleanup",
                "image": image,
                "command": ["ciop", "watch-idle"],
                "env": [
                    {
                        "name": "NAMESPACE",
                        "valueFrom": {"fieldRef": {"fieldPath": "metadata.namespace"}},
                    },
                    {"name": "WAIT", "value": str(int(idle_seconds))},
                    {"name": "POD_NAME", "value": CLEANUP_POD},
                ],
            }],
        },
    }

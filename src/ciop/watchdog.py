# watchdog.py
# Runs inside the run's namespace (see namespace.cleanup_pod) and deletes the
# namespace once no run-once pod has been active for a while. It never talks to
# the orchestrator process, so cleanup still happens if that process dies.
from __future__ import annotations

import signal
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .cluster.api_client import ClusterClient, NotFound
from .cluster.models import POD_PENDING, POD_RUNNING, POD_UNKNOWN, Pod
from .ui.console import get_console

ACTIVE_PHASES = frozenset({POD_PENDING, POD_RUNNING, POD_UNKNOWN})

# consecutive empty observations required before deleting
IDLE_CONFIRMATIONS = 2


def active_pods(pods: Iterable[Dict[str, Any]], self_name: str) -> List[str]:
    """Names of run-once pods, other than the watchdog itself, that are still alive."""
    alive = []
    for item in pods:
        pod = Pod.from_dict(item)
        if pod.name == self_name:
            continue
        if pod.restart_policy != "Never":
            continue
        if pod.phase in ACTIVE_PHASES:
            alive.append(pod.name)
    return alive


class IdleWatchdog:
    """
    Polling state machine.

    observe() is fed the active pods seen in one window. Any active pod
    resets the idle counter; an empty window increments it. Deletion is due
    once IDLE_CONFIRMATIONS empty windows have been seen back to back.

    run() always calls delete_namespace on the way out, whether the idle
    condition was reached, stop() was called (SIGTERM) or listing failed.
    """

    def __init__(
        self,
        list_active: Callable[[], Sequence[str]],
        delete_namespace: Callable[[], None],
        wait_seconds: float,
        *,
        confirmations: int = IDLE_CONFIRMATIONS,
        stop_event: Optional[threading.Event] = None,
    ):
        self._list_active = list_active
        self._delete_namespace = delete_namespace
        self.wait_seconds = wait_seconds
        self.confirmations = confirmations
        self._stop = stop_event or threading.Event()
        self.idle = 0

    def observe(self, active: Sequence[str]) -> bool:
        """Record one observation window. Returns True when the namespace should go."""
        if active:
            self.idle = 0
            return False
        self.idle += 1
        return self.idle >= self.confirmations

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> bool:
        """
        Watch until idle or stopped, then delete the namespace.
        Returns True if the idle condition was reached.
        """
        console = get_console()
        console.print_info(f"Waiting for all running pods to terminate (max idle {self.wait_seconds:g}s) ...")
        try:
            while not self._stop.is_set():
                if self.observe(self._list_active()):
                    console.print_info(f"No pods running for more than {self.wait_seconds:g}s, deleting project ...")
                    return True
                self._stop.wait(self.wait_seconds)
            console.print_info("Pod deleted, deleting project ...")
            return False
        finally:
            self._delete_namespace()


def run_watchdog(client: ClusterClient, namespace: str, wait_seconds: float, pod_name: str) -> bool:
    """Wire an IdleWatchdog to the cluster and to SIGTERM/SIGINT."""

    def list_active() -> List[str]:
        return active_pods(client.list("pod", namespace=namespace), pod_name)

    def delete_namespace() -> None:
        try:
            client.delete("project", namespace)
        except NotFound:
            pass

    watchdog = IdleWatchdog(list_active, delete_namespace, wait_seconds)

    def _signal_handler(signum, frame):
        get_console().print_info(f"Received signal {signum}, shutting down...")
        watchdog.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    return watchdog.run()

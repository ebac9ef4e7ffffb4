# tests/conftest.py
from __future__ import annotations

import copy
import threading
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

import pytest

from ciop.cluster.api_client import KINDS, AlreadyExists, NotFound
from ciop.cluster.models import NAMESPACE_ACTIVE
from ciop.errors import StepFailure
from ciop.model import JobSpec
from ciop.ui.console import Console, set_console


class FakeCluster:
    """
    In-memory stand-in for ClusterClient.

    - objects are keyed by (kind, namespace, name)
    - errors[(verb, kind, name)] is a list of exceptions raised (and consumed)
      one per matching call before the fake behaves normally
    - calls records every request, mutations only create/delete that succeeded
    """

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, Optional[str], str], Dict[str, Any]] = {}
        self.errors: Dict[Tuple[str, str, str], List[Exception]] = defaultdict(list)
        self.calls: List[Tuple[str, str, Optional[str], str]] = []
        self.mutations: List[Tuple[str, str, Optional[str], str]] = []
        self.on_get = None  # callable(kind, name, stored_obj), may mutate the object
        self._uid = 0
        self._lock = threading.Lock()

    # ---- helpers for tests ----

    @staticmethod
    def _key(kind: str, namespace: Optional[str], name: str) -> Tuple[str, Optional[str], str]:
        if kind == "projectrequest":
            kind = "project"
        namespaced = KINDS[kind][2]
        return kind, namespace if namespaced else None, name

    def put(self, kind: str, obj: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})
        name = obj["metadata"]["name"]
        if "uid" not in obj["metadata"]:
            self._uid += 1
            obj["metadata"]["uid"] = f"uid-{self._uid}"
        self.objects[self._key(kind, namespace, name)] = obj
        return obj

    def find(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self.objects.get(self._key(kind, namespace, name))

    def fail(self, verb: str, kind: str, name: str, *errors: Exception) -> None:
        self.errors[(verb, kind, name)].extend(errors)

    def _record(self, verb: str, kind: str, namespace: Optional[str], name: str) -> None:
        self.calls.append((verb, kind, namespace, name))
        scripted = self.errors.get((verb, kind, name))
        if scripted:
            raise scripted.pop(0)

    # ---- ClusterClient contract ----

    def create(self, kind: str, body: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        name = body["metadata"]["name"]
        with self._lock:
            self._record("create", kind, namespace, name)
            key = self._key(kind, namespace, name)
            if key in self.objects:
                raise AlreadyExists(f"{kind} {name} already exists", status=409, reason="AlreadyExists")
            obj = copy.deepcopy(body)
            if kind == "projectrequest":
                obj = {"kind": "Project", "metadata": {"name": name}, "status": {"phase": NAMESPACE_ACTIVE}}
            if kind == "pod":
                obj.setdefault("status", {})["phase"] = "Pending"
            obj = self.put(key[0], obj, namespace)
            self.mutations.append(("create", kind, namespace, name))
            return copy.deepcopy(obj)

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            self._record("get", kind, namespace, name)
            obj = self.objects.get(self._key(kind, namespace, name))
            if obj is None:
                raise NotFound(f"{kind} {name} not found", status=404, reason="NotFound")
            if self.on_get is not None:
                self.on_get(kind, name, obj)
            return copy.deepcopy(obj)

    def list(self, kind: str, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self._record("list", kind, namespace, "")
            return [copy.deepcopy(o) for (k, ns, _), o in self.objects.items() if k == kind and ns == namespace]

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        with self._lock:
            self._record("delete", kind, namespace, name)
            key = self._key(kind, namespace, name)
            if key not in self.objects:
                raise NotFound(f"{kind} {name} not found", status=404, reason="NotFound")
            del self.objects[key]
            self.mutations.append(("delete", kind, namespace, name))


class FakeClock:
    """Deterministic clock; sleep() advances time instead of blocking."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeStep:
    """Step that records when it starts and ends."""

    def __init__(
        self,
        name: str,
        inputs: tuple = (),
        outputs: tuple = (),
        *,
        fail: bool = False,
        delay: float = 0.0,
        events: Optional[list] = None,
    ):
        self.name = name
        self._inputs = set(inputs)
        self._outputs = set(outputs)
        self.fail = fail
        self.delay = delay
        self.events = events if events is not None else []
        self.executed_with: Optional[bool] = None

    def inputs(self):
        return set(self._inputs)

    def outputs(self):
        return set(self._outputs)

    def execute(self, dry: bool) -> None:
        self.executed_with = dry
        self.events.append(("start", self.name))
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            self.events.append(("fail", self.name))
            raise StepFailure(self.name, "boom")
        self.events.append(("end", self.name))


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(debug=False))
    yield


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job_spec() -> JobSpec:
    spec = JobSpec(
        job="pull-ci-origin-unit",
        build_id="42",
        type="presubmit",
        refs={"org": "openshift", "repo": "origin", "base_ref": "master", "base_sha": "abc123", "pulls": []},
    )
    spec.set_namespace("ci-op-{id}")
    return spec

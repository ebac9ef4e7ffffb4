import threading

from conftest import FakeStep

from ciop.dag import build_graph
from ciop.model import FAILED, SKIPPED, SUCCEEDED, TERMINAL_STATES
from ciop.runner import run_graph


class BarrierStep(FakeStep):
    """Only succeeds if its sibling is running at the same time."""

    def __init__(self, name, barrier, **kw):
        super().__init__(name, **kw)
        self.barrier = barrier

    def execute(self, dry):
        self.barrier.wait()
        super().execute(dry)


class ExplodingStep(FakeStep):
    def execute(self, dry):
        raise RuntimeError("unexpected")


def test_scenario_failure_skips_dependents_and_keeps_unrelated_branch():
    events = []
    a = FakeStep("a", outputs=("img",), fail=True, events=events)
    b = FakeStep("b", inputs=("img",), outputs=("bin",), events=events)
    c = FakeStep("c", outputs=("rpm",), events=events)

    results = run_graph(build_graph([a, b, c]))

    assert results == {"a": FAILED, "b": SKIPPED, "c": SUCCEEDED}
    assert set(results.values()) <= set(TERMINAL_STATES)
    assert ("start", "b") not in events
    assert ("end", "c") in events


def test_scenario_success_orders_producer_first():
    events = []
    a = FakeStep("a", outputs=("img",), delay=0.05, events=events)
    b = FakeStep("b", inputs=("img",), outputs=("bin",), events=events)
    c = FakeStep("c", outputs=("rpm",), events=events)

    results = run_graph(build_graph([a, b, c]))

    assert results == {"a": SUCCEEDED, "b": SUCCEEDED, "c": SUCCEEDED}
    assert events.index(("end", "a")) < events.index(("start", "b"))


def test_consumer_never_starts_before_all_producers_finish():
    events = []
    steps = [
        FakeStep("src", outputs=("src",), delay=0.02, events=events),
        FakeStep("left", inputs=("src",), outputs=("l",), delay=0.05, events=events),
        FakeStep("right", inputs=("src",), outputs=("r",), delay=0.01, events=events),
        FakeStep("join", inputs=("l", "r"), outputs=("j",), events=events),
        FakeStep("tail", inputs=("j",), events=events),
    ]
    graph = build_graph(steps)

    results = run_graph(graph)

    assert set(results.values()) == {SUCCEEDED}
    for producer, consumer in graph.edges():
        assert events.index(("end", producer)) < events.index(("start", consumer))


def test_independent_steps_run_concurrently():
    barrier = threading.Barrier(2, timeout=5)
    steps = [BarrierStep("x", barrier, outputs=("x",)), BarrierStep("y", barrier, outputs=("y",))]

    results = run_graph(build_graph(steps))

    assert results == {"x": SUCCEEDED, "y": SUCCEEDED}


def test_max_workers_one_still_completes_everything():
    events = []
    steps = [
        FakeStep("a", outputs=("x",), events=events),
        FakeStep("b", inputs=("x",), events=events),
        FakeStep("c", events=events),
    ]
    results = run_graph(build_graph(steps), max_workers=1)
    assert results == {"a": SUCCEEDED, "b": SUCCEEDED, "c": SUCCEEDED}


def test_failure_skips_transitive_consumers_only():
    steps = [
        FakeStep("a", outputs=("x",), fail=True),
        FakeStep("b", inputs=("x",), outputs=("y",)),
        FakeStep("c", inputs=("y",), outputs=("z",)),
        FakeStep("e", outputs=("e",)),
        FakeStep("d", inputs=("e",)),
        FakeStep("mixed", inputs=("e", "y")),
    ]

    results = run_graph(build_graph(steps))

    assert results == {
        "a": FAILED,
        "b": SKIPPED,
        "c": SKIPPED,
        "e": SUCCEEDED,
        "d": SUCCEEDED,
        "mixed": SKIPPED,
    }
    assert steps[1].executed_with is None
    assert steps[5].executed_with is None


def test_unexpected_exception_counts_as_failure():
    steps = [ExplodingStep("boom", outputs=("x",)), FakeStep("after", inputs=("x",))]
    results = run_graph(build_graph(steps))
    assert results == {"boom": FAILED, "after": SKIPPED}


def test_dry_run_flag_reaches_every_step():
    steps = [FakeStep("a", outputs=("x",)), FakeStep("b", inputs=("x",))]
    run_graph(build_graph(steps), dry=True)
    assert [s.executed_with for s in steps] == [True, True]


def test_failure_is_reported_by_step_name(capsys):
    run_graph(build_graph([FakeStep("broken", outputs=("x",), fail=True), FakeStep("next", inputs=("x",))]))
    out = capsys.readouterr().out
    assert "STEP FAILED: broken" in out
    assert "STEP SKIPPED: next (depends on failed step broken)" in out


def test_empty_graph():
    assert run_graph(build_graph([])) == {}

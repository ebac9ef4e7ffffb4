# runner.py
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List

from .dag import Graph
from .model import FAILED, SKIPPED, SUCCEEDED, Step
from .ui.console import get_console


def _run_step(step: Step, dry: bool) -> None:
    get_console().print_step_start(step.name)
    step.execute(dry)


def run_graph(
    graph: Graph,
    *,
    dry: bool = False,
    max_workers: int | None = None,
) -> Dict[str, str]:
    """
    Execute every step of the graph and return name -> terminal state.

    - A step is dispatched once all of its producers have succeeded.
    - When a step fails, everything downstream of it is marked skipped;
      branches that do not depend on it keep running.
    - Results are ordered like graph.steps.
    """
    console = get_console()
    indeg = dict(graph.indeg)  # copy (we mutate it)
    ready: List[str] = [name for name in graph.steps if indeg[name] == 0]
    states: Dict[str, str] = {}

    if max_workers is None:
        max_workers = max(1, len(graph.steps))

    in_flight: Dict[Future, str] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            # schedule all currently ready
            while ready:
                name = ready.pop(0)
                fut = pool.submit(_run_step, graph.steps[name], dry)
                in_flight[fut] = name

            # wait for one completion, then loop to schedule newly-ready steps
            fut = next(as_completed(list(in_flight.keys())))
            name = in_flight.pop(fut)

            try:
                fut.result()
            except Exception as e:
                states[name] = FAILED
                console.print_step_failure(name, str(e))
                console.print_exception(e)
                for dependent in sorted(graph.descendants(name)):
                    if dependent not in states:
                        states[dependent] = SKIPPED
                        console.print_step_skipped(dependent, f"depends on failed step {name}")
                continue

            states[name] = SUCCEEDED
            console.print_step_success(name)

            # only direct consumers can have become ready
            for nxt in sorted(graph.adj[name]):
                indeg[nxt] -= 1
                if indeg[nxt] == 0 and nxt not in states:
                    ready.append(nxt)

    return {name: states[name] for name in graph.steps}

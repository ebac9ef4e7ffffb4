from .dag import Graph, build_graph
from .runner import run_graph
from .coordinator import RunOptions, run
from .model import JobSpec, OwnerReference, Step

__all__ = ["Graph", "build_graph", "run_graph", "RunOptions", "run", "JobSpec", "OwnerReference", "Step"]

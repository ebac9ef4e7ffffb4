# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured orchestrator error with enough context for:
      - a single clean diagnostic line on the CLI
      - debugging without full tracebacks (details)
    """
    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigurationError(CIError):
    """Malformed or unsatisfiable step graph. Always raised before any step runs."""

    def __init__(self, message: str, **details: Any):
        super().__init__(kind="configuration", message=message, details=details)


class ProvisioningError(CIError):
    """A cluster object could not be created or fetched."""

    def __init__(self, message: str, **details: Any):
        super().__init__(kind="provisioning", message=message, details=details)


class StepFailure(CIError):
    """Raised by a step's execute() when its unit of work failed."""

    def __init__(self, step: str, message: str, **details: Any):
        super().__init__(kind="step_failed", message=message, details=details)
        self.step = step

    def __str__(self) -> str:
        return f"[{self.step}] {super().__str__()}"


class ResolutionTimeout(CIError):
    """A bounded poll during parameter export ran out of time."""

    def __init__(self, message: str, **details: Any):
        super().__init__(kind="resolution_timeout", message=message, details=details)


class RunFailure(CIError):
    """One or more steps failed; the graph ran to completion anyway."""

    def __init__(self, failed: List[str], skipped: List[str]):
        super().__init__(
            kind="run_failed",
            message=f"{len(failed)} step(s) failed: {', '.join(failed)}",
            details={"skipped": ", ".join(skipped)} if skipped else {},
        )
        self.failed = failed
        self.skipped = skipped

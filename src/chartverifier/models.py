"""Shared domain models for ChartVerifier."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from chartverifier.constants import (
    DEFAULT_NOT_FOUND_GRACE_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    FailureKind,
    Outcome,
)
from chartverifier.errors import VerifierError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Scope:
    """Isolation boundary owned by a single verification run."""

    id: str
    created_at: datetime = field(default_factory=_utcnow)
    released: bool = False


@dataclass
class Release:
    name: str
    scope: Scope
    chart_ref: str
    installed: bool = False

    @property
    def namespace(self) -> str:
        return self.scope.id


@dataclass(frozen=True)
class WorkloadHandle:
    """Read-only snapshot of a deployment's replica status."""

    namespace: str
    name: str
    desired_replicas: int
    observed_available_replicas: int
    ready: bool

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        return f"{self.observed_available_replicas}/{self.desired_replicas} replicas available"


@dataclass(frozen=True)
class WaitPolicy:
    """Bounded polling configuration for readiness checks (seconds)."""

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    not_found_grace: float = DEFAULT_NOT_FOUND_GRACE_SECONDS
    min_available: Optional[int] = None

    def __post_init__(self):
        if self.timeout <= 0:
            raise VerifierError("Wait timeout must be greater than zero.")
        if self.poll_interval <= 0:
            raise VerifierError("Poll interval must be greater than zero.")
        if self.not_found_grace < 0:
            raise VerifierError("Not-found grace window cannot be negative.")
        if self.min_available is not None and self.min_available < 0:
            raise VerifierError("Minimum available replicas cannot be negative.")

    def required_replicas(self, desired_replicas: int) -> int:
        if self.min_available is None:
            return desired_replicas
        return min(self.min_available, desired_replicas)


@dataclass(frozen=True)
class KubeOptions:
    """Connection flags passed through to kubectl and helm."""

    context: Optional[str] = None
    kubeconfig: Optional[str] = None

    def kubectl_flags(self) -> List[str]:
        flags: List[str] = []
        if self.context:
            flags += ["--context", self.context]
        if self.kubeconfig:
            flags += ["--kubeconfig", self.kubeconfig]
        return flags

    def helm_flags(self) -> List[str]:
        flags: List[str] = []
        if self.context:
            flags += ["--kube-context", self.context]
        if self.kubeconfig:
            flags += ["--kubeconfig", self.kubeconfig]
        return flags


@dataclass(frozen=True)
class ChartInfo:
    name: str
    version: Optional[str]
    app_version: Optional[str]
    path: str


@dataclass(frozen=True)
class VerificationResult:
    """Verdict of a single verification run."""

    outcome: Outcome
    chart_ref: str
    reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    diagnostics: Optional[WorkloadHandle] = None
    scope_id: Optional[str] = None
    release_name: Optional[str] = None
    cleanup_errors: Tuple[str, ...] = ()
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCEEDED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "chart_ref": self.chart_ref,
            "reason": self.reason,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "diagnostics": self.diagnostics.as_dict() if self.diagnostics else None,
            "scope_id": self.scope_id,
            "release_name": self.release_name,
            "cleanup_errors": list(self.cleanup_errors),
            "duration_seconds": self.duration_seconds,
        }

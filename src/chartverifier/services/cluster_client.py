"""kubectl-backed cluster client for ChartVerifier."""

import json
from typing import Any, Dict, List, Optional

from chartverifier.errors import (
    ClusterError,
    CommandError,
    NotFoundError,
    TransientClusterError,
    VerifierError,
)
from chartverifier.models import KubeOptions, WorkloadHandle

TRANSIENT_FAILURE_PATTERNS = (
    "connection refused",
    "connection reset",
    "unable to connect to the server",
    "i/o timeout",
    "timed out",
    "tls handshake timeout",
    "context deadline exceeded",
    "too many requests",
    "service unavailable",
    "the server is currently unable to handle the request",
    "etcdserver: leader changed",
    "unexpected eof",
    "no route to host",
)
# Only kubectl's "Error from server (NotFound)" marker means the object is absent.
NOT_FOUND_PATTERNS = ("(notfound)",)


def is_not_found(error: CommandError) -> bool:
    stderr = error.stderr.lower()
    return any(pattern in stderr for pattern in NOT_FOUND_PATTERNS)


def is_transient(error: CommandError) -> bool:
    stderr = error.stderr.lower()
    return any(pattern in stderr for pattern in TRANSIENT_FAILURE_PATTERNS)


def workload_from_deployment(document: Dict[str, Any]) -> WorkloadHandle:
    """Builds a snapshot from a ``kubectl get deployment -o json`` document."""
    metadata = document.get("metadata") or {}
    spec = document.get("spec") or {}
    status = document.get("status") or {}

    # spec.replicas defaults to 1 when omitted; status fields are omitted at zero.
    desired = spec.get("replicas")
    desired = 1 if desired is None else int(desired)
    available = int(status.get("availableReplicas") or 0)

    return WorkloadHandle(
        namespace=metadata.get("namespace", ""),
        name=metadata.get("name", ""),
        desired_replicas=desired,
        observed_available_replicas=available,
        ready=available >= desired,
    )


class KubectlClient:
    """Namespace and deployment operations over the kubectl CLI."""

    def __init__(
        self,
        command_runner,
        logger,
        kube_options: Optional[KubeOptions] = None,
        kubectl_binary: str = "kubectl",
        delete_timeout_seconds: int = 120,
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.kube_options = kube_options or KubeOptions()
        self.kubectl_binary = kubectl_binary
        self.delete_timeout_seconds = delete_timeout_seconds

    def _cmd(self, *args: str) -> List[str]:
        return [self.kubectl_binary, *self.kube_options.kubectl_flags(), *args]

    def check_available(self):
        self.command_runner.run(self._cmd("version", "--client"))

    def create_namespace(self, name: str):
        self.logger.debug("Creating namespace %s", name)
        self.command_runner.run(
            self._cmd("create", "namespace", name),
            retry_count=2,
            should_retry=is_transient,
        )

    def delete_namespace(self, name: str):
        self.logger.debug("Deleting namespace %s", name)
        self.command_runner.run(
            self._cmd(
                "delete",
                "namespace",
                name,
                "--ignore-not-found",
                "--wait=true",
                f"--timeout={self.delete_timeout_seconds}s",
            ),
            retry_count=2,
            should_retry=is_transient,
        )

    def namespace_exists(self, name: str) -> bool:
        try:
            self.command_runner.run(self._cmd("get", "namespace", name, "-o", "name"))
        except CommandError as exc:
            if is_not_found(exc):
                return False
            raise self._classify(exc) from exc
        return True

    def get_workload(self, namespace: str, name: str, timeout: Optional[float] = None) -> WorkloadHandle:
        default_timeout = getattr(self.command_runner, "default_timeout", None)
        if timeout is not None and default_timeout is not None:
            timeout = min(timeout, default_timeout)
        try:
            result = self.command_runner.run(
                self._cmd("get", "deployment", name, "--namespace", namespace, "-o", "json"),
                timeout=timeout,
            )
        except CommandError as exc:
            raise self._classify(exc) from exc

        try:
            document = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise TransientClusterError(
                f"kubectl returned invalid JSON for deployment {namespace}/{name}: {exc}"
            ) from exc
        return workload_from_deployment(document)

    @staticmethod
    def _classify(error: CommandError) -> VerifierError:
        if is_transient(error):
            return TransientClusterError(str(error))
        if is_not_found(error):
            return NotFoundError(str(error))
        return ClusterError(str(error))

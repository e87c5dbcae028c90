"""Domain errors for ChartVerifier."""

from typing import List, Optional

from chartverifier.constants import FailureKind


class VerifierError(RuntimeError):
    """Raised when a verification step cannot continue."""

    kind = FailureKind.UNEXPECTED


class CommandError(VerifierError):
    """An external command exited with a failure status."""

    kind = FailureKind.CLUSTER

    def __init__(self, message: str, cmd: List[str], returncode: int, stderr: str = ""):
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr


class ProvisioningError(VerifierError):
    """Namespace creation or deletion was rejected by the cluster."""

    kind = FailureKind.PROVISIONING


class InstallError(VerifierError):
    """The package manager rejected an install."""

    kind = FailureKind.INSTALL


class UninstallError(VerifierError):
    """The package manager rejected an uninstall."""

    kind = FailureKind.INSTALL


class NotFoundError(VerifierError):
    """An expected resource does not exist."""

    kind = FailureKind.NOT_FOUND


class ClusterError(VerifierError):
    """The cluster API returned an error that is neither absence nor transient."""

    kind = FailureKind.CLUSTER


class TransientClusterError(ClusterError):
    """Connectivity problem talking to the cluster API; safe to retry."""


class ReadinessTimeoutError(VerifierError, TimeoutError):
    """The workload exists but did not become ready within the wait budget."""

    kind = FailureKind.TIMEOUT

    def __init__(self, message: str, last_handle=None, last_error: Optional[Exception] = None):
        super().__init__(message)
        self.last_handle = last_handle
        self.last_error = last_error


class VerificationAssertionError(VerifierError, AssertionError):
    """The ready workload did not match the expected identity."""

    kind = FailureKind.ASSERTION

    def __init__(self, message: str, handle=None):
        super().__init__(message)
        self.handle = handle


class VerificationCancelled(VerifierError):
    kind = FailureKind.CANCELLED

"""Shared constants for ChartVerifier."""

from enum import Enum

LOGGER_NAME = "chartverifier"
DEFAULT_CONFIG_FILE = ".chartverifier.yml"

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_NOT_FOUND_GRACE_SECONDS = 2.0
DEFAULT_COMMAND_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_PARALLEL = 4

DEFAULT_NAMESPACE_PREFIX = "chart"
SCOPE_SUFFIX_LENGTH = 10
# Helm caps release names at 53 characters, namespaces allow 63.
MAX_SCOPE_ID_LENGTH = 53


class Outcome(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class FailureKind(str, Enum):
    PROVISIONING = "provisioning"
    INSTALL = "install"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    ASSERTION = "assertion"
    CLUSTER = "cluster"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"

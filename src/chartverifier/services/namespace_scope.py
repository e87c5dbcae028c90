"""Per-run namespace isolation for ChartVerifier.

Each verification run gets its own namespace named ``<prefix>-<suffix>``.
The same identifier doubles as the helm release name, so it is kept within
the 53 character release-name limit.
"""

import re
import uuid
from contextlib import contextmanager
from typing import Iterator

from chartverifier.constants import (
    DEFAULT_NAMESPACE_PREFIX,
    MAX_SCOPE_ID_LENGTH,
    SCOPE_SUFFIX_LENGTH,
)
from chartverifier.errors import ProvisioningError, VerifierError
from chartverifier.errors_catalog import actionable_error
from chartverifier.models import Scope

SCOPE_ID_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def normalize_prefix(prefix: str) -> str:
    normalized = prefix.lower().replace("_", "-").replace(".", "-")
    normalized = re.sub(r"[^a-z0-9-]", "", normalized).strip("-")

    max_prefix_length = MAX_SCOPE_ID_LENGTH - SCOPE_SUFFIX_LENGTH - 1
    if len(normalized) > max_prefix_length:
        normalized = normalized[:max_prefix_length].rstrip("-")

    return normalized or DEFAULT_NAMESPACE_PREFIX


def generate_scope_id(prefix: str = DEFAULT_NAMESPACE_PREFIX) -> str:
    """Returns a collision-resistant DNS-1123 label such as ``rafiki-auth-3f9c0a1b2d``."""
    scope_id = f"{normalize_prefix(prefix)}-{uuid.uuid4().hex[:SCOPE_SUFFIX_LENGTH]}"
    if not is_valid_scope_id(scope_id):
        raise VerifierError(f"Generated namespace '{scope_id}' does not match Kubernetes naming rules.")
    return scope_id


def is_valid_scope_id(scope_id: str) -> bool:
    if not scope_id or len(scope_id) > MAX_SCOPE_ID_LENGTH:
        return False
    return bool(SCOPE_ID_PATTERN.match(scope_id))


class NamespaceScope:
    """Acquires and releases a uniquely named namespace."""

    def __init__(self, cluster_client, logger, prefix: str = DEFAULT_NAMESPACE_PREFIX):
        self.cluster_client = cluster_client
        self.logger = logger
        self.prefix = prefix

    def acquire(self) -> Scope:
        scope = Scope(id=generate_scope_id(self.prefix))
        try:
            self.cluster_client.create_namespace(scope.id)
        except VerifierError as exc:
            raise ProvisioningError(
                actionable_error("namespace_create_failed", namespace=scope.id, cause=str(exc))
            ) from exc

        self.logger.info("Created namespace %s", scope.id)
        return scope

    def release(self, scope: Scope):
        if scope.released:
            self.logger.debug("Namespace %s already released.", scope.id)
            return

        try:
            self.cluster_client.delete_namespace(scope.id)
        except VerifierError as exc:
            raise ProvisioningError(
                actionable_error("namespace_delete_failed", namespace=scope.id, cause=str(exc))
            ) from exc

        scope.released = True
        self.logger.info("Deleted namespace %s", scope.id)

    @contextmanager
    def scoped(self) -> Iterator[Scope]:
        scope = self.acquire()
        try:
            yield scope
        finally:
            self.release(scope)

"""Deployment readiness polling for ChartVerifier."""

import time
from typing import Callable, Optional

from chartverifier.errors import (
    NotFoundError,
    ReadinessTimeoutError,
    TransientClusterError,
    VerificationCancelled,
)
from chartverifier.errors_catalog import actionable_error
from chartverifier.models import WaitPolicy, WorkloadHandle

MIN_POLL_TIMEOUT_SECONDS = 1.0


def is_ready(handle: WorkloadHandle, policy: WaitPolicy) -> bool:
    required = policy.required_replicas(handle.desired_replicas)
    return handle.observed_available_replicas >= required


class ReadinessWaiter:
    """Polls a deployment at a fixed interval until it is available.

    Transient cluster errors are retried until the timeout. A deployment
    that stays absent for longer than the policy's grace window fails fast
    with ``NotFoundError`` instead of consuming the whole timeout. Each poll
    is capped at the remaining wait budget.

    Without an explicit ``sleeper`` the waiter sleeps on the cancel event,
    so ``cancel_event.set()`` interrupts the pause between polls.
    """

    def __init__(
        self,
        cluster_client,
        logger,
        console=None,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Optional[Callable[[float], None]] = None,
    ):
        self.cluster_client = cluster_client
        self.logger = logger
        self.console = console
        self.clock = clock
        self.sleeper = sleeper

    def wait_until_ready(
        self,
        namespace: str,
        name: str,
        policy: WaitPolicy,
        cancel_event=None,
    ) -> WorkloadHandle:
        if self.console is not None:
            self.console.print(f"[yellow]Waiting for deployment {namespace}/{name}...[/yellow]")

        start_time = self.clock()
        absent_since: Optional[float] = None
        last_handle: Optional[WorkloadHandle] = None
        last_error: Optional[Exception] = None
        attempt = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise VerificationCancelled(f"Wait for deployment {namespace}/{name} was cancelled.")

            attempt += 1
            poll_timeout = max(
                policy.timeout - (self.clock() - start_time),
                min(MIN_POLL_TIMEOUT_SECONDS, policy.timeout),
            )
            try:
                handle = self.cluster_client.get_workload(namespace, name, timeout=poll_timeout)
            except NotFoundError as exc:
                now = self.clock()
                if absent_since is None:
                    absent_since = now
                last_error = exc
                if now - absent_since >= policy.not_found_grace:
                    raise NotFoundError(
                        actionable_error("workload_not_found", name=name, namespace=namespace)
                    ) from exc
                self.logger.debug("Deployment %s/%s not found yet (attempt %s).", namespace, name, attempt)
            except TransientClusterError as exc:
                last_error = exc
                self.logger.debug("Transient error polling %s/%s: %s", namespace, name, exc)
            else:
                absent_since = None
                last_handle = handle
                self.logger.debug(
                    "Deployment %s/%s: %s (attempt %s).", namespace, name, handle.describe(), attempt
                )
                if is_ready(handle, policy):
                    if self.console is not None:
                        self.console.print(f"[green]Deployment {name} is ready.[/green]")
                    return handle

            elapsed = self.clock() - start_time
            if elapsed >= policy.timeout:
                observed = last_handle.describe() if last_handle else "never observed"
                raise ReadinessTimeoutError(
                    actionable_error(
                        "readiness_timeout",
                        name=name,
                        namespace=namespace,
                        timeout=f"{policy.timeout:g}",
                        observed=observed,
                    ),
                    last_handle=last_handle,
                    last_error=last_error,
                )

            remaining = policy.timeout - elapsed
            if absent_since is not None:
                remaining = min(remaining, policy.not_found_grace - (self.clock() - absent_since))
            sleep_time = min(policy.poll_interval, max(remaining, 0.0))
            if sleep_time > 0:
                self._sleep(sleep_time, cancel_event)

    def _sleep(self, seconds: float, cancel_event):
        if self.sleeper is not None:
            self.sleeper(seconds)
        elif cancel_event is not None:
            cancel_event.wait(seconds)
        else:
            time.sleep(seconds)

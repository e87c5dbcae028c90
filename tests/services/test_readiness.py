import subprocess
import threading
import time

import pytest

from chartverifier.errors import (
    ClusterError,
    NotFoundError,
    ReadinessTimeoutError,
    TransientClusterError,
    VerificationCancelled,
)
from chartverifier.models import WaitPolicy, WorkloadHandle
from chartverifier.services.cluster_client import KubectlClient
from chartverifier.services.command_runner import CommandRunner
from chartverifier.services.readiness import ReadinessWaiter, is_ready


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedCluster:
    """Replays one response per poll; the last response repeats."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.polls = 0

    def get_workload(self, namespace, name, timeout=None):
        self.polls += 1
        response = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _handle(available, desired=1):
    return WorkloadHandle(
        namespace="web-abc",
        name="web-abc",
        desired_replicas=desired,
        observed_available_replicas=available,
        ready=available >= desired,
    )


def _waiter(cluster, clock):
    return ReadinessWaiter(cluster, DummyLogger(), clock=clock, sleeper=clock.sleep)


def test_is_ready_honours_min_available():
    handle = _handle(available=2, desired=3)

    assert is_ready(handle, WaitPolicy()) is False
    assert is_ready(handle, WaitPolicy(min_available=2)) is True


def test_returns_handle_once_replicas_available():
    clock = FakeClock()
    cluster = ScriptedCluster(_handle(0), _handle(0), _handle(0), _handle(1))

    handle = _waiter(cluster, clock).wait_until_ready(
        "web-abc", "web-abc", WaitPolicy(timeout=20, poll_interval=1)
    )

    assert handle.observed_available_replicas == 1
    assert cluster.polls == 4
    assert clock.now == pytest.approx(3.0)


def test_ready_is_detected_within_one_poll_interval():
    clock = FakeClock()
    policy = WaitPolicy(timeout=60, poll_interval=5)

    class BecomesReadyAt:
        def get_workload(self, namespace, name, timeout=None):
            return _handle(1 if clock.now >= 12 else 0)

    _waiter(BecomesReadyAt(), clock).wait_until_ready("web-abc", "web-abc", policy)

    assert 12 <= clock.now <= 12 + policy.poll_interval


def test_transient_errors_are_retried_silently():
    clock = FakeClock()
    cluster = ScriptedCluster(
        TransientClusterError("connection refused"),
        TransientClusterError("i/o timeout"),
        _handle(1),
    )

    handle = _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy(timeout=20, poll_interval=1))

    assert handle.ready is True
    assert cluster.polls == 3


def test_timeout_carries_last_observed_handle():
    clock = FakeClock()
    cluster = ScriptedCluster(_handle(0, desired=2))

    with pytest.raises(ReadinessTimeoutError) as error:
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy(timeout=5, poll_interval=1))

    assert error.value.last_handle == _handle(0, desired=2)
    assert "0/2 replicas available" in str(error.value)
    assert clock.now == pytest.approx(5.0)


def test_timeout_with_only_transient_errors_keeps_last_error():
    clock = FakeClock()
    cause = TransientClusterError("connection refused")
    cluster = ScriptedCluster(cause)

    with pytest.raises(ReadinessTimeoutError) as error:
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy(timeout=3, poll_interval=1))

    assert error.value.last_handle is None
    assert error.value.last_error is cause


def test_absent_workload_fails_fast_after_grace_window():
    clock = FakeClock()
    cluster = ScriptedCluster(NotFoundError('deployments.apps "web-abc" not found'))
    policy = WaitPolicy(timeout=20, poll_interval=1, not_found_grace=2)

    with pytest.raises(NotFoundError, match="never appeared"):
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", policy)

    assert clock.now <= 3.0


def test_workload_appearing_within_grace_window_is_awaited():
    clock = FakeClock()
    missing = NotFoundError("not found")
    cluster = ScriptedCluster(missing, _handle(0), missing, _handle(1))
    policy = WaitPolicy(timeout=20, poll_interval=1, not_found_grace=1.5)

    handle = _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", policy)

    assert handle.ready is True


def test_other_cluster_errors_propagate():
    clock = FakeClock()
    cluster = ScriptedCluster(ClusterError("forbidden"))

    with pytest.raises(ClusterError, match="forbidden"):
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy())


def test_cancel_event_stops_polling():
    clock = FakeClock()
    cancel_event = threading.Event()
    cancel_event.set()
    cluster = ScriptedCluster(_handle(0))

    with pytest.raises(VerificationCancelled):
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy(), cancel_event=cancel_event)

    assert cluster.polls == 0


class HangingSubprocess:
    """Every call blocks until its timeout expires."""

    def __init__(self, clock):
        self.clock = clock
        self.timeouts = []

    def run(self, cmd, timeout=None, **_kwargs):
        self.timeouts.append(timeout)
        self.clock.now += timeout
        raise subprocess.TimeoutExpired(cmd, timeout)


def test_hung_kubectl_call_is_bounded_by_wait_timeout():
    clock = FakeClock()
    hanging = HangingSubprocess(clock)
    runner = CommandRunner(logger=DummyLogger(), default_timeout=300.0, subprocess_module=hanging)
    cluster = KubectlClient(command_runner=runner, logger=DummyLogger())

    with pytest.raises(ReadinessTimeoutError) as error:
        _waiter(cluster, clock).wait_until_ready("web-abc", "web-abc", WaitPolicy(timeout=20, poll_interval=1))

    assert hanging.timeouts
    assert all(timeout <= 20 for timeout in hanging.timeouts)
    assert clock.now <= 20 + 1
    assert isinstance(error.value.last_error, TransientClusterError)


def test_cancel_interrupts_sleep_between_polls():
    cancel_event = threading.Event()
    cluster = ScriptedCluster(_handle(0))
    waiter = ReadinessWaiter(cluster, DummyLogger())
    timer = threading.Timer(0.1, cancel_event.set)

    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(VerificationCancelled):
            waiter.wait_until_ready(
                "web-abc", "web-abc", WaitPolicy(timeout=120, poll_interval=60), cancel_event=cancel_event
            )
    finally:
        timer.cancel()

    assert time.monotonic() - started < 30
    assert cluster.polls == 1

import logging
import os
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from rich.console import Console

from .constants import (
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_NAMESPACE_PREFIX,
    LOGGER_NAME,
    FailureKind,
    Outcome,
)
from .errors import (
    ReadinessTimeoutError,
    VerificationAssertionError,
    VerifierError,
)
from .errors_catalog import actionable_error
from .models import KubeOptions, Release, Scope, VerificationResult, WaitPolicy, WorkloadHandle
from .services.chart_discovery import CHART_FILE, read_chart
from .services.cluster_client import KubectlClient
from .services.command_runner import CommandRunner
from .services.namespace_scope import NamespaceScope
from .services.package_installer import HelmInstaller
from .services.readiness import ReadinessWaiter
from .services.report import RunReport

console = Console()
logger = logging.getLogger(LOGGER_NAME)


class ChartVerifier:
    def __init__(
        self,
        kube_options: Optional[KubeOptions] = None,
        namespace_prefix: Optional[str] = None,
        values_files: Sequence[str] = (),
        set_values: Optional[Dict[str, str]] = None,
        report_dir: Optional[str] = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        cluster_client=None,
        installer=None,
        clock=time.monotonic,
        sleeper=None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.kube_options = kube_options or KubeOptions()
        self.namespace_prefix = namespace_prefix
        self.report_dir = report_dir
        self.clock = clock
        self.cancel_event = cancel_event or threading.Event()

        self.command_runner = CommandRunner(logger=logger, default_timeout=command_timeout)
        self.cluster_client = cluster_client or KubectlClient(
            command_runner=self.command_runner,
            logger=logger,
            kube_options=self.kube_options,
        )
        self.installer = installer or HelmInstaller(
            command_runner=self.command_runner,
            logger=logger,
            kube_options=self.kube_options,
            values_files=values_files,
            set_values=set_values,
        )
        self.waiter = ReadinessWaiter(
            cluster_client=self.cluster_client,
            logger=logger,
            console=console,
            clock=clock,
            sleeper=sleeper,
        )

    def validate_toolchain(self):
        console.print("[blue]Validating kubectl and helm...[/blue]")
        self.cluster_client.check_available()
        self.installer.check_available()
        console.print("[green]kubectl and helm are available.[/green]")

    def cancel(self):
        """Stops in-flight readiness polls; affected runs go straight to cleanup.

        Inside ``run_many`` this only affects the current batch.
        """
        self.cancel_event.set()

    def resolve_namespace_prefix(self, chart_ref: str) -> str:
        if self.namespace_prefix:
            return self.namespace_prefix

        if os.path.isfile(os.path.join(chart_ref, CHART_FILE)):
            try:
                return read_chart(chart_ref).name
            except VerifierError as exc:
                logger.warning("Could not read chart name from %s: %s", chart_ref, exc)

        return os.path.basename(os.path.normpath(chart_ref)) or DEFAULT_NAMESPACE_PREFIX

    def _report_file(self, run_id: str) -> Optional[str]:
        if not self.report_dir:
            return None
        return os.path.join(self.report_dir, f"verify-{run_id}.json")

    def _run_step(self, report: RunReport, name: str, callback, *args, **kwargs):
        report.step_started(name)
        try:
            result = callback(*args, **kwargs)
        except BaseException as exc:
            report.step_finished(name, "failed", error=str(exc) or type(exc).__name__)
            raise
        report.step_finished(name, "success")
        return result

    def assert_workload(self, handle: WorkloadHandle, release: Release):
        if handle.name != release.name or handle.namespace != release.namespace:
            raise VerificationAssertionError(
                actionable_error(
                    "workload_mismatch",
                    expected=f"{release.namespace}/{release.name}",
                    observed=f"{handle.namespace}/{handle.name}",
                ),
                handle=handle,
            )

    def _cleanup(
        self,
        report: RunReport,
        namespace_scope: NamespaceScope,
        scope: Optional[Scope],
        release: Optional[Release],
    ) -> List[str]:
        errors: List[str] = []
        if scope is None:
            return errors

        console.print("[dim]Cleaning up release and namespace...[/dim]")
        if release is not None:
            try:
                self._run_step(report, "uninstall_release", self.installer.uninstall, release)
            except Exception as exc:
                logger.warning("Cleanup: %s", exc)
                errors.append(str(exc))

        try:
            self._run_step(report, "release_namespace", namespace_scope.release, scope)
        except Exception as exc:
            logger.warning("Cleanup: %s", exc)
            errors.append(str(exc))

        return errors

    def run(
        self,
        chart_ref: str,
        wait_policy: Optional[WaitPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> VerificationResult:
        policy = wait_policy or WaitPolicy()
        cancel_event = cancel_event or self.cancel_event
        run_id = uuid.uuid4().hex[:10]
        report = RunReport(self._report_file(run_id), logger)
        namespace_scope = NamespaceScope(
            cluster_client=self.cluster_client,
            logger=logger,
            prefix=self.resolve_namespace_prefix(chart_ref),
        )

        started_at = self.clock()
        scope: Optional[Scope] = None
        release: Optional[Release] = None
        outcome = Outcome.FAILED
        reason: Optional[str] = None
        failure_kind: Optional[FailureKind] = None
        diagnostics: Optional[WorkloadHandle] = None
        cleanup_errors: List[str] = []

        report.start_run(run_id, chart_ref)
        try:
            logger.info("Verifying chart %s (run %s)", chart_ref, run_id)

            scope = self._run_step(report, "acquire_namespace", namespace_scope.acquire)
            report.set_identity(scope.id, scope.id)

            # helm can leave a failed release behind, so uninstall is attempted
            # even when install raises.
            release = Release(name=scope.id, scope=scope, chart_ref=chart_ref)
            release = self._run_step(
                report, "install_release", self.installer.install, scope, chart_ref, release.name
            )

            diagnostics = self._run_step(
                report,
                "wait_until_ready",
                self.waiter.wait_until_ready,
                scope.id,
                release.name,
                policy,
                cancel_event=cancel_event,
            )
            diagnostics = self._run_step(
                report, "fetch_workload", self.cluster_client.get_workload, scope.id, release.name
            )
            self._run_step(report, "assert_workload", self.assert_workload, diagnostics, release)

            outcome = Outcome.SUCCEEDED
            console.print(f"[bold green]Chart {chart_ref} verified.[/bold green]")

        except KeyboardInterrupt:
            console.print("[bold red]Verification cancelled by user.[/bold red]")
            logger.info("Verification cancelled by user")
            reason = "Verification cancelled by user."
            failure_kind = FailureKind.CANCELLED
        except ReadinessTimeoutError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            reason = str(exc)
            failure_kind = exc.kind
            diagnostics = exc.last_handle or diagnostics
        except VerificationAssertionError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            reason = str(exc)
            failure_kind = exc.kind
            diagnostics = exc.handle
        except VerifierError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            reason = str(exc)
            failure_kind = exc.kind
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            reason = str(exc)
            failure_kind = FailureKind.UNEXPECTED
        finally:
            cleanup_errors = self._cleanup(report, namespace_scope, scope, release)

        result = VerificationResult(
            outcome=outcome,
            chart_ref=chart_ref,
            reason=reason,
            failure_kind=failure_kind,
            diagnostics=diagnostics,
            scope_id=scope.id if scope else None,
            release_name=release.name if release else None,
            cleanup_errors=tuple(cleanup_errors),
            duration_seconds=self.clock() - started_at,
        )
        report.finalize(
            "success" if result.succeeded else "failed",
            error=reason,
            diagnostics=diagnostics.as_dict() if diagnostics else None,
            cleanup_errors=cleanup_errors,
        )
        return result

    def run_many(
        self,
        chart_refs: Sequence[str],
        wait_policy: Optional[WaitPolicy] = None,
        max_workers: int = DEFAULT_MAX_PARALLEL,
    ) -> List[VerificationResult]:
        """Verifies each chart on its own worker thread; results keep input order."""
        if not chart_refs:
            return []

        workers = max(1, min(max_workers, len(chart_refs)))
        batch_event = threading.Event()
        self.cancel_event = batch_event
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chartverifier") as executor:
                futures = [
                    executor.submit(self.run, chart_ref, wait_policy, batch_event) for chart_ref in chart_refs
                ]
                try:
                    return [future.result() for future in futures]
                except KeyboardInterrupt:
                    batch_event.set()
                    raise
        finally:
            if self.cancel_event is batch_event:
                self.cancel_event = threading.Event()

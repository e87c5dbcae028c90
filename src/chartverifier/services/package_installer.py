"""Helm-backed package installer for ChartVerifier."""

from typing import Dict, List, Optional, Sequence

from chartverifier.errors import CommandError, InstallError, UninstallError
from chartverifier.errors_catalog import actionable_error
from chartverifier.models import KubeOptions, Release, Scope
from chartverifier.services.cluster_client import is_transient

RELEASE_NOT_FOUND_PATTERNS = (
    "release: not found",
    "release not loaded",
)


def is_release_absent(error: CommandError) -> bool:
    stderr = error.stderr.lower()
    return any(pattern in stderr for pattern in RELEASE_NOT_FOUND_PATTERNS)


class HelmInstaller:
    """Installs and uninstalls chart releases through the helm CLI."""

    def __init__(
        self,
        command_runner,
        logger,
        kube_options: Optional[KubeOptions] = None,
        values_files: Sequence[str] = (),
        set_values: Optional[Dict[str, str]] = None,
        helm_binary: str = "helm",
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.kube_options = kube_options or KubeOptions()
        self.values_files = list(values_files)
        self.set_values = dict(set_values or {})
        self.helm_binary = helm_binary

    def _cmd(self, *args: str) -> List[str]:
        return [self.helm_binary, *self.kube_options.helm_flags(), *args]

    def check_available(self):
        self.command_runner.run(self._cmd("version", "--short"))

    def build_install_cmd(self, namespace: str, chart_ref: str, release_name: str) -> List[str]:
        cmd = self._cmd("install", release_name, chart_ref, "--namespace", namespace)
        for values_file in self.values_files:
            cmd += ["--values", values_file]
        for key in sorted(self.set_values):
            cmd += ["--set", f"{key}={self.set_values[key]}"]
        return cmd

    def install(self, scope: Scope, chart_ref: str, release_name: str) -> Release:
        self.logger.info("Installing %s as release %s in %s", chart_ref, release_name, scope.id)
        try:
            self.command_runner.run(
                self.build_install_cmd(scope.id, chart_ref, release_name),
                retry_count=1,
                should_retry=is_transient,
            )
        except CommandError as exc:
            raise InstallError(
                actionable_error(
                    "install_failed",
                    chart=chart_ref,
                    release=release_name,
                    cause=exc.stderr or str(exc),
                )
            ) from exc

        return Release(name=release_name, scope=scope, chart_ref=chart_ref, installed=True)

    def uninstall(self, release: Release):
        self.logger.info("Uninstalling release %s from %s", release.name, release.namespace)
        try:
            self.command_runner.run(
                self._cmd("uninstall", release.name, "--namespace", release.namespace),
                retry_count=1,
                should_retry=is_transient,
            )
        except CommandError as exc:
            if not is_release_absent(exc):
                raise UninstallError(
                    actionable_error(
                        "uninstall_failed",
                        release=release.name,
                        namespace=release.namespace,
                        cause=exc.stderr or str(exc),
                    )
                ) from exc
            self.logger.debug("Release %s already absent.", release.name)

        release.installed = False

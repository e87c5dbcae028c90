import subprocess

import pytest

from chartverifier.errors import CommandError, InstallError, UninstallError
from chartverifier.models import KubeOptions, Release, Scope
from chartverifier.services.package_installer import HelmInstaller


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None


class RecordingRunner:
    def __init__(self, error=None):
        self.error = error
        self.commands = []

    def run(self, cmd, **_kwargs):
        self.commands.append(cmd)
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def _failure(stderr: str) -> CommandError:
    return CommandError(f"Command failed (1): helm\n{stderr}", cmd=["helm"], returncode=1, stderr=stderr)


def test_install_builds_helm_command_and_returns_release():
    runner = RecordingRunner()
    installer = HelmInstaller(
        command_runner=runner,
        logger=DummyLogger(),
        kube_options=KubeOptions(context="kind-test"),
        values_files=["ci-values.yaml"],
        set_values={"replicaCount": "1", "image.tag": "latest"},
    )
    scope = Scope(id="rafiki-auth-abc123")

    release = installer.install(scope, "./charts/rafiki-auth", "rafiki-auth-abc123")

    assert release.name == "rafiki-auth-abc123"
    assert release.scope is scope
    assert release.installed is True
    assert runner.commands[0] == [
        "helm",
        "--kube-context",
        "kind-test",
        "install",
        "rafiki-auth-abc123",
        "./charts/rafiki-auth",
        "--namespace",
        "rafiki-auth-abc123",
        "--values",
        "ci-values.yaml",
        "--set",
        "image.tag=latest",
        "--set",
        "replicaCount=1",
    ]


def test_install_failure_raises_install_error_with_cause():
    runner = RecordingRunner(error=_failure("Error: INSTALLATION FAILED: parse error in deployment.yaml"))
    installer = HelmInstaller(command_runner=runner, logger=DummyLogger())

    with pytest.raises(InstallError, match="parse error in deployment.yaml") as error:
        installer.install(Scope(id="web-abc"), "./web", "web-abc")

    assert "Suggested action" in str(error.value)
    assert isinstance(error.value.__cause__, CommandError)


def test_uninstall_of_absent_release_is_success():
    runner = RecordingRunner(error=_failure("Error: uninstall: Release not loaded: web-abc: release: not found"))
    installer = HelmInstaller(command_runner=runner, logger=DummyLogger())
    release = Release(name="web-abc", scope=Scope(id="web-abc"), chart_ref="./web", installed=True)

    installer.uninstall(release)
    installer.uninstall(release)

    assert release.installed is False


def test_uninstall_failure_raises_uninstall_error():
    runner = RecordingRunner(error=_failure("Error: Kubernetes cluster unreachable"))
    installer = HelmInstaller(command_runner=runner, logger=DummyLogger())
    release = Release(name="web-abc", scope=Scope(id="web-abc"), chart_ref="./web", installed=True)

    with pytest.raises(UninstallError, match="cluster unreachable"):
        installer.uninstall(release)

    assert release.installed is True


def test_uninstall_when_cluster_unreachable_is_not_treated_as_absent():
    stderr = (
        "Error: Kubernetes cluster unreachable: Get \"https://10.0.0.1/version\": "
        "getting credentials: exec: executable gke-gcloud-auth-plugin not found"
    )
    runner = RecordingRunner(error=_failure(stderr))
    installer = HelmInstaller(command_runner=runner, logger=DummyLogger())
    release = Release(name="web-abc", scope=Scope(id="web-abc"), chart_ref="./web", installed=True)

    with pytest.raises(UninstallError, match="gke-gcloud-auth-plugin"):
        installer.uninstall(release)

    assert release.installed is True

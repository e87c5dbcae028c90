import subprocess
import sys

import pytest

from chartverifier.errors import CommandError, VerifierError
from chartverifier.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandError, match="boom") as error:
        runner.run([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])

    assert error.value.returncode == 3
    assert error.value.stderr == "boom"


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run([sys.executable, "-c", "import sys; sys.exit(1)"], check=False)

    assert result.returncode == 1


def test_command_runner_retries_before_success(tmp_path, monkeypatch):
    runner = CommandRunner(logger=DummyLogger())
    monkeypatch.chdir(tmp_path)

    command = [
        sys.executable,
        "-c",
        (
            "from pathlib import Path;"
            "p=Path('retry-counter.txt');"
            "n=int(p.read_text()) if p.exists() else 0;"
            "p.write_text(str(n+1));"
            "import sys; sys.exit(1 if n == 0 else 0)"
        ),
    ]

    result = runner.run(command, retry_count=1, retry_backoff_seconds=0.0)

    assert result.returncode == 0
    assert (tmp_path / "retry-counter.txt").read_text() == "2"


def test_command_runner_skips_retry_when_predicate_rejects():
    calls = {"count": 0}

    class FakeSubprocess:
        @staticmethod
        def run(cmd, **_kwargs):
            calls["count"] += 1
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="forbidden")

    runner = CommandRunner(logger=DummyLogger(), subprocess_module=FakeSubprocess)

    with pytest.raises(CommandError, match="forbidden"):
        runner.run(["kubectl", "get", "ns"], retry_count=3, should_retry=lambda exc: "timeout" in exc.stderr)

    assert calls["count"] == 1


def test_command_runner_timeout_raises_command_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandError, match="timed out") as error:
        runner.run([sys.executable, "-c", "import time; time.sleep(2)"], timeout=0.1)

    assert error.value.stderr == "timed out"


def test_command_runner_reports_missing_binary():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(VerifierError, match="Required command not found"):
        runner.run(["definitely-not-a-real-binary-xyz"])

"""Subprocess execution service for ChartVerifier."""

import subprocess
import time
from typing import Callable, List, Optional

from chartverifier.errors import CommandError, VerifierError


class CommandRunner:
    """Runs kubectl/helm commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None, subprocess_module=subprocess):
        self.logger = logger
        self.default_timeout = default_timeout
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        timeout: Optional[float] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        should_retry: Optional[Callable[[CommandError], bool]] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        max_attempts = max(1, retry_count + 1)

        for attempt in range(1, max_attempts + 1):
            try:
                result = self._execute(cmd, effective_timeout)
            except CommandError as exc:
                if attempt < max_attempts and (should_retry is None or should_retry(exc)):
                    self._log_retry(attempt, max_attempts, retry_backoff_seconds, str(exc))
                    time.sleep(retry_backoff_seconds)
                    continue
                raise

            if result.stdout:
                self.logger.debug("Command output: %s", result.stdout.strip())

            if result.returncode == 0:
                return result

            stderr = (result.stderr or "").strip()
            message = f"Command failed ({result.returncode}): {cmd_str}"
            if stderr:
                message = f"{message}\n{stderr}"
            error = CommandError(message, cmd=cmd, returncode=result.returncode, stderr=stderr)

            if attempt < max_attempts and (should_retry is None or should_retry(error)):
                self._log_retry(attempt, max_attempts, retry_backoff_seconds, message)
                time.sleep(retry_backoff_seconds)
                continue

            if check:
                raise error

            self.logger.debug(message)
            return result

        raise VerifierError(f"Command failed after retries: {cmd_str}")

    def _execute(self, cmd: List[str], timeout: Optional[float]) -> subprocess.CompletedProcess:
        try:
            return self.subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            raise VerifierError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                f"Command timed out after {timeout}s: {' '.join(cmd)}",
                cmd=cmd,
                returncode=-1,
                stderr="timed out",
            ) from exc
        except OSError as exc:
            raise VerifierError(f"Failed to execute command: {' '.join(cmd)}. {exc}") from exc

    def _log_retry(self, attempt: int, max_attempts: int, backoff: float, message: str):
        self.logger.warning(
            "Command failed on attempt %s/%s and will be retried in %.1fs.\n%s",
            attempt,
            max_attempts,
            backoff,
            message,
        )

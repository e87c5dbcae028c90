"""Per-run verification report service."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class RunReport:
    """Collects the steps of one verification run and writes them as JSON.

    When ``report_file`` is ``None`` the report is kept in memory only.
    """

    def __init__(self, report_file: Optional[str], logger):
        self.report_file = report_file
        self.logger = logger
        self.data: Dict[str, Any] = {
            "run_id": None,
            "chart_ref": None,
            "scope_id": None,
            "release_name": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "steps": [],
            "diagnostics": None,
            "cleanup_errors": [],
            "error": None,
        }

    @property
    def steps(self) -> List[Dict[str, Any]]:
        return self.data["steps"]

    def start_run(self, run_id: str, chart_ref: str):
        self.data["run_id"] = run_id
        self.data["chart_ref"] = chart_ref
        self.data["status"] = "running"
        self.data["started_at"] = self._now()
        self.write()

    def set_identity(self, scope_id: Optional[str], release_name: Optional[str]):
        self.data["scope_id"] = scope_id
        self.data["release_name"] = release_name
        self.write()

    def step_started(self, step_name: str):
        self.data["steps"].append(
            {
                "name": step_name,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "error": None,
            }
        )
        self.write()

    def step_finished(self, step_name: str, status: str, error: Optional[str] = None):
        for step in reversed(self.data["steps"]):
            if step["name"] == step_name and step["status"] == "running":
                step["status"] = status
                step["finished_at"] = self._now()
                step["error"] = error
                started_at = datetime.fromisoformat(step["started_at"])
                finished_at = datetime.fromisoformat(step["finished_at"])
                step["duration_seconds"] = (finished_at - started_at).total_seconds()
                break
        self.write()

    def finalize(
        self,
        status: str,
        error: Optional[str] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
        cleanup_errors: Optional[List[str]] = None,
    ):
        self.data["status"] = status
        self.data["finished_at"] = self._now()
        if self.data.get("started_at"):
            started_at = datetime.fromisoformat(self.data["started_at"])
            finished_at = datetime.fromisoformat(self.data["finished_at"])
            self.data["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.data["error"] = error
        self.data["diagnostics"] = diagnostics
        self.data["cleanup_errors"] = list(cleanup_errors or [])
        self.write()

    def write(self):
        if not self.report_file:
            return

        directory = os.path.dirname(self.report_file) or "."
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=".report-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.data, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.report_file)
        except OSError as exc:
            self.logger.warning("Could not write report file '%s': %s", self.report_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

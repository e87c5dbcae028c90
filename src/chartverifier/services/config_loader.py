"""Configuration loader for ChartVerifier."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from chartverifier.errors import VerifierError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "chart",
        "charts_root",
        "exclude",
        "timeout",
        "poll_interval",
        "not_found_grace",
        "min_available",
        "namespace_prefix",
        "kube_context",
        "kubeconfig",
        "values",
        "set",
        "max_parallel",
        "report_dir",
        "command_timeout",
        "verbose",
        "log_file",
    }
    LIST_KEYS = {"chart", "exclude", "values"}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise VerifierError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise VerifierError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise VerifierError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise VerifierError(f"Unknown configuration keys: {unknown_list}")

        for key in self.LIST_KEYS & set(parsed):
            if isinstance(parsed[key], str):
                parsed[key] = [parsed[key]]
            elif not isinstance(parsed[key], list):
                raise VerifierError(f"Configuration key '{key}' must be a string or a list.")

        if "set" in parsed and not isinstance(parsed["set"], dict):
            raise VerifierError("Configuration key 'set' must be a mapping.")

        return parsed

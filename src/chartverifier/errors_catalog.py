"""Actionable error catalog for ChartVerifier."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "namespace_create_failed": {
        "what": "Could not create namespace '{namespace}': {cause}",
        "next": "Check RBAC permissions and resource quotas for the current kube context.",
    },
    "namespace_delete_failed": {
        "what": "Could not delete namespace '{namespace}': {cause}",
        "next": "Delete it manually with `kubectl delete namespace {namespace}`.",
    },
    "install_failed": {
        "what": "Installing chart '{chart}' as release '{release}' failed: {cause}",
        "next": "Run `helm lint {chart}` and check for naming conflicts in the namespace.",
    },
    "uninstall_failed": {
        "what": "Uninstalling release '{release}' failed: {cause}",
        "next": "Remove it manually with `helm uninstall {release} --namespace {namespace}`.",
    },
    "workload_not_found": {
        "what": "Deployment '{name}' never appeared in namespace '{namespace}'.",
        "next": "Make sure the chart renders a Deployment named after the release.",
    },
    "readiness_timeout": {
        "what": "Deployment '{name}' was not ready after {timeout}s ({observed}).",
        "next": "Inspect pod events with `kubectl describe deployment {name} -n {namespace}`.",
    },
    "workload_mismatch": {
        "what": "Expected deployment '{expected}' but observed '{observed}'.",
        "next": "Check the chart's fullname template against the release name.",
    },
    "chart_not_found": {
        "what": "Chart.yaml not found in {path}",
        "next": "Point --chart at a chart directory or use --charts-root to discover charts.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

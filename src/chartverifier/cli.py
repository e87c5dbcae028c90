import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .constants import (
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_CONFIG_FILE,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_NOT_FOUND_GRACE_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    LOGGER_NAME,
)
from .core import ChartVerifier, VerifierError
from .models import KubeOptions, WaitPolicy
from .services.chart_discovery import find_charts
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None and cli_value != ():
        return cli_value
    if key in config:
        return config[key]
    return default


def _parse_set_values(pairs):
    values = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'.", param_hint="--set")
        values[key] = value
    return values


def _render_results(console, results):
    table = Table(title="Chart verification")
    table.add_column("Chart")
    table.add_column("Release")
    table.add_column("Outcome")
    table.add_column("Detail")

    for result in results:
        style = "green" if result.succeeded else "red"
        if result.succeeded:
            detail = result.diagnostics.describe() if result.diagnostics else ""
        else:
            detail = f"{result.failure_kind.value}: {result.reason}"
        if result.cleanup_errors:
            detail = f"{detail}\ncleanup: {'; '.join(result.cleanup_errors)}".strip()
        table.add_row(
            result.chart_ref,
            result.release_name or "-",
            f"[{style}]{result.outcome.value}[/{style}]",
            detail,
        )

    console.print(table)


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--chart", "charts", multiple=True, help="Chart directory or reference to verify (repeatable).")
@click.option(
    "--charts-root",
    required=False,
    type=click.Path(),
    help="Directory to scan for Chart.yaml files; every chart found is verified.",
)
@click.option("--exclude", multiple=True, help="Chart name to skip when scanning --charts-root (repeatable).")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--timeout", type=float, default=None, help="Readiness timeout in seconds (default: 20).")
@click.option("--poll-interval", type=float, default=None, help="Readiness poll interval in seconds (default: 1).")
@click.option(
    "--not-found-grace",
    type=float,
    default=None,
    help="Seconds a missing deployment is tolerated before failing fast (default: 2).",
)
@click.option(
    "--min-available",
    type=int,
    default=None,
    help="Available replicas required for readiness (default: all desired replicas).",
)
@click.option("--namespace-prefix", default=None, help="Prefix for generated namespaces (default: chart name).")
@click.option("--kube-context", default=None, help="kubeconfig context passed to kubectl and helm.")
@click.option("--kubeconfig", type=click.Path(), default=None, help="kubeconfig file passed to kubectl and helm.")
@click.option("--values", "values_files", multiple=True, type=click.Path(), help="Helm values file (repeatable).")
@click.option("--set", "set_pairs", multiple=True, help="Helm value override KEY=VALUE (repeatable).")
@click.option("--max-parallel", type=int, default=None, help="Maximum concurrent verifications (default: 4).")
@click.option("--report-dir", type=click.Path(), default=None, help="Directory for per-run JSON reports.")
@click.option(
    "--command-timeout",
    type=float,
    default=None,
    help="Timeout in seconds for each kubectl/helm command (default: 300).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def main(
    charts,
    charts_root,
    exclude,
    config,
    timeout,
    poll_interval,
    not_found_grace,
    min_available,
    namespace_prefix,
    kube_context,
    kubeconfig,
    values_files,
    set_pairs,
    max_parallel,
    report_dir,
    command_timeout,
    verbose,
    log_file,
):
    """Install charts into throwaway namespaces and verify their deployments become ready."""
    logger = logging.getLogger(LOGGER_NAME)
    console = Console()

    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = ConfigLoader().load(resolved_config)
    except VerifierError as exc:
        raise click.ClickException(str(exc)) from exc

    charts = list(_resolve_option(charts, config_values, "chart", default=[]))
    charts_root = _resolve_option(charts_root, config_values, "charts_root")
    exclude = list(_resolve_option(exclude, config_values, "exclude", default=[]))
    timeout = float(_resolve_option(timeout, config_values, "timeout", default=DEFAULT_TIMEOUT_SECONDS))
    poll_interval = float(
        _resolve_option(poll_interval, config_values, "poll_interval", default=DEFAULT_POLL_INTERVAL_SECONDS)
    )
    not_found_grace = float(
        _resolve_option(
            not_found_grace,
            config_values,
            "not_found_grace",
            default=DEFAULT_NOT_FOUND_GRACE_SECONDS,
        )
    )
    min_available = _resolve_option(min_available, config_values, "min_available")
    namespace_prefix = _resolve_option(namespace_prefix, config_values, "namespace_prefix")
    kube_context = _resolve_option(kube_context, config_values, "kube_context")
    kubeconfig = _resolve_option(kubeconfig, config_values, "kubeconfig")
    values_files = list(_resolve_option(values_files, config_values, "values", default=[]))
    set_values = {str(k): str(v) for k, v in config_values.get("set", {}).items()}
    set_values.update(_parse_set_values(set_pairs))
    max_parallel = int(_resolve_option(max_parallel, config_values, "max_parallel", default=DEFAULT_MAX_PARALLEL))
    report_dir = _resolve_option(report_dir, config_values, "report_dir")
    command_timeout = float(
        _resolve_option(
            command_timeout,
            config_values,
            "command_timeout",
            default=DEFAULT_COMMAND_TIMEOUT_SECONDS,
        )
    )
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    if charts_root:
        discovered = find_charts(charts_root, exclusions=exclude)
        if not discovered:
            logger.warning("No charts found under %s", charts_root)
        charts.extend(os.path.normpath(os.path.join(charts_root, chart.path)) for chart in discovered)

    if not charts:
        raise click.ClickException("Missing required option '--chart' or '--charts-root' (or provide it in config).")

    try:
        wait_policy = WaitPolicy(
            timeout=timeout,
            poll_interval=poll_interval,
            not_found_grace=not_found_grace,
            min_available=int(min_available) if min_available is not None else None,
        )
        verifier = ChartVerifier(
            kube_options=KubeOptions(context=kube_context, kubeconfig=kubeconfig),
            namespace_prefix=namespace_prefix,
            values_files=values_files,
            set_values=set_values,
            report_dir=report_dir,
            command_timeout=command_timeout,
        )
        verifier.validate_toolchain()
    except VerifierError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        results = verifier.run_many(charts, wait_policy=wait_policy, max_workers=max_parallel)
    except KeyboardInterrupt:
        console.print("[bold red]Verification cancelled by user.[/bold red]")
        raise SystemExit(130)

    _render_results(console, results)
    raise SystemExit(0 if all(result.succeeded for result in results) else 1)


if __name__ == "__main__":
    main()

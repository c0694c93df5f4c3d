"""CLI entrypoint for the district crash enrichment pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from district_crashes.common.config_loader import ConfigBundle, load_all_configs, resolve_analyses
from district_crashes.common.constants import ANALYSIS_KINDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from district_crashes.common.errors import ConfigError, PipelineError
from district_crashes.common.http import HttpClient, RetryConfig, TimeoutConfig
from district_crashes.common.ids import generate_run_id
from district_crashes.common.logging import build_logger, close_logger, log_event
from district_crashes.common.models import AnalysisSpec
from district_crashes.pipeline.analysis import run_analysis
from district_crashes.pipeline.export import export_analysis
from district_crashes.pipeline.ingest import load_record_stream
from district_crashes.pipeline.reports import write_run_summary
from district_crashes.resolve.boundaries import resolve_district_boundaries
from district_crashes.resolve.overpass_corridors import CorridorResolver, OverpassCorridorResolver


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*ANALYSIS_KINDS, "all"])
    parser.add_argument("--analysis", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def load_boundaries(bundle: ConfigBundle, specs: list[AnalysisSpec], logger) -> dict:
    kinds = sorted({kind for spec in specs for kind in spec.district_kinds})
    return {
        kind: resolve_district_boundaries(bundle.pipeline.boundary(kind), logger=logger)
        for kind in kinds
    }


def _http_client(bundle: ConfigBundle) -> HttpClient:
    settings = bundle.pipeline.overpass
    return HttpClient(
        timeout=TimeoutConfig(connect=20, read=float(settings.timeout_seconds) + 30),
        retry=RetryConfig(max_attempts=settings.max_attempts),
    )


def run_command(args: argparse.Namespace, *, resolver: CorridorResolver | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        return _run(args, run_id, data_dir, logger, resolver=resolver)
    finally:
        close_logger(logger)


def _run(
    args: argparse.Namespace,
    run_id: str,
    data_dir: Path,
    logger: logging.Logger,
    *,
    resolver: CorridorResolver | None = None,
) -> int:
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        specs = resolve_analyses(bundle, args.command, args.analysis)
        if not specs:
            raise ConfigError(f"No {args.command} analyses configured")
        boundaries = load_boundaries(bundle, specs, logger)
        records = load_record_stream(bundle.pipeline, logger=logger)
    except PipelineError as exc:
        log_event(
            logger,
            f"run setup failed: {exc}",
            run_id=run_id,
            stage="setup",
            event="RUN_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL

    config = bundle.pipeline
    http_client = None
    if resolver is None and any(spec.kind == "corridor" for spec in specs):
        http_client = _http_client(bundle)
        resolver = OverpassCorridorResolver(
            config.overpass,
            config.planar_epsg,
            http_client=http_client,
            logger=logger,
        )

    reports: dict[str, dict] = {}
    had_partial_failure = False
    try:
        for spec in specs:
            try:
                result = run_analysis(spec, config, records, boundaries, resolver=resolver, logger=logger)
                outputs = export_analysis(result, data_dir)
                totals = result.totals()
                reports[spec.name] = {
                    "status": "success",
                    "kind": spec.kind,
                    "label": result.label,
                    "totals": totals,
                    "outputs": outputs,
                }
                log_event(
                    logger,
                    f"{result.label}: {totals['crashes']} crashes, {totals['fatalities']} fatalities, "
                    f"${totals['estimated_economic_damages']:,.0f} estimated damages",
                    run_id=run_id,
                    stage="analysis",
                    analysis=spec.name,
                    event="ANALYSIS_TOTALS",
                    status="ok",
                    rows_out=totals["records"],
                )
            except PipelineError as exc:
                had_partial_failure = True
                reports[spec.name] = {
                    "status": "error",
                    "kind": spec.kind,
                    "error_code": exc.error_code,
                    "error": str(exc),
                }
                log_event(
                    logger,
                    f"analysis {spec.name} failed: {exc}",
                    run_id=run_id,
                    stage="analysis",
                    analysis=spec.name,
                    event="ANALYSIS_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                if args.strict:
                    return EXIT_HARD_FAIL
            except Exception as exc:
                had_partial_failure = True
                reports[spec.name] = {
                    "status": "error",
                    "kind": spec.kind,
                    "error_code": "UNEXPECTED_ERROR",
                    "error": str(exc),
                }
                log_event(
                    logger,
                    f"unexpected failure in analysis {spec.name}",
                    run_id=run_id,
                    stage="analysis",
                    analysis=spec.name,
                    event="ANALYSIS_FAIL",
                    status="error",
                    error_code="UNEXPECTED_ERROR",
                )
                if args.strict:
                    return EXIT_HARD_FAIL
    finally:
        if http_client is not None:
            http_client.close()

    window = {"start": config.window.start.isoformat(), "end": config.window.end.isoformat()}
    write_run_summary(data_dir, run_id, reports, window=window)
    if had_partial_failure:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None, *, resolver: CorridorResolver | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args, resolver=resolver)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())

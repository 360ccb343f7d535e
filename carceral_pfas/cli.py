"""CLI entrypoint for the carceral facility / PFAS proximity pipeline."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from carceral_pfas.common.config_loader import ConfigBundle, load_all_configs, resolve_datasets
from carceral_pfas.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from carceral_pfas.common.errors import ContractError, PipelineError
from carceral_pfas.common.logging import build_logger, log_event
from carceral_pfas.common.run_meta import generate_run_id, parse_run_date
from carceral_pfas.pipeline.elevation import ElevationService
from carceral_pfas.pipeline.link_sources import run_link
from carceral_pfas.pipeline.prepare import PrepareContext, run_prepare
from carceral_pfas.pipeline.reports import write_run_summary
from carceral_pfas.pipeline.summarize import run_summarize
from carceral_pfas.pipeline.watershed import WatershedIndex


class StrictModeAbort(Exception):
    pass


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--source", default="all", help="dataset name from sources.yml, or 'all'")
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def execute_stage(
    stage: str,
    dataset_name: str,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    context: PrepareContext,
) -> dict:
    dataset = bundle.dataset(dataset_name)
    if stage == "prepare":
        return run_prepare(dataset, context, run_id)
    if stage == "link":
        return run_link(dataset, bundle, data_dir, run_id, logger=context.logger)
    raise ValueError(f"Unknown per-dataset stage: {stage}")


def run_command(
    args: argparse.Namespace,
    *,
    watershed_index: WatershedIndex | None = None,
    elevation_service: ElevationService | None = None,
) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    datasets = resolve_datasets(bundle, args.source)
    source_names = [name for name in datasets if name != bundle.target.name]
    stages = list(STAGES) if args.command == "all" else [args.command]

    failures: list[dict] = []
    summary: dict | None = None

    def _record_failure(stage: str, name: str | None, error_code: str, message: str) -> None:
        failures.append({"stage": stage, "dataset": name, "error_code": error_code, "message": message})
        log_event(
            logger,
            f"stage {stage} failed" + (f" for {name}" if name else ""),
            run_id=run_id,
            stage=stage,
            source=name,
            event="STAGE_FAIL",
            status="error",
            error_code=error_code,
        )

    context = PrepareContext(
        bundle,
        data_dir,
        logger=logger,
        watershed_index=watershed_index,
        elevation_service=elevation_service,
    )
    try:
        for stage in stages:
            log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START")
            if stage == "summarize":
                try:
                    summary = run_summarize(bundle, data_dir, run_id, source_names, logger=logger)
                except PipelineError as exc:
                    _record_failure(stage, None, exc.error_code, str(exc))
                    if args.strict:
                        raise StrictModeAbort from exc
                log_event(logger, "stage end", run_id=run_id, stage=stage, event="STAGE_END")
                continue

            names = source_names if stage == "link" else datasets
            for name in names:
                try:
                    execute_stage(stage, name, bundle, data_dir, run_id, context)
                except ContractError:
                    raise
                except PipelineError as exc:
                    _record_failure(stage, name, exc.error_code, str(exc))
                    if args.strict:
                        raise StrictModeAbort from exc
                except Exception as exc:
                    _record_failure(stage, name, "UNEXPECTED_ERROR", str(exc))
                    if args.strict:
                        raise StrictModeAbort from exc
            log_event(logger, "stage end", run_id=run_id, stage=stage, event="STAGE_END")
    except ContractError as exc:
        _record_failure("contract", None, exc.error_code, str(exc))
        return EXIT_HARD_FAIL
    except StrictModeAbort:
        return EXIT_HARD_FAIL
    finally:
        context.close()
        write_run_summary(
            data_dir,
            run_id=run_id,
            run_date=run_date,
            stages=stages,
            datasets=datasets,
            failures=failures,
            summary=summary,
        )

    if failures:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())

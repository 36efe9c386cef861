# equipment_diagnostics/main.py

from datetime import datetime
import json
import sys

from .cli import build_parser
from .config import AppConfig, Config
from .errors import EvaluationError
from .logging import ConsoleLog, StructuredLog, RunLogEntry

from .services.classifier import Classifier
from .services.equipment_evaluator import EquipmentEvaluator
from .services.output_formatter import (
    emit_human,
    emit_json,
    evaluation_to_dict,
    profile_to_dict,
    reconciliation_to_dict,
)
from .services.reading_normalizer import ReadingNormalizer
from .services.readings_loader import load_readings, load_reconciliations
from .services.reconciliation import ReconciliationComparator
from .services.reference_api_client import ReferenceAPIClient
from .services.reference_resolver import ReferenceResolver, ReferenceTable
from .services.status_aggregator import StatusAggregator


def build_reference_table(app_cfg: AppConfig, log) -> ReferenceTable:
    """Config profiles first, then the JSON table, then the API on top."""
    aliases = app_cfg.manufacturer_aliases
    table = ReferenceTable(app_cfg.profiles, aliases=aliases)
    if app_cfg.reference.table_path:
        file_table = ReferenceTable.from_json_file(app_cfg.reference.table_path, aliases=aliases)
        table.extend(file_table.profiles())
        log.info("Loaded %d reference profiles from %s", len(file_table), app_cfg.reference.table_path)

    api_client = ReferenceAPIClient(app_cfg.reference_api, log)
    if api_client.enabled:
        api_client.build_table(aliases, base=table)
    return table


def build_evaluator(app_cfg: AppConfig, resolver: ReferenceResolver, log) -> EquipmentEvaluator:
    return EquipmentEvaluator(
        ReadingNormalizer(log, treat_zero_as_absent=app_cfg.normalizer.treat_zero_as_absent),
        resolver,
        Classifier(log),
        StatusAggregator(app_cfg.aggregation, log),
        log,
        phase_to_neutral_families=app_cfg.normalizer.phase_to_neutral_families,
    )


def run_evaluate(args, evaluator: EquipmentEvaluator, log):
    units, errors = load_readings(args.readings)
    for equipment_id, message in errors.items():
        log.error("Could not load readings for %s: %s", equipment_id, message)
    log.info("Evaluating %d equipment units from %s", len(units), args.readings)
    evaluations, eval_errors = evaluator.evaluate_batch(units)
    errors.update(eval_errors)
    if not args.quiet:
        if args.json:
            emit_json(evaluations, errors=errors)
        else:
            emit_human(evaluations, errors=errors, verbose=args.verbose)
    return evaluations, errors


def run_reconcile(args, comparator: ReconciliationComparator, log):
    results = []
    for equipment_id, expected, reported, override in load_reconciliations(args.reconciliation):
        results.append(comparator.reconcile(expected, reported, equipment_id=equipment_id, override=override))
    unverified = sum(1 for r in results if not r.verified)
    log.info("Reconciled %d units (%d not verified)", len(results), unverified)
    if not args.quiet:
        if args.json:
            emit_json(reconciliations=results)
        else:
            emit_human(reconciliations=results)
    return results


def run_profile(args, resolver: ReferenceResolver) -> None:
    profile = resolver.resolve(args.family, args.manufacturer, args.model, args.reading_method)
    if args.quiet:
        return
    payload = profile_to_dict(profile)
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    app_cfg = Config.load(args.config)
    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )

    table = build_reference_table(app_cfg, log)
    resolver = ReferenceResolver(table, log, cache=app_cfg.reference.cache)

    evaluations = []
    reconciliations = []
    errors = {}

    if args.command == "evaluate":
        evaluator = build_evaluator(app_cfg, resolver, log)
        evaluations, errors = run_evaluate(args, evaluator, log)
    elif args.command == "reconcile":
        reconciliations = run_reconcile(args, ReconciliationComparator(log), log)
    elif args.command == "profile":
        try:
            run_profile(args, resolver)
        except EvaluationError as exc:
            log.error("%s", exc)
            return 2
        return 0
    else:
        raise ValueError(f"Unsupported command: {args.command}")

    if structured_logger.enabled:
        structured_logger.write(
            RunLogEntry(
                timestamp=datetime.now().isoformat(),
                command=args.command,
                evaluations=[evaluation_to_dict(e) for e in evaluations] or None,
                reconciliations=[reconciliation_to_dict(r) for r in reconciliations] or None,
                errors=errors or None,
            )
        )

    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())

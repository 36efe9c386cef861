# equipment_diagnostics/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="equipment-diagnostics",
        description="Equipment diagnostic evaluation and reconciliation"
    )

    parser.add_argument(
        "--config",
        default="equipment_diagnostics.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress stdout output (batch-friendly)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Diagnostic evaluation of submitted readings
    cmd_eval = sub.add_parser("evaluate", help="Evaluate equipment readings from a JSON file")
    cmd_eval.add_argument("readings", help="Path to readings JSON")
    cmd_eval.add_argument(
        "--verbose",
        action="store_true",
        help="List passing readings too (human output only)",
    )

    # Identity reconciliation
    cmd_rec = sub.add_parser(
        "reconcile",
        help="Compare reported equipment identity against recorded expectations",
    )
    cmd_rec.add_argument("reconciliation", help="Path to reconciliation JSON")

    # Reference lookup helper
    cmd_profile = sub.add_parser(
        "profile",
        help="Show the reference profile that would be used for a unit",
    )
    cmd_profile.add_argument("family", help="Equipment family (battery, ups, pdu, ...)")
    cmd_profile.add_argument("--manufacturer")
    cmd_profile.add_argument("--model")
    cmd_profile.add_argument("--reading-method", dest="reading_method")

    return parser

# equipment_diagnostics/tests/test_cli.py

import json
import logging

import pytest

from equipment_diagnostics.cli import build_parser
from equipment_diagnostics.main import main
from equipment_diagnostics.services.readings_loader import load_readings, load_reconciliations


CONF = """
[normalizer]
phase_to_neutral_families = ups

[manufacturers]
Emerson = Liebert

[profile:ups:Liebert:NX]
voltage_warning_band = 114, 126
current_warning_band = 0, 100

[profile:battery:Enersys:12HX505:impedance]
resistance = 100
monitor_start_pct = 20
monitor_end_pct = 40
replace_pct = 50

[logging]
console_quiet = true
structured_enabled = true
structured_path = {log_path}
"""

READINGS = {
    "job_id": "J-100",
    "equipment": [
        {
            "equipment_id": "UPS-1",
            "family": "ups",
            "manufacturer": "EMERSON",
            "model": "nx",
            "kva": 20,
            "output_voltage": 208,
            "phase_count": 3,
            "readings": [
                {"component_id": "A", "kind": "voltage", "value": "208", "phase_to_phase": True, "group": "output"},
                {"component_id": "A", "kind": "current", "value": 50, "group": "output"},
            ],
        },
        {
            "equipment_id": "BATT-1",
            "family": "battery",
            "manufacturer": "Enersys",
            "model": "12HX505",
            "reading_method": "impedance",
            "in_service_since": "2023-01-15",
            "readings": [
                {
                    "component_id": "S1",
                    "kind": "resistance",
                    "cells": [
                        {"cell_id": "1", "values": {"resistance": 101}},
                        {"cell_id": "2", "values": {"resistance": 135}},
                    ],
                }
            ],
        },
        {"equipment_id": "BAD-1", "family": "toaster", "readings": []},
        {"equipment_id": "BAD-2", "family": "ups", "phase_count": "three", "readings": []},
        {"family": "ups", "readings": []},
    ],
}

RECONCILIATION = {
    "items": [
        {
            "equipment_id": "UPS-1",
            "expected": {"make": "LIEBERT ", "string_count": 2},
            "reported": {"make": "liebert", "string_count": 3},
        },
        {
            "equipment_id": "UPS-2",
            "expected": {"make": "Eaton", "string_count": 2},
            "reported": {"make": "Eaton", "string_count": 3},
            "override": {"reviewer": "jdoe", "reason": "site survey", "timestamp": "2024-03-01T09:00:00"},
        },
    ]
}


@pytest.fixture
def workspace(tmp_path):
    log_path = tmp_path / "run.jsonl"
    conf = tmp_path / "diag.conf"
    conf.write_text(CONF.format(log_path=log_path))
    readings = tmp_path / "readings.json"
    readings.write_text(json.dumps(READINGS))
    reconciliation = tmp_path / "reconciliation.json"
    reconciliation.write_text(json.dumps(RECONCILIATION))
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    yield {"conf": str(conf), "readings": str(readings), "reconciliation": str(reconciliation), "log": log_path}
    root.handlers.clear()
    root.handlers.extend(orig_handlers)


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_load_readings(workspace):
    units, errors = load_readings(workspace["readings"])

    assert [u.equipment_id for u in units] == ["UPS-1", "BATT-1", "BAD-1"]
    assert set(errors) == {"BAD-2", "#4"}
    assert "phase_count" in errors["BAD-2"]
    assert all(u.job_id == "J-100" for u in units)
    assert units[0].readings[0].phase_to_phase is True
    assert units[1].in_service_since.isoformat() == "2023-01-15"
    assert len(units[1].readings[0].cells) == 2


def test_load_reconciliations(workspace):
    items = load_reconciliations(workspace["reconciliation"])

    equipment_id, expected, reported, override = items[1]
    assert equipment_id == "UPS-2"
    assert expected.string_count == 2
    assert reported.string_count == 3
    assert override.reviewer == "jdoe"
    assert items[0][3] is None


def test_evaluate_json_output(workspace, capsys):
    rc = main(["--config", workspace["conf"], "--json", "evaluate", workspace["readings"]])

    assert rc == 1
    payload = json.loads(capsys.readouterr().out)
    by_id = {e["equipment_id"]: e for e in payload["evaluations"]}

    ups = by_id["UPS-1"]
    assert ups["status"] == "Online"
    assert ups["profile_match"] == "model"
    output = ups["components"][0]
    assert output["load"]["load_percentage"] == pytest.approx(90.07, abs=0.01)
    voltage = [c for c in output["classifications"] if c["kind"] == "voltage"][0]
    assert voltage["value"] == 120.09
    assert voltage["derived"] is True

    batt = by_id["BATT-1"]
    assert batt["status"] == "On-Line(Minor Deficiency)"
    cell = batt["components"][0]["classifications"][1]
    assert cell["legacy_code"] == "W"
    assert cell["deviation_pct"] == 35.0

    assert set(payload["errors"]) == {"BAD-1", "BAD-2", "#4"}

    run_log = json.loads(workspace["log"].read_text().strip())
    assert run_log["command"] == "evaluate"
    assert len(run_log["evaluations"]) == 2


def test_reconcile_human_output(workspace, capsys):
    rc = main(["--config", workspace["conf"], "reconcile", workspace["reconciliation"]])

    out = capsys.readouterr().out
    assert rc == 0
    assert "[UPS-1] reconciliation NOT verified, 1 discrepancies" in out
    assert "StringCount: expected=2 reported=3" in out
    assert "[UPS-2] reconciliation verified (override by jdoe), 1 discrepancies" in out


def test_profile_command(workspace, capsys):
    rc = main([
        "--config", workspace["conf"], "--json",
        "profile", "battery", "--manufacturer", " ENERSYS", "--model", "12hx505", "--reading-method", "Impedance",
    ])

    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert payload["match_level"] == "exact"
    assert payload["baseline"] == 100.0
    assert payload["replace_pct"] == 50.0


def test_profile_command_unknown_family(workspace, capsys):
    rc = main(["--config", workspace["conf"], "profile", "toaster"])

    assert rc == 2
    assert capsys.readouterr().out == ""


def test_unparsable_unit_does_not_stop_the_batch(tmp_path, workspace, capsys):
    readings = tmp_path / "mixed.json"
    readings.write_text(json.dumps({
        "equipment": [
            READINGS["equipment"][0],
            {
                "equipment_id": "UPS-9",
                "family": "ups",
                "phase_count": "three",
                "in_service_since": "last spring",
                "readings": [],
            },
        ]
    }))

    rc = main(["--config", workspace["conf"], "--json", "evaluate", str(readings)])

    assert rc == 1
    payload = json.loads(capsys.readouterr().out)
    assert [e["equipment_id"] for e in payload["evaluations"]] == ["UPS-1"]
    assert payload["evaluations"][0]["status"] == "Online"
    assert "UPS-9" in payload["errors"]


def test_bad_dates_and_baselines_are_per_unit_errors(tmp_path):
    readings = tmp_path / "dates.json"
    readings.write_text(json.dumps([
        {"equipment_id": "B-1", "family": "battery", "in_service_since": "2023-13-40"},
        {"equipment_id": "B-2", "family": "battery", "unit_baseline": "n/a"},
        {"equipment_id": "B-3", "family": "battery", "readings": ["not a row"]},
        "garbage",
        {"equipment_id": "B-4", "family": "battery", "unit_baseline": "95.5", "phase_count": "1"},
    ]))

    units, errors = load_readings(str(readings))

    assert [u.equipment_id for u in units] == ["B-4"]
    assert units[0].unit_baseline == 95.5
    assert units[0].phase_count == 1
    assert set(errors) == {"B-1", "B-2", "B-3", "#3"}


def test_legacy_form_reconciliation(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps({
        "items": [
            {
                "equipment_id": "UPS-7",
                "legacy_form": {
                    "Make": "Liebert",
                    "MakeCorrect": "Y",
                    "ASCStringsNo": "2",
                    "ASCStringsCorrect": "No",
                    "ActASCStringNo": "3",
                },
            }
        ]
    }))

    equipment_id, expected, reported, override = load_reconciliations(str(path))[0]

    assert equipment_id == "UPS-7"
    assert expected.string_count == "2"
    assert reported.string_count == "3"
    assert reported.make == "Liebert"
    assert override is None

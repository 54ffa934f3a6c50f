"""Tests for report file naming and CSV output."""

import csv
import io
from datetime import datetime

from run_step.report_csv import emit_report, print_report, report_filename, write_report

FIELDS = ["Interconnect", "Port"]
RECORDS = [
    {"Interconnect": "Enc1, interconnect 1", "Port": "X1"},
    {"Interconnect": "Enc1, interconnect 2", "Port": "X2"},
]


def test_report_filename_format() -> None:
    name = report_filename("UplinkPortInfo", "Enc1", now=datetime(2024, 3, 7, 9, 5))

    assert name == "UplinkPortInfo-Enc1-2024.03.07.0905.csv"


def test_report_filename_sanitizes_scope() -> None:
    name = report_filename("UplinkPortStatistics", "Enc1, interconnect 1", now=datetime(2024, 12, 31, 23, 59))

    assert name == "UplinkPortStatistics-Enc1_interconnect_1-2024.12.31.2359.csv"


def test_write_report(tmp_path) -> None:
    path = write_report(RECORDS, FIELDS, tmp_path / "out" / "report.csv")

    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows == RECORDS


def test_write_report_empty_has_header(tmp_path) -> None:
    path = write_report([], FIELDS, tmp_path / "empty.csv")

    assert path.read_text(encoding="utf-8").strip() == "Interconnect,Port"


def test_print_report() -> None:
    stream = io.StringIO()

    print_report(RECORDS, FIELDS, stream)

    assert stream.getvalue().splitlines()[0] == "Interconnect,Port"
    assert len(stream.getvalue().splitlines()) == 3


def test_emit_report_writes_timestamped_file(tmp_path) -> None:
    path = emit_report(RECORDS, FIELDS, "Warranty", "All", out_dir=tmp_path)

    assert path.parent == tmp_path
    assert path.name.startswith("Warranty-All-")
    assert path.suffix == ".csv"


def test_emit_report_console(capsys, tmp_path) -> None:
    result = emit_report(RECORDS, FIELDS, "Warranty", "All", out_dir=tmp_path, console=True)

    assert result is None
    assert "Enc1, interconnect 1" in capsys.readouterr().out
    assert list(tmp_path.iterdir()) == []

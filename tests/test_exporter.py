import csv
from pathlib import Path

import openpyxl
import pytest

from exporter import (
    Exporter,
    build_report,
    build_validation_report,
    serialize_merged_table,
    serialize_validation_run,
    sheet_title,
)
from models import (
    ColumnRuleSet,
    DataDictionary,
    RequiredRule,
    Sheet,
    Workbook,
)
from recon_engine import reconcile
from models import ReconRequest
from validation_engine import validate


def sample_run():
    rules = DataDictionary("d", [ColumnRuleSet("Name", [RequiredRule()])])
    workbook = Workbook(sheets=[Sheet("Claims", [["Name"], ["a"], [""]])])
    return validate(rules, workbook)


def sample_table():
    return reconcile(ReconRequest(
        source_rows=[["Claim", "Check"], ["C1", "K1"]],
        target_rows=[["Claim", "Claim"], ["C1", "x"], ["C2", "y"]],
        key_column="Claim",
        value_column="Check",
    ))


def test_serialize_validation_run_shape() -> None:
    sheet = serialize_validation_run(sample_run())
    assert sheet.name == "Validation Report"
    assert sheet.header == ["Sheet", "Row", "Column", "Rule", "Message"]
    assert sheet.rows == [["Claims", 2, "Name", "REQUIRED", "Value is required."]]


def test_validation_report_can_include_a_summary_sheet() -> None:
    report = build_validation_report(sample_run(), include_summary=True)
    summary = report.sheets[1]
    assert summary.header == ["Sheet", "Rows Checked", "Rows Passed", "Rows Failed"]
    assert summary.rows == [["Claims", 2, 1, 1], ["Total", 2, 1, 1]]


def test_serialize_merged_table_shape() -> None:
    sheet = serialize_merged_table(sample_table())
    assert sheet.name == "Merged Lag Report"
    assert sheet.header == ["Claim", "Claim", "Check Number"]
    assert sheet.rows == [["C1", "x", "K1"], ["C2", "y", ""]]


def test_build_report_dispatches_on_source_type() -> None:
    assert build_report(sample_run()).sheets[0].name == "Validation Report"
    assert build_report(sample_table(), "Out").sheets[0].name == "Out"
    with pytest.raises(TypeError):
        build_report(["not", "a", "result"])


def test_sheet_title_is_excel_safe() -> None:
    assert sheet_title("Q1/Q2 [draft]") == "Q1 Q2  draft"
    assert sheet_title("") == "Sheet"
    assert len(sheet_title("x" * 40)) == 31


def test_export_xlsx_writes_every_sheet(tmp_path: Path) -> None:
    output = tmp_path / "out" / "report.xlsx"
    Exporter().export(build_validation_report(sample_run(), include_summary=True), str(output))

    workbook = openpyxl.load_workbook(output)
    assert workbook.sheetnames == ["Validation Report", "Summary"]
    rows = list(workbook["Validation Report"].iter_rows(values_only=True))
    assert rows == [
        ("Sheet", "Row", "Column", "Rule", "Message"),
        ("Claims", 2, "Name", "REQUIRED", "Value is required."),
    ]
    workbook.close()


def test_to_xlsx_bytes_produces_a_loadable_workbook(tmp_path: Path) -> None:
    data = Exporter().to_xlsx_bytes(build_report(sample_table()))
    path = tmp_path / "merged.xlsx"
    path.write_bytes(data)
    workbook = openpyxl.load_workbook(path)
    rows = list(workbook.active.iter_rows(values_only=True))
    assert rows[0] == ("Claim", "Claim", "Check Number")
    assert rows[1] == ("C1", "x", "K1")
    workbook.close()


def test_export_csv_keeps_header_order_and_duplicates(tmp_path: Path) -> None:
    output = tmp_path / "merged.csv"
    count = Exporter().export_csv(serialize_merged_table(sample_table()), str(output))
    assert count == 2

    with output.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows == [
        ["Claim", "Claim", "Check Number"],
        ["C1", "x", "K1"],
        ["C2", "y", ""],
    ]


def test_export_csv_quotes_values_with_commas(tmp_path: Path) -> None:
    rules = DataDictionary("d", [ColumnRuleSet("Name", [RequiredRule(failure_message="Missing, please fix")])])
    run = validate(rules, Workbook(sheets=[Sheet("S", [["Name"], [""]])]))
    output = tmp_path / "report.csv"
    Exporter().export(build_validation_report(run), str(output))

    with output.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[1] == ["S", "1", "Name", "REQUIRED", "Missing, please fix"]


def test_formula_like_strings_are_written_as_text(tmp_path: Path) -> None:
    table = reconcile(ReconRequest(
        source_rows=[["Claim", "Check"], ["C1", "=K1+1"]],
        target_rows=[["Claim", "Note"], ["C1", "=SUM(A1:A2)"]],
        key_column="Claim",
        value_column="Check",
    ))
    path = tmp_path / "merged.xlsx"
    Exporter().export(build_report(table), str(path))

    workbook = openpyxl.load_workbook(path)
    worksheet = workbook.active
    assert [cell.data_type for cell in worksheet[2]] == ["s", "s", "s"]
    assert [cell.value for cell in worksheet[2]] == ["C1", "=SUM(A1:A2)", "=K1+1"]
    workbook.close()


def test_control_characters_are_dropped_from_xlsx_cells(tmp_path: Path) -> None:
    table = reconcile(ReconRequest(
        source_rows=[["Claim", "Check"], ["C1", "K\x0b1"]],
        target_rows=[["Claim"], ["C1"]],
        key_column="Claim",
        value_column="Check",
    ))
    path = tmp_path / "merged.xlsx"
    path.write_bytes(Exporter().to_xlsx_bytes(build_report(table)))

    workbook = openpyxl.load_workbook(path)
    rows = list(workbook.active.iter_rows(values_only=True))
    assert rows[1] == ("C1", "K1")
    workbook.close()

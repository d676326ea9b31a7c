"""Command-line entry point for the Data Toolkit."""

import json
from pathlib import Path
from typing import Optional

import typer

from config import ToolkitConfig, configure_logging
from dictionary import parse_dictionary
from errors import ToolkitError
from exporter import Exporter, build_merged_report, build_validation_report
from models import ReconRequest
from recon_engine import reconcile
from validation_engine import validate
from workbook_loader import load_table, load_workbook

app = typer.Typer(add_completion=False, help="Data dictionary validation and report reconciliation")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default from DATATOOLKIT_LOG_LEVEL)"),
):
    """Configure logging for every command."""
    configure_logging(log_level or ToolkitConfig.from_env().log_level)


def load_dictionary_file(path: Path):
    """
    Read a dictionary JSON file.

    Accepts either {"name": ..., "rules": [...]} or a bare list of rule
    records, in which case the file stem is used as the dictionary name.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise typer.BadParameter(f"{path.name} is not valid JSON: {e}") from e

    if isinstance(payload, list):
        return parse_dictionary(path.stem, payload)
    if isinstance(payload, dict):
        return parse_dictionary(
            payload.get("name") or path.stem,
            payload.get("rules"),
            organization=payload.get("organization"),
        )
    raise typer.BadParameter(f"{path.name} must contain a JSON object or list")


def fail(error: Exception):
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=2)


@app.command("validate")
def validate_command(
    workbook_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workbook (.xlsx or .csv) to validate"),
    dictionary_path: Path = typer.Option(..., "--dictionary", "-d", exists=True, dir_okay=False, help="Data dictionary JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the issue report (.xlsx or .csv)"),
):
    """Validate a workbook against a data dictionary."""
    config = ToolkitConfig.from_env()
    try:
        dictionary = load_dictionary_file(dictionary_path)
        run = validate(dictionary, load_workbook(workbook_path))
    except ToolkitError as e:
        fail(e)

    for name, summary in run.sheet_summaries.items():
        typer.echo(
            f"{name}: {summary.checked} checked, {summary.passed} passed, {summary.failed} failed"
        )
    typer.echo(f"{run.total_issues} issue(s) found")

    if output is not None:
        report = build_validation_report(
            run, config.report_sheet_name, include_summary=not str(output).lower().endswith(".csv")
        )
        Exporter().export(report, str(output))
        typer.echo(f"Report written to {output}")

    if not run.passed:
        raise typer.Exit(code=1)


@app.command("reconcile")
def reconcile_command(
    source_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Report holding the values"),
    target_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Report to enrich"),
    key: str = typer.Option(..., "--key", "-k", help="Shared key column header"),
    value: str = typer.Option(..., "--value", "-v", help="Source column to copy"),
    output_column: Optional[str] = typer.Option(None, "--output-column", help="Target column to fill"),
    output: Path = typer.Option(Path("merged_lag_report.xlsx"), "--output", "-o", help="Merged report (.xlsx or .csv)"),
):
    """Copy a value from SOURCE into TARGET rows matched on a key column."""
    config = ToolkitConfig.from_env()
    try:
        table = reconcile(ReconRequest(
            source_rows=load_table(source_path),
            target_rows=load_table(target_path),
            key_column=key,
            value_column=value,
            output_column=output_column or config.output_column,
        ))
    except ToolkitError as e:
        fail(e)

    summary = table.summary
    typer.echo(
        f"{summary.total_rows} row(s): {summary.matched_rows} matched, "
        f"{summary.unmatched_rows} unmatched, {summary.blank_key_rows} blank key"
    )
    Exporter().export(build_merged_report(table, config.merged_sheet_name), str(output))
    typer.echo(f"Merged report written to {output}")


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(5000, help="Port to listen on"),
    debug: bool = typer.Option(False, help="Enable Flask debug mode"),
):
    """Run the HTTP API."""
    from web_app import app as web_app

    web_app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    app()

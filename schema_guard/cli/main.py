"""CLI entry point for schema-guard."""

from pathlib import Path
from typing import NoReturn, Optional

import orjson
import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from schema_guard.config import ConfigurationError, get_settings, validate_config
from schema_guard.exceptions import SchemaGuardError
from schema_guard.loader import dump_document, dumps_json, load_document
from schema_guard.logging_config import configure_logging
from schema_guard.models.alert import Severity, ValidationReport
from schema_guard.models.rule import RuleDefinition

app = typer.Typer(
    name="schema-guard",
    help="schema-guard CLI - Validate catalog schemas, table data and business rules",
    add_completion=False,
)

console = Console()

FAIL_ON_CHOICES = ("error", "warn", "never")
OUTPUT_FORMATS = ("table", "json")

SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARN: "yellow",
    Severity.INFO: "cyan",
}


@app.callback()
def main():
    """Validate catalog schemas, table data and business rules."""
    if not structlog.is_configured():
        configure_logging()


def _fail(message: str) -> NoReturn:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(1)


def _load_rules(rules: Optional[Path]) -> list[RuleDefinition]:
    from schema_guard.services.rule_engine import load_rules_file

    path = rules or get_settings().rules_path
    if not path:
        return []
    return load_rules_file(str(path))


def _level_of(report: ValidationReport) -> dict[int, str]:
    levels: dict[int, str] = {}
    for level, alerts in (("A", report.level_a), ("B", report.level_b), ("C", report.level_c)):
        for alert in alerts:
            levels[id(alert)] = level
    return levels


def _display_report(report: ValidationReport, limit: int) -> None:
    """Helper to display a validation report."""
    summary = report.summary
    status = "[green]✓ Valid[/green]" if report.is_valid else "[red]✗ Invalid[/red]"
    console.print(f"\n[bold]Validation Report[/bold] {status}")
    console.print(f"  Errors: [red]{summary.errors}[/red]")
    console.print(f"  Warnings: [yellow]{summary.warnings}[/yellow]")
    console.print(f"  Infos: [cyan]{summary.infos}[/cyan]")

    if not report.alerts:
        console.print("[green]No alerts found.[/green]")
        return

    levels = _level_of(report)
    table = Table(title=f"\nAlerts ({len(report.alerts)})")
    table.add_column("Level", style="bold")
    table.add_column("Severity")
    table.add_column("Code", style="cyan")
    table.add_column("Location")
    table.add_column("Message")

    for alert in report.alerts[:limit]:
        table.add_row(
            levels.get(id(alert), "rules"),
            alert.severity.value.upper(),
            alert.code,
            escape(alert.location),
            escape(alert.message[:80] + "..." if len(alert.message) > 80 else alert.message),
            style=SEVERITY_STYLES.get(alert.severity, ""),
        )
    console.print(table)

    if len(report.alerts) > limit:
        console.print(f"  ... and {len(report.alerts) - limit} more (use --limit to show more)")


@app.command("validate")
def validate_command(
    schema: Path = typer.Option(..., "--schema", "-s", help="Path to the schema document", exists=True, dir_okay=False),
    data: Path = typer.Option(..., "--data", "-d", help="Path to the table data document", exists=True, dir_okay=False),
    rules: Optional[Path] = typer.Option(None, "--rules", "-r", help="Path to a YAML/JSON rule set"),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the JSON report to a file"),
    fail_on: str = typer.Option("error", "--fail-on", help="Exit non-zero on: error, warn or never"),
    limit: int = typer.Option(50, "--limit", "-n", help="Number of alerts to display"),
):
    """Validate table data against a schema and business rules."""
    from schema_guard.services.engine import ValidationEngine

    if fail_on not in FAIL_ON_CHOICES:
        raise typer.BadParameter(f"must be one of: {', '.join(FAIL_ON_CHOICES)}", param_hint="--fail-on")
    if output_format not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"must be one of: {', '.join(OUTPUT_FORMATS)}", param_hint="--format")

    try:
        schema_doc = load_document(schema)
        data_doc = load_document(data)
        rule_defs = _load_rules(rules)
        report = ValidationEngine().validate(schema_doc, data_doc, rule_defs)
    except (SchemaGuardError, FileNotFoundError) as e:
        _fail(getattr(e, "message", str(e)))

    if output:
        dump_document(report.to_dict(), output)
    if output_format == "json":
        typer.echo(dumps_json(report.to_dict(), option=orjson.OPT_INDENT_2).decode())
    else:
        _display_report(report, limit)
        if output:
            console.print(f"  Report written to: {output}")

    if fail_on == "error" and report.summary.errors > 0:
        raise typer.Exit(1)
    if fail_on == "warn" and (report.summary.errors + report.summary.warnings) > 0:
        raise typer.Exit(1)


@app.command("fix")
def fix_command(
    schema: Path = typer.Option(..., "--schema", "-s", help="Path to the schema document", exists=True, dir_okay=False),
    data: Path = typer.Option(..., "--data", "-d", help="Path to the table data document", exists=True, dir_okay=False),
    code: str = typer.Option(..., "--code", "-c", help="Alert code to fix, e.g. REQUIRED_FIELD_MISSING"),
    output: Path = typer.Option(..., "--output", "-o", help="Where to write the patched data"),
    table_name: Optional[str] = typer.Option(None, "--table", "-t", help="Only alerts for this table"),
    field_name: Optional[str] = typer.Option(None, "--field", help="Only alerts for this field"),
    record_id: Optional[str] = typer.Option(None, "--record", help="Only alerts for this record id"),
    rules: Optional[Path] = typer.Option(None, "--rules", "-r", help="Path to a YAML/JSON rule set"),
    only_listed: bool = typer.Option(False, "--only-listed", help="Fix only the records named by the alert"),
):
    """Apply the quick fix of the first matching alert and write the patched data."""
    from schema_guard.services.autofix import AutoFixer
    from schema_guard.services.engine import ValidationEngine

    try:
        schema_doc = load_document(schema)
        data_doc = load_document(data)
        rule_defs = _load_rules(rules)
        engine = ValidationEngine()
        report = engine.validate(schema_doc, data_doc, rule_defs)

        candidates = [
            a
            for a in report.by_code(code)
            if (table_name is None or a.table == table_name)
            and (field_name is None or a.field == field_name)
            and (record_id is None or str(a.record_id) == record_id)
        ]
        if not candidates:
            console.print(f"[green]No '{code}' alerts found. Nothing to fix.[/green]")
            return

        alert = candidates[0]
        result = AutoFixer(engine=engine).apply(
            alert, schema_doc, data_doc, fix_all=not only_listed, rules=rule_defs
        )
        dump_document(result.data, output)
    except (SchemaGuardError, FileNotFoundError) as e:
        _fail(getattr(e, "message", str(e)))

    console.print(f"\n[green]✓ {result.message}[/green]")
    console.print(f"  Alert: {alert.code} at {alert.location}")
    console.print(f"  Remaining errors: {result.report.summary.errors}")
    if len(candidates) > 1:
        console.print(f"  {len(candidates) - 1} more '{code}' alert(s) remain; run again to fix them")
    console.print(f"  Patched data written to: {output}")


@app.command("simulate")
def simulate_command(
    current: Path = typer.Option(..., "--current", help="Path to the current schema", exists=True, dir_okay=False),
    proposed: Path = typer.Option(..., "--proposed", help="Path to the proposed schema", exists=True, dir_okay=False),
    data: Path = typer.Option(..., "--data", "-d", help="Path to the table data document", exists=True, dir_okay=False),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Preview how a proposed schema change affects existing data."""
    from schema_guard.services.change_simulation import ChangeSimulator

    try:
        simulation = ChangeSimulator().simulate(
            load_document(current), load_document(proposed), load_document(data)
        )
    except SchemaGuardError as e:
        _fail(e.message)

    if output_format == "json":
        typer.echo(dumps_json(simulation.to_dict(), option=orjson.OPT_INDENT_2).decode())
        return

    risk_color = {"low": "green", "medium": "yellow", "high": "red"}[simulation.risk_level]
    console.print("\n[bold]Change Simulation[/bold]")
    console.print(f"  Risk: [{risk_color}]{simulation.risk_level.upper()}[/{risk_color}]")
    console.print(f"  Affected records: {simulation.affected_records}")

    if simulation.steps:
        table = Table(title=f"\nMigration Steps ({len(simulation.steps)})")
        table.add_column("Step", style="cyan")
        table.add_column("Description")
        table.add_column("Affected", justify="right")
        for step in simulation.steps:
            table.add_row(step.kind, escape(step.description), str(step.affected_records))
        console.print(table)
    else:
        console.print("[green]No schema changes detected.[/green]")

    for warning in simulation.warnings:
        console.print(f"  {escape(warning)}")
    for recommendation in simulation.recommendations:
        console.print(f"  {escape(recommendation)}")


@app.command("config")
def config_command(
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero on critical issues"),
):
    """Show the effective configuration and any startup issues."""
    settings = get_settings()

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in settings.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)

    issues = settings.validate_for_startup()
    for issue in issues:
        color = "red" if issue.startswith("CRITICAL") else "yellow"
        console.print(f"[{color}]{issue}[/{color}]")
    if not issues:
        console.print("[green]✓ No configuration issues[/green]")

    try:
        validate_config(settings, strict=strict)
    except ConfigurationError:
        raise typer.Exit(1)


# Create rules command group
rules_app = typer.Typer(help="Inspect and convert business rule sets")
app.add_typer(rules_app, name="rules")


def _describe_target(rule: RuleDefinition) -> str:
    if rule.scope.value == "global":
        return "*"
    parts = [p for p in (rule.table, rule.field) if p]
    return ".".join(parts) or "-"


@rules_app.command("check")
def rules_check(
    file: Path = typer.Argument(..., help="Path to a YAML/JSON rule set"),
):
    """Parse a rule set and list its rules."""
    from schema_guard.services.rule_engine import load_rules_file

    try:
        rule_defs = load_rules_file(str(file))
    except (SchemaGuardError, FileNotFoundError) as e:
        _fail(getattr(e, "message", str(e)))

    console.print(f"\n[bold]Rules ({len(rule_defs)})[/bold]")
    table = Table()
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Severity")
    table.add_column("Scope")
    table.add_column("Target")
    table.add_column("Conditions", justify="right")
    table.add_column("Enabled")

    for r in rule_defs:
        table.add_row(
            r.id,
            r.name or "-",
            r.severity.value,
            r.scope.value,
            _describe_target(r),
            str(len(r.when)),
            "yes" if r.enabled else "no",
            style=SEVERITY_STYLES.get(r.severity, "") if r.enabled else "dim",
        )
    console.print(table)
    console.print(f"[green]✓ {len(rule_defs)} rule(s) parsed[/green]")


@rules_app.command("export")
def rules_export(
    file: Path = typer.Argument(..., help="Path to a YAML/JSON rule set"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write YAML to this file instead of stdout"),
):
    """Export a rule set as normalised YAML."""
    from schema_guard.services.rule_engine import export_rules_yaml, load_rules_file

    try:
        rule_defs = load_rules_file(str(file))
    except (SchemaGuardError, FileNotFoundError) as e:
        _fail(getattr(e, "message", str(e)))

    yaml_content = export_rules_yaml(rule_defs)
    if output:
        output.write_text(yaml_content, encoding="utf-8")
        console.print(f"[green]✓ Exported {len(rule_defs)} rule(s) to {output}[/green]")
    else:
        typer.echo(yaml_content)


if __name__ == "__main__":
    app()

"""Command Line Interface for CliniDoc.

This module provides a CLI using Typer for running clinical documentation
commands against the configured store, managing user profiles and exporting
tabular reports.

Security Impact:
    - Every command runs under a session opened for a known profile
    - Authorization is enforced by the commands, never by the CLI
    - Audit entries are flushed to storage after each invocation
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from src.domain.clinical_document import ClinicalDocument
from src.domain.commands import CommandParameters, CommandResult
from src.domain.enums import UserRole
from src.domain.ports import ClinicalDocumentationError
from src.domain.profiles import UserProfile
from src.domain.services import DocumentReportService
from src.domain.utils import format_timestamp, short_id, to_uuid
from src.infrastructure.logging_config import setup_logging
from src.infrastructure.settings import APP_VERSION, settings
from src.main import Application, build_application

# Initialize Typer app and Rich console
app = typer.Typer(
    name="clinidoc",
    help="CliniDoc: Clinical Encounter Documentation Engine",
    add_completion=False
)
console = Console()


def create_application_cli() -> Application:
    """Build the application (CLI wrapper)."""
    try:
        return build_application(settings)
    except (ClinicalDocumentationError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed to initialize application: {str(e)}")
        raise typer.Exit(code=1)


def parse_params(pairs: List[str]) -> CommandParameters:
    """Parse `key=value` pairs into a parameter bag."""
    parameters = CommandParameters()
    for pair in pairs:
        if "=" not in pair:
            console.print(f"[red]✗[/red] Invalid parameter '{pair}', expected key=value")
            raise typer.Exit(code=1)
        key, value = pair.split("=", 1)
        parameters.set(key, value)
    return parameters


def _open_session(application: Application, user: str):
    session = application.open_session(user)
    if session is None:
        console.print(f"[red]✗[/red] Unknown user: {user}")
        application.close()
        raise typer.Exit(code=1)
    return session


def _documents_table(documents: List[ClinicalDocument]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Document", style="cyan")
    table.add_column("Patient")
    table.add_column("Physician")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Chief Complaint")
    table.add_column("Entries", justify="right")

    for document in documents:
        table.add_row(
            str(document.id),
            short_id(document.patient_id),
            short_id(document.physician_id),
            format_timestamp(document.created_at),
            "[green]Completed[/green]" if document.is_completed else "[yellow]Draft[/yellow]",
            document.chief_complaint,
            str(document.active_entry_count),
        )
    return table


def print_result(result: CommandResult) -> None:
    """Render a command result on the console."""
    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        console.print(f"[red]✗[/red] {result.message}")
        errors = result.validation_errors or [result.error_message]
        for error in errors:
            if error:
                console.print(f"  [red]•[/red] {error}")
        if result.error_code is not None:
            console.print(f"  [dim]Error code:[/dim] {result.error_code.value}")

    for warning in result.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")

    data = result.data
    if isinstance(data, list) and all(isinstance(item, ClinicalDocument) for item in data):
        if data:
            console.print(_documents_table(data))
    elif isinstance(data, dict):
        if "rendered" in data:
            console.print()
            # Notes use bracketed tags like [Draft] that are not Rich markup
            console.print(data["rendered"], markup=False, highlight=False)
            return
        details = Table(show_header=False, box=None, padding=(0, 2))
        for key, value in data.items():
            if isinstance(value, (ClinicalDocument, dict, list)) and key not in ("fields_updated",):
                continue
            details.add_row(f"{key}:", str(value))
        console.print(details)


@app.command("commands")
def list_commands() -> None:
    """List the available clinical commands."""
    application = create_application_cli()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Command", style="cyan")
    table.add_column("Description")
    for key, description in application.factory.available_commands():
        table.add_row(key, description)
    console.print(table)
    application.close()


@app.command()
def run(
    command_key: str = typer.Argument(..., help="Command key, e.g. add-diagnosis"),
    user: str = typer.Option(..., "--user", "-u", help="Username or profile id to run as"),
    param: List[str] = typer.Option([], "--param", "-p", help="Parameter as key=value (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run a single clinical command.

    Examples:
        clinidoc run create-clinical-document -u drsmith -p patient_id=... -p physician_id=... -p appointment_id=... -p chief_complaint="Chest pain"
        clinidoc run add-diagnosis -u drsmith -p document_id=... -p diagnosis_description="Type 2 diabetes" -p icd10_code=E11.9
    """
    setup_logging(use_json=settings.log_json, log_level="DEBUG" if verbose else settings.log_level)
    application = create_application_cli()

    if not application.factory.has_command(command_key):
        console.print(f"[red]✗[/red] Unknown command: {command_key}")
        console.print("[dim]Run 'clinidoc commands' to see the available commands[/dim]")
        application.close()
        raise typer.Exit(code=1)

    session = _open_session(application, user)
    parameters = parse_params(param)
    command = application.factory.create(command_key)

    try:
        result = application.invoker.execute(command, parameters, session)
        print_result(result)
        flushed = application.flush_audit()
        if flushed.is_failure():
            console.print(f"[yellow]⚠[/yellow] Failed to persist audit trail: {flushed.error}")
    finally:
        application.close()

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def batch(
    batch_file: Path = typer.Argument(..., help="JSON file with a list of {command, params} objects", exists=True),
    user: str = typer.Option(..., "--user", "-u", help="Username or profile id to run as"),
    keep_going: bool = typer.Option(False, "--keep-going", help="Continue after a failed command instead of rolling back"),
) -> None:
    """Run a batch of commands in order.

    Without --keep-going the first failure stops the batch and every command
    that already succeeded is undone in reverse order.

    Examples:
        clinidoc batch encounter.json -u drsmith
    """
    try:
        with open(batch_file, 'r') as f:
            steps: List[Dict[str, Any]] = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗[/red] Invalid batch file: {str(e)}")
        raise typer.Exit(code=1)

    application = create_application_cli()
    session = _open_session(application, user)

    try:
        commands_with_params = []
        for step in steps:
            key = step.get("command", "")
            if not application.factory.has_command(key):
                console.print(f"[red]✗[/red] Unknown command in batch: {key}")
                raise typer.Exit(code=1)
            commands_with_params.append(
                (application.factory.create(key), CommandParameters(step.get("params", {})))
            )

        batch_result = application.invoker.execute_batch(
            commands_with_params,
            session,
            stop_on_first_failure=not keep_going
        )
        for result in batch_result.results:
            print_result(result)
        console.print(f"\n[bold]{batch_result.get_summary()}[/bold]")
        application.flush_audit()
    finally:
        application.close()

    if batch_result.failure_count:
        raise typer.Exit(code=1)


@app.command("list")
def list_documents(
    user: str = typer.Option(..., "--user", "-u", help="Username or profile id to run as"),
    patient_id: Optional[str] = typer.Option(None, "--patient-id", help="Only documents of this patient"),
    physician_id: Optional[str] = typer.Option(None, "--physician-id", help="Only documents by this physician"),
    incomplete: bool = typer.Option(False, "--incomplete", help="Only draft documents"),
) -> None:
    """List clinical documents visible to the user."""
    application = create_application_cli()
    session = _open_session(application, user)

    parameters = CommandParameters()
    if patient_id:
        parameters.set("patient_id", patient_id)
    if physician_id:
        parameters.set("physician_id", physician_id)
    if incomplete:
        parameters.set("incomplete_only", True)

    try:
        result = application.factory.create("ListClinicalDocuments").execute(parameters, session)
        print_result(result)
    finally:
        application.close()

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def view(
    document_id: str = typer.Argument(..., help="Clinical document id"),
    user: str = typer.Option(..., "--user", "-u", help="Username or profile id to run as"),
    output_format: str = typer.Option("full", "--format", "-f", help="full, soap or summary"),
) -> None:
    """Render a clinical document."""
    application = create_application_cli()
    session = _open_session(application, user)
    parameters = CommandParameters({"document_id": document_id, "format": output_format})

    try:
        result = application.factory.create("ViewClinicalDocument").execute(parameters, session)
        print_result(result)
    finally:
        application.close()

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def export(
    output: Path = typer.Argument(..., help="CSV file to write"),
    entries: bool = typer.Option(False, "--entries", help="Export one row per entry instead of per document"),
    include_content: bool = typer.Option(False, "--include-content", help="Include entry text in entry exports"),
) -> None:
    """Export stored documents to CSV."""
    application = create_application_cli()
    report = DocumentReportService(include_content=include_content)

    try:
        documents = application.store.list_all()
        frame = report.entries_frame(documents) if entries else report.documents_frame(documents)
        frame.to_csv(output, index=False)
    except OSError as e:
        console.print(f"[red]✗[/red] Failed to write {output}: {str(e)}")
        raise typer.Exit(code=1)
    finally:
        application.close()

    console.print(f"[green]✓[/green] Exported {len(frame):,} row(s) to {output}")


@app.command("add-profile")
def add_profile(
    username: str = typer.Argument(..., help="Login name"),
    role: str = typer.Option(..., "--role", "-r", help="Patient, Physician or Administrator"),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    patient: List[str] = typer.Option([], "--patient", help="Patient id under care (physicians, repeatable)"),
) -> None:
    """Add a user profile to the profiles file."""
    parsed_role = UserRole.parse(role)
    if parsed_role is None:
        console.print(f"[red]✗[/red] Invalid role. Valid values are: {', '.join(UserRole.names())}")
        raise typer.Exit(code=1)

    patient_ids = [to_uuid(value) for value in patient]
    if any(pid is None for pid in patient_ids):
        console.print("[red]✗[/red] Invalid patient id")
        raise typer.Exit(code=1)

    application = create_application_cli()
    application.close()
    profile = UserProfile(username=username, name=name, role=parsed_role, patient_ids=patient_ids)
    if not application.profiles.add_profile(profile):
        console.print(f"[red]✗[/red] Username '{username}' is already taken")
        raise typer.Exit(code=1)

    saved = application.profiles.save_to_file(settings.profiles_file)
    if saved.is_failure():
        console.print(f"[red]✗[/red] {saved.error}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Added {parsed_role.value} profile {username}")
    console.print(f"[dim]Profile id:[/dim] {profile.id}")


@app.command()
def info() -> None:
    """Display system information and configuration."""
    console.print("[bold blue]System Information[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Storage Type:", settings.storage_config.storage_type)
    if settings.storage_config.storage_type == "duckdb":
        info_table.add_row("Database Path:", settings.get_db_path())
    info_table.add_row("Audit Trail:", "Enabled" if settings.storage_config.audit_enabled else "Disabled")
    info_table.add_row("Profiles File:", settings.profiles_file)
    info_table.add_row("Session Timeout:", f"{settings.session_timeout_minutes} min")
    info_table.add_row("Controlled Rx Expiry:", f"{settings.controlled_expiration_months} months")
    info_table.add_row("History Limit:", str(settings.history_limit))

    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information")
) -> None:
    """CliniDoc: Clinical Encounter Documentation Engine."""
    if version:
        console.print(f"CliniDoc v{APP_VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()

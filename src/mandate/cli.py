"""
CLI entry point for Mandate.

This module provides the Typer-based command-line interface for Mandate.

Commands:
    evaluate      Evaluate a decision against spec and snapshot files
    extract       Run the Observe phase and print derived signals
    submit        Submit a decision through the audit store
    spec-add      Publish a decision spec
    snapshot-add  Publish a policy snapshot
    decisions     List decisions and verdicts in a boundary
    timeline      Show a decision's audit timeline
    outcome       Report the outcome of an action
    check         Check policy bindings of every boundary's latest snapshot

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    the policy, observe and engine modules. None of them depend on it.
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mandate import __version__
from mandate.config import MandateConfig, build_population_config, load_config
from mandate.engine import Engine, SubmissionResult
from mandate.errors import MandateError
from mandate.isolation import create_isolation_context
from mandate.observe import PopulationConfig, execute_observe_phase
from mandate.policy import evaluate_decision
from mandate.schema import (
    DecisionEvent,
    DecisionSpec,
    EvaluationResult,
    Scope,
    Verdict,
    load_decision,
    load_snapshot,
    load_spec,
)
from mandate.store import MandateDB
from mandate.validation import validate_signals, validate_snapshot_integrity

# Initialize Typer app with metadata
app = typer.Typer(
    name="mandate",
    help="Govern AI agent decisions with deterministic policies.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()
err_console = Console(stderr=True)

VERDICT_STYLES = {
    Verdict.ALLOW: "green",
    Verdict.PAUSE: "yellow",
    Verdict.BLOCK: "red",
    Verdict.OBSERVE: "blue",
}

DEFAULT_DB = Path("mandate.db")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]mandate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Mandate - Admission control for AI agent decisions.

    Evaluate attempted actions against organization-scoped policies and
    keep an append-only audit trail of every verdict.
    """
    pass


# =============================================================================
# Shared Options and Helpers
# =============================================================================

JsonOption = Annotated[bool, typer.Option("--json", help="Output results in JSON format.")]
VerboseOption = Annotated[bool, typer.Option("--verbose", help="Enable verbose (DEBUG) logging.")]
DebugOption = Annotated[bool, typer.Option("--debug", help="Show full error tracebacks.")]
DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="Path to the SQLite database. Defaults to mandate.db.", resolve_path=True),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to a mandate config YAML file.", resolve_path=True),
]
OrgOption = Annotated[str, typer.Option("--org", help="Organization id of the boundary.")]
DomainOption = Annotated[str, typer.Option("--domain", help="Domain of the boundary.")]


def _configure_logging(verbose: bool, level: str = "WARNING") -> None:
    """Route the mandate logger through rich, once."""
    logger = logging.getLogger("mandate")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=err_console, show_path=False))
    logger.setLevel(logging.DEBUG if verbose else level)


def _load_config(path: Path | None, verbose: bool) -> MandateConfig:
    config = load_config(path)
    _configure_logging(verbose, config.log_level)
    return config


def _output_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _fail(e: Exception, json_output: bool, debug: bool, what: str = "Error") -> None:
    """Report an error and exit with code 1."""
    if json_output:
        if isinstance(e, MandateError):
            output = {"error": True, **e.to_dict()}
            if debug:
                output["traceback"] = traceback.format_exc()
            _output_json(output)
        else:
            _output_json_error(e.__class__.__name__, str(e), debug)
    else:
        console.print(f"[red]{what}: {e}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


def _verdict_display(verdict: Verdict | None) -> str:
    if verdict is None:
        return "[dim]-[/dim]"
    style = VERDICT_STYLES[verdict]
    return f"[bold {style}]{verdict.value}[/bold {style}]"


def _population_config(config: MandateConfig) -> PopulationConfig:
    return build_population_config(config)


def _close_extractor(population: PopulationConfig) -> None:
    close = getattr(population.extractor, "close", None)
    if callable(close):
        close()


# =============================================================================
# Evaluation Commands
# =============================================================================


@app.command()
def evaluate(
    decision_path: Annotated[
        Path,
        typer.Argument(help="Path to the decision YAML/JSON file.", exists=True, readable=True, resolve_path=True),
    ],
    spec_path: Annotated[
        Path,
        typer.Option("--spec", "-s", help="Path to the spec YAML file.", exists=True, readable=True, resolve_path=True),
    ],
    snapshot_path: Annotated[
        Path,
        typer.Option("--snapshot", "-p", help="Path to the policy snapshot YAML file.", exists=True, readable=True, resolve_path=True),
    ],
    text: Annotated[
        Optional[str],
        typer.Option("--text", "-t", help="Unstructured text to derive signals from."),
    ] = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Evaluate a decision against a spec and snapshot, without a database.

    Example:
        $ mandate evaluate decision.yaml --spec spec.yaml --snapshot policies.yaml
    """
    config = _load_config(config_path, verbose)

    try:
        decision = load_decision(decision_path)
        spec = load_spec(spec_path)
        snapshot = load_snapshot(snapshot_path)
    except Exception as e:
        _fail(e, json_output, debug, "Error loading files")

    population = _population_config(config)
    try:
        enriched = execute_observe_phase(decision, spec, text, population)
        validate_signals(spec, enriched)
        result = evaluate_decision(enriched, spec, snapshot)
    except MandateError as e:
        _fail(e, json_output, debug, "Evaluation failed")
    finally:
        _close_extractor(population)

    if json_output:
        _output_json({
            "decision_id": enriched.decision_id,
            "verdict": result.verdict.value,
            "matched_policy_ids": list(result.matched_policy_ids),
            "spec": spec.label,
            "snapshot_id": snapshot.snapshot_id,
            "context": enriched.context,
        })
    else:
        _display_evaluation(enriched, spec, result, verbose)


def _display_evaluation(
    decision: DecisionEvent,
    spec: DecisionSpec,
    result: EvaluationResult,
    verbose: bool,
) -> None:
    console.print(f"Decision [cyan]{decision.decision_id}[/cyan] ({decision.intent}, {decision.stage.value})")
    console.print(f"Spec: {spec.label}")
    console.print(f"Verdict: {_verdict_display(result.verdict)}")
    if result.matched_policy_ids:
        console.print(f"Matched policies: {', '.join(result.matched_policy_ids)}")
    else:
        console.print("[dim]No policies matched[/dim]")
    if verbose and decision.context:
        _display_signals(decision.context)


def _display_signals(signals: dict[str, Any]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Signal", style="cyan")
    table.add_column("Value")
    table.add_column("Type", style="dim")
    for name, value in signals.items():
        table.add_row(name, json.dumps(value), type(value).__name__)
    console.print(table)


@app.command()
def extract(
    spec_path: Annotated[
        Path,
        typer.Option("--spec", "-s", help="Path to the spec YAML file.", exists=True, readable=True, resolve_path=True),
    ],
    text: Annotated[
        str,
        typer.Option("--text", "-t", help="Unstructured text to derive signals from."),
    ],
    decision_path: Annotated[
        Optional[Path],
        typer.Option("--decision", "-d", help="Decision supplying scope and timestamp signals.", exists=True, readable=True, resolve_path=True),
    ] = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Run the Observe phase only and print the derived signals.

    Example:
        $ mandate extract --spec spec.yaml --text "amount: 250, priority high"
    """
    config = _load_config(config_path, verbose)

    try:
        spec = load_spec(spec_path)
        if decision_path is not None:
            decision = load_decision(decision_path)
        else:
            decision = DecisionEvent(
                decision_id="extract",
                organization_id=spec.organization_id,
                intent=spec.intent,
                stage=spec.stage,
                actor="cli",
                target="-",
                scope=Scope(organization_id=spec.organization_id, domain=spec.domain),
            )
    except Exception as e:
        _fail(e, json_output, debug, "Error loading files")

    population = _population_config(config)
    try:
        enriched = execute_observe_phase(decision, spec, text, population)
    finally:
        _close_extractor(population)

    declared = {s.name for s in spec.signals}
    signals = {k: v for k, v in enriched.context.items() if k in declared}
    missing = [s.name for s in spec.signals if s.name not in signals]

    if json_output:
        _output_json({"spec": spec.label, "signals": signals, "missing": missing})
        return

    if signals:
        _display_signals(signals)
    else:
        console.print("[dim]No signals derived.[/dim]")
    if missing:
        console.print(f"[yellow]Not found: {', '.join(missing)}[/yellow]")


# =============================================================================
# Store Commands
# =============================================================================


@app.command()
def submit(
    decision_path: Annotated[
        Path,
        typer.Argument(help="Path to the decision YAML/JSON file.", exists=True, readable=True, resolve_path=True),
    ],
    text: Annotated[
        Optional[str],
        typer.Option("--text", "-t", help="Unstructured text to derive signals from."),
    ] = None,
    db: DbOption = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    verbose: VerboseOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Submit a decision: resolve spec and snapshot, evaluate, and record the verdict.

    Example:
        $ mandate submit decision.yaml --text "Refund of $80 approved" --db mandate.db
    """
    config = _load_config(config_path, verbose)
    db_path = db or config.db_path

    try:
        decision = load_decision(decision_path)
    except Exception as e:
        _fail(e, json_output, debug, "Error loading decision")

    population = _population_config(config)
    try:
        with Engine(db_path=db_path, population_config=population) as engine:
            result = engine.submit(decision, text=text)
    except MandateError as e:
        _fail(e, json_output, debug, "Submission failed")
    finally:
        _close_extractor(population)

    if json_output:
        _output_submission_json(result)
    else:
        _display_submission(result)


def _output_submission_json(result: SubmissionResult) -> None:
    output: dict[str, Any] = {
        "decision_id": result.decision.decision_id,
        "verdict": result.verdict.value,
        "matched_policy_ids": list(result.matched_policy_ids),
    }
    if result.verdict_event is not None:
        output["verdict_id"] = result.verdict_event.verdict_id
        output["spec"] = f"{result.verdict_event.spec_id}@{result.verdict_event.spec_version}"
        output["snapshot_id"] = result.verdict_event.snapshot_id
        output["scope_id"] = result.verdict_event.scope_id
    if result.attribution_error is not None:
        output["attribution_error"] = result.attribution_error.to_dict()
    _output_json(output)


def _display_submission(result: SubmissionResult) -> None:
    console.print(f"Decision [cyan]{result.decision.decision_id}[/cyan]: {_verdict_display(result.verdict)}")
    if result.attribution_error is not None:
        console.print(f"[yellow]Not attributed: {result.attribution_error.message}[/yellow]")
        return
    event = result.verdict_event
    console.print(f"[dim]Spec {event.spec_id}@{event.spec_version}, snapshot {event.snapshot_id}, verdict {event.verdict_id}[/dim]")
    if result.matched_policy_ids:
        console.print(f"Matched policies: {', '.join(result.matched_policy_ids)}")


@app.command("spec-add")
def spec_add(
    spec_path: Annotated[
        Path,
        typer.Argument(help="Path to the spec YAML file.", exists=True, readable=True, resolve_path=True),
    ],
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Publish a decision spec version.

    An active spec supersedes the previous active spec for the same intent and stage.

    Example:
        $ mandate spec-add specs/approve-expense.yaml
    """
    try:
        spec = load_spec(spec_path)
        ctx = create_isolation_context(spec.organization_id, spec.domain)
        with MandateDB(db or DEFAULT_DB) as store:
            store.insert_spec(spec, ctx)
    except Exception as e:
        _fail(e, json_output, debug, "Cannot add spec")

    if json_output:
        _output_json({"spec": spec.label, "status": spec.status.value, "boundary": str(ctx)})
    else:
        console.print(f"[green]Added spec {spec.label}[/green] ({spec.status.value}) in {ctx}")


@app.command("snapshot-add")
def snapshot_add(
    snapshot_path: Annotated[
        Path,
        typer.Argument(help="Path to the policy snapshot YAML file.", exists=True, readable=True, resolve_path=True),
    ],
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Publish a policy snapshot; it gets the next version in its boundary.

    Example:
        $ mandate snapshot-add policies/finance.yaml
    """
    try:
        snapshot = load_snapshot(snapshot_path)
        ctx = create_isolation_context(snapshot.organization_id, snapshot.domain)
        with MandateDB(db or DEFAULT_DB) as store:
            stored = store.insert_snapshot(snapshot, ctx)
    except Exception as e:
        _fail(e, json_output, debug, "Cannot add snapshot")

    if json_output:
        _output_json({
            "snapshot_id": stored.snapshot_id,
            "version": stored.version,
            "policies": len(stored.policies),
            "boundary": str(ctx),
        })
    else:
        console.print(
            f"[green]Added snapshot {stored.snapshot_id}[/green] "
            f"v{stored.version} ({len(stored.policies)} policies) in {ctx}"
        )


@app.command()
def decisions(
    org: OrgOption,
    domain: DomainOption,
    verdict: Annotated[
        Optional[Verdict],
        typer.Option("--verdict", help="Only decisions with this verdict."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of decisions to show."),
    ] = 20,
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    List decisions and their verdicts inside one boundary.

    Example:
        $ mandate decisions --org acme --domain finance --verdict BLOCK
    """
    db_path = db or DEFAULT_DB
    if not db_path.exists():
        console.print(f"[yellow]No database found at {db_path}[/yellow]")
        raise typer.Exit(code=0)

    try:
        ctx = create_isolation_context(org, domain)
        with Engine(db_path=db_path) as engine:
            rows = engine.list_decisions(ctx, verdict=verdict, limit=limit)
    except MandateError as e:
        _fail(e, json_output, debug)

    if json_output:
        _output_json(rows)
        return

    if not rows:
        console.print("[dim]No decisions found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Decision ID", style="cyan")
    table.add_column("Timestamp")
    table.add_column("Intent")
    table.add_column("Stage")
    table.add_column("Actor")
    table.add_column("Verdict", width=9)
    table.add_column("Matched")

    for r in rows:
        table.add_row(
            r["decision_id"],
            r["timestamp"][:19],
            r["intent"],
            r["stage"],
            r["actor"],
            _verdict_display(Verdict(r["verdict"]) if r["verdict"] else None),
            ", ".join(r["matched_policy_ids"]),
        )

    console.print(table)


@app.command()
def timeline(
    decision_id: Annotated[str, typer.Argument(help="The decision ID.")],
    org: OrgOption,
    domain: DomainOption,
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Show the audit timeline of a decision.

    Example:
        $ mandate timeline dec-001 --org acme --domain finance
    """
    db_path = db or DEFAULT_DB
    if not db_path.exists():
        console.print(f"[yellow]No database found at {db_path}[/yellow]")
        raise typer.Exit(code=0)

    try:
        ctx = create_isolation_context(org, domain)
        with MandateDB(db_path) as store:
            entries = store.list_timeline_entries(decision_id, ctx)
    except MandateError as e:
        _fail(e, json_output, debug)

    if json_output:
        _output_json([e.model_dump(mode="json") for e in entries])
        return

    if not entries:
        console.print(f"[dim]No timeline entries for {decision_id} in {ctx}.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Timestamp")
    table.add_column("Summary")
    table.add_column("Severity", width=8)
    table.add_column("Source", width=7)

    for entry in entries:
        severity = entry.severity.value
        if severity == "error":
            severity = "[red]error[/red]"
        elif severity == "warning":
            severity = "[yellow]warning[/yellow]"
        table.add_row(entry.timestamp[:19], entry.summary, severity, entry.source.value)

    console.print(table)


@app.command()
def outcome(
    decision_id: Annotated[str, typer.Argument(help="The decision ID.")],
    org: OrgOption,
    domain: DomainOption,
    success: Annotated[
        bool,
        typer.Option("--success/--failure", help="Whether the action succeeded."),
    ] = True,
    details: Annotated[
        Optional[str],
        typer.Option("--details", help="JSON object with outcome details."),
    ] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Report the outcome of an action taken under a verdict.

    Example:
        $ mandate outcome dec-001 --org acme --domain finance --failure
    """
    try:
        detail_data = json.loads(details) if details else {}
        if not isinstance(detail_data, dict):
            raise ValueError("--details must be a JSON object")
        ctx = create_isolation_context(org, domain)
        with Engine(db_path=db or DEFAULT_DB) as engine:
            entry = engine.report_outcome(decision_id, ctx, success, detail_data)
    except (MandateError, ValueError) as e:
        _fail(e, json_output, debug, "Cannot report outcome")

    if json_output:
        _output_json(entry.model_dump(mode="json"))
    else:
        console.print(f"[green]Recorded:[/green] {entry.summary}")


@app.command()
def check(
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Check the policy bindings of every boundary's latest snapshot.

    Exits with code 1 if any policy is missing its spec or scope binding,
    or is bound to a spec that is not active in its boundary.

    Example:
        $ mandate check --db mandate.db
    """
    db_path = db or DEFAULT_DB
    if not db_path.exists():
        console.print(f"[yellow]No database found at {db_path}[/yellow]")
        raise typer.Exit(code=0)

    report: list[dict[str, Any]] = []
    try:
        with MandateDB(db_path) as store:
            failures = store.list_attribution_failures_unscoped()
            for snapshot in store.list_latest_snapshots_unscoped():
                ctx = create_isolation_context(snapshot.organization_id, snapshot.domain)
                issues = validate_snapshot_integrity(snapshot, store.list_specs(ctx))
                report.append({
                    "boundary": str(ctx),
                    "snapshot_id": snapshot.snapshot_id,
                    "version": snapshot.version,
                    "issues": [
                        {"policy_id": i.policy_id, "policy_name": i.policy_name, "reason": i.reason}
                        for i in issues
                    ],
                })
    except MandateError as e:
        _fail(e, json_output, debug)

    failed = any(r["issues"] for r in report)

    if json_output:
        _output_json({
            "valid": not failed,
            "snapshots": report,
            "attribution_failures": [
                {"decision_id": f.decision_id, "reason": f.reason, "recorded_at": f.recorded_at}
                for f in failures
            ],
        })
    else:
        if not report:
            console.print("[dim]No snapshots found.[/dim]")
        for r in report:
            if r["issues"]:
                console.print(f"[red]✗[/red] {r['boundary']} snapshot {r['snapshot_id']} v{r['version']}")
                for issue in r["issues"]:
                    console.print(f"    Policy \"{issue['policy_name']}\" ({issue['policy_id']}): {issue['reason']}")
            else:
                console.print(f"[green]✓[/green] {r['boundary']} snapshot {r['snapshot_id']} v{r['version']}")
        if failures:
            console.print(f"[yellow]{len(failures)} unattributed decision(s), most recent:[/yellow]")
            for f in failures[:5]:
                console.print(f"    {f.decision_id} at {f.recorded_at[:19]}: {f.reason}")

    if failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

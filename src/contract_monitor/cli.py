"""CLI entry point for contract-monitor."""

import json
import logging
import time
from pathlib import Path

import click

from contract_monitor.config import MonitorSettings, load_settings
from contract_monitor.drift.analyzer import ConsistencyAnalyzer
from contract_monitor.drift.report import build_consistency_report, render_markdown
from contract_monitor.drift.scanner import SourceScanner
from contract_monitor.engine import ValidatorEngine, build_sinks
from contract_monitor.errors import ContractError, SpecInvalid
from contract_monitor.monitor.alerts import dispatch
from contract_monitor.monitor.health import calculate_health
from contract_monitor.monitor.models import Alert, Violation, new_id
from contract_monitor.monitor.store import ReportStore
from contract_monitor.spec.store import SchemaSpecStore


def _settings(ctx: click.Context) -> MonitorSettings:
    return ctx.obj["settings"]


def _engine(ctx: click.Context) -> ValidatorEngine:
    try:
        return ValidatorEngine.from_settings(_settings(ctx))
    except ContractError as e:
        raise click.ClickException(e.message)


def _echo_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--config", "config_file", type=click.Path(exists=True, path_type=Path), help="YAML settings file.")
@click.option("--contract", type=click.Path(path_type=Path), help="Contract document (YAML or JSON).")
@click.option("--data-dir", type=click.Path(path_type=Path), help="Directory for monitoring state and reports.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False), help="Logging level.")
@click.pass_context
def main(ctx, config_file: Path | None, contract: Path | None, data_dir: Path | None, log_level: str | None):
    """Contract Monitor: validate API traffic and watch for contract drift."""
    settings = load_settings(config_file, contract_path=contract, data_dir=data_dir, log_level=log_level)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"settings": settings}


@main.command()
@click.pass_context
def check(ctx):
    """Run one monitoring check and print the monitor status."""
    engine = _engine(ctx)
    result = engine.monitor.perform_check()
    engine.report_store.close()

    click.echo(f"Check {result.check_id}: {len(result.violations)} violations "
               f"({result.critical_count} critical, {result.warning_count} warning)")
    _echo_json(engine.monitor.status().model_dump(mode="json"))


@main.command()
@click.option("--interval", type=float, default=None, help="Seconds between checks.")
@click.pass_context
def start(ctx, interval: float | None):
    """Run the monitor until interrupted."""
    if interval is not None:
        ctx.obj["settings"] = _settings(ctx).model_copy(update={"check_interval": interval})
    engine = _engine(ctx)

    click.echo(f"Monitoring {engine.settings.contract_path} every {engine.settings.check_interval}s (Ctrl+C to stop)")
    engine.start()
    try:
        while engine.monitor.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("Stopping...")
    finally:
        engine.stop()


@main.command()
@click.pass_context
def status(ctx):
    """Print monitoring status from persisted data."""
    store = ReportStore(_settings(ctx).data_dir, background=False)
    state = store.load_state()
    if not state:
        click.echo(f"No monitoring data found in {store.data_dir}")
        return

    violations = [Violation.model_validate(v) for v in state.get("violations", [])]
    health = calculate_health(violations[-50:])
    _echo_json({
        "last_updated": state.get("last_updated"),
        "metrics": state.get("metrics", {}),
        "health": health.model_dump(),
        "recent_violations": [v.model_dump(mode="json") for v in violations[-5:]],
        "recent_alerts": state.get("alerts", [])[-3:],
    })


@main.command()
@click.option("--frequency", default="daily", type=click.Choice(["hourly", "daily", "weekly"]), help="Report period.")
@click.pass_context
def report(ctx, frequency: str):
    """Generate and save a report from persisted monitoring history."""
    engine = _engine(ctx)
    generated = engine.monitor.generate_report(frequency)
    engine.report_store.save_state(engine.monitor.state_snapshot())
    engine.report_store.close()

    summary = generated.summary
    click.echo(f"Report {generated.id} saved to {engine.report_store.reports_dir}")
    click.echo(f"  Health: {summary.health_score} ({summary.health_status})")
    click.echo(f"  Violations: {summary.violation_counts.total} "
               f"({summary.violation_counts.critical} critical, {summary.violation_counts.warning} warning)")
    click.echo(f"  Trend: {generated.trend.trend}")


@main.command("test-alert")
@click.pass_context
def test_alert(ctx):
    """Send a test alert through every configured sink."""
    sinks = build_sinks(_settings(ctx))
    if not sinks:
        click.echo("No alert sinks configured (set WEBHOOK_URL, SLACK_WEBHOOK or email settings).")
        return

    alert = Alert(
        id=new_id("alert_test"),
        type="test",
        severity="warning",
        title="Test Alert",
        message="This is a test alert from the API contract monitoring system",
        details={"test": True},
    )
    delivered = dispatch(alert, sinks)
    click.echo(f"Test alert delivered to {delivered}/{len(sinks)} sinks")
    if delivered < len(sinks):
        ctx.exit(1)


@main.command()
@click.argument("source_root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output directory for the consistency report.")
@click.pass_context
def scan(ctx, source_root: Path, output: Path):
    """Compare client API calls under SOURCE_ROOT with the contract."""
    settings = _settings(ctx)
    try:
        store = SchemaSpecStore.from_file(settings.contract_path)
    except ContractError as e:
        raise click.ClickException(e.message)

    scanner = SourceScanner(api_prefix=settings.api_prefix)
    analyzer = ConsistencyAnalyzer(internal_paths=tuple(settings.internal_paths))
    click.echo(f"Scanning {source_root}...")
    calls = scanner.scan_tree(source_root)
    click.echo(f"Found {len(calls)} API calls, {len(store.endpoints)} backend endpoints.")

    inconsistencies = analyzer.diff(calls, store.endpoints)
    data = build_consistency_report(calls, store.endpoints, inconsistencies)

    output.mkdir(parents=True, exist_ok=True)
    json_path = output / "api-consistency-report.json"
    md_path = output / "api-consistency-report.md"
    json_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    md_path.write_text(render_markdown(data), encoding="utf-8")
    click.echo(f"  Created {json_path}")
    click.echo(f"  Created {md_path}")

    summary = data["summary"]
    click.echo(f"{summary['error_count']} errors, {summary['warning_count']} warnings")
    if summary["error_count"]:
        ctx.exit(1)


@main.command("validate-spec")
@click.pass_context
def validate_spec(ctx):
    """Load the contract document and print a summary."""
    path = _settings(ctx).contract_path
    try:
        store = SchemaSpecStore.from_file(path)
    except SpecInvalid as e:
        click.echo(f"{path}: {e.message}", err=True)
        ctx.exit(1)

    click.echo(f"{store.title} (version {store.version})")
    click.echo(f"  Endpoints: {len(store.endpoints)}")
    click.echo(f"  Schemas: {len(store.schemas)}")
    undocumented = store.undocumented_endpoints()
    if undocumented:
        click.echo(f"  Undocumented endpoints: {len(undocumented)}")
        for ep in undocumented:
            click.echo(f"    {ep.method} {ep.path_pattern}")

"""Rich terminal output for the Wraps CLI."""

from typing import Iterable, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wraps_cli.core.exceptions import WrapsError
from wraps_cli.email.costs import FeatureCostBreakdown, format_cost
from wraps_cli.email.presets import PresetInfo
from wraps_cli.services.domain_verifier import (
    INCORRECT,
    MISSING,
    VERIFIED,
    DNSRecord,
    DomainVerification,
)
from wraps_cli.services.orchestrator import DeployResult, StatusReport, TeardownResult

STATUS_ICONS = {
    VERIFIED: "✅",
    INCORRECT: "⚠️ ",
    MISSING: "❌",
}

FEATURE_LABELS = {
    'tracking': "Open & click tracking",
    'reputation_metrics': "Reputation metrics",
    'event_tracking': "Event tracking",
    'dynamodb_history': "Email history",
    'dedicated_ip': "Dedicated IP",
}


class DisplayManager:
    """Renders command results to a rich console."""

    def __init__(self, console: Console):
        self.console = console

    def show_header(self, title: str) -> None:
        self.console.print(f"[bold]{title}[/bold]")
        self.console.print("━" * 50)
        self.console.print()

    def show_info(self, message: str) -> None:
        self.console.print(message)

    def show_success(self, message: str) -> None:
        self.console.print(f"✅ [green]{message}[/green]")

    def show_warnings(self, warnings: Iterable[str]) -> None:
        for warning in warnings:
            self.console.print(f"⚠️  [yellow]{warning}[/yellow]")

    def show_error(self, error: WrapsError) -> None:
        """One-line cause followed by the remediation, if any."""
        self.console.print(f"❌ [red]{error.message}[/red]")
        if error.suggestion:
            self.console.print()
            for line in error.suggestion.splitlines():
                self.console.print(f"   [cyan]{line}[/cyan]")
        if error.docs_url:
            self.console.print(f"   [dim]Docs: {error.docs_url}[/dim]")

    def display_costs(self, costs: FeatureCostBreakdown) -> None:
        table = Table(title="Estimated monthly cost", show_header=True, header_style="bold")
        table.add_column("Feature")
        table.add_column("Details", style="dim")
        table.add_column("Monthly", justify="right")

        for name, cost in costs.active_features().items():
            table.add_row(FEATURE_LABELS.get(name, name), cost.description, format_cost(cost.monthly))
        table.add_row("[bold]Total[/bold]", costs.total.description, f"[bold]{format_cost(costs.total.monthly)}[/bold]")

        self.console.print(table)

    def display_presets(self, presets: List[PresetInfo]) -> None:
        table = Table(title="Presets", show_header=True, header_style="bold")
        table.add_column("Preset")
        table.add_column("Volume")
        table.add_column("Est. cost", justify="right")
        table.add_column("Features")

        for info in presets:
            table.add_row(info.name, info.volume, info.estimated_cost, "\n".join(info.features))

        self.console.print(table)

    def display_dns_records(self, records: List[DNSRecord]) -> None:
        if not records:
            return

        table = Table(title="Add these DNS records", show_header=True, header_style="bold")
        table.add_column("Purpose")
        table.add_column("Type")
        table.add_column("Name")
        table.add_column("Value", overflow="fold")

        for record in records:
            table.add_row(record.purpose, record.record_type, record.name, record.value)

        self.console.print(table)

    def display_deploy_result(self, result: DeployResult) -> None:
        if result.status == 'already_connected':
            self.console.print(
                f"ℹ️  Account {result.account_id} is already connected in {result.region}."
            )
            self.console.print("   Run [cyan]wraps update[/cyan] to re-apply the configuration")
            self.console.print("   Or [cyan]wraps status[/cyan] to see what is deployed")
            return

        verbs = {'deployed': "Deployed", 'connected': "Connected", 'updated': "Updated"}
        self.show_success(
            f"{verbs.get(result.status, result.status)} email infrastructure in {result.region} "
            f"(stack {result.stack_name})"
        )
        self.show_warnings(result.warnings)

        outputs = result.outputs
        if outputs is not None:
            self.console.print()
            lines = [f"Role ARN:          {outputs.role_arn or '-'}"]
            if outputs.config_set_name:
                lines.append(f"Configuration set: {outputs.config_set_name}")
            if outputs.table_name:
                lines.append(f"History table:     {outputs.table_name}")
            if outputs.domain:
                lines.append(f"Domain:            {outputs.domain}")
            if outputs.mail_from_domain:
                lines.append(f"MAIL FROM domain:  {outputs.mail_from_domain}")
            self.console.print(Panel("\n".join(lines), title="Stack outputs", border_style="green"))

        if result.dns_auto_created:
            self.show_success("DNS records created in Route53")
        elif result.dns_records:
            self.console.print()
            self.display_dns_records(result.dns_records)

        if result.costs is not None:
            self.console.print()
            self.display_costs(result.costs)

    def display_teardown(self, result: TeardownResult, command: str) -> None:
        for stack_name in result.destroyed_stacks:
            self.show_success(f"Destroyed stack {stack_name}")
        for stack_name in result.skipped_stacks:
            self.console.print(f"⏭️  Stack {stack_name} was already gone")
        if result.metadata_deleted:
            self.show_success(f"Removed connection for {result.account_id} in {result.region}")
        elif result.removed_services:
            self.show_success(f"Removed {', '.join(result.removed_services)} from {result.region}")
        if command == 'restore' and not result.destroyed_stacks and not result.skipped_stacks:
            self.console.print("[dim]No stack was recorded for this service[/dim]")

    def display_status(self, report: StatusReport) -> None:
        metadata = report.metadata

        table = Table(title=f"Wraps connection: {report.account_id} / {report.region}", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Provider", metadata.provider)
        table.add_row("Updated", metadata.timestamp)

        email = metadata.services.email
        if email is not None:
            table.add_row("Email preset", email.preset or "custom")
            table.add_row("Email domain", email.config.domain or "-")
            table.add_row("Deployed at", email.deployed_at or "-")
            table.add_row("Stack", email.pulumi_stack_name or "-")
        if metadata.services.sms is not None:
            table.add_row("SMS preset", metadata.services.sms.preset or "custom")

        self.console.print(table)

        if report.stack_error:
            self.console.print(f"⚠️  [yellow]Could not read stack outputs: {report.stack_error}[/yellow]")
        elif email is not None and email.pulumi_stack_name and not report.stack_found:
            self.console.print("⚠️  [yellow]Stack recorded in metadata was not found[/yellow]")

        if report.outputs is not None:
            self.console.print(f"Role ARN: {report.outputs.role_arn or '-'}")
            if report.outputs.lambda_functions:
                self.console.print(f"Lambda functions: {', '.join(report.outputs.lambda_functions)}")

        if report.costs is not None:
            self.console.print()
            self.display_costs(report.costs)

    def display_verification(self, verification: DomainVerification) -> None:
        table = Table(title=f"DNS records for {verification.domain}", show_header=True, header_style="bold")
        table.add_column("")
        table.add_column("Type")
        table.add_column("Name")
        table.add_column("Expected", overflow="fold")
        table.add_column("Found", overflow="fold")

        for check in verification.records:
            table.add_row(
                STATUS_ICONS.get(check.status, "?"),
                check.record_type,
                check.name,
                check.expected or "-",
                "\n".join(check.records) or "-",
            )

        self.console.print(table)
        self.console.print(f"SES status: {verification.ses_status}")

        if verification.all_verified:
            self.show_success(f"{verification.domain} is fully verified")
        else:
            missing = len(verification.by_status(MISSING))
            incorrect = len(verification.by_status(INCORRECT))
            self.console.print(
                f"⚠️  [yellow]{verification.domain} is not fully verified "
                f"({missing} missing, {incorrect} incorrect)[/yellow]"
            )


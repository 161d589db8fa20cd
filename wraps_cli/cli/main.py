"""
Main CLI entry point for Wraps.

Provides the ``wraps`` command group: init, connect, update, restore, destroy,
status, verify and costs.
"""

import functools
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm

from wraps_cli import __version__
from wraps_cli.cli.display import DisplayManager
from wraps_cli.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeploymentError,
    MetadataError,
    NoDeploymentError,
    ServiceError,
    StateError,
    UserCancelled,
    WrapsError,
)
from wraps_cli.email.config import EmailConfig
from wraps_cli.email.costs import estimate_costs
from wraps_cli.email.presets import PRESET_NAMES, get_preset, preset_info, validate_config
from wraps_cli.services.orchestrator import DEFAULT_VOLUME, SUPPORTED_PROVIDERS, DeploymentOrchestrator

console = Console()

# Exit codes for different error types
EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_SERVICE_ERROR = 4
EXIT_NO_DEPLOYMENT = 5
EXIT_USER_CANCELLED = 130


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if not verbose:
        for noisy in ('botocore', 'boto3', 'urllib3'):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def handle_errors(command):
    """Map Wraps errors to a printed remediation and an exit code."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        ui = DisplayManager(console)
        try:
            return command(*args, **kwargs)
        except (KeyboardInterrupt, UserCancelled):
            console.print("\n⚠️  [yellow]Operation cancelled by user[/yellow]")
            sys.exit(EXIT_USER_CANCELLED)
        except NoDeploymentError as e:
            ui.show_error(e)
            sys.exit(EXIT_NO_DEPLOYMENT)
        except (ConfigurationError, MetadataError) as e:
            ui.show_error(e)
            sys.exit(EXIT_CONFIG_ERROR)
        except AuthenticationError as e:
            ui.show_error(e)
            sys.exit(EXIT_AUTH_ERROR)
        except (DeploymentError, ServiceError, StateError) as e:
            ui.show_error(e)
            sys.exit(EXIT_SERVICE_ERROR)
        except WrapsError as e:
            ui.show_error(e)
            sys.exit(EXIT_GENERAL_ERROR)
        except Exception as e:
            logging.getLogger(__name__).debug("Unexpected error", exc_info=True)
            console.print(f"💥 [red]Unexpected error: {e}[/red]")
            console.print("[dim]Run again with --verbose for details.[/dim]")
            sys.exit(EXIT_GENERAL_ERROR)

    return wrapper


def get_orchestrator(ctx: click.Context) -> DeploymentOrchestrator:
    if ctx.obj.get('orchestrator') is None:
        ctx.obj['orchestrator'] = DeploymentOrchestrator()
    return ctx.obj['orchestrator']


def make_confirm(yes: bool):
    """Confirmation callback for the orchestrator, None when --yes was given."""
    if yes:
        return None
    return lambda message: Confirm.ask(message, console=console)


def load_config_file(path: Optional[str]) -> Optional[EmailConfig]:
    """Read an EmailConfig from a JSON file.

    Raises:
        ConfigurationError: If the file is not valid JSON or not a valid configuration
    """
    if path is None:
        return None

    try:
        with open(path, 'r') as f:
            return EmailConfig.model_validate(json.load(f))
    except (OSError, ValueError) as e:
        # ValidationError subclasses ValueError
        detail = e.errors()[0]['msg'] if isinstance(e, ValidationError) else str(e)
        raise ConfigurationError(
            f"Invalid configuration file {Path(path).name}: {detail}",
            suggestion="The file must hold a JSON email configuration with camelCase keys",
        )


def build_provider_config(provider: str, vercel_team: Optional[str],
                          vercel_project: Optional[str]) -> Optional[Dict[str, str]]:
    if provider != 'vercel' or not vercel_team:
        return None
    return {"teamSlug": vercel_team, "projectName": vercel_project or ""}


region_option = click.option('--region', help='AWS region (defaults to AWS_REGION, then us-east-1)')
yes_option = click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompts')
volume_option = click.option('--volume', type=click.IntRange(min=0), default=DEFAULT_VOLUME, show_default=True,
                             help='Expected emails per month, for the cost estimate')
config_option = click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
                             help='JSON email configuration (used with --preset custom)')


def provider_options(command):
    command = click.option('--vercel-project', help='Vercel project name')(command)
    command = click.option('--vercel-team', help='Vercel team slug')(command)
    command = click.option('--provider', type=click.Choice(SUPPORTED_PROVIDERS), default='aws', show_default=True,
                           help='Where your application runs')(command)
    return command


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """
    📧 Wraps - Email infrastructure in your own AWS account

    Deploy, connect and manage SES email infrastructure.
    """
    ctx.ensure_object(dict)
    configure_logging(verbose)


@cli.command()
@region_option
@click.option('--domain', help='Sending domain to verify in SES')
@click.option('--preset', type=click.Choice(PRESET_NAMES), help='Feature preset (default: production)')
@config_option
@provider_options
@volume_option
@yes_option
@click.pass_context
@handle_errors
def init(ctx, region, domain, preset, config_path, provider, vercel_team, vercel_project, volume, yes):
    """Deploy new email infrastructure"""
    ui = DisplayManager(console)
    ui.show_header("📧 Deploying Wraps email infrastructure")

    result = get_orchestrator(ctx).init(
        region=region,
        preset=preset,
        config=load_config_file(config_path),
        domain=domain,
        provider=provider,
        provider_config=build_provider_config(provider, vercel_team, vercel_project),
        emails_per_month=volume,
        confirm=make_confirm(yes),
    )
    ui.display_deploy_result(result)


@cli.command()
@region_option
@click.option('--preset', type=click.Choice(PRESET_NAMES), default='production', show_default=True,
              help='Feature preset for the managed stack')
@config_option
@click.option('--identity', 'identities', multiple=True, help='Only connect this SES identity (repeatable)')
@provider_options
@volume_option
@yes_option
@click.pass_context
@handle_errors
def connect(ctx, region, preset, config_path, identities, provider, vercel_team, vercel_project, volume, yes):
    """Connect SES identities that already exist"""
    ui = DisplayManager(console)
    ui.show_header("🔗 Connecting existing SES identities")

    result = get_orchestrator(ctx).connect(
        region=region,
        preset=preset,
        config=load_config_file(config_path),
        identities=list(identities) or None,
        provider=provider,
        provider_config=build_provider_config(provider, vercel_team, vercel_project),
        emails_per_month=volume,
        confirm=make_confirm(yes),
    )
    ui.display_deploy_result(result)


@cli.command()
@region_option
@volume_option
@yes_option
@click.pass_context
@handle_errors
def update(ctx, region, volume, yes):
    """Re-apply the deployed configuration"""
    ui = DisplayManager(console)
    ui.show_header("🔄 Updating Wraps email infrastructure")

    result = get_orchestrator(ctx).update(region=region, emails_per_month=volume, confirm=make_confirm(yes))
    ui.display_deploy_result(result)


@cli.command()
@region_option
@click.option('--service', type=click.Choice(['email', 'sms']), default='email', show_default=True,
              help='Service to remove')
@yes_option
@click.pass_context
@handle_errors
def restore(ctx, region, service, yes):
    """Remove one service's infrastructure"""
    ui = DisplayManager(console)
    ui.show_header(f"🧹 Removing {service} infrastructure")

    result = get_orchestrator(ctx).restore(region=region, service=service, confirm=make_confirm(yes))
    ui.display_teardown(result, 'restore')


@cli.command()
@region_option
@yes_option
@click.pass_context
@handle_errors
def destroy(ctx, region, yes):
    """Remove all Wraps infrastructure in a region"""
    ui = DisplayManager(console)
    ui.show_header("💣 Destroying Wraps infrastructure")

    result = get_orchestrator(ctx).destroy(region=region, confirm=make_confirm(yes))
    ui.display_teardown(result, 'destroy')


@cli.command()
@region_option
@volume_option
@click.pass_context
@handle_errors
def status(ctx, region, volume):
    """Show what is deployed"""
    ui = DisplayManager(console)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Reading deployment...", total=None)
        report = get_orchestrator(ctx).status(region=region, emails_per_month=volume)

    ui.display_status(report)


@cli.command()
@click.option('--domain', required=True, help='Domain to check')
@region_option
@click.pass_context
@handle_errors
def verify(ctx, domain, region):
    """Check the DNS records of a sending domain"""
    ui = DisplayManager(console)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"🔍 Checking DNS for {domain}...", total=None)
        verification = get_orchestrator(ctx).verify(domain, region=region)

    ui.display_verification(verification)


@cli.command()
@click.option('--preset', type=click.Choice(PRESET_NAMES), help='Preset to estimate (default: compare all)')
@config_option
@volume_option
@handle_errors
def costs(preset, config_path, volume):
    """Estimate monthly AWS costs"""
    ui = DisplayManager(console)

    config = load_config_file(config_path)
    if config is None and preset is None:
        ui.display_presets([preset_info(name) for name in PRESET_NAMES])
        preset = 'production'

    if config is None:
        config = get_preset(preset)
        if config is None:
            raise ConfigurationError(
                "The custom preset needs a configuration",
                suggestion="Pass a configuration file with --config",
            )

    ui.display_costs(estimate_costs(config, volume))
    ui.show_warnings(validate_config(config))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()

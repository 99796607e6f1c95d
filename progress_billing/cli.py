"""
CLI for the Progress Billing engine.

Usage:
    progress-billing init-db
    progress-billing serve --port 8000
    progress-billing applications PROJECT_ID
    progress-billing certificate APPLICATION_ID

Commands:
    init-db        Create database tables
    serve          Start the API server
    applications   List a project's payment applications
    certificate    Print the G702 certificate of an application
    info           Display the active configuration
"""
import logging

import click

from progress_billing import __version__
from progress_billing.config import get_config
from progress_billing.domain.exceptions import DomainError
from progress_billing.domain.money import format_money

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
    )


def _money(amount) -> str:
    currency = get_config().currency_config
    return format_money(
        amount,
        symbol=currency.get('symbol', '$'),
        thousands_separator=currency.get('thousands_separator', ','),
    )


@click.group()
@click.version_option(version=__version__)
def cli():
    """Progress Billing CLI.

    Manage Schedule of Values, payment applications and G702
    certificates for construction projects.
    """
    configure_logging()


@cli.command('init-db')
def init_db_command():
    """Create all database tables."""
    from progress_billing.models import init_db

    init_db()
    click.echo(click.style(f"Database initialized at {get_config().database_url}", fg='green'))


@cli.command()
@click.option('--port', default=8000, type=int, help='Port to listen on')
@click.option('--host', default='127.0.0.1', help='Host to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload for development')
def serve(port: int, host: str, reload: bool):
    """Start the API server.

    Example:
        progress-billing serve --port 8000 --reload
    """
    import uvicorn

    click.echo(click.style('Progress Billing - API Server', fg='cyan', bold=True))
    click.echo(f"Starting server at http://{host}:{port}")
    click.echo("Press CTRL+C to stop\n")

    uvicorn.run(
        "progress_billing.main:app",
        host=host,
        port=port,
        reload=reload
    )


@cli.command()
@click.argument('project_id')
def applications(project_id: str):
    """List a project's payment applications in sequence order."""
    from progress_billing.models import get_db
    from progress_billing.domain.services import ProgressBillingService

    db = next(get_db())
    try:
        service = ProgressBillingService(db)
        listing = list(service.list_applications(project_id))
    except DomainError as e:
        click.echo(click.style(f"Error: {e.message}", fg='red'))
        raise SystemExit(1)
    finally:
        db.close()

    if not listing:
        click.echo("No applications yet.")
        return

    click.echo(click.style(f"Applications for project {project_id}", fg='cyan', bold=True))
    for application in listing:
        click.echo(
            f"  #{application.sequence_number:<3} {application.period_start} - {application.period_end}  "
            f"{application.status.value:<10} due {_money(application.amount_due())}"
        )


@cli.command()
@click.argument('application_id')
def certificate(application_id: str):
    """Print the G702 certificate of a payment application."""
    from progress_billing.models import get_db
    from progress_billing.domain.services import ProgressBillingService

    db = next(get_db())
    try:
        cert = ProgressBillingService(db).compute_certificate(application_id)
    except DomainError as e:
        click.echo(click.style(f"Error: {e.message}", fg='red'))
        raise SystemExit(1)
    finally:
        db.close()

    rows = [
        ("1. Original contract sum", cert.original_contract_sum),
        ("2. Net change by change orders", cert.net_change_by_change_orders),
        ("3. Contract sum to date", cert.contract_sum_to_date),
        ("4. Total completed & stored to date", cert.total_completed_and_stored_to_date),
        ("5. Retainage", cert.total_retainage),
        ("6. Total earned less retainage", cert.total_earned_less_retainage),
        ("7. Less previous certificates", cert.less_previous_certificates),
        ("8. Current payment due", cert.current_payment_due),
        ("9. Balance to finish, including retainage", cert.balance_to_finish),
    ]
    click.echo(click.style(f"Application #{cert.sequence_number} - G702 Certificate", fg='cyan', bold=True))
    for label, amount in rows:
        click.echo(f"  {label:<45} {_money(amount):>18}")


@cli.command()
def info():
    """Display the active configuration."""
    config = get_config()
    click.echo(click.style('Progress Billing - Configuration', fg='cyan', bold=True))
    click.echo(f"  Config file:                 {config.path}")
    click.echo(f"  Version:                     {config.version}")
    click.echo(f"  Database:                    {config.database_url}")
    click.echo(f"  Default retainage:           {config.default_retainage_percent}%")
    click.echo(f"  Warn on over-billing:        {config.warn_on_overbilling}")
    click.echo(f"  Previous certificates basis: {config.previous_certificates_basis}")


if __name__ == '__main__':
    cli()

# forecast_tracker/cli.py
import click
from dotenv import load_dotenv

from forecast_tracker import database, recurring
from forecast_tracker.config import configure_logging, load_config
from forecast_tracker.core.errors import ForecastError
from forecast_tracker.core.models import RuleKind

KIND_CHOICE = click.Choice([k.value for k in RuleKind])


@click.group()
@click.option(
    '--config', 'config_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (default: $FORECAST_CONFIG or ./config.yaml)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with FORECAST_* overrides'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides db_path from config)'
)
@click.pass_context
def main(ctx, config_path, env_file, db_path):
    """
    Manage recurring expenses and incomes for shared budgeting spaces.
    """
    if env_file:
        load_dotenv(env_file)
    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(cfg.get('log_level', 'INFO'))
    cfg['db_path'] = db_path or cfg['db_path']
    ctx.obj = cfg


@main.command('init-db')
@click.pass_obj
def init_db(cfg):
    """Create the database schema."""
    database.init_db(cfg['db_path'])
    click.echo(f"Initialized database at {cfg['db_path']}.")


@main.command()
@click.option('--host', default=None, help='Bind address (default from config)')
@click.option('--port', default=None, type=int, help='Port (default from config)')
@click.pass_obj
def serve(cfg, host, port):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from webapp.main import create_app

    server = cfg.get('server', {})
    uvicorn.run(
        create_app(cfg['db_path']),
        host=host or server.get('host', '127.0.0.1'),
        port=port or int(server.get('port', 8000)),
        log_level=str(cfg.get('log_level', 'INFO')).lower(),
    )


@main.command()
@click.option('--space', 'space_id', required=True, type=int, help='Space id')
@click.option('--kind', default='expense', type=KIND_CHOICE, show_default=True)
@click.pass_obj
def due(cfg, space_id, kind):
    """List active rules that are due today."""
    items = recurring.list_due(cfg['db_path'], space_id, RuleKind(kind))
    if not items:
        click.echo(f"No recurring {kind}s due.")
        return
    for item in items:
        category = f" [{item.category_name}]" if item.category_name else ""
        click.echo(
            f"#{item.id} {item.next_due_date.isoformat()} {item.title} "
            f"{item.amount:.2f} ({item.account_name}, {item.frequency.value}){category}"
        )


@main.command()
@click.argument('rule_id', type=int)
@click.option('--space', 'space_id', required=True, type=int, help='Space id')
@click.option('--kind', default='expense', type=KIND_CHOICE, show_default=True)
@click.option('--user', 'user_id', default='', help='User recorded as the creator of the entry')
@click.pass_obj
def generate(cfg, rule_id, space_id, kind, user_id):
    """Generate the transaction for one recurring rule now."""
    try:
        result = recurring.generate(cfg['db_path'], space_id, rule_id, RuleKind(kind), user_id=user_id)
    except ForecastError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"Generated {kind} {result.transaction_id} from rule {rule_id}; "
        f"next due {result.next_due_date.isoformat()}."
    )


@main.command('generate-due')
@click.option('--space', 'space_id', default=None, type=int, help='Limit to one space')
@click.pass_obj
def generate_due(cfg, space_id):
    """Generate every due rule once. Meant to run daily from cron."""
    result = recurring.generate_due(cfg['db_path'], space_id)
    click.echo(
        f"Generated {len(result.generated)}, skipped {len(result.skipped)}, "
        f"deactivated {len(result.deactivated)}."
    )


if __name__ == '__main__':
    main()

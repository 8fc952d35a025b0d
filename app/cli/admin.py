import click
from app.core.config import settings
from app.core.database import Database
from app.models.user import User
from app.services.subscription_service import SubscriptionService
from app.services.sweep_service import DailySweep
from app.services.template_service import TemplateService
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)


def _find_user(db, email, user_id):
    if user_id:
        return db.query(User).filter(User.id == user_id).first()
    return db.query(User).filter(User.email == email.strip().lower()).first()


@click.group()
@click.pass_context
def cli(ctx):
    """QuizBanner admin commands"""
    ctx.ensure_object(dict)
    if "database" not in ctx.obj:
        database = Database(settings.database_url)
        database.create_all()
        ctx.obj["database"] = database


@cli.command()
@click.option('--dry-run', 'dry_run', is_flag=True, help='Show what would change without committing')
@click.pass_obj
def sweep(obj, dry_run):
    """Run the daily subscription sweep now"""
    db = obj["database"].session()
    try:
        report = DailySweep().run_once(db, datetime.utcnow(), dry_run=dry_run)
        prefix = "🔍 Dry run: would expire" if dry_run else "✓ Expired"
        click.echo(f"{prefix} {len(report.expired)} subscriptions")
        for principal_id in report.expired:
            click.echo(f"  - {principal_id}")
        if report.failed:
            click.echo(f"❌ Failed to expire {len(report.failed)}: {', '.join(report.failed)}", err=True)
        click.echo(f"Renewal reminders: {len(report.reminders)}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id')
@click.option('--days', type=int, default=None, help='Length of the grant in days. Defaults to one subscription term')
@click.option('--expire', 'expire_now', is_flag=True, help='Downgrade the user to free instead')
@click.pass_obj
def premium(obj, email, user_id, days, expire_now):
    """Grant or remove premium for a user"""
    if not email and not user_id:
        click.echo("❌ Please provide --email or --id for this operation", err=True)
        return

    db = obj["database"].session()
    try:
        user = _find_user(db, email, user_id)
        if not user:
            click.echo(f"❌ User not found: {user_id or email}", err=True)
            return

        service = SubscriptionService()
        display_ident = user.email or user.id
        if expire_now:
            service.expire(db, user.id)
            click.echo(f"✓ Premium removed for {display_ident}")
            return

        now = datetime.utcnow()
        grant_days = days if days is not None else settings.subscription_term_days
        service.apply_provider_period(db, user.id, now + timedelta(days=grant_days), "manual", now=now)
        click.echo(f"✓ Premium granted to {display_ident} until {user.subscription_expires_at.date().isoformat()}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--days', type=int, default=None, help='Window in days. Defaults to the reminder window')
@click.pass_obj
def expiring(obj, days):
    """List active subscriptions expiring soon"""
    db = obj["database"].session()
    try:
        service = SubscriptionService()
        accounts = service.find_renewal_candidates(db, datetime.utcnow(), days=days)
        if not accounts:
            click.echo("No subscriptions expiring soon")
            return
        click.echo(f"\nFound {len(accounts)} expiring subscriptions:\n")
        for account in accounts:
            click.echo(
                f"  - {account.email or '<no-email>'} (ID: {service.principal_id_of(account)}, "
                f"expires: {account.subscription_expires_at.isoformat()})")
    finally:
        db.close()


@cli.command('seed-templates')
@click.pass_obj
def seed_templates(obj):
    """Insert the built-in templates if none exist"""
    db = obj["database"].session()
    try:
        added = TemplateService().seed_templates(db)
        if added:
            click.echo(f"✓ Added {added} templates")
        else:
            click.echo("✓ Templates already present")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


if __name__ == '__main__':
    cli()

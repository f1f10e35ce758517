import click
import json
from datetime import datetime
from marketplace.core.database import SessionLocal
from marketplace.core.firebase import init_firebase
from marketplace.models.listing_usage import ListingUsage
from marketplace.services.plan_service import PlanService
from marketplace.services.pricing_service import PricingConfigService
from marketplace.services.subscription_service import SubscriptionService
from marketplace.services.usage_service import UsageService, month_key
import logging

logger = logging.getLogger(__name__)


def _valid_month(value):
    if value is None:
        return None
    datetime.strptime(value, "%Y-%m")
    return value


@click.group()
def cli():
    """Marketplace subscription admin commands"""
    # Services report to analytics, which needs the Admin SDK
    init_firebase()


@cli.command('seed-plans')
def seed_plans():
    """Insert the default plans if the plans table is empty"""
    db = SessionLocal()
    try:
        seeded = PlanService().seed_plans_if_empty(db)
        if seeded:
            click.echo(f"✓ Seeded {seeded} plans")
        else:
            click.echo("✓ Plans already present, nothing to seed")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('expire-subscriptions')
def expire_subscriptions():
    """Expire lapsed subscriptions and start their next period"""
    db = SessionLocal()
    try:
        processed = SubscriptionService().check_expired_subscriptions(db)
        click.echo(f"✓ Processed {processed} lapsed subscriptions")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--month', 'month_year', required=False, help='Month (YYYY-MM). Defaults to the current month')
def usage(user_id, month_year):
    """Show a user's listing usage for a month"""
    db = SessionLocal()
    try:
        try:
            month_year = _valid_month(month_year)
        except ValueError:
            click.echo("❌ Invalid month format. Use YYYY-MM", err=True)
            return

        snapshot = UsageService().get_usage(db, user_id, month_year)
        click.echo(f"Usage for {user_id} in {snapshot.month_year}:")
        click.echo(f"  free: {snapshot.free_listings_used}")
        click.echo(f"  featured: {snapshot.featured_listings_used}")
        click.echo(f"  vehicle: {snapshot.vehicle_listings_used}")
        click.echo(f"  total created: {snapshot.total_listings_created}")
    except Exception as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('reset-usage')
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--month', 'month_year', required=False, help='Month (YYYY-MM). Defaults to the current month')
@click.option('-y', '--yes', 'confirm', is_flag=True, help='Skip confirmation')
@click.option('--dry-run', 'dry_run', is_flag=True, help='Show what would be changed without committing')
def reset_usage(user_id, month_year, confirm, dry_run):
    """Reset listing usage counters for a user (set counts to 0)"""
    db = SessionLocal()
    try:
        try:
            month_year = _valid_month(month_year) or month_key()
        except ValueError:
            click.echo("❌ Invalid month format. Use YYYY-MM", err=True)
            return

        action_desc = f"reset listing usage for {user_id} in {month_year}"

        if dry_run:
            click.echo(f"🔍 Dry run: would {action_desc}")
            row = db.query(ListingUsage).filter(
                ListingUsage.user_id == user_id,
                ListingUsage.month_year == month_year
            ).first()
            if not row:
                click.echo("No usage rows would be affected")
            else:
                click.echo(
                    f"  - free: {row.free_listings_used}, featured: {row.featured_listings_used}, "
                    f"vehicle: {row.vehicle_listings_used}"
                )
            return

        if not confirm:
            if not click.confirm(f"Are you sure you want to {action_desc}?", default=False):
                click.echo("Aborted")
                return

        rows = UsageService().reset_usage(db, user_id, month_year)
        click.echo(f"✓ Reset {rows} usage rows for {user_id}")
    except click.exceptions.Abort:
        click.echo("\nAborted")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command('set-price')
@click.argument('config_key')
@click.argument('value')
@click.option('--description', required=False, help='Description shown to administrators')
def set_price(config_key, value, description):
    """Set a pricing config value (a number or a JSON object)"""
    db = SessionLocal()
    try:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            click.echo("❌ VALUE must be a number or a JSON object", err=True)
            return

        entry = PricingConfigService().set(db, config_key, parsed, description)
        click.echo(f"✓ {entry.config_key} = {json.dumps(entry.config_value)}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


if __name__ == '__main__':
    cli()

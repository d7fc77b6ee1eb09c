# Overview: Flask CLI command groups for bootstrap, loyalty and membership maintenance.

# backend/boardcafe/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to boardcafe (PowerShell: $env:FLASK_APP="boardcafe").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Customers:
# - python -m flask customers create --name "Aiko" --email aiko@example.com
# - python -m flask customers list
#
# Loyalty programme:
# - python -m flask loyalty seed
#   Idempotent: default points settings and the "Monthly Pass" plan.
# - python -m flask loyalty reconcile [--customer-id 1]
#   Verify cached balances against the points ledger (exit 1 on drift).
# - python -m flask loyalty liability
#   Total outstanding points.
#
# Memberships:
# - python -m flask memberships process-expired
#   Renew (auto_renew) or expire memberships past their end date. Run daily.
# - python -m flask memberships stats

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, MembershipPlan
from .services import membership_service, points_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask loyalty seed' to initialize.")


# =============================================================================
# CUSTOMERS
# =============================================================================

@click.group('customers')
def customers_group():
    """Customer bootstrap commands."""


@customers_group.command('create')
@click.option('--name', 'display_name', required=True, help='Display name')
@click.option('--email', help='Email address (unique)')
@click.option('--phone', help='Phone number')
@with_appcontext
def create_customer_cli(display_name, email, phone):
    """Create a customer with an empty points balance."""
    if email and db.session.query(Customer).filter_by(email=email).first():
        click.echo(f"FAIL Customer with email '{email}' already exists")
        return

    customer = Customer(display_name=display_name, email=email, phone=phone, points_balance=0)
    db.session.add(customer)
    db.session.commit()
    click.echo(f"PASS Created customer: {customer.display_name} (ID: {customer.id})")


@customers_group.command('list')
@with_appcontext
def list_customers_cli():
    """List customers with their points balance."""
    customers = db.session.query(Customer).order_by(Customer.id).all()
    if not customers:
        click.echo("No customers found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Email':<25} {'Points'}")
    click.echo("="*70)
    for c in customers:
        click.echo(f"{c.id:<5} {c.display_name:<30} {c.email or '-':<25} {c.points_balance}")
    click.echo("="*70 + "\n")


# =============================================================================
# LOYALTY
# =============================================================================

@click.group('loyalty')
def loyalty_group():
    """Loyalty points programme commands."""


@loyalty_group.command('seed')
@with_appcontext
def seed_loyalty_cli():
    """Create default points settings and the Monthly Pass plan (idempotent)."""
    settings = points_service.get_settings()
    click.echo(
        f"PASS Points settings: 1 point per ¥{settings.regular_earn_rate}, "
        f"members 1 point per ¥{settings.member_earn_rate}, 1 point = ¥{settings.points_per_yen}"
    )

    plan = db.session.query(MembershipPlan).filter_by(name="Monthly Pass").first()
    if plan:
        click.echo(f"SKIP Plan already exists: {plan.name} (ID: {plan.id})")
        return

    plan = membership_service.create_plan({
        "name": "Monthly Pass",
        "description": "20 hours of table time per month with discounted overage rates",
        "price": 800000,
        "hours_included": 20,
        "overage_rate": 30000,
        "points_on_purchase": 200,
        "earn_rate_denominator": 40,
    })
    click.echo(
        f"PASS Created plan: {plan.name} ¥{plan.price // 100}, {plan.hours_included:g}h, "
        f"overage ¥{plan.overage_rate // 100}/h, {plan.points_on_purchase} bonus points"
    )


@loyalty_group.command('reconcile')
@click.option('--customer-id', type=int, help='Check a single customer')
@with_appcontext
def reconcile_cli(customer_id):
    """Compare cached balances with the points ledger."""
    if customer_id is not None:
        report = points_service.reconcile_customer(customer_id)
        failures = [] if report["ok"] else [report]
    else:
        failures = points_service.reconcile_all()

    if not failures:
        click.echo("PASS Points ledger reconciles")
        return

    for report in failures:
        click.echo(
            f"FAIL Customer {report['customer_id']}: cached {report['cached_balance']}, "
            f"ledger {report['ledger_sum']}, broken rows {len(report['broken_rows'])}"
        )
    sys.exit(1)


@loyalty_group.command('liability')
@with_appcontext
def liability_cli():
    """Total outstanding points across all customers."""
    total = points_service.get_total_points_liability()
    click.echo(f"Outstanding points: {total} (¥{total:,})")


# =============================================================================
# MEMBERSHIPS
# =============================================================================

@click.group('memberships')
def memberships_group():
    """Membership maintenance commands."""


@memberships_group.command('process-expired')
@with_appcontext
def process_expired_cli():
    """Renew or expire memberships whose period has ended."""
    processed = membership_service.process_expired_memberships()
    click.echo(f"Processed {processed} expired memberships.")


@memberships_group.command('stats')
@with_appcontext
def stats_cli():
    """Membership reporting aggregates."""
    stats = membership_service.get_membership_stats()
    click.echo(f"Active members:      {stats['active_members']}")
    click.echo(f"Estimated revenue:   ¥{stats['total_revenue']:,}")
    click.echo(f"Average hours used:  {stats['average_hours_used']:.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(customers_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(memberships_group)

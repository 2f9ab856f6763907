# commands.py - operational CLI: `flask seed-defaults`, `flask make-admin`, `flask retry-commissions`
from decimal import Decimal

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from commission.cascade import CommissionPayoutProcessor
from commission.config import CommissionConfigHelper
from extensions import db
from models import InvestmentPlan, KycStatus, PlanStatus, Role, User
from utils import generate_referral_code

DEFAULT_PLANS = [
    ("Basic Plan", Decimal("50"), Decimal("7.5"), "Perfect starter plan for beginners"),
    ("Standard Plan", Decimal("100"), Decimal("15"), "Most popular choice for regular investors"),
    ("Premium Plan", Decimal("200"), Decimal("30"), "Maximum returns for serious investors"),
    ("Gold Plan", Decimal("500"), Decimal("75"), "Premium plan for high-value investors"),
    ("Diamond Plan", Decimal("1000"), Decimal("150"), "Elite investment plan with maximum earnings"),
]
DEFAULT_PLAN_DURATION = 30


@click.command("seed-defaults")
@with_appcontext
def seed_defaults_command():
    """Create the default commission levels and investment plans if missing."""
    levels = CommissionConfigHelper.seed_defaults(db.session)

    plans = 0
    for name, amount, daily_roi, description in DEFAULT_PLANS:
        if InvestmentPlan.query.filter_by(name=name).first():
            continue
        db.session.add(InvestmentPlan(
            name=name,
            amount=amount,
            daily_roi=daily_roi,
            duration=DEFAULT_PLAN_DURATION,
            status=PlanStatus.ACTIVE.value,
            description=description,
        ))
        plans += 1

    db.session.commit()
    click.echo(f"Seeded {levels} commission levels and {plans} plans.")


@click.command("make-admin")
@click.option("--mobile", required=True, help="Mobile number of the account to promote")
@click.option("--email", default=None, help="Email used when the account has to be created")
@click.option("--password", default=None, help="Password used when the account has to be created")
@click.option("--name", "full_name", default="Administrator", show_default=True)
@with_appcontext
def make_admin_command(mobile, email, password, full_name):
    """Promote an account to admin, creating it first when it does not exist."""
    user = User.query.filter_by(mobile=mobile).first()

    if user:
        click.echo(f"Found user id={user.id}, mobile={user.mobile}. Promoting to admin...")
    else:
        if not email or not password:
            raise click.UsageError("--email and --password are required to create a new admin")
        click.echo(f"No user with mobile {mobile} found - creating a new user.")
        user = User(
            full_name=full_name,
            email=email.strip().lower(),
            mobile=mobile,
            referral_code=generate_referral_code(
                lambda code: User.query.filter_by(referral_code=code).first() is not None
            ),
            kyc_status=KycStatus.NOT_SUBMITTED,
        )
        user.set_password(password)
        db.session.add(user)

    user.role = Role.ADMIN.value
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise click.ClickException(f"Could not save admin account: {e.orig}")

    click.echo(f"User (id={user.id}, mobile={user.mobile}) is now admin.")


@click.command("retry-commissions")
@click.option("--limit", default=100, show_default=True, help="Maximum payouts to process")
@with_appcontext
def retry_commissions_command(limit):
    """Re-run PENDING and FAILED referral commission payouts."""
    stats = CommissionPayoutProcessor.retry_failed(limit=limit)
    click.echo(
        f"Processed {stats['processed']} payouts: "
        f"{stats['succeeded']} succeeded, {stats['failed']} failed."
    )

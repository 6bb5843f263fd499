import click
from flask.cli import with_appcontext
from careersync.errors import BillingError
from careersync.extensions import db
from careersync.models import UserProfile
from careersync.services.payment_sessions import expire_stale_sessions
from careersync.services.tokens import issue_token
from careersync.services.verifications import approve_reference, reject_reference

@click.group()
def payments():
    """Payment session and manual verification ops."""

@payments.command("expire-stale")
@with_appcontext
def payments_expire_stale():
    expired = expire_stale_sessions()
    click.echo(f"Expired {len(expired)} stale payment session(s)")

@payments.command("approve-reference")
@click.argument("reference")
@with_appcontext
def payments_approve_reference(reference):
    try:
        v = approve_reference(reference)
    except BillingError as e:
        raise click.ClickException(e.message)
    click.echo(f"Verified ref={v.reference_number} user_id={v.user_id} credits={v.credits_to_grant}")

@payments.command("reject-reference")
@click.argument("reference")
@with_appcontext
def payments_reject_reference(reference):
    try:
        reject_reference(reference)
    except BillingError as e:
        raise click.ClickException(e.message)
    click.echo(f"Rejected ref={reference}")

@click.group()
def users():
    """Account profile helpers."""

@users.command("create")
@click.option("--id", "principal_id", required=True, help="Principal id from the identity provider")
@click.option("--email", default=None)
@with_appcontext
def users_create(principal_id, email):
    # fail fast if profile exists
    if db.session.get(UserProfile, principal_id):
        raise click.ClickException("Profile already exists")
    db.session.add(UserProfile(id=principal_id, email=email))
    db.session.commit()
    click.echo(f"Profile created id={principal_id}")

@users.command("issue-token")
@click.option("--id", "principal_id", required=True)
@with_appcontext
def users_issue_token(principal_id):
    click.echo(issue_token(principal_id))

def register_cli(app):
    app.cli.add_command(payments)
    app.cli.add_command(users)

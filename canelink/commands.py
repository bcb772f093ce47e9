# canelink/commands.py
"""
Maintenance commands, run through the Flask CLI:

    flask --app app ensure-indexes
    flask --app app repair-invitation-indexes
    flask --app app expire-invitations
    flask --app app cancel-stale-farmer-contracts
    flask --app app seed-role-features
    flask --app app post-announcement --title ... --content ...
"""
import click
from flask.cli import with_appcontext

from canelink.indexes import INDEX_SPECS, ensure_indexes, repair_invitation_indexes
from canelink.models.announcement_models import AUDIENCES, PRIORITY_RANK
from canelink.mongo import mongo
from canelink.services.announcement_service import AnnouncementService
from canelink.services.contract_service import ContractService
from canelink.services.farmer_contract_service import FarmerContractService
from canelink.services.invitation_service import InvitationService
from canelink.services.public_service import PublicService


@click.command("ensure-indexes")
@click.option("--collection", "collections", multiple=True, type=click.Choice(sorted(INDEX_SPECS)),
              help="Limit to these collections (repeatable).")
@with_appcontext
def ensure_indexes_command(collections):
    """Create every index defined in canelink.indexes."""
    created = ensure_indexes(mongo.db, collections or None)
    click.echo(f"Ensured {len(created)} indexes")


@click.command("repair-invitation-indexes")
@with_appcontext
def repair_invitation_indexes_command():
    """Drop legacy invitation indexes, purge malformed rows and recreate the partial indexes."""
    report = repair_invitation_indexes(mongo.db)
    click.echo(f"Dropped: {', '.join(report['dropped']) or 'none'}")
    click.echo(f"Removed malformed invitations: {report['removedMalformed']}")
    click.echo(f"Relabeled declined -> rejected: {report['relabeledDeclined']}")
    click.echo(f"Created: {', '.join(report['created']) or 'none'}")


@click.command("expire-invitations")
@with_appcontext
def expire_invitations_command():
    """Mark overdue pending invitations and open contracts as expired."""
    invitations = InvitationService.expire_overdue()
    contracts = ContractService.expire_overdue()
    click.echo(f"Expired {invitations} invitations and {contracts} contracts")


@click.command("cancel-stale-farmer-contracts")
@with_appcontext
def cancel_stale_farmer_contracts_command():
    """Auto-cancel farmer contracts left pending past their grace period."""
    count = FarmerContractService.cancel_stale()
    click.echo(f"Auto-cancelled {count} farmer contracts")


@click.command("seed-role-features")
@with_appcontext
def seed_role_features_command():
    """Upsert the public role feature catalogue."""
    count = PublicService.seed_role_features()
    click.echo(f"Seeded {count} roles")


@click.command("post-announcement")
@click.option("--title", required=True)
@click.option("--content", required=True)
@click.option("--audience", "audiences", multiple=True,
              type=click.Choice(AUDIENCES),
              help="Target audience (repeatable). Defaults to all.")
@click.option("--priority", default="medium",
              type=click.Choice(list(PRIORITY_RANK)))
@click.option("--expires", "expires_at", default=None, help="ISO date after which it is hidden.")
@with_appcontext
def post_announcement_command(title, content, audiences, priority, expires_at):
    """Publish a platform announcement."""
    doc = AnnouncementService.create({
        "title": title,
        "content": content,
        "targetAudience": list(audiences) or ["all"],
        "priority": priority,
        "expiresAt": expires_at,
    })
    click.echo(f"Posted announcement {doc['_id']}")


def register_commands(app):
    for command in (
        ensure_indexes_command,
        repair_invitation_indexes_command,
        expire_invitations_command,
        cancel_stale_farmer_contracts_command,
        seed_role_features_command,
        post_announcement_command,
    ):
        app.cli.add_command(command)

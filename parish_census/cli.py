"""CLI tools for parish census administration."""

import click

from parish_census.db.enums import Role
from parish_census.db.session import SessionLocal, engine


@click.group()
def cli():
    """Parish census CLI tools."""
    pass


@cli.command()
def migrate():
    """
    Apply pending database migrations.

    Example:
        parish-census migrate
    """
    from parish_census.core.migrations import upgrade_to_head

    status = upgrade_to_head(engine)
    click.echo(f"✓ Database at head: {', '.join(status.head_revisions) or '(none)'}")


@cli.command()
def migration_status():
    """Show current and head migration revisions."""
    from parish_census.core.migrations import get_migration_status

    status = get_migration_status(engine)
    click.echo(f"  Current: {', '.join(status.current_heads) or '(none)'}")
    click.echo(f"  Head:    {', '.join(status.head_revisions) or '(none)'}")
    if status.is_up_to_date:
        click.echo("✓ Up to date")
    else:
        click.echo("→ Run: parish-census migrate")


@cli.command()
def seed_catalogs():
    """
    Insert the default lookup rows (sexes, identification types, utilities).

    Safe to run repeatedly; existing ids are left untouched.
    """
    from parish_census.services import catalog_service

    db = SessionLocal()
    try:
        inserted = catalog_service.seed_defaults(db)
        click.echo(f"✓ Seeded {inserted} catalog row(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email address")
@click.option("--name", "display_name", required=True, help="Display name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.SURVEYOR.value,
    show_default=True,
)
def create_user(email: str, display_name: str, role: str):
    """
    Create a staff user.

    Example:
        parish-census create-user --email "ana@parroquia.org" --name "Ana" --role admin
    """
    from parish_census.db.models import User
    from parish_census.utils.normalization import normalize_email

    db = SessionLocal()
    try:
        email = normalize_email(email)
        if db.query(User).filter(User.email == email).first():
            click.echo(f"❌ User already exists: {email}")
            return

        user = User(email=email, display_name=display_name.strip(), role=role)
        db.add(user)
        db.commit()

        click.echo(f"✓ Created user: {email}")
        click.echo(f"  ID: {user.id}")
        click.echo(f"  Role: {role}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to issue a token for")
def issue_token(email: str):
    """
    Print a session token for a user (field tablets use it as a bearer token).

    Example:
        parish-census issue-token --email "ana@parroquia.org"
    """
    from parish_census.core.security import create_session_token
    from parish_census.db.models import User
    from parish_census.utils.normalization import normalize_email

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return
        if not user.is_active:
            click.echo(f"❌ Account disabled: {email}")
            return

        click.echo(create_session_token(user.id, user.role, user.token_version))
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        parish-census revoke-sessions --email "ana@parroquia.org"
    """
    from parish_census.db.models import User
    from parish_census.utils.normalization import normalize_email

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    cli()

from click.testing import CliRunner

from parish_census.cli import cli
from parish_census.core.security import decode_session_token
from parish_census.db.models import User


def test_create_user_and_issue_token(db):
    runner = CliRunner()

    result = runner.invoke(
        cli, ["create-user", "--email", "Ana@Parroquia.org", "--name", "Ana", "--role", "admin"]
    )
    assert result.exit_code == 0, result.output
    assert "Created user: ana@parroquia.org" in result.output

    user = db.query(User).filter(User.email == "ana@parroquia.org").one()
    user_id, role = user.id, user.role
    # The CLI opens its own session on the shared in-memory connection
    db.rollback()
    assert role == "admin"

    result = runner.invoke(cli, ["issue-token", "--email", "ana@parroquia.org"])
    assert result.exit_code == 0, result.output
    payload = decode_session_token(result.output.strip())
    assert payload["sub"] == str(user_id)
    assert payload["role"] == "admin"


def test_create_user_twice_is_refused(db):
    runner = CliRunner()
    args = ["create-user", "--email", "luis@parroquia.org", "--name", "Luis"]

    assert runner.invoke(cli, args).exit_code == 0
    result = runner.invoke(cli, args)
    assert "already exists" in result.output


def test_seed_catalogs_reports_nothing_new(db):
    result = CliRunner().invoke(cli, ["seed-catalogs"])
    assert result.exit_code == 0, result.output
    assert "Seeded 0 catalog row(s)" in result.output

"""Tests for the command line interface."""

from datetime import datetime
from decimal import Decimal

import pytest

from spendly.__main__ import build_parser, main
from spendly.db.models import AuditLog
from spendly.db.session import build_engine, build_session_factory
from tests.factories import create_payout


@pytest.fixture
def database_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    assert main(["--database-url", url, "init-db"]) == 0
    return url


@pytest.fixture
def cli_payout(database_url):
    engine = build_engine(database_url)
    with build_session_factory(engine)() as session:
        payout = create_payout(session, amount=Decimal("7500.00"))
    engine.dispose()
    return payout


class TestParser:

    def test_submit_requires_principal(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["submit", "p1", "approve"])

    def test_action_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["submit", "p1", "escalate", "--as", "u2"])


class TestCommands:
    """Test running commands against a SQLite database."""

    def test_submit_and_verify(self, database_url, cli_payout, capsys):
        assert main(["--database-url", database_url, "submit", cli_payout.id, "approve", "--as", "u2"]) == 0
        assert "Status: pending_second_approval" in capsys.readouterr().out

        assert main(["--database-url", database_url, "submit", cli_payout.id, "approve", "--as", "u3"]) == 0
        assert "Status: approved" in capsys.readouterr().out

        assert main(["--database-url", database_url, "verify-audit", cli_payout.id]) == 0
        out = capsys.readouterr().out
        assert "Entries: 2" in out
        assert "Final status: approved" in out

    def test_reject_with_reason(self, database_url, cli_payout, capsys):
        code = main([
            "--database-url", database_url,
            "submit", cli_payout.id, "reject", "--as", "u2", "--reason", "Duplicate payout",
        ])
        assert code == 0
        assert "Reason: Duplicate payout" in capsys.readouterr().out

    def test_unknown_entity_exit_code(self, database_url, capsys):
        assert main(["--database-url", database_url, "submit", "missing", "approve", "--as", "u2"]) == 2
        assert "not found" in capsys.readouterr().err

    def test_corrupt_entity_exit_code(self, database_url, capsys):
        engine = build_engine(database_url)
        with build_session_factory(engine)() as session:
            payout = create_payout(session, currency="XYZ")
        engine.dispose()

        assert main(["--database-url", database_url, "submit", payout.id, "approve", "--as", "u2"]) == 2
        assert "Unknown currency" in capsys.readouterr().err

    def test_verify_reports_unknown_status(self, database_url, cli_payout, capsys):
        engine = build_engine(database_url)
        with build_session_factory(engine)() as session, session.begin():
            session.add(AuditLog.create_entry(
                "payout", cli_payout.id, "approve", "u2",
                created_at=datetime(2026, 1, 1, 12, 0, 0),
                previous_state={"status": "pending"},
                new_state={"status": "teleported"},
            ))
        engine.dispose()

        assert main(["--database-url", database_url, "verify-audit", cli_payout.id]) == 1
        assert "unknown status or entity type" in capsys.readouterr().out

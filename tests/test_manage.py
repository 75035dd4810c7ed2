"""
Tests for the management CLI (in-memory store only).
"""

import pytest

from qaforum.db import InMemoryForumStore
from qaforum.db.seed import seed_demo_data
from tools.manage import main


@pytest.fixture(autouse=True)
def memory_store(monkeypatch):
    for name in ("DATABASE_URL", "DATABASE_HOST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FORUM_STORE_DRIVER", "memory")


class TestManageCommands:

    def test_curate_demo(self, capsys):
        assert main(["curate", "--demo", "--student", "studentX", "--question", "Q1"]) == 0

        captured = capsys.readouterr()
        out = captured.out
        assert "Outcome: curated" in out
        assert out.index("A3") < out.index("A2") < out.index("A1")
        assert "[WARN]" not in captured.err

    def test_demo_on_populated_store_warns(self, monkeypatch, capsys):
        store = InMemoryForumStore()
        seed_demo_data(store)
        monkeypatch.setattr(
            "qaforum.db.factory.create_store", lambda init_schema=False: store
        )

        assert main(["curate", "--demo", "--student", "studentX", "--question", "Q1"]) == 0
        assert "--demo skipped" in capsys.readouterr().err

    def test_last_admin_refused(self, capsys):
        code = main([
            "assign-roles", "--demo", "--user", "admin1", "--roles", "student", "--acting", "admin1",
        ])

        assert code == 1
        assert "InvariantViolation" in capsys.readouterr().err

    def test_set_trust(self, capsys):
        assert main(["set-trust", "--student", "s9", "--reviewer", "rev1", "--weight", "2"]) == 0
        assert "s9 trusts rev1 with weight 2" in capsys.readouterr().out

    def test_pending_requests_empty(self, capsys):
        assert main(["pending-requests"]) == 0
        assert "No pending reviewer requests" in capsys.readouterr().out

    def test_health_check(self, capsys):
        assert main(["health-check"]) == 0
        assert "In-Memory" in capsys.readouterr().out

    def test_init_schema_needs_database(self):
        assert main(["init-schema"]) == 1

    def test_no_command(self):
        assert main([]) == 1

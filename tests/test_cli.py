"""
Tests for the Operator CLI and Formatting Helpers

Tests cover:
- Currency and column formatting
- Account management and token issuing
- Listing and restoring properties from the command line
"""

import json
import sys

import pytest
from decimal import Decimal

from core.identity import IdentityProvider, Role, UserDirectory
from core.properties import PropertyRepository, PropertyService
from core.properties.cli import main
from utils.config import Config
from utils.formatting import format_currency, truncate


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TOKEN_SECRET", "cli-secret")
    monkeypatch.setenv("MEDIA_BACKEND", "memory")
    return tmp_path


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["property-engine", *args])
    main()


# =============================================================================
# Formatting
# =============================================================================


class TestFormatting:
    """Tests for formatting helpers."""

    def test_whole_amount(self):
        assert format_currency(Decimal("120000")) == "£120,000"

    def test_fractional_amount(self):
        assert format_currency(Decimal("1250.5"), "USD") == "$1,250.50"

    def test_unknown_currency(self):
        assert format_currency(500, "PLN") == "PLN 500"

    def test_truncate(self):
        assert truncate("Cozy Flat", 20) == "Cozy Flat"
        assert truncate("A very long listing title", 10) == "A very ..."
        assert len(truncate("x" * 50, 10)) == 10


# =============================================================================
# CLI
# =============================================================================


class TestCli:
    """Tests for the CLI commands."""

    def test_add_user_and_list(self, data_dir, monkeypatch, capsys):
        run_cli(monkeypatch, "add-user", "alice@example.com", "--role", "owner")
        run_cli(monkeypatch, "users")
        out = capsys.readouterr().out
        assert "Created owner alice@example.com" in out
        assert "alice@example.com" in out.splitlines()[-1]

    def test_duplicate_user_exits(self, data_dir, monkeypatch):
        run_cli(monkeypatch, "add-user", "alice@example.com")
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "add-user", "alice@example.com")

    def test_issued_token_resolves(self, data_dir, monkeypatch, capsys):
        run_cli(monkeypatch, "add-user", "admin@example.com", "--role", "admin")
        capsys.readouterr()
        run_cli(monkeypatch, "issue-token", "admin@example.com")
        token = capsys.readouterr().out.strip()

        config = Config.load()
        provider = IdentityProvider(UserDirectory(config.users_path), config.token_secret)
        assert provider.resolve_caller(token).role == Role.ADMIN

    def test_config_hides_secrets(self, data_dir, monkeypatch, capsys):
        run_cli(monkeypatch, "config")
        shown = json.loads(capsys.readouterr().out)
        assert shown["data_dir"] == str(data_dir)
        assert "token_secret" not in shown

    def test_list_and_restore(self, data_dir, monkeypatch, capsys):
        config = Config.load()
        directory = UserDirectory(config.users_path)
        owner = directory.add_user("owner@example.com", Role.OWNER)
        directory.add_user("admin@example.com", Role.ADMIN)

        service = PropertyService(PropertyRepository(config.properties_path))
        draft = service.create_draft({"title": "Cozy Flat", "price": "500"}, owner.to_caller())
        service.soft_delete(draft.id, owner.to_caller())

        run_cli(monkeypatch, "list", "--as", "admin@example.com", "--include-deleted")
        out = capsys.readouterr().out
        assert draft.id in out
        assert "archived*" in out
        assert "£500" in out

        run_cli(monkeypatch, "restore", draft.id, "--as", "admin@example.com")
        assert f"Restored {draft.id} (archived)" in capsys.readouterr().out

    def test_restore_as_owner_fails(self, data_dir, monkeypatch):
        config = Config.load()
        directory = UserDirectory(config.users_path)
        owner = directory.add_user("owner@example.com", Role.OWNER)
        service = PropertyService(PropertyRepository(config.properties_path))
        draft = service.create_draft({}, owner.to_caller())
        service.soft_delete(draft.id, owner.to_caller())

        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "restore", draft.id, "--as", "owner@example.com")

    def test_add_user_unwritable_data_dir(self, tmp_path, monkeypatch, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        monkeypatch.setenv("DATA_DIR", str(blocker))

        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "add-user", "alice@example.com")
        assert "Error [STORE_UNAVAILABLE]" in capsys.readouterr().err

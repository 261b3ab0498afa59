"""CLI エントリーポイントのテスト

create_contact_book をフェイクのレコードストアで組み立てた ContactBook に差し替える。
"""

from unittest.mock import MagicMock, patch

import pytest

from dunbar.config import AppConfig
from dunbar.domain.errors import ConfigError
from dunbar.entrypoints import cli
from dunbar.services.contact_book import ContactBook

_CONFIG = AppConfig(spreadsheet_id="sheet-123")


@pytest.fixture
def book(fake_store, mock_probe, snapshot_store, clock, id_factory, no_sleep):
    return ContactBook(
        fake_store,
        mock_probe,
        snapshot_store,
        clock=clock,
        id_factory=id_factory,
        sleep=no_sleep,
    )


@pytest.fixture
def run(book):
    """cli.main を実行するヘルパー"""
    with patch("dunbar.entrypoints.cli.setup_logging"), patch.object(
        AppConfig, "from_env", return_value=_CONFIG
    ), patch("dunbar.entrypoints.cli.create_contact_book", return_value=book):
        yield cli.main


class TestParser:
    def test_add_collects_fields(self):
        args = cli.build_parser().parse_args(
            ["add", "--name", "Jane", "--kids", "2", "--has-kids", "--zip-code", "12345"]
        )

        assert cli._collect_fields(args) == {
            "name": "Jane",
            "has_kids": True,
            "number_of_kids": 2,
            "address": {"zip_code": "12345"},
        }

    def test_log_requires_type(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["log", "c1"])


class TestCommands:
    def test_list(self, run, capsys):
        assert run(["list"]) == 0

        out = capsys.readouterr().out
        assert "c1  Jane Doe  [Client/Active]" in out
        assert "2 contact(s)" in out

    def test_show(self, run, capsys):
        assert run(["show", "c1"]) == 0

        out = capsys.readouterr().out
        assert "Phone: (555) 123-4567" in out
        assert "[Call] - Quarterly check-in" in out

    def test_show_missing(self, run, capsys):
        assert run(["show", "nope"]) == 1
        assert "Contact not found" in capsys.readouterr().err

    def test_add(self, run, capsys, fake_store):
        assert run(["add", "--name", "Carol", "--category", "Recruiter"]) == 0

        assert "Created new-1" in capsys.readouterr().out
        assert fake_store.contacts["new-1"].name == "Carol"

    def test_add_invalid(self, run, capsys):
        assert run(["add", "--name", "Carol", "--category", "Friend"]) == 1
        assert "Error: Invalid category" in capsys.readouterr().err

    def test_offline_add_is_queued(self, run, capsys, fake_store):
        fake_store.offline = True

        assert run(["add", "--name", "Carol"]) == 0

        out = capsys.readouterr().out
        assert "(queued for sync)" in out
        assert "offline mode" in out

    def test_log(self, run, capsys, fake_store):
        assert run(["log", "c2", "--type", "Call", "--type", "Email", "--notes", "Hi"]) == 0
        assert len(fake_store.contacts["c2"].communications) == 1

    def test_sync_reports_counts(self, run, capsys):
        assert run(["sync"]) == 0

        assert "Synced: 0 succeeded, 0 failed" in capsys.readouterr().out

    def test_status_and_stats(self, run, capsys):
        assert run(["status"]) == 0
        assert run(["stats"]) == 0

        out = capsys.readouterr().out
        assert "Mode: online" in out
        assert "Never contacted: Bob Smith" in out

    def test_remind_with_notify(self, run, capsys):
        notifier = MagicMock()
        with patch("dunbar.entrypoints.cli.create_notifier", return_value=notifier):
            assert run(["remind", "--notify"]) == 0

        assert "Bob Smith has never been contacted." in capsys.readouterr().out
        reminders = notifier.notify_reminders.call_args[0][0]
        assert [r.contact_id for r in reminders] == ["c2"]

    def test_watch_prints_restored_notice(self, run, capsys, mock_probe):
        """オフライン中に到達できれば復旧の通知を表示する"""
        mock_probe.check_availability.side_effect = [False, True]

        assert run(["watch", "--count", "1"]) == 0
        assert "Connection restored" in capsys.readouterr().out


class TestMainErrors:
    def test_config_error_exit_code(self):
        with patch("dunbar.entrypoints.cli.setup_logging"), patch.object(
            AppConfig, "from_env", side_effect=ConfigError("SPREADSHEET_ID is not set")
        ):
            assert cli.main(["list"]) == 2

    def test_unexpected_error_exit_code(self):
        with patch("dunbar.entrypoints.cli.setup_logging"), patch.object(
            AppConfig, "from_env", return_value=_CONFIG
        ), patch(
            "dunbar.entrypoints.cli.create_contact_book", side_effect=RuntimeError("boom")
        ):
            assert cli.main(["list"]) == 1

"""SlackNotifier のテスト"""

from unittest.mock import patch

import pytest
from slack_sdk.errors import SlackApiError

from dunbar.adapters.slack import SlackNotifier
from dunbar.domain.models import Reminder


def _reminder(contact_id, name, days):
    message = (
        f"{name} has never been contacted."
        if days is None
        else f"{name} hasn't been contacted in {days} days."
    )
    return Reminder(contact_id=contact_id, name=name, days_since_contact=days, message=message)


@pytest.fixture
def mock_web_client():
    with patch("dunbar.adapters.slack.WebClient") as client_cls:
        client = client_cls.return_value
        client.chat_postMessage.return_value = {"ts": "123.456"}
        yield client


class TestSlackNotifier:
    def test_requires_token_and_channel(self, mock_web_client):
        with pytest.raises(ValueError):
            SlackNotifier("", "C123")
        with pytest.raises(ValueError):
            SlackNotifier("xoxb-token", "")

    def test_posts_grouped_message(self, mock_web_client):
        """経過日数の長い順に並べ、未連絡は別セクションにする"""
        notifier = SlackNotifier("xoxb-token", "C123")

        notifier.notify_reminders(
            [
                _reminder("c1", "Jane", 35),
                _reminder("c2", "Bob", None),
                _reminder("c3", "Carol", 90),
            ]
        )

        kwargs = mock_web_client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "C123"
        assert kwargs["text"] == (
            "*Contact reminders (3)*\n"
            "\n"
            "*Overdue:*\n"
            "- Carol hasn't been contacted in 90 days.\n"
            "- Jane hasn't been contacted in 35 days.\n"
            "\n"
            "*Never contacted:*\n"
            "- Bob has never been contacted."
        )

    def test_nothing_to_send(self, mock_web_client):
        SlackNotifier("xoxb-token", "C123").notify_reminders([])

        mock_web_client.chat_postMessage.assert_not_called()

    def test_api_error_is_reraised(self, mock_web_client):
        mock_web_client.chat_postMessage.side_effect = SlackApiError(
            "failed", {"ok": False, "error": "channel_not_found"}
        )

        with pytest.raises(SlackApiError):
            SlackNotifier("xoxb-token", "C123").notify_reminders([_reminder("c1", "Jane", 40)])

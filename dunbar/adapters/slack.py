"""Slack Notifier Adapter

Notifier ABCの実装。しばらく連絡していない連絡先を Slack に投稿する。
"""

import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from dunbar.domain.models import Reminder
from dunbar.domain.ports import Notifier

logger = logging.getLogger(__name__)


class SlackNotifier(Notifier):
    """Slack WebClientを使った通知実装"""

    def __init__(self, bot_token: str, channel_id: str):
        """
        Args:
            bot_token: Slack Bot Token
            channel_id: 通知先チャンネルID
        """
        if not bot_token:
            raise ValueError("bot_token is required")
        if not channel_id:
            raise ValueError("channel_id is required")

        self._client = WebClient(token=bot_token)
        self._channel_id = channel_id

    def notify_reminders(self, reminders: list[Reminder]) -> None:
        """
        リマインダーを1つのメッセージにまとめて投稿する。空なら何もしない。

        Raises:
            SlackApiError: 投稿に失敗した場合
        """
        if not reminders:
            logger.info("No reminders to send")
            return

        try:
            response = self._client.chat_postMessage(
                channel=self._channel_id,
                text=self._build_message(reminders),
            )
            logger.info(
                "Slack reminder sent: ts=%s, channel=%s, count=%d",
                response["ts"],
                self._channel_id,
                len(reminders),
            )
        except SlackApiError as e:
            logger.error("Failed to send Slack message: %s", e.response["error"])
            raise  # 呼び出し元でエラーハンドリング

    @staticmethod
    def _build_message(reminders: list[Reminder]) -> str:
        never = [r for r in reminders if r.days_since_contact is None]
        overdue = sorted(
            (r for r in reminders if r.days_since_contact is not None),
            key=lambda r: r.days_since_contact,
            reverse=True,
        )

        lines = [f"*Contact reminders ({len(reminders)})*", ""]
        if overdue:
            lines.append("*Overdue:*")
            for reminder in overdue:
                lines.append(f"- {reminder.message}")
            lines.append("")
        if never:
            lines.append("*Never contacted:*")
            for reminder in never:
                lines.append(f"- {reminder.message}")
        return "\n".join(lines).rstrip()

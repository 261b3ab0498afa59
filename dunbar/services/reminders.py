"""Reminders - 連絡が途絶えている連絡先の検出とダッシュボード統計"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from dunbar.domain.errors import ValidationError
from dunbar.domain.formatting import parse_timestamp
from dunbar.domain.models import Contact, ContactStats, ContactStatus, Reminder

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_DAYS = 30


def last_contact_date(contact: Contact) -> datetime | None:
    """
    最後に連絡した日時。

    last_contacted_at が無ければ最新のコミュニケーション日時を使う。
    解釈できない日時は無視する。
    """
    candidates = [contact.last_contacted_at] + [c.date for c in contact.communications]
    for value in candidates:
        if not value:
            continue
        try:
            return parse_timestamp(value)
        except ValidationError:
            logger.debug("Ignoring unparsable date %r on %s", value, contact.id)
    return None


def find_overdue(
    contacts: Iterable[Contact],
    now: datetime,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
) -> list[Reminder]:
    """
    threshold_days 日以上連絡していない（または一度も連絡していない）連絡先を返す。

    Args:
        contacts: 対象の連絡先（tombstone は除外される）
        now: 基準時刻（timezone付き）
        threshold_days: リマインドする経過日数

    Returns:
        list[Reminder]: 入力順のリマインダー
    """
    reminders = []
    for contact in contacts:
        if contact.deleted:
            continue
        last = last_contact_date(contact)
        if last is None:
            reminders.append(
                Reminder(
                    contact_id=contact.id,
                    name=contact.name,
                    days_since_contact=None,
                    message=f"{contact.name} has never been contacted.",
                )
            )
            continue

        days = (now - last).days
        if days >= threshold_days:
            reminders.append(
                Reminder(
                    contact_id=contact.id,
                    name=contact.name,
                    days_since_contact=days,
                    message=f"{contact.name} hasn't been contacted in {days} days.",
                )
            )
    return reminders


def compute_stats(
    contacts: Iterable[Contact],
    now: datetime,
    recent_days: int = DEFAULT_THRESHOLD_DAYS,
) -> ContactStats:
    """ダッシュボード用の件数を集計する（tombstone は除外）"""
    visible = [c for c in contacts if not c.deleted]
    cutoff = now - timedelta(days=recent_days)

    recently = 0
    never: list[str] = []
    for contact in visible:
        if not contact.last_contacted_at:
            never.append(contact.name)
            continue
        try:
            if parse_timestamp(contact.last_contacted_at) >= cutoff:
                recently += 1
        except ValidationError:
            logger.debug("Ignoring unparsable last_contacted_at on %s", contact.id)

    return ContactStats(
        total=len(visible),
        active=sum(1 for c in visible if c.status is ContactStatus.ACTIVE),
        inactive=sum(1 for c in visible if c.status is ContactStatus.INACTIVE),
        recently_contacted=recently,
        never_contacted=never,
    )

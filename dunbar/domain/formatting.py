"""表示・正規化ヘルパー（電話番号・住所・誕生日・タイムスタンプ）"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from dunbar.domain.errors import ValidationError
from dunbar.domain.models import Address

_NON_DIGITS = re.compile(r"\D")
_FULL_BIRTHDAY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_YEARLESS_BIRTHDAY = re.compile(r"^--(\d{2})-(\d{2})$")


def digits_only(value: str | None) -> str:
    """数字以外を取り除く"""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)


def format_phone_number(value: str | None) -> str:
    """
    電話番号を "(XXX) XXX-XXXX" 形式にする。

    10桁未満の場合は数字だけをそのまま返す。
    """
    digits = digits_only(value)
    if len(digits) < 10:
        return digits
    return f"({digits[0:3]}) {digits[3:6]}-{digits[6:10]}"


def format_address(address: Address) -> str:
    """住所の各要素を空でないものだけカンマ区切りで連結する"""
    parts = [
        address.street,
        address.city,
        address.state,
        address.zip_code,
        address.country,
    ]
    return ", ".join(p.strip() for p in parts if p and p.strip())


def parse_birthday(value: str) -> tuple[int | None, int, int]:
    """
    誕生日文字列を (year, month, day) に分解する。

    "1990-04-25"（日時付きも可）または年を隠した "--04-25" を受け付ける。
    年が隠されている場合 year は None。

    Raises:
        ValidationError: 形式が不正、または存在しない日付の場合
    """
    text = value.strip()
    yearless = _YEARLESS_BIRTHDAY.match(text)
    if yearless:
        month, day = int(yearless.group(1)), int(yearless.group(2))
        # 2月29日を許容するため閏年で検証する
        _check_date(2000, month, day, value)
        return None, month, day

    full = _FULL_BIRTHDAY.match(text)
    if full:
        year, month, day = (int(g) for g in full.groups())
        _check_date(year, month, day, value)
        return year, month, day

    raise ValidationError(f"Invalid birthday: {value!r}")


def _check_date(year: int, month: int, day: int, raw: str) -> None:
    try:
        date(year, month, day)
    except ValueError as e:
        raise ValidationError(f"Invalid birthday: {raw!r}") from e


def normalize_birthday(value: str | None) -> str | None:
    """誕生日を "YYYY-MM-DD" または "--MM-DD" に正規化する（空は None）"""
    if value is None or not value.strip():
        return None
    year, month, day = parse_birthday(value)
    if year is None:
        return f"--{month:02d}-{day:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"


def hide_birth_year(value: str) -> str:
    """誕生日から年を取り除いて "--MM-DD" にする"""
    _, month, day = parse_birthday(value)
    return f"--{month:02d}-{day:02d}"


def age_on(birthday: str | None, today: date) -> int | None:
    """
    誕生日から today 時点の年齢を計算する。

    年が隠されている場合や未来の日付の場合は None。
    """
    if not birthday:
        return None
    year, month, day = parse_birthday(birthday)
    if year is None:
        return None
    born = date(year, month, day)
    if born > today:
        return None
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def to_iso(moment: datetime) -> str:
    """UTC の ISO8601 文字列（ミリ秒、末尾 Z）にする"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    ISO8601 文字列を timezone 付き datetime にする（タイムゾーンなしは UTC とみなす）。

    Raises:
        ValidationError: 解釈できない場合
    """
    try:
        moment = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment

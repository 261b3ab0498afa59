"""外部文字列から列挙値への変換

レコードストアから読んだ値は自由な文字列なので、暗黙に丸めずに
Ok（一致した値）/ Fallback（既定値に置き換えた）を明示して返す。
呼び出し側はフォールバックをログに残したり、入力エラーとして扱ったりできる。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from dunbar.domain.errors import ValidationError
from dunbar.domain.models import (
    CommunicationType,
    ContactCategory,
    ContactStatus,
    MaritalStatus,
)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """入力が既知の値に一致した"""

    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    """入力が不明だったため既定値に置き換えた"""

    value: T
    raw: object


ParseResult = Union[Ok[T], Fallback[T]]

_SEPARATORS = re.compile(r"[\s_\-]+")


def _normalize(raw: object) -> str:
    return _SEPARATORS.sub("", str(raw)).casefold()


def _match_enum(enum_cls: type[E], raw: object) -> E | None:
    if isinstance(raw, enum_cls):
        return raw
    key = _normalize(raw)
    for member in enum_cls:
        if key in (_normalize(member.value), _normalize(member.name)):
            return member
    return None


def _is_blank(raw: object) -> bool:
    return raw is None or str(raw).strip() == ""


def parse_status(raw: object) -> ParseResult[ContactStatus]:
    """ステータス文字列を解釈する。空・不明は Active"""
    member = None if _is_blank(raw) else _match_enum(ContactStatus, raw)
    if member is None:
        return Fallback(ContactStatus.ACTIVE, raw)
    return Ok(member)


def parse_category(raw: object) -> ParseResult[ContactCategory]:
    """カテゴリ文字列を解釈する。空・不明は Client"""
    member = None if _is_blank(raw) else _match_enum(ContactCategory, raw)
    if member is None:
        return Fallback(ContactCategory.CLIENT, raw)
    return Ok(member)


def parse_marital_status(raw: object) -> ParseResult[MaritalStatus | None]:
    """婚姻状況を解釈する。空は Ok(None)、不明は Fallback(None)"""
    if _is_blank(raw):
        return Ok(None)
    member = _match_enum(MaritalStatus, raw)
    if member is None:
        return Fallback(None, raw)
    return Ok(member)


def parse_communication_types(
    raw: object,
) -> ParseResult[frozenset[CommunicationType]]:
    """
    コミュニケーション種別を解釈する。

    リストまたはカンマ区切り文字列を受け付ける。
    不明な要素が1つでもあれば、既知の要素だけを残して Fallback を返す。
    """
    if raw is None:
        items: list[object] = []
    elif isinstance(raw, str):
        items = [part for part in raw.split(",") if part.strip()]
    elif isinstance(raw, CommunicationType):
        items = [raw]
    else:
        items = list(raw)  # type: ignore[call-overload]

    known: set[CommunicationType] = set()
    unknown = False
    for item in items:
        member = _match_enum(CommunicationType, item)
        if member is None:
            unknown = True
        else:
            known.add(member)

    if unknown or not known:
        return Fallback(frozenset(known), raw)
    return Ok(frozenset(known))


def require(result: ParseResult[T], field_name: str) -> T:
    """
    ユーザー入力用: Fallback を入力エラーとして扱う。

    Raises:
        ValidationError: 入力が既知の値に一致しなかった場合
    """
    if isinstance(result, Fallback):
        raise ValidationError(f"Invalid {field_name}: {result.raw!r}")
    return result.value

"""連絡先のビジネスルール

入力値（CLI/API から渡される dict）を検証・正規化して Contact を組み立てる。
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from datetime import date
from typing import Any

from dunbar.domain.errors import ValidationError
from dunbar.domain.formatting import (
    age_on,
    digits_only,
    normalize_birthday,
    parse_timestamp,
)
from dunbar.domain.models import (
    EDITABLE_FIELDS,
    Address,
    Contact,
    ContactCategory,
)
from dunbar.domain.parsing import (
    parse_category,
    parse_marital_status,
    parse_status,
    require,
)

_ADDRESS_KEYS = {
    "street": "street",
    "city": "city",
    "state": "state",
    "zip_code": "zip_code",
    "zipCode": "zip_code",
    "country": "country",
}


def build_contact(
    contact_id: str,
    values: Mapping[str, Any],
    now_iso: str,
    today: date,
) -> Contact:
    """
    新規連絡先を組み立てる。

    Args:
        contact_id: クライアント側で採番したID
        values: 入力値（EDITABLE_FIELDS のサブセット、name は必須）
        now_iso: created_at / updated_at に使う現在時刻
        today: 誕生日から年齢を算出する基準日

    Raises:
        ValidationError: 入力値が不正な場合
    """
    if "name" not in values:
        raise ValidationError("Name is required")
    cleaned = _clean(values)
    contact = Contact(id=contact_id, name="", created_at=now_iso, updated_at=now_iso)
    contact = replace(contact, **cleaned)
    return _apply_rules(contact, derive_age="age" not in cleaned, today=today)


def apply_changes(
    contact: Contact,
    changes: Mapping[str, Any],
    now_iso: str,
    today: date,
) -> Contact:
    """
    既存の連絡先に変更を適用する。id と created_at は変更しない。

    Raises:
        ValidationError: 入力値が不正な場合
    """
    cleaned = _clean(changes)
    updated = replace(contact, **cleaned, updated_at=now_iso)
    derive_age = "birthday" in cleaned and "age" not in cleaned
    return _apply_rules(updated, derive_age=derive_age, today=today)


def _apply_rules(contact: Contact, derive_age: bool, today: date) -> Contact:
    """フィールド間の整合性ルールを適用する"""
    if not contact.name.strip():
        raise ValidationError("Name is required")

    updates: dict[str, Any] = {}
    if not contact.has_kids and contact.number_of_kids:
        updates["number_of_kids"] = 0
    if contact.category is not ContactCategory.WOMAN and contact.marital_status:
        updates["marital_status"] = None
    if derive_age:
        updates["age"] = age_on(contact.birthday, today)
    return replace(contact, **updates) if updates else contact


def _clean(values: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(values) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if key == "name":
            cleaned[key] = _text(value, key).strip()
        elif key in ("role", "description", "additional_details", "email"):
            cleaned[key] = _text(value, key).strip()
        elif key == "picture":
            cleaned[key] = _text(value, key).strip() or None
        elif key == "status":
            cleaned[key] = require(parse_status(value), "status")
        elif key == "category":
            cleaned[key] = require(parse_category(value), "category")
        elif key == "marital_status":
            cleaned[key] = require(parse_marital_status(value), "marital status")
        elif key == "birthday":
            cleaned[key] = normalize_birthday(_optional_text(value, key))
        elif key == "age":
            cleaned[key] = _non_negative_int(value, key, allow_none=True)
        elif key == "number_of_kids":
            cleaned[key] = _non_negative_int(value, key, allow_none=False)
        elif key == "has_kids":
            if not isinstance(value, bool):
                raise ValidationError("has_kids must be a boolean")
            cleaned[key] = value
        elif key == "phone_number":
            cleaned[key] = digits_only(_text(value, key))
        elif key == "address":
            cleaned[key] = _address(value)
        elif key == "last_contacted_at":
            text = _optional_text(value, key)
            if text:
                parse_timestamp(text)
            cleaned[key] = text or None
    return cleaned


def _text(value: Any, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def _optional_text(value: Any, key: str) -> str | None:
    if value is None:
        return None
    return _text(value, key)


def _non_negative_int(value: Any, key: str, allow_none: bool) -> int | None:
    if value is None or value == "":
        if allow_none:
            return None
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be an integer") from e
    if number < 0:
        raise ValidationError(f"{key} must be >= 0")
    return number


def _address(value: Any) -> Address:
    if value is None:
        return Address()
    if isinstance(value, Address):
        return value
    if not isinstance(value, Mapping):
        raise ValidationError("address must be an object")
    parts: dict[str, str] = {}
    for key, raw in value.items():
        target = _ADDRESS_KEYS.get(key)
        if target is None:
            raise ValidationError(f"Unknown address field: {key}")
        parts[target] = _text(raw, f"address.{key}").strip()
    return Address(**parts)

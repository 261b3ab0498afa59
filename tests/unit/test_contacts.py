"""連絡先のビジネスルール（build_contact / apply_changes）のテスト"""

from datetime import date

import pytest

from dunbar.domain.contacts import apply_changes, build_contact
from dunbar.domain.errors import ValidationError
from dunbar.domain.models import (
    Address,
    ContactCategory,
    ContactStatus,
    MaritalStatus,
)

NOW_ISO = "2026-10-19T12:00:00.000Z"
TODAY = date(2026, 10, 19)


class TestBuildContact:
    def test_defaults(self):
        """name だけで作成でき、既定値が入る"""
        contact = build_contact("id-1", {"name": "  Jane  "}, NOW_ISO, TODAY)

        assert contact.id == "id-1"
        assert contact.name == "Jane"
        assert contact.status is ContactStatus.ACTIVE
        assert contact.category is ContactCategory.CLIENT
        assert contact.created_at == NOW_ISO
        assert contact.updated_at == NOW_ISO
        assert contact.communications == ()

    def test_name_is_required(self):
        with pytest.raises(ValidationError, match="Name is required"):
            build_contact("id-1", {"role": "x"}, NOW_ISO, TODAY)

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError, match="Name is required"):
            build_contact("id-1", {"name": "   "}, NOW_ISO, TODAY)

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValidationError, match="Unknown field"):
            build_contact("id-1", {"name": "Jane", "nickname": "J"}, NOW_ISO, TODAY)

    def test_parses_enums_and_phone(self):
        contact = build_contact(
            "id-1",
            {
                "name": "Jane",
                "status": "inactive",
                "category": "Kitchen Table",
                "phone_number": "(555) 123-4567",
            },
            NOW_ISO,
            TODAY,
        )

        assert contact.status is ContactStatus.INACTIVE
        assert contact.category is ContactCategory.KITCHEN_TABLE
        assert contact.phone_number == "5551234567"

    def test_unknown_category_is_rejected(self):
        with pytest.raises(ValidationError, match="Invalid category"):
            build_contact("id-1", {"name": "Jane", "category": "Friend"}, NOW_ISO, TODAY)

    def test_negative_kids_is_rejected(self):
        with pytest.raises(ValidationError, match="number_of_kids"):
            build_contact(
                "id-1",
                {"name": "Jane", "has_kids": True, "number_of_kids": -1},
                NOW_ISO,
                TODAY,
            )

    def test_kids_forced_to_zero_without_has_kids(self):
        contact = build_contact(
            "id-1", {"name": "Jane", "number_of_kids": 2}, NOW_ISO, TODAY
        )

        assert contact.number_of_kids == 0

    def test_marital_status_cleared_unless_woman(self):
        contact = build_contact(
            "id-1",
            {"name": "Jane", "category": "Client", "marital_status": "Single"},
            NOW_ISO,
            TODAY,
        )

        assert contact.marital_status is None

    def test_marital_status_kept_for_woman(self):
        contact = build_contact(
            "id-1",
            {"name": "Jane", "category": "Woman", "marital_status": "Single"},
            NOW_ISO,
            TODAY,
        )

        assert contact.marital_status is MaritalStatus.SINGLE

    def test_age_is_derived_from_birthday(self):
        contact = build_contact(
            "id-1", {"name": "Jane", "birthday": "1990-12-01"}, NOW_ISO, TODAY
        )

        assert contact.birthday == "1990-12-01"
        assert contact.age == 35

    def test_explicit_age_wins(self):
        contact = build_contact(
            "id-1", {"name": "Jane", "birthday": "1990-12-01", "age": 40}, NOW_ISO, TODAY
        )

        assert contact.age == 40

    def test_address_mapping(self):
        contact = build_contact(
            "id-1",
            {"name": "Jane", "address": {"street": "1 Main St", "zipCode": "12345"}},
            NOW_ISO,
            TODAY,
        )

        assert contact.address == Address(street="1 Main St", zip_code="12345")

    def test_invalid_last_contacted_at(self):
        with pytest.raises(ValidationError):
            build_contact(
                "id-1", {"name": "Jane", "last_contacted_at": "soon"}, NOW_ISO, TODAY
            )


class TestApplyChanges:
    def test_keeps_id_and_created_at(self, sample_contact):
        updated = apply_changes(sample_contact, {"role": "Manager"}, NOW_ISO, TODAY)

        assert updated.id == sample_contact.id
        assert updated.created_at == sample_contact.created_at
        assert updated.updated_at == NOW_ISO
        assert updated.role == "Manager"
        assert updated.communications == sample_contact.communications

    def test_clearing_name_is_rejected(self, sample_contact):
        with pytest.raises(ValidationError):
            apply_changes(sample_contact, {"name": ""}, NOW_ISO, TODAY)

    def test_turning_off_has_kids_resets_count(self, make_contact):
        contact = make_contact(has_kids=True, number_of_kids=3)

        updated = apply_changes(contact, {"has_kids": False}, NOW_ISO, TODAY)

        assert updated.number_of_kids == 0

    def test_age_recomputed_only_when_birthday_changes(self, make_contact):
        contact = make_contact(birthday="1990-12-01", age=99)

        unchanged = apply_changes(contact, {"role": "x"}, NOW_ISO, TODAY)
        changed = apply_changes(contact, {"birthday": "2000-01-01"}, NOW_ISO, TODAY)

        assert unchanged.age == 99
        assert changed.age == 26

    def test_has_kids_must_be_boolean(self, sample_contact):
        with pytest.raises(ValidationError, match="has_kids"):
            apply_changes(sample_contact, {"has_kids": "yes"}, NOW_ISO, TODAY)

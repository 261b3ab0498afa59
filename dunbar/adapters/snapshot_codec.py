"""ミラー状態 <-> JSON 互換 dict の変換（スナップショットの各実装で共有）"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from dunbar.domain.errors import SnapshotCorruptError
from dunbar.domain.models import (
    Address,
    ChangeType,
    Communication,
    CommunicationType,
    Contact,
    ContactCategory,
    ContactStatus,
    MaritalStatus,
    MirrorState,
    PendingChange,
)

SNAPSHOT_VERSION = 1


def encode_state(state: MirrorState) -> dict[str, Any]:
    """
    状態を保存用の dict にする。

    syncing / loading は実行中フラグなので保存しない。
    """
    return {
        "version": SNAPSHOT_VERSION,
        "contacts": [encode_contact(c) for c in state.contacts],
        "selected_contact_id": state.selected_contact_id,
        "pending_changes": [
            {
                "type": ch.type.value,
                "id": ch.id,
                "timestamp": ch.timestamp,
                "data": encode_contact(ch.data) if ch.data is not None else None,
            }
            for ch in state.pending_changes
        ],
        "offline_mode": state.offline_mode,
        "error": state.error,
    }


def decode_state(data: Any) -> MirrorState:
    """
    保存された dict から状態を復元する。

    Raises:
        SnapshotCorruptError: 形式が不正な場合
    """
    if not isinstance(data, dict):
        raise SnapshotCorruptError("Snapshot is not an object")
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise SnapshotCorruptError(f"Unsupported snapshot version: {version!r}")

    try:
        return MirrorState(
            contacts=tuple(decode_contact(c) for c in data.get("contacts", [])),
            selected_contact_id=data.get("selected_contact_id"),
            pending_changes=tuple(
                PendingChange(
                    type=ChangeType(ch["type"]),
                    id=str(ch["id"]),
                    timestamp=int(ch["timestamp"]),
                    data=decode_contact(ch["data"]) if ch.get("data") else None,
                )
                for ch in data.get("pending_changes", [])
            ),
            offline_mode=bool(data.get("offline_mode", False)),
            error=data.get("error"),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SnapshotCorruptError(f"Malformed snapshot: {e}") from e


def encode_contact(contact: Contact) -> dict[str, Any]:
    return {
        "id": contact.id,
        "name": contact.name,
        "role": contact.role,
        "status": contact.status.value,
        "category": contact.category.value,
        "description": contact.description,
        "picture": contact.picture,
        "birthday": contact.birthday,
        "age": contact.age,
        "has_kids": contact.has_kids,
        "number_of_kids": contact.number_of_kids,
        "marital_status": contact.marital_status.value if contact.marital_status else None,
        "additional_details": contact.additional_details,
        "phone_number": contact.phone_number,
        "email": contact.email,
        "address": asdict(contact.address),
        "last_contacted_at": contact.last_contacted_at,
        "created_at": contact.created_at,
        "updated_at": contact.updated_at,
        "communications": [
            {
                "id": c.id,
                "types": sorted(t.value for t in c.types),
                "notes": c.notes,
                "date": c.date,
            }
            for c in contact.communications
        ],
        "_synced": contact.synced,
        "_deleted": contact.deleted,
    }


def decode_contact(data: dict[str, Any]) -> Contact:
    marital_status = data.get("marital_status")
    return Contact(
        id=str(data["id"]),
        name=str(data["name"]),
        created_at=str(data["created_at"]),
        updated_at=str(data["updated_at"]),
        role=data.get("role", ""),
        status=ContactStatus(data.get("status", ContactStatus.ACTIVE.value)),
        category=ContactCategory(data.get("category", ContactCategory.CLIENT.value)),
        description=data.get("description", ""),
        picture=data.get("picture"),
        birthday=data.get("birthday"),
        age=data.get("age"),
        has_kids=bool(data.get("has_kids", False)),
        number_of_kids=int(data.get("number_of_kids", 0)),
        marital_status=MaritalStatus(marital_status) if marital_status else None,
        additional_details=data.get("additional_details", ""),
        phone_number=data.get("phone_number", ""),
        email=data.get("email", ""),
        address=Address(**data.get("address", {})),
        last_contacted_at=data.get("last_contacted_at"),
        communications=tuple(
            Communication(
                id=str(c["id"]),
                types=frozenset(CommunicationType(t) for t in c["types"]),
                notes=c.get("notes", ""),
                date=str(c["date"]),
            )
            for c in data.get("communications", [])
        ),
        synced=bool(data.get("_synced", True)),
        deleted=bool(data.get("_deleted", False)),
    )

"""Firestore Snapshot Adapter

SnapshotStore ABCの Firestore 実装。

Firestore コレクション構造:
  snapshots/{slot}    ← {"payload": <JSON文字列>, "updated_at": SERVER_TIMESTAMP}
"""

from __future__ import annotations

import json
import logging

from google.cloud import firestore

from dunbar.adapters.snapshot_codec import decode_state, encode_state
from dunbar.domain.errors import SnapshotCorruptError
from dunbar.domain.models import MirrorState
from dunbar.domain.ports import SnapshotStore

logger = logging.getLogger(__name__)

_SNAPSHOTS = "snapshots"
DEFAULT_SLOT = "contactManagementData"


class FirestoreSnapshotStore(SnapshotStore):
    """
    Firestore の1ドキュメントをスナップショットのスロットとして使う。

    ネストした dict をそのまま書くとフィールド数の上限に近づくため、
    JSON文字列として1フィールドに保存する。
    """

    def __init__(self, db: firestore.Client, slot: str = DEFAULT_SLOT) -> None:
        """
        Args:
            db: 初期化済みの Firestore クライアント
            slot: スナップショットのドキュメントID
        """
        self._db = db
        self._slot = slot

    def _ref(self):
        return self._db.collection(_SNAPSHOTS).document(self._slot)

    def load(self) -> MirrorState | None:
        snap = self._ref().get()
        if not snap.exists:
            logger.info("No snapshot in Firestore: slot=%s", self._slot)
            return None

        payload = (snap.to_dict() or {}).get("payload")
        if not isinstance(payload, str):
            raise SnapshotCorruptError(f"Snapshot {self._slot} has no payload")
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise SnapshotCorruptError(f"Snapshot {self._slot} is not valid JSON") from e
        return decode_state(data)

    def save(self, state: MirrorState) -> None:
        self._ref().set(
            {
                "payload": json.dumps(encode_state(state), ensure_ascii=False),
                "updated_at": firestore.SERVER_TIMESTAMP,
            }
        )
        logger.debug("Saved snapshot to Firestore: slot=%s", self._slot)

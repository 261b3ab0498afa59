"""JSON File Snapshot Adapter

SnapshotStore ABCのローカルファイル実装。
書き込みは一時ファイル + os.replace で行い、途中で落ちても前回の内容が残る。
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from dunbar.adapters.snapshot_codec import decode_state, encode_state
from dunbar.domain.errors import SnapshotCorruptError
from dunbar.domain.models import MirrorState
from dunbar.domain.ports import SnapshotStore

logger = logging.getLogger(__name__)


class JsonFileSnapshotStore(SnapshotStore):
    """1つのJSONファイルをスナップショットのスロットとして使う"""

    def __init__(self, path: str | Path) -> None:
        """
        Args:
            path: スナップショットファイルのパス（親ディレクトリは自動作成）
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> MirrorState | None:
        if not self._path.exists():
            logger.info("No snapshot at %s", self._path)
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SnapshotCorruptError(f"Snapshot {self._path} is not valid JSON") from e
        return decode_state(data)

    def save(self, state: MirrorState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(encode_state(state), ensure_ascii=False, indent=2)

        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("Saved snapshot to %s (%d contacts)", self._path, len(state.contacts))

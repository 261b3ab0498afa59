"""ConnectivityMonitor - オフライン中の到達性チェック"""

from __future__ import annotations

import logging

from dunbar.domain.ports import ConnectivityProbe
from dunbar.services.mirror import MirrorStore, NoticeSet

logger = logging.getLogger(__name__)

CONNECTION_RESTORED_NOTICE = "Connection restored. Run sync to upload your changes."


class ConnectivityMonitor:
    """
    オフライン中に定期的に呼ばれ、レコードストアに届くようになったら通知する。

    オンラインへの切り替えは行わない（同期が成功した時だけ戻る）。
    """

    def __init__(self, mirror: MirrorStore, probe: ConnectivityProbe) -> None:
        self._mirror = mirror
        self._probe = probe

    def check(self) -> bool:
        """
        到達性を確認する。

        Returns:
            bool: レコードストアに到達できれば True
        """
        available = self._probe.check_availability()
        state = self._mirror.state
        logger.debug("Connectivity check: available=%s offline=%s", available, state.offline_mode)

        if (
            available
            and state.offline_mode
            and not state.syncing
            and state.error != CONNECTION_RESTORED_NOTICE
        ):
            logger.info("Record store reachable again while offline")
            self._mirror.commit(NoticeSet(CONNECTION_RESTORED_NOTICE))
        return available

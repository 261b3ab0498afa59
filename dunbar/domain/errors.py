"""ドメイン固有の例外クラス

アダプタはライブラリ固有の例外をここで定義した型に変換して送出する。
サービス層はメッセージ文字列ではなく例外の型で分岐する。
"""


class DunbarError(Exception):
    """Dunbar CRM の基底例外"""

    pass


class ConnectivityError(DunbarError):
    """レコードストアに到達できない（ネットワーク断・タイムアウト・5xx等）"""

    pass


class ValidationError(DunbarError):
    """入力値またはレコードストアによる拒否（4xx等）"""

    pass


class ContactLimitError(ValidationError):
    """連絡先数が上限（ダンバー数）に達している"""

    pass


class NotFoundError(DunbarError):
    """対象の連絡先が存在しない"""

    pass


class SnapshotCorruptError(DunbarError):
    """永続化されたスナップショットが読み取れない"""

    pass


class ConfigError(DunbarError, ValueError):
    """設定値の不足・不正"""

    pass

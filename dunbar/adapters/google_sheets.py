"""Google Sheets Contact Store Adapter

ContactStore / ConnectivityProbe ABCの実装。
スプレッドシートの Contacts シートと Communications シートをレコードストアとして使う。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.credentials import Credentials
from google.auth.exceptions import TransportError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from dunbar.domain.errors import ConnectivityError, NotFoundError, ValidationError
from dunbar.domain.formatting import digits_only, format_address, normalize_birthday
from dunbar.domain.models import Address, Communication, CommunicationType, Contact
from dunbar.domain.parsing import (
    Fallback,
    parse_category,
    parse_communication_types,
    parse_marital_status,
    parse_status,
)
from dunbar.domain.ports import ConnectivityProbe, ContactStore

logger = logging.getLogger(__name__)

CONTACTS_SHEET = "Contacts"
COMMUNICATIONS_SHEET = "Communications"
CONTACTS_RANGE = f"{CONTACTS_SHEET}!A2:S"
COMMUNICATIONS_RANGE = f"{COMMUNICATIONS_SHEET}!A2:E"

DEFAULT_STORE_TIMEOUT_SECONDS = 30.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0

# 接続エラーとして扱うHTTPステータス（それ以外の4xxは入力エラー）
_RETRYABLE_STATUSES = {408, 429}
_TRUE_VALUES = {"true", "yes", "1", "y"}


def _build_service(credentials: Credentials, timeout: float) -> Any:
    """タイムアウト付きの Sheets API クライアントを作る"""
    http = google_auth_httplib2.AuthorizedHttp(
        credentials, http=httplib2.Http(timeout=timeout)
    )
    return build("sheets", "v4", http=http, cache_discovery=False)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Google API の例外をドメインのエラー型に変換する"""
    try:
        yield
    except HttpError as e:
        status = int(e.resp.status)
        logger.warning("Sheets API %s failed: HTTP %d", operation, status)
        if status == 404:
            raise NotFoundError(f"{operation}: not found") from e
        if status in _RETRYABLE_STATUSES or status >= 500:
            raise ConnectivityError(f"{operation}: HTTP {status}") from e
        raise ValidationError(f"{operation}: rejected with HTTP {status}") from e
    except (httplib2.HttpLib2Error, TransportError, OSError) as e:
        logger.warning("Sheets API %s failed: %s", operation, e)
        raise ConnectivityError(f"{operation}: {e}") from e


class GoogleSheetsContactStore(ContactStore):
    """
    Google Sheetsを使ったレコードストア実装。

    Sheetsの構造（1行目はヘッダー）:
    - Contactsシート: ID, Name, Role, Status, Category, Description, Picture,
      Birthday, Age, Address, Has Kids, Number Of Kids, Marital Status,
      Additional Details, Phone, Email, Last Contacted At, Created At, Updated At
    - Communicationsシート: ID, Contact ID, Types, Notes, Date

    住所は表示用の1文字列として保存されるため、読み戻すと street に入る。
    """

    def __init__(
        self,
        credentials: Credentials,
        spreadsheet_id: str,
        timeout: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ):
        """
        Args:
            credentials: Google API認証情報
            spreadsheet_id: Google SheetsのID
            timeout: 1リクエストあたりのソケットタイムアウト（秒）
        """
        if not credentials:
            raise ValueError("credentials is required")
        if not spreadsheet_id:
            raise ValueError("spreadsheet_id is required")

        self._service = _build_service(credentials, timeout)
        self._spreadsheet_id = spreadsheet_id
        self._sheet_ids: dict[str, int] = {}

    # ── ContactStore ─────────────────────────────────────────────────────────

    def list_contacts(self) -> list[Contact]:
        with _translate_errors("list_contacts"):
            contact_rows, communication_rows = self._read_all()

        communications = self._group_communications(communication_rows)
        contacts = [
            self._row_to_contact(row, communications.get(row[0], []))
            for row in contact_rows
            if row and row[0]
        ]
        logger.info("Loaded %d contacts from Google Sheets", len(contacts))
        return contacts

    def get_contact(self, contact_id: str) -> Contact | None:
        with _translate_errors("get_contact"):
            contact_rows, communication_rows = self._read_all()

        for row in contact_rows:
            if row and row[0] == contact_id:
                communications = self._group_communications(
                    r for r in communication_rows if len(r) > 1 and r[1] == contact_id
                )
                return self._row_to_contact(row, communications.get(contact_id, []))
        return None

    def create_contact(self, contact: Contact) -> Contact:
        with _translate_errors("create_contact"):
            row_number = self._find_contact_row(contact.id)
            if row_number is not None:
                # 前回の作成が書き込み後に失敗していた場合は同じ行を書き直す
                added = self._write_row(row_number, contact.id, contact)
            else:
                self._append(CONTACTS_SHEET, [self._contact_to_row(contact)])
                if contact.communications:
                    self._append(
                        COMMUNICATIONS_SHEET,
                        [self._communication_to_row(contact.id, c) for c in contact.communications],
                    )
        if row_number is not None:
            logger.info(
                "Contact %s already in Google Sheets, rewrote row %d (%d new communications)",
                contact.id,
                row_number,
                added,
            )
        else:
            logger.info("Created contact %s in Google Sheets", contact.id)
        return self._read_back(contact.id)

    def update_contact(self, contact_id: str, contact: Contact) -> Contact:
        with _translate_errors("update_contact"):
            row_number = self._find_contact_row(contact_id)
            if row_number is None:
                raise NotFoundError(f"Contact not found: {contact_id}")
            added = self._write_row(row_number, contact_id, contact)
        logger.info(
            "Updated contact %s in Google Sheets (%d new communications)",
            contact_id,
            added,
        )
        return self._read_back(contact_id)

    def delete_contact(self, contact_id: str) -> bool:
        with _translate_errors("delete_contact"):
            row_number = self._find_contact_row(contact_id)
            if row_number is None:
                logger.info("Contact %s not found in Google Sheets", contact_id)
                return False

            communication_rows = self._column_values(f"{COMMUNICATIONS_SHEET}!B:B")
            communication_numbers = [
                i for i, value in enumerate(communication_rows, start=1)
                if value == contact_id
            ]

            requests = [
                self._delete_row_request(COMMUNICATIONS_SHEET, n)
                for n in sorted(communication_numbers, reverse=True)
            ]
            requests.append(self._delete_row_request(CONTACTS_SHEET, row_number))
            self._service.spreadsheets().batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={"requests": requests},
            ).execute()

        logger.info(
            "Deleted contact %s and %d communications from Google Sheets",
            contact_id,
            len(communication_numbers),
        )
        return True

    def add_communication(
        self, contact_id: str, communication: Communication
    ) -> Communication:
        with _translate_errors("add_communication"):
            row_number = self._find_contact_row(contact_id)
            if row_number is None:
                raise NotFoundError(f"Contact not found: {contact_id}")

            self._append(
                COMMUNICATIONS_SHEET,
                [self._communication_to_row(contact_id, communication)],
            )
            self._service.spreadsheets().values().update(
                spreadsheetId=self._spreadsheet_id,
                range=f"{CONTACTS_SHEET}!Q{row_number}",
                valueInputOption="RAW",
                body={"values": [[communication.date]]},
            ).execute()
        logger.info("Added communication %s to contact %s", communication.id, contact_id)
        return communication

    # ── Sheets access ────────────────────────────────────────────────────────

    def _read_all(self) -> tuple[list[list[str]], list[list[str]]]:
        result = self._service.spreadsheets().values().batchGet(
            spreadsheetId=self._spreadsheet_id,
            ranges=[CONTACTS_RANGE, COMMUNICATIONS_RANGE],
        ).execute()
        value_ranges = result.get("valueRanges", [])
        contact_rows = value_ranges[0].get("values", []) if value_ranges else []
        communication_rows = (
            value_ranges[1].get("values", []) if len(value_ranges) > 1 else []
        )
        return contact_rows, communication_rows

    def _read_back(self, contact_id: str) -> Contact:
        contact = self.get_contact(contact_id)
        if contact is None:
            raise NotFoundError(f"Contact not found after write: {contact_id}")
        return contact

    def _column_values(self, range_: str) -> list[str]:
        result = self._service.spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id,
            range=range_,
        ).execute()
        return [row[0] if row else "" for row in result.get("values", [])]

    def _find_contact_row(self, contact_id: str) -> int | None:
        """連絡先の行番号（1始まり）。見つからなければ None"""
        for number, value in enumerate(self._column_values(f"{CONTACTS_SHEET}!A:A"), start=1):
            if number > 1 and value == contact_id:
                return number
        return None

    def _communication_ids(self, contact_id: str) -> set[str]:
        result = self._service.spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id,
            range=f"{COMMUNICATIONS_SHEET}!A2:B",
        ).execute()
        return {
            row[0]
            for row in result.get("values", [])
            if len(row) > 1 and row[1] == contact_id
        }

    def _write_row(self, row_number: int, contact_id: str, contact: Contact) -> int:
        """
        既存の連絡先行を書き直し、未登録のコミュニケーションだけを追記する。

        Returns:
            int: 追記したコミュニケーションの件数
        """
        self._service.spreadsheets().values().update(
            spreadsheetId=self._spreadsheet_id,
            range=f"{CONTACTS_SHEET}!A{row_number}:S{row_number}",
            valueInputOption="RAW",
            body={"values": [self._contact_to_row(_with_id(contact, contact_id))]},
        ).execute()

        # コミュニケーションは追記のみ
        known = self._communication_ids(contact_id)
        missing = [c for c in contact.communications if c.id not in known]
        if missing:
            self._append(
                COMMUNICATIONS_SHEET,
                [self._communication_to_row(contact_id, c) for c in missing],
            )
        return len(missing)

    def _append(self, sheet: str, rows: list[list[Any]]) -> None:
        self._service.spreadsheets().values().append(
            spreadsheetId=self._spreadsheet_id,
            range=f"{sheet}!A1",
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        ).execute()

    def _sheet_id(self, sheet: str) -> int:
        """シート名から数値の sheetId を引く（キャッシュする）"""
        if not self._sheet_ids:
            result = self._service.spreadsheets().get(
                spreadsheetId=self._spreadsheet_id,
                fields="sheets.properties",
            ).execute()
            for entry in result.get("sheets", []):
                props = entry.get("properties", {})
                self._sheet_ids[props.get("title")] = props.get("sheetId")
        if sheet not in self._sheet_ids:
            raise ValidationError(f"Sheet not found: {sheet}")
        return self._sheet_ids[sheet]

    def _delete_row_request(self, sheet: str, row_number: int) -> dict[str, Any]:
        return {
            "deleteDimension": {
                "range": {
                    "sheetId": self._sheet_id(sheet),
                    "dimension": "ROWS",
                    "startIndex": row_number - 1,
                    "endIndex": row_number,
                }
            }
        }

    # ── Row mapping ──────────────────────────────────────────────────────────

    @staticmethod
    def _contact_to_row(contact: Contact) -> list[Any]:
        return [
            contact.id,
            contact.name,
            contact.role,
            contact.status.value,
            contact.category.value,
            contact.description,
            contact.picture or "",
            contact.birthday or "",
            "" if contact.age is None else contact.age,
            format_address(contact.address),
            contact.has_kids,
            contact.number_of_kids,
            contact.marital_status.value if contact.marital_status else "",
            contact.additional_details,
            contact.phone_number,
            contact.email,
            contact.last_contacted_at or "",
            contact.created_at,
            contact.updated_at,
        ]

    @staticmethod
    def _communication_to_row(contact_id: str, communication: Communication) -> list[Any]:
        types = sorted(communication.types, key=_type_order)
        return [
            communication.id,
            contact_id,
            ", ".join(t.value for t in types),
            communication.notes,
            communication.date,
        ]

    def _group_communications(self, rows) -> dict[str, list[Communication]]:
        grouped: dict[str, list[Communication]] = {}
        for row in rows:
            if len(row) < 2 or not row[0]:
                continue
            cell = _cells(row, 5)
            parsed = parse_communication_types(cell[2])
            if isinstance(parsed, Fallback):
                logger.warning(
                    "Unknown communication types %r on %s, keeping %s",
                    parsed.raw,
                    cell[0],
                    sorted(t.value for t in parsed.value),
                )
            grouped.setdefault(cell[1], []).append(
                Communication(
                    id=cell[0],
                    types=parsed.value,
                    notes=cell[3],
                    date=cell[4],
                )
            )
        for communications in grouped.values():
            communications.sort(key=lambda c: c.date, reverse=True)
        return grouped

    def _row_to_contact(
        self, row: list[str], communications: list[Communication]
    ) -> Contact:
        cell = _cells(row, 19)
        contact_id = cell[0]

        status = parse_status(cell[3])
        category = parse_category(cell[4])
        marital_status = parse_marital_status(cell[12])
        for label, result in (
            ("status", status),
            ("category", category),
            ("marital status", marital_status),
        ):
            if isinstance(result, Fallback) and result.raw:
                logger.warning(
                    "Unknown %s %r on contact %s, using %s",
                    label,
                    result.raw,
                    contact_id,
                    result.value,
                )

        return Contact(
            id=contact_id,
            name=cell[1],
            role=cell[2],
            status=status.value,
            category=category.value,
            description=cell[5],
            picture=cell[6] or None,
            birthday=_birthday(cell[7], contact_id),
            age=_int_or_none(cell[8]),
            address=Address(street=cell[9]),
            has_kids=str(cell[10]).strip().lower() in _TRUE_VALUES,
            number_of_kids=_int_or_none(cell[11]) or 0,
            marital_status=marital_status.value,
            additional_details=cell[13],
            phone_number=digits_only(cell[14]),
            email=cell[15],
            last_contacted_at=cell[16] or None,
            created_at=cell[17],
            updated_at=cell[18],
            communications=tuple(communications),
        )


class GoogleSheetsConnectivityProbe(ConnectivityProbe):
    """Contacts シートの先頭セルを読めるかで到達性を判定する"""

    def __init__(
        self,
        credentials: Credentials,
        spreadsheet_id: str,
        timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ):
        if not credentials:
            raise ValueError("credentials is required")
        if not spreadsheet_id:
            raise ValueError("spreadsheet_id is required")

        self._service = _build_service(credentials, timeout)
        self._spreadsheet_id = spreadsheet_id

    def check_availability(self) -> bool:
        try:
            self._service.spreadsheets().values().get(
                spreadsheetId=self._spreadsheet_id,
                range=f"{CONTACTS_SHEET}!A1:A1",
            ).execute()
        except Exception as e:
            logger.info("Connectivity probe failed: %s", e)
            return False
        return True


def _with_id(contact: Contact, contact_id: str) -> Contact:
    """行を書き換える時は引数のIDを優先する"""
    if contact.id == contact_id:
        return contact
    return replace(contact, id=contact_id)


def _cells(row: list[Any], width: int) -> list[str]:
    """Sheets API は末尾の空セルを返さないので幅を揃える"""
    padded = ["" if v is None else str(v) for v in row[:width]]
    return padded + [""] * (width - len(padded))


def _int_or_none(value: str) -> int | None:
    text = str(value).strip()
    if not text:
        return None
    try:
        number = int(float(text))
    except ValueError:
        logger.warning("Ignoring non-numeric value %r", value)
        return None
    return number if number >= 0 else None


def _birthday(value: str, contact_id: str) -> str | None:
    try:
        return normalize_birthday(value)
    except ValidationError:
        logger.warning("Ignoring invalid birthday %r on contact %s", value, contact_id)
        return None


def _type_order(communication_type: CommunicationType) -> int:
    return list(CommunicationType).index(communication_type)

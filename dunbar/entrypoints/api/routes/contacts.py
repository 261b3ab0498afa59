"""連絡先 API ルート

GET    /api/contacts                          → 200 [Contact...]
POST   /api/contacts                          → 201 { contact, queued, ... }
GET    /api/contacts/{id}                     → 200 Contact
PATCH  /api/contacts/{id}                     → 200 { contact, queued, ... }
DELETE /api/contacts/{id}                     → 200 { queued, ... }
POST   /api/contacts/{id}/communications      → 201 { contact, queued, ... }
POST   /api/contacts/{id}/contacted           → 200 { contact, queued, ... }

オフライン中の変更はキューされ、レスポンスの queued が true になる。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from dunbar.domain.formatting import format_address, format_phone_number
from dunbar.domain.intents import (
    CreateContact,
    DeleteContact,
    LogCommunication,
    MarkContacted,
    UpdateContact,
)
from dunbar.domain.models import Contact
from dunbar.entrypoints.api.deps import get_contact_book, require_password
from dunbar.services.contact_book import ContactBook
from dunbar.services.dispatcher import DispatchResult

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/contacts",
    tags=["contacts"],
    dependencies=[Depends(require_password)],
)

_ERROR_STATUS = {
    "validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "limit": status.HTTP_409_CONFLICT,
}


# ── Request models ───────────────────────────────────────────────────────────


class AddressModel(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class ContactFields(BaseModel):
    """作成・更新で共通の入力フィールド（値の検証はドメイン側で行う）"""

    role: str | None = None
    status: str | None = None
    category: str | None = None
    description: str | None = None
    picture: str | None = None
    birthday: str | None = None
    age: int | None = None
    has_kids: bool | None = None
    number_of_kids: int | None = None
    marital_status: str | None = None
    additional_details: str | None = None
    phone_number: str | None = None
    email: str | None = None
    address: AddressModel | None = None
    last_contacted_at: str | None = None


class ContactCreateRequest(ContactFields):
    name: str


class ContactUpdateRequest(ContactFields):
    name: str | None = None


class CommunicationRequest(BaseModel):
    types: list[str]
    notes: str = ""
    date: str | None = None


class ContactedRequest(BaseModel):
    at: str | None = None


# ── Response models ──────────────────────────────────────────────────────────


class CommunicationResponse(BaseModel):
    id: str
    types: list[str]
    notes: str
    date: str


class ContactResponse(BaseModel):
    id: str
    name: str
    role: str
    status: str
    category: str
    description: str
    picture: str | None
    birthday: str | None
    age: int | None
    has_kids: bool
    number_of_kids: int
    marital_status: str | None
    additional_details: str
    phone_number: str
    phone_display: str
    email: str
    address: AddressModel
    address_display: str
    last_contacted_at: str | None
    created_at: str
    updated_at: str
    communications: list[CommunicationResponse]
    synced: bool


class MutationResponse(BaseModel):
    contact_id: str | None
    queued: bool
    went_offline: bool
    contact: ContactResponse | None = None


def to_contact_response(contact: Contact) -> ContactResponse:
    return ContactResponse(
        id=contact.id,
        name=contact.name,
        role=contact.role,
        status=contact.status.value,
        category=contact.category.value,
        description=contact.description,
        picture=contact.picture,
        birthday=contact.birthday,
        age=contact.age,
        has_kids=contact.has_kids,
        number_of_kids=contact.number_of_kids,
        marital_status=contact.marital_status.value if contact.marital_status else None,
        additional_details=contact.additional_details,
        phone_number=contact.phone_number,
        phone_display=format_phone_number(contact.phone_number),
        email=contact.email,
        address=AddressModel(
            street=contact.address.street,
            city=contact.address.city,
            state=contact.address.state,
            zip_code=contact.address.zip_code,
            country=contact.address.country,
        ),
        address_display=format_address(contact.address),
        last_contacted_at=contact.last_contacted_at,
        created_at=contact.created_at,
        updated_at=contact.updated_at,
        communications=[
            CommunicationResponse(
                id=c.id,
                types=sorted(t.value for t in c.types),
                notes=c.notes,
                date=c.date,
            )
            for c in contact.communications
        ],
        synced=contact.synced,
    )


def _to_mutation_response(book: ContactBook, result: DispatchResult) -> MutationResponse:
    """失敗した結果は HTTPException にする"""
    if not result.ok:
        raise HTTPException(
            status_code=_ERROR_STATUS.get(result.error_kind, status.HTTP_400_BAD_REQUEST),
            detail=result.error,
        )
    contact = book.state.find(result.contact_id) if result.contact_id else None
    return MutationResponse(
        contact_id=result.contact_id,
        queued=result.queued,
        went_offline=result.went_offline,
        contact=to_contact_response(contact) if contact and not contact.deleted else None,
    )


# ── Routes ───────────────────────────────────────────────────────────────────


@router.get("", response_model=list[ContactResponse])
async def list_contacts(
    book: ContactBook = Depends(get_contact_book),
) -> list[ContactResponse]:
    """連絡先一覧を返す（削除待ちは含めない）"""
    return [to_contact_response(c) for c in book.state.visible_contacts]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=MutationResponse)
async def create_contact(
    body: ContactCreateRequest,
    book: ContactBook = Depends(get_contact_book),
) -> MutationResponse:
    """連絡先を作成する"""
    result = book.dispatch(CreateContact(body.model_dump(exclude_unset=True)))
    logger.info("Contact create: id=%s ok=%s queued=%s", result.contact_id, result.ok, result.queued)
    return _to_mutation_response(book, result)


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: str,
    book: ContactBook = Depends(get_contact_book),
) -> ContactResponse:
    """連絡先を1件返す"""
    contact = book.state.find(contact_id)
    if contact is None or contact.deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found"
        )
    return to_contact_response(contact)


@router.patch("/{contact_id}", response_model=MutationResponse)
async def update_contact(
    contact_id: str,
    body: ContactUpdateRequest,
    book: ContactBook = Depends(get_contact_book),
) -> MutationResponse:
    """連絡先を更新する（送られたフィールドのみ）"""
    result = book.dispatch(
        UpdateContact(contact_id, body.model_dump(exclude_unset=True))
    )
    logger.info("Contact update: id=%s ok=%s queued=%s", contact_id, result.ok, result.queued)
    return _to_mutation_response(book, result)


@router.delete("/{contact_id}", response_model=MutationResponse)
async def delete_contact(
    contact_id: str,
    book: ContactBook = Depends(get_contact_book),
) -> MutationResponse:
    """連絡先を削除する"""
    result = book.dispatch(DeleteContact(contact_id))
    logger.info("Contact delete: id=%s ok=%s queued=%s", contact_id, result.ok, result.queued)
    return _to_mutation_response(book, result)


@router.post(
    "/{contact_id}/communications",
    status_code=status.HTTP_201_CREATED,
    response_model=MutationResponse,
)
async def log_communication(
    contact_id: str,
    body: CommunicationRequest,
    book: ContactBook = Depends(get_contact_book),
) -> MutationResponse:
    """コミュニケーションを記録する"""
    result = book.dispatch(
        LogCommunication(
            contact_id=contact_id,
            types=body.types,
            notes=body.notes,
            date=body.date,
        )
    )
    return _to_mutation_response(book, result)


@router.post("/{contact_id}/contacted", response_model=MutationResponse)
async def mark_contacted(
    contact_id: str,
    body: ContactedRequest | None = None,
    book: ContactBook = Depends(get_contact_book),
) -> MutationResponse:
    """最終連絡日時を更新する"""
    at = body.at if body else None
    result = book.dispatch(MarkContacted(contact_id, at=at))
    return _to_mutation_response(book, result)

"""MutationDispatcher のテスト"""

from dataclasses import replace

import pytest

from dunbar.domain.errors import ConnectivityError, NotFoundError, ValidationError
from dunbar.domain.intents import (
    CreateContact,
    DeleteContact,
    DismissNotice,
    LogCommunication,
    MarkContacted,
    SelectContact,
    UpdateContact,
)
from dunbar.domain.models import ChangeType, CommunicationType, MirrorState, PendingChange
from dunbar.services.dispatcher import NETWORK_LOST_NOTICE, MutationDispatcher
from dunbar.services.mirror import MirrorStore

NOW_ISO = "2026-10-19T12:00:00.000Z"


@pytest.fixture
def mirror(snapshot_store, sample_contact, sample_contact_bob) -> MirrorStore:
    """オンライン・2件のミラー"""
    return MirrorStore(
        snapshot_store, MirrorState(contacts=(sample_contact, sample_contact_bob))
    )


@pytest.fixture
def offline_mirror(snapshot_store, sample_contact, sample_contact_bob) -> MirrorStore:
    return MirrorStore(
        snapshot_store,
        MirrorState(contacts=(sample_contact, sample_contact_bob), offline_mode=True),
    )


@pytest.fixture
def make_dispatcher(fake_store, clock, id_factory):
    def _make(mirror: MirrorStore, contact_limit: int = 150) -> MutationDispatcher:
        return MutationDispatcher(
            mirror,
            fake_store,
            contact_limit=contact_limit,
            clock=clock,
            id_factory=id_factory,
        )

    return _make


class TestCreateContact:
    def test_online_create_writes_through(self, mirror, fake_store, make_dispatcher):
        """オンラインではストアに作成され、ミラーは同期済みになる"""
        # Arrange
        dispatcher = make_dispatcher(mirror)

        # Act
        result = dispatcher.dispatch(CreateContact({"name": "Carol"}))

        # Assert
        assert result.ok is True
        assert result.contact_id == "new-1"
        assert result.queued is False
        assert "new-1" in fake_store.contacts
        created = mirror.state.find("new-1")
        assert created.synced is True
        assert created.created_at == NOW_ISO
        assert [c.id for c in mirror.state.contacts] == ["c1", "c2", "new-1"]

    def test_offline_create_is_queued(self, offline_mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(offline_mirror)

        result = dispatcher.dispatch(CreateContact({"name": "Carol"}))

        assert result.ok is True
        assert result.queued is True
        assert fake_store.calls == []
        state = offline_mirror.state
        assert state.find("new-1").synced is False
        assert state.pending_for("new-1").type is ChangeType.CREATE
        assert state.pending_for("new-1").data.name == "Carol"

    def test_connectivity_error_goes_offline(self, mirror, fake_store, make_dispatcher):
        """接続エラーならオフラインに切り替え、作成をキューする"""
        fake_store.fail_next["create_contact"] = [ConnectivityError("timeout")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(CreateContact({"name": "Carol"}))

        assert result.ok is True
        assert result.went_offline is True
        assert result.queued is True
        state = mirror.state
        assert state.offline_mode is True
        assert state.error == NETWORK_LOST_NOTICE
        assert state.find("new-1").synced is False
        assert state.pending_for("new-1").type is ChangeType.CREATE

    def test_invalid_input_changes_nothing(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)
        before = mirror.state.contacts

        result = dispatcher.dispatch(CreateContact({"name": "  "}))

        assert result.ok is False
        assert result.error_kind == "validation"
        assert mirror.state.contacts == before
        assert mirror.state.error == "Name is required"
        assert fake_store.calls == []

    def test_remote_rejection_rolls_back(self, mirror, fake_store, make_dispatcher):
        fake_store.fail_next["create_contact"] = [ValidationError("bad row")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(CreateContact({"name": "Carol"}))

        assert result.ok is False
        assert result.error_kind == "validation"
        assert mirror.state.find("new-1") is None
        assert mirror.state.offline_mode is False

    def test_contact_limit(self, snapshot_store, make_contact, fake_store, make_dispatcher):
        """上限に達していれば状態を変えずに拒否する"""
        contacts = tuple(make_contact(f"c{i}", f"Person {i}") for i in range(3))
        mirror = MirrorStore(snapshot_store, MirrorState(contacts=contacts))
        dispatcher = make_dispatcher(mirror, contact_limit=3)

        result = dispatcher.dispatch(CreateContact({"name": "One too many"}))

        assert result.ok is False
        assert result.error_kind == "limit"
        assert "Dunbar's number" in result.error
        assert len(mirror.state.contacts) == 3
        assert fake_store.calls == []

    def test_tombstones_do_not_count_toward_limit(
        self, snapshot_store, make_contact, make_dispatcher
    ):
        contacts = (
            make_contact("c1", "A"),
            make_contact("c2", "B", deleted=True, synced=False),
        )
        mirror = MirrorStore(snapshot_store, MirrorState(contacts=contacts, offline_mode=True))
        dispatcher = make_dispatcher(mirror, contact_limit=2)

        result = dispatcher.dispatch(CreateContact({"name": "C"}))

        assert result.ok is True

    def test_default_limit_message(self, snapshot_store, make_contact, make_dispatcher):
        contacts = tuple(make_contact(f"c{i}", f"P{i}") for i in range(150))
        mirror = MirrorStore(snapshot_store, MirrorState(contacts=contacts))
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(CreateContact({"name": "Extra"}))

        assert result.error == (
            "You've reached the maximum of 150 contacts (Dunbar's number). "
            "Please archive some contacts first."
        )


class TestUpdateContact:
    def test_online_update(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(UpdateContact("c1", {"role": "Manager"}))

        assert result.ok is True
        assert fake_store.contacts["c1"].role == "Manager"
        updated = mirror.state.find("c1")
        assert updated.role == "Manager"
        assert updated.synced is True
        assert updated.updated_at == NOW_ISO
        assert mirror.state.index_of("c1") == 0

    def test_offline_update_is_queued(self, offline_mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(offline_mirror)

        result = dispatcher.dispatch(UpdateContact("c1", {"role": "Manager"}))

        assert result.queued is True
        assert fake_store.calls == []
        pending = offline_mirror.state.pending_for("c1")
        assert pending.type is ChangeType.UPDATE
        assert pending.data.role == "Manager"
        assert offline_mirror.state.find("c1").synced is False

    def test_connectivity_error_goes_offline(self, mirror, fake_store, make_dispatcher):
        fake_store.fail_next["update_contact"] = [ConnectivityError("reset")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(UpdateContact("c1", {"role": "Manager"}))

        assert result.went_offline is True
        assert mirror.state.offline_mode is True
        assert mirror.state.find("c1").role == "Manager"
        assert mirror.state.pending_for("c1").type is ChangeType.UPDATE

    def test_unknown_contact(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(UpdateContact("missing", {"role": "x"}))

        assert result.ok is False
        assert result.error_kind == "not_found"

    def test_remote_not_found_rolls_back(
        self, mirror, fake_store, make_dispatcher, sample_contact
    ):
        fake_store.fail_next["update_contact"] = [NotFoundError("gone")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(UpdateContact("c1", {"role": "Manager"}))

        assert result.error_kind == "not_found"
        assert mirror.state.find("c1") == sample_contact
        assert mirror.state.offline_mode is False

    def test_mark_contacted_defaults_to_now(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(MarkContacted("c2"))

        assert result.ok is True
        assert mirror.state.find("c2").last_contacted_at == NOW_ISO
        assert fake_store.contacts["c2"].last_contacted_at == NOW_ISO

    def test_mark_contacted_rejects_future(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(MarkContacted("c2", at="2027-01-01T00:00:00Z"))

        assert result.error_kind == "validation"
        assert mirror.state.find("c2").last_contacted_at is None


class TestDeleteContact:
    def test_online_delete(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(DeleteContact("c1"))

        assert result.ok is True
        assert "c1" not in fake_store.contacts
        assert mirror.state.find("c1") is None
        assert mirror.state.pending_changes == ()

    def test_online_delete_of_missing_remote_record_is_success(
        self, mirror, fake_store, make_dispatcher
    ):
        del fake_store.contacts["c1"]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(DeleteContact("c1"))

        assert result.ok is True
        assert mirror.state.find("c1") is None

    def test_connectivity_error_restores_tombstone_in_place(
        self, mirror, fake_store, make_dispatcher
    ):
        """接続エラーなら元の位置に tombstone として戻し、削除をキューする"""
        fake_store.fail_next["delete_contact"] = [ConnectivityError("timeout")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(DeleteContact("c1"))

        assert result.went_offline is True
        state = mirror.state
        assert state.index_of("c1") == 0
        assert state.find("c1").deleted is True
        assert state.find("c1").synced is False
        assert state.pending_for("c1").type is ChangeType.DELETE
        assert state.offline_mode is True

    def test_offline_delete_tombstones(self, offline_mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(offline_mirror)

        result = dispatcher.dispatch(DeleteContact("c2"))

        assert result.queued is True
        assert fake_store.calls == []
        assert offline_mirror.state.find("c2").deleted is True
        assert offline_mirror.state.pending_for("c2").type is ChangeType.DELETE
        assert [c.id for c in offline_mirror.state.visible_contacts] == ["c1"]

    @pytest.mark.parametrize("offline", [True, False])
    def test_never_synced_record_is_forgotten(
        self, snapshot_store, make_contact, fake_store, make_dispatcher, offline
    ):
        """未同期の作成は削除でローカルから消えるだけ"""
        draft = make_contact("d1", "Draft", synced=False)
        mirror = MirrorStore(
            snapshot_store,
            MirrorState(
                contacts=(draft,),
                pending_changes=(
                    PendingChange(type=ChangeType.CREATE, id="d1", timestamp=1, data=draft),
                ),
                offline_mode=offline,
            ),
        )
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(DeleteContact("d1"))

        assert result.ok is True
        assert mirror.state.contacts == ()
        assert mirror.state.pending_changes == ()
        assert fake_store.calls == []

    def test_deleting_tombstone_again_is_not_found(self, offline_mirror, make_dispatcher):
        dispatcher = make_dispatcher(offline_mirror)
        dispatcher.dispatch(DeleteContact("c2"))

        result = dispatcher.dispatch(DeleteContact("c2"))

        assert result.error_kind == "not_found"


class TestLogCommunication:
    def test_online_log(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(
            LogCommunication("c1", ["Call", "Email"], notes=" Lunch ", date="2026-10-18T10:00:00Z")
        )

        assert result.ok is True
        assert fake_store.ops("add_communication") == ["c1"]
        contact = mirror.state.find("c1")
        assert contact.communications[0].id == "new-1"
        assert contact.communications[0].types == frozenset(
            {CommunicationType.CALL, CommunicationType.EMAIL}
        )
        assert contact.communications[0].notes == "Lunch"
        assert contact.last_contacted_at == "2026-10-18T10:00:00.000Z"
        assert contact.synced is True
        assert len(contact.communications) == 2

    def test_offline_log_queues_mutated_contact(
        self, offline_mirror, fake_store, make_dispatcher
    ):
        dispatcher = make_dispatcher(offline_mirror)

        result = dispatcher.dispatch(LogCommunication("c2", ["Video"]))

        assert result.queued is True
        assert fake_store.calls == []
        contact = offline_mirror.state.find("c2")
        assert contact.last_contacted_at == NOW_ISO
        assert contact.synced is False
        pending = offline_mirror.state.pending_for("c2")
        assert pending.type is ChangeType.UPDATE
        assert pending.data.communications[0].id == "new-1"

    def test_connectivity_error_goes_offline(self, mirror, fake_store, make_dispatcher):
        fake_store.fail_next["add_communication"] = [ConnectivityError("timeout")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(LogCommunication("c1", ["Call"]))

        assert result.went_offline is True
        contact = mirror.state.find("c1")
        assert contact.communications[0].id == "new-1"
        assert contact.synced is False
        assert mirror.state.pending_for("c1").data.communications[0].id == "new-1"

    def test_empty_types_rejected(self, mirror, make_dispatcher, sample_contact):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(LogCommunication("c1", []))

        assert result.error_kind == "validation"
        assert "communication type" in result.error
        assert mirror.state.find("c1") == sample_contact

    def test_unknown_type_rejected(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(LogCommunication("c1", ["Fax"]))

        assert result.error_kind == "validation"

    def test_future_date_rejected(self, mirror, fake_store, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(
            LogCommunication("c1", ["Call"], date="2026-10-20T00:00:00Z")
        )

        assert result.error_kind == "validation"
        assert fake_store.calls == []

    def test_remote_rejection_rolls_back(
        self, mirror, fake_store, make_dispatcher, sample_contact
    ):
        fake_store.fail_next["add_communication"] = [ValidationError("bad")]
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(LogCommunication("c1", ["Call"]))

        assert result.ok is False
        assert mirror.state.find("c1") == replace(sample_contact)


class TestLocalIntents:
    def test_select_and_deselect(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        dispatcher.dispatch(SelectContact("c2"))
        assert mirror.state.selected_contact_id == "c2"

        dispatcher.dispatch(SelectContact(None))
        assert mirror.state.selected_contact_id is None

    def test_select_unknown(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)

        result = dispatcher.dispatch(SelectContact("nope"))

        assert result.error_kind == "not_found"

    def test_dismiss_notice(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)
        dispatcher.dispatch(UpdateContact("missing", {}))
        assert mirror.state.error is not None

        dispatcher.dispatch(DismissNotice())

        assert mirror.state.error is None

    def test_update_keeps_selection(self, mirror, make_dispatcher):
        dispatcher = make_dispatcher(mirror)
        dispatcher.dispatch(SelectContact("c1"))

        dispatcher.dispatch(UpdateContact("c1", {"name": "Janet"}))

        assert mirror.state.selected_contact.name == "Janet"

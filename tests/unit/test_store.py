"""Unit tests for the SQLAlchemy service record store."""

import pytest

from panel_provisioner.contracts.dto import ServiceRecord, ServiceStatus
from panel_provisioner.errors import ServiceNotFoundError
from panel_provisioner.models import PanelService
from panel_provisioner.store import SqlServiceRecordStore, create_session_factory


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'provisioner.db'}")


@pytest.fixture
def store(session_factory) -> SqlServiceRecordStore:
    return SqlServiceRecordStore(session_factory)


def test_add_assigns_id_and_round_trips(store):
    stored = store.add(ServiceRecord(client_id=7, config={"egg_id": 5, "variables": {"A": "1"}}))

    assert stored.id is not None
    loaded = store.get(stored.id)
    assert loaded is not None
    assert loaded.status == ServiceStatus.PENDING
    assert loaded.config == {"egg_id": 5, "variables": {"A": "1"}}
    assert loaded.remote_server_id is None


def test_save_updates_row(store, session_factory):
    stored = store.add(ServiceRecord(client_id=7))

    store.save(
        stored.transition(
            status=ServiceStatus.ACTIVE,
            remote_server_id=2**40,
            remote_server_identifier="1a2b3c4d",
        )
    )

    loaded = store.get(stored.id)
    assert loaded.status == ServiceStatus.ACTIVE
    assert loaded.remote_server_id == 2**40
    with session_factory() as session:
        row = session.get(PanelService, stored.id)
        assert row.status == "active"
        assert row.server_identifier == "1a2b3c4d"


def test_soft_delete_keeps_row(store):
    stored = store.add(ServiceRecord(client_id=7))
    active = store.save(stored.transition(status=ServiceStatus.ACTIVE, remote_server_id=3))

    store.save(
        active.transition(
            status=ServiceStatus.DELETED, remote_server_id=None, remote_server_identifier=None
        )
    )

    loaded = store.get(stored.id)
    assert loaded.status == ServiceStatus.DELETED
    assert loaded.remote_server_id is None


def test_get_missing(store):
    assert store.get(999) is None


def test_save_missing_row(store):
    with pytest.raises(ServiceNotFoundError):
        store.save(ServiceRecord(id=999, client_id=7))


def test_save_without_id_inserts(store):
    stored = store.save(ServiceRecord(client_id=7))

    assert store.get(stored.id) is not None

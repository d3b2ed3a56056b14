"""SQLAlchemy-backed service record store.

Usage:
    from panel_provisioner.store import SqlServiceRecordStore, create_session_factory

    store = SqlServiceRecordStore(create_session_factory(settings.database_url))
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from panel_provisioner.contracts.dto import ServiceRecord
from panel_provisioner.errors import ServiceNotFoundError
from panel_provisioner.logging import get_logger
from panel_provisioner.models import Base, PanelService

logger = get_logger(__name__)


def create_session_factory(
    database_url: str, *, create_tables: bool = True
) -> sessionmaker[Session]:
    """Engine and session factory for ``database_url``."""
    engine = create_engine(database_url, echo=False)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(engine, expire_on_commit=False)


def _to_record(row: PanelService) -> ServiceRecord:
    return ServiceRecord(
        id=row.id,
        client_id=row.client_id,
        status=row.status,
        remote_server_id=row.server_id,
        remote_server_identifier=row.server_identifier,
        config=row.config or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply(row: PanelService, record: ServiceRecord) -> None:
    row.client_id = record.client_id
    row.status = record.status.value
    row.server_id = record.remote_server_id
    row.server_identifier = record.remote_server_identifier
    row.config = dict(record.config)
    row.created_at = record.created_at
    row.updated_at = record.updated_at


class SqlServiceRecordStore:
    """ServiceRecordStore over the ``service_panel`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, record: ServiceRecord) -> ServiceRecord:
        with self._session_factory() as session, session.begin():
            row = PanelService()
            _apply(row, record)
            session.add(row)
            session.flush()
            stored = _to_record(row)
        logger.debug("service_record_inserted", service_id=stored.id)
        return stored

    def save(self, record: ServiceRecord) -> ServiceRecord:
        if record.id is None:
            return self.add(record)
        with self._session_factory() as session, session.begin():
            row = session.get(PanelService, record.id)
            if row is None:
                raise ServiceNotFoundError(service_id=record.id)
            _apply(row, record)
            session.flush()
            stored = _to_record(row)
        logger.debug("service_record_saved", service_id=stored.id, status=stored.status.value)
        return stored

    def get(self, record_id: int) -> ServiceRecord | None:
        with self._session_factory() as session:
            row = session.get(PanelService, record_id)
            return _to_record(row) if row else None

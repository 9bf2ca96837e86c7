"""
Resource store: persistence boundary for schedules, slots and appointments.

The scheduling services only talk to the ``ResourceStore`` protocol. The
SQLAlchemy implementation commits every mutation on its own, so a sequence of
writes is never wrapped in one transaction and each write can fail
independently.
"""

import logging
from typing import Any, Dict, List, Protocol, Type, TypeVar, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Appointment as AppointmentModel
from models import Schedule as ScheduleModel
from models import Slot as SlotModel
from shared_types.scheduling import Appointment, AppointmentStatus, Schedule, Slot, SlotStatus
from shared_types.search import SearchCriteria
from utils.query_helpers import apply_search_criteria

logger = logging.getLogger(__name__)

Record = Union[Schedule, Slot, Appointment]
R = TypeVar("R", Schedule, Slot, Appointment)


class ResourceStoreError(Exception):
    """Raised when the store fails to read or write a record."""
    pass


class ResourceNotFoundError(ResourceStoreError):
    """Raised when a record does not exist."""

    def __init__(self, record_type: str, record_id: Any):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


class ResourceStore(Protocol):
    """Record store consumed by the scheduling services."""

    def search(self, record_type: Type[R], criteria: SearchCriteria) -> List[R]:
        ...

    def read(self, record_type: Type[R], record_id: int) -> R:
        ...

    def create(self, record: R) -> R:
        ...

    def update(self, record: R) -> R:
        ...

    def delete(self, record_type: Type[Record], record_id: int) -> None:
        ...


def _schedule_from_row(row: ScheduleModel) -> Schedule:
    return Schedule(actor=row.actor, id=row.id, active=row.active, extensions=list(row.extensions or []))


def _slot_from_row(row: SlotModel) -> Slot:
    return Slot(
        schedule_id=row.schedule_id,
        status=SlotStatus(row.status),
        start=row.start,
        end=row.end,
        id=row.id,
        comment=row.comment,
    )


def _appointment_from_row(row: AppointmentModel) -> Appointment:
    return Appointment(
        start=row.start,
        end=row.end,
        status=AppointmentStatus(row.status),
        schedule_id=row.schedule_id,
        id=row.id,
        series_id=row.series_id,
        description=row.description,
    )


class SqlAlchemyResourceStore:
    """ResourceStore backed by a SQLAlchemy session."""

    _MODELS: Dict[type, Any] = {
        Schedule: ScheduleModel,
        Slot: SlotModel,
        Appointment: AppointmentModel,
    }

    def __init__(self, db: Session):
        self.db = db

    def _model_for(self, record_type: type) -> Any:
        try:
            return self._MODELS[record_type]
        except KeyError:
            raise ValueError(f"Unsupported record type: {record_type!r}")

    @staticmethod
    def _to_record(row: Any) -> Any:
        if isinstance(row, ScheduleModel):
            return _schedule_from_row(row)
        if isinstance(row, SlotModel):
            return _slot_from_row(row)
        return _appointment_from_row(row)

    @staticmethod
    def _apply(row: Any, record: Record) -> None:
        """Copy record fields onto an ORM row."""
        if isinstance(record, Schedule):
            row.actor = record.actor
            row.active = record.active
            row.extensions = list(record.extensions)
        elif isinstance(record, Slot):
            row.schedule_id = record.schedule_id
            row.status = record.status.value
            row.start = record.start
            row.end = record.end
            row.comment = record.comment
        else:
            row.schedule_id = record.schedule_id
            row.status = record.status.value
            row.start = record.start
            row.end = record.end
            row.series_id = record.series_id
            row.description = record.description

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to {action}: {e}")
            raise ResourceStoreError(f"Failed to {action}") from e

    def search(self, record_type: Type[R], criteria: SearchCriteria) -> List[R]:
        """
        Search records of one type.

        Args:
            record_type: Slot or Appointment (Schedule supports no criteria)
            criteria: Filters, ordering and limit

        Returns:
            Records ordered by start time

        Raises:
            ResourceStoreError: If the query fails
        """
        model = self._model_for(record_type)
        if model is ScheduleModel:
            raise ValueError("Schedules cannot be searched by time criteria")
        try:
            query = apply_search_criteria(self.db.query(model), model, criteria)
            return [self._to_record(row) for row in query.all()]
        except SQLAlchemyError as e:
            logger.exception(f"Failed to search {record_type.__name__} records: {e}")
            raise ResourceStoreError(f"Failed to search {record_type.__name__} records") from e

    def read(self, record_type: Type[R], record_id: int) -> R:
        model = self._model_for(record_type)
        try:
            row = self.db.get(model, record_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to read {record_type.__name__} {record_id}: {e}")
            raise ResourceStoreError(f"Failed to read {record_type.__name__} {record_id}") from e
        if row is None:
            raise ResourceNotFoundError(record_type.__name__, record_id)
        return self._to_record(row)

    def create(self, record: R) -> R:
        """
        Persist a new record.

        Returns:
            The record as stored, carrying its new id

        Raises:
            ResourceStoreError: If the write fails
        """
        model = self._model_for(type(record))
        row = model()
        self._apply(row, record)
        self.db.add(row)
        self._commit(f"create {type(record).__name__}")
        self.db.refresh(row)
        return self._to_record(row)

    def update(self, record: R) -> R:
        if record.id is None:
            raise ValueError(f"Cannot update a {type(record).__name__} without an id")
        model = self._model_for(type(record))
        row = self.db.get(model, record.id)
        if row is None:
            raise ResourceNotFoundError(type(record).__name__, record.id)
        self._apply(row, record)
        self._commit(f"update {type(record).__name__} {record.id}")
        self.db.refresh(row)
        return self._to_record(row)

    def delete(self, record_type: Type[Record], record_id: int) -> None:
        model = self._model_for(record_type)
        row = self.db.get(model, record_id)
        if row is None:
            raise ResourceNotFoundError(record_type.__name__, record_id)
        self.db.delete(row)
        self._commit(f"delete {record_type.__name__} {record_id}")

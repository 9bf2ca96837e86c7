"""
Schedule API endpoints.

Provides schedule management functionality including:
- Availability configuration (default weekly hours and service overrides)
- Virtual availability slots and merged persisted slots for the calendar
- Blocked time (one-off blocks, calendar selections, holidays)
- Appointments, including weekly series and their cancellation
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.database import get_db
from services.block_time_service import BlockTimeService, BlockValidationError, Holiday
from services.conflict_service import SchedulingConflictError
from services.recurrence_service import RecurrenceService
from services.resource_store import ResourceNotFoundError, ResourceStoreError, SqlAlchemyResourceStore
from services.schedule_service import PartialBookingError, ScheduleService
from services.scheduling_parameters_service import SchedulingParametersService
from shared_types.availability import (
    CANONICAL_DAYS,
    AvailabilityConfig,
    BookingLimit,
    CodeableConcept,
    Coding,
    DayOfWeek,
    DaySchedule,
    PeriodUnit,
    SchedulingParameters,
    TimeWindow,
)
from shared_types.scheduling import (
    Appointment,
    BlockedTimeRequest,
    BulkOperationResult,
    Schedule,
    Slot,
    SlotStatus,
)
from utils.datetime_utils import Clock, SystemClock, ensure_utc, get_timezone, is_valid_timezone, to_local
from utils.slot_utils import is_all_day_slot
from utils.time_utils import format_minutes

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependencies

def get_store(db: Session = Depends(get_db)) -> SqlAlchemyResourceStore:
    return SqlAlchemyResourceStore(db)


def get_clock() -> Clock:
    return SystemClock()


# Request/Response Models

class TimeWindowModel(BaseModel):
    """Availability window within a day."""
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"


class DayScheduleModel(BaseModel):
    enabled: bool = False
    windows: List[TimeWindowModel] = []


class BookingLimitModel(BaseModel):
    max_count: int
    period_length: int = 1
    period_unit: PeriodUnit = PeriodUnit.DAY


class CodingModel(BaseModel):
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class ServiceTypeModel(BaseModel):
    coding: List[CodingModel] = []
    text: Optional[str] = None


class AvailabilityConfigModel(BaseModel):
    """One configuration scope. Buffers and alignment are in minutes."""
    duration_value: float = 30
    duration_unit: str = "min"
    week: Dict[DayOfWeek, DayScheduleModel] = {}
    buffer_before: int = 0
    buffer_after: int = 0
    alignment_interval: int = 0
    alignment_offset: int = 0
    booking_limits: List[BookingLimitModel] = []
    timezone: Optional[str] = None
    service_type: Optional[ServiceTypeModel] = None


class AvailabilityRequest(BaseModel):
    default: AvailabilityConfigModel
    overrides: List[AvailabilityConfigModel] = []


class AvailabilityResponse(BaseModel):
    has_default: bool
    default: AvailabilityConfigModel
    overrides: List[AvailabilityConfigModel]


class ScheduleCreateRequest(BaseModel):
    actor: str


class ScheduleResponse(BaseModel):
    id: int
    actor: str
    active: bool
    service_types: List[Optional[ServiceTypeModel]]


class SlotResponse(BaseModel):
    id: Optional[int] = None
    schedule_id: Optional[int] = None
    status: SlotStatus
    start: datetime
    end: datetime
    comment: Optional[str] = None
    virtual: bool
    all_day: bool
    merged_ids: List[int] = []


class AppointmentResponse(BaseModel):
    id: Optional[int] = None
    schedule_id: Optional[int] = None
    status: str
    start: datetime
    end: datetime
    series_id: Optional[str] = None
    description: Optional[str] = None


class BlockRequest(BaseModel):
    """Block time request. Times ("HH:MM") are ignored for all-day blocks."""
    start_date: date
    end_date: date
    all_day: bool = True
    start_time: str = ""
    end_time: str = ""
    comment: str = ""


class BlockRangeRequest(BaseModel):
    start: datetime
    end: datetime
    comment: str = ""


class HolidayModel(BaseModel):
    name: str
    date: date


class HolidayBlockRequest(BaseModel):
    dates: List[date]


class BlocksResponse(BaseModel):
    upcoming: List[SlotResponse]
    past: List[SlotResponse]
    unblocked_holidays: List[HolidayModel]


class AppointmentCreateRequest(BaseModel):
    start: datetime
    end: datetime
    occurrences: int = 1
    interval_weeks: Optional[int] = None
    description: Optional[str] = None


class SelectionRequest(BaseModel):
    """Calendar click (no end) or drag selection."""
    start: datetime
    end: Optional[datetime] = None


class SelectionResponse(BaseModel):
    kind: str
    start: datetime
    end: datetime
    duration_label: str


class BulkOperationResponse(BaseModel):
    completed: int
    failed_ids: List[int]
    partial: bool


# Conversions

def _service_type_from_model(model: Optional[ServiceTypeModel]) -> Optional[CodeableConcept]:
    if model is None:
        return None
    return CodeableConcept(
        coding=tuple(Coding(system=c.system, code=c.code, display=c.display) for c in model.coding),
        text=model.text,
    )


def _service_type_to_model(concept: Optional[CodeableConcept]) -> Optional[ServiceTypeModel]:
    if concept is None:
        return None
    return ServiceTypeModel(
        coding=[CodingModel(system=c.system, code=c.code, display=c.display) for c in concept.coding],
        text=concept.text,
    )


def _config_from_model(model: AvailabilityConfigModel) -> AvailabilityConfig:
    """Build a configuration from a request body. Raises ValueError on invalid input."""
    if model.timezone and not is_valid_timezone(model.timezone):
        raise ValueError(f"Unknown timezone: {model.timezone}")
    for limit in model.booking_limits:
        if limit.max_count < 0 or limit.period_length < 1:
            raise ValueError("Booking limits need a non-negative count and a period of at least 1")

    week = {}
    for day in CANONICAL_DAYS:
        day_model = model.week.get(day)
        if day_model is None or not day_model.enabled:
            week[day] = DaySchedule.off()
            continue
        windows = [TimeWindow.from_times(w.start_time, w.end_time) for w in day_model.windows]
        week[day] = DaySchedule(enabled=True, windows=windows) if windows else DaySchedule.default()

    return AvailabilityConfig(
        duration_value=model.duration_value,
        duration_unit=model.duration_unit,
        week=week,
        buffer_before=max(model.buffer_before, 0),
        buffer_after=max(model.buffer_after, 0),
        alignment_interval=max(model.alignment_interval, 0),
        alignment_offset=max(model.alignment_offset, 0),
        booking_limits=[
            BookingLimit(max_count=b.max_count, period_length=b.period_length, period_unit=b.period_unit)
            for b in model.booking_limits
        ],
        timezone=model.timezone or None,
        service_type=_service_type_from_model(model.service_type),
    )


def _config_to_model(config: AvailabilityConfig) -> AvailabilityConfigModel:
    return AvailabilityConfigModel(
        duration_value=config.duration_value,
        duration_unit=config.duration_unit,
        week={
            day: DayScheduleModel(
                enabled=config.week[day].enabled,
                windows=[TimeWindowModel(**w.to_dict()) for w in config.week[day].windows],
            )
            for day in CANONICAL_DAYS
            if day in config.week
        },
        buffer_before=config.buffer_before,
        buffer_after=config.buffer_after,
        alignment_interval=config.alignment_interval,
        alignment_offset=config.alignment_offset,
        booking_limits=[
            BookingLimitModel(max_count=b.max_count, period_length=b.period_length, period_unit=b.period_unit)
            for b in config.booking_limits
        ],
        timezone=config.timezone,
        service_type=_service_type_to_model(config.service_type),
    )


def _availability_response(params: SchedulingParameters) -> AvailabilityResponse:
    return AvailabilityResponse(
        has_default=params.has_default,
        default=_config_to_model(params.effective_default()),
        overrides=[_config_to_model(o) for o in params.overrides],
    )


def _schedule_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        actor=schedule.actor,
        active=schedule.active,
        service_types=[
            _service_type_to_model(st)
            for st in SchedulingParametersService.list_service_types(schedule.extensions)
        ],
    )


def _slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        schedule_id=slot.schedule_id,
        status=slot.status,
        start=slot.start,
        end=slot.end,
        comment=slot.comment,
        virtual=slot.is_virtual,
        all_day=is_all_day_slot(slot),
        merged_ids=list(slot.merged_ids),
    )


def _appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        schedule_id=appointment.schedule_id,
        status=appointment.status.value,
        start=appointment.start,
        end=appointment.end,
        series_id=appointment.series_id,
        description=appointment.description,
    )


def _bulk_response(result: BulkOperationResult) -> BulkOperationResponse:
    return BulkOperationResponse(completed=result.completed, failed_ids=result.failed_ids, partial=result.is_partial)


def _holiday_model(holiday: Holiday) -> HolidayModel:
    return HolidayModel(name=holiday.name, date=holiday.date)


def _to_http_exception(e: Exception, action: str) -> HTTPException:
    """Map service errors to HTTP errors."""
    if isinstance(e, ResourceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SchedulingConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": e.reason.value, "message": e.message, "conflicting_id": e.conflicting_id},
        )
    if isinstance(e, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, PartialBookingError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(e), "created_ids": [a.id for a in e.created]},
        )
    if isinstance(e, ResourceStoreError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")
    logger.exception(f"Failed to {action}: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")


def _validate_range(start: datetime, end: datetime) -> None:
    if ensure_utc(end) <= ensure_utc(start):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End must be after start")


def _read_schedule(store: SqlAlchemyResourceStore, schedule_id: int) -> Schedule:
    return store.read(Schedule, schedule_id)


# API Endpoints

@router.post("", summary="Create a schedule", status_code=status.HTTP_201_CREATED)
async def create_schedule(
    request: ScheduleCreateRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> ScheduleResponse:
    try:
        return _schedule_response(ScheduleService.create_schedule(store, request.actor))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "create schedule")


@router.get("/{schedule_id}", summary="Get a schedule")
async def get_schedule(
    schedule_id: int,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> ScheduleResponse:
    try:
        return _schedule_response(_read_schedule(store, schedule_id))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "fetch schedule")


@router.get("/{schedule_id}/availability", summary="Get availability configuration")
async def get_availability(
    schedule_id: int,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> AvailabilityResponse:
    """
    Get the decoded availability configuration.

    When the schedule has no default block, ``has_default`` is false and the
    default form values are returned for editing.
    """
    try:
        schedule = _read_schedule(store, schedule_id)
        return _availability_response(ScheduleService.get_scheduling_parameters(schedule))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "fetch availability")


@router.put("/{schedule_id}/availability", summary="Save availability configuration")
async def save_availability(
    schedule_id: int,
    request: AvailabilityRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> AvailabilityResponse:
    try:
        default = _config_from_model(request.default)
        default.service_type = None
        params = SchedulingParameters(
            default=default,
            overrides=[_config_from_model(o) for o in request.overrides],
        )
        saved = ScheduleService.save_availability(store, schedule_id, params)
        return _availability_response(ScheduleService.get_scheduling_parameters(saved))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "save availability")


@router.get("/{schedule_id}/availability/slots", summary="Expand availability into virtual slots")
async def get_availability_slots(
    schedule_id: int,
    start: datetime = Query(..., description="Start of the visible range"),
    end: datetime = Query(..., description="End of the visible range"),
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> List[SlotResponse]:
    _validate_range(start, end)
    try:
        slots = ScheduleService.expand_availability(store, schedule_id, ensure_utc(start), ensure_utc(end), clock)
        return [_slot_response(s) for s in slots]
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "expand availability")


@router.get("/{schedule_id}/slots", summary="List persisted slots, merged for display")
async def list_slots(
    schedule_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> List[SlotResponse]:
    _validate_range(start, end)
    try:
        _read_schedule(store, schedule_id)
        slots = ScheduleService.refresh_slots(store, schedule_id, ensure_utc(start), ensure_utc(end))
        return [_slot_response(s) for s in slots]
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "fetch slots")


@router.post("/{schedule_id}/selection", summary="Classify a calendar selection")
async def resolve_selection(
    schedule_id: int,
    request: SelectionRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> SelectionResponse:
    """Resolve a click or drag on the calendar to an appointment or all-day block candidate."""
    try:
        schedule = _read_schedule(store, schedule_id)
        timezone_name = ScheduleService.schedule_timezone(schedule, clock)
        end = ensure_utc(request.end) if request.end else None
        selection = ScheduleService.resolve_calendar_selection(ensure_utc(request.start), end, timezone_name)
        minutes = int((selection.end - selection.start).total_seconds() // 60)
        return SelectionResponse(
            kind=selection.kind.value,
            start=selection.start,
            end=selection.end,
            duration_label=format_minutes(minutes),
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "resolve selection")


@router.get("/{schedule_id}/blocks", summary="List blocked time")
async def list_blocks(
    schedule_id: int,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> BlocksResponse:
    """List upcoming and past blocks and the upcoming holidays that are not blocked yet."""
    try:
        schedule = _read_schedule(store, schedule_id)
        timezone_name = ScheduleService.schedule_timezone(schedule, clock)
        blocks = BlockTimeService.list_blocks(store, schedule_id)
        now = clock.now()
        upcoming, past = BlockTimeService.split_past_blocks(blocks, now)
        today = to_local(now, get_timezone(timezone_name)).date()
        return BlocksResponse(
            upcoming=[_slot_response(s) for s in upcoming],
            past=[_slot_response(s) for s in past],
            unblocked_holidays=[
                _holiday_model(h) for h in BlockTimeService.unblocked_holidays(blocks, today, timezone_name)
            ],
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "fetch blocks")


@router.post("/{schedule_id}/blocks", summary="Block time", status_code=status.HTTP_201_CREATED)
async def create_block(
    schedule_id: int,
    request: BlockRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> SlotResponse:
    try:
        schedule = _read_schedule(store, schedule_id)
        timezone_name = ScheduleService.schedule_timezone(schedule, clock)
        block = BlockedTimeRequest(
            start_date=request.start_date,
            end_date=request.end_date,
            all_day=request.all_day,
            start_time=request.start_time,
            end_time=request.end_time,
            comment=request.comment,
        )
        return _slot_response(BlockTimeService.create_block(store, schedule_id, block, timezone_name))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "block time")


@router.post("/{schedule_id}/blocks/range", summary="Block a selected interval", status_code=status.HTTP_201_CREATED)
async def create_block_for_range(
    schedule_id: int,
    request: BlockRangeRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> SlotResponse:
    try:
        _read_schedule(store, schedule_id)
        slot = BlockTimeService.create_block_for_range(
            store, schedule_id, ensure_utc(request.start), ensure_utc(request.end), request.comment
        )
        return _slot_response(slot)
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "block time")


@router.post("/{schedule_id}/blocks/holidays", summary="Block holidays", status_code=status.HTTP_201_CREATED)
async def block_holidays(
    schedule_id: int,
    request: HolidayBlockRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> List[SlotResponse]:
    try:
        schedule = _read_schedule(store, schedule_id)
        timezone_name = ScheduleService.schedule_timezone(schedule, clock)
        created = BlockTimeService.block_holidays(store, schedule_id, request.dates, timezone_name)
        return [_slot_response(s) for s in created]
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "block holidays")


@router.delete("/{schedule_id}/blocks/past", summary="Remove all past blocks")
async def clear_past_blocks(
    schedule_id: int,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> BulkOperationResponse:
    try:
        _read_schedule(store, schedule_id)
        return _bulk_response(BlockTimeService.clear_past_blocks(store, schedule_id, clock.now()))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "clear past blocks")


@router.delete("/{schedule_id}/blocks/{slot_id}", summary="Remove a block")
async def delete_block(
    schedule_id: int,
    slot_id: int,
    merged_ids: List[int] = Query(default=[], description="Other records covered by a merged block"),
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> BulkOperationResponse:
    """
    Remove a block.

    A block shown merged on the calendar covers several records; pass the
    other record ids in ``merged_ids`` to remove all of them.
    """
    try:
        slot = store.read(Slot, slot_id)
        if slot.schedule_id != schedule_id:
            raise ResourceNotFoundError("Slot", slot_id)
        record_ids = {slot_id}
        for other_id in merged_ids:
            other = store.read(Slot, other_id)
            if other.schedule_id != schedule_id or other.status != SlotStatus.BUSY_UNAVAILABLE:
                raise BlockValidationError(f"Slot {other_id} is not a block on this schedule")
            record_ids.add(other_id)
        if len(record_ids) > 1:
            slot = replace(slot, merged_ids=tuple(sorted(record_ids)))
        return _bulk_response(BlockTimeService.delete_block(store, slot))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "remove block")


@router.get("/{schedule_id}/appointments", summary="List appointments")
async def list_appointments(
    schedule_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> List[AppointmentResponse]:
    _validate_range(start, end)
    try:
        _read_schedule(store, schedule_id)
        appointments = ScheduleService.fetch_appointments(store, schedule_id, ensure_utc(start), ensure_utc(end))
        return [_appointment_response(a) for a in appointments]
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "fetch appointments")


@router.post("/{schedule_id}/appointments", summary="Book an appointment", status_code=status.HTTP_201_CREATED)
async def create_appointments(
    schedule_id: int,
    request: AppointmentCreateRequest,
    store: SqlAlchemyResourceStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> List[AppointmentResponse]:
    """
    Book an appointment, repeating every ``interval_weeks`` weeks when
    ``occurrences`` is greater than one.

    Returns 409 with the conflict reason when an occurrence overlaps a block
    or a live appointment.
    If a write fails partway through a series the occurrences already stored
    are kept; the 500 response lists their ids in ``created_ids``.
    """
    try:
        created = ScheduleService.create_appointments(
            store,
            schedule_id,
            ensure_utc(request.start),
            ensure_utc(request.end),
            clock,
            occurrences=request.occurrences,
            interval_weeks=request.interval_weeks,
            description=request.description,
        )
        return [_appointment_response(a) for a in created]
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "book appointment")


@router.post("/{schedule_id}/appointments/{appointment_id}/cancel", summary="Cancel an appointment")
async def cancel_appointment(
    schedule_id: int,
    appointment_id: int,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> AppointmentResponse:
    try:
        appointment = store.read(Appointment, appointment_id)
        if appointment.schedule_id != schedule_id:
            raise ResourceNotFoundError("Appointment", appointment_id)
        return _appointment_response(RecurrenceService.cancel_appointment(store, appointment_id))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "cancel appointment")


@router.post("/{schedule_id}/series/{series_id}/cancel", summary="Cancel a recurring series")
async def cancel_series(
    schedule_id: int,
    series_id: str,
    store: SqlAlchemyResourceStore = Depends(get_store),
) -> BulkOperationResponse:
    """
    Cancel every live appointment of a series.

    Members are cancelled one at a time; ``partial`` is true when some could
    not be cancelled, in which case ``failed_ids`` lists them.
    """
    try:
        _read_schedule(store, schedule_id)
        return _bulk_response(RecurrenceService.cancel_series(store, series_id, schedule_id=schedule_id))
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e, "cancel series")

"""
Shared types for availability configuration.

This module contains the strongly-typed configuration model that the persisted
scheduling-parameter extension blocks are decoded into. Nothing outside the
recurrence codec reads the raw extension tree.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.constants import (
    DAY_LABELS,
    DEFAULT_DURATION_UNIT,
    DEFAULT_DURATION_VALUE,
    DEFAULT_WINDOW_DURATION_MINUTES,
    DEFAULT_WINDOW_START_MINUTE,
    MINUTES_PER_DAY,
    ORDERED_DAYS,
)
from utils.time_utils import format_minutes, minutes_to_time, time_to_minutes, window_duration_minutes


class DayOfWeek(str, Enum):
    """Weekday symbols in canonical Mon..Sun order."""
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @property
    def label(self) -> str:
        return DAY_LABELS[self.value]

    @property
    def order(self) -> int:
        """Position in the canonical ordering (0=Monday)."""
        return ORDERED_DAYS.index(self.value)

    @classmethod
    def from_weekday(cls, weekday: int) -> "DayOfWeek":
        """Map Python's date.weekday() (0=Monday) to a symbol."""
        return cls(ORDERED_DAYS[weekday])


CANONICAL_DAYS: Tuple[DayOfWeek, ...] = tuple(DayOfWeek(d) for d in ORDERED_DAYS)


class PeriodUnit(str, Enum):
    """Period unit of a booking limit."""
    DAY = "d"
    WEEK = "wk"
    MONTH = "mo"


@dataclass(frozen=True)
class TimeWindow:
    """
    A recurring window within a day.

    ``start_minute`` is minutes since local midnight; the window may run past
    midnight only when decoded from a persisted entry whose duration does so.
    """
    start_minute: int
    duration_minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.start_minute < MINUTES_PER_DAY:
            raise ValueError(f"start_minute must be within a day, got {self.start_minute}")
        if self.duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {self.duration_minutes}")

    @classmethod
    def from_times(cls, start_time: str, end_time: str) -> "TimeWindow":
        """Build a window from "HH:MM" strings; an end at or before the start wraps past midnight."""
        return cls(time_to_minutes(start_time), window_duration_minutes(start_time, end_time))

    @property
    def end_minute(self) -> int:
        """End as minutes since the start day's midnight (may exceed 1440)."""
        return self.start_minute + self.duration_minutes

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minute)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minute)

    @property
    def duration_label(self) -> str:
        return format_minutes(self.duration_minutes)

    def to_dict(self) -> Dict[str, Any]:
        return {"start_time": self.start_time, "end_time": self.end_time}


DEFAULT_WINDOW = TimeWindow(DEFAULT_WINDOW_START_MINUTE, DEFAULT_WINDOW_DURATION_MINUTES)


@dataclass
class DaySchedule:
    """Whether a weekday is bookable and its ordered windows."""
    enabled: bool = False
    windows: List[TimeWindow] = field(default_factory=list)

    @classmethod
    def off(cls) -> "DaySchedule":
        return cls(enabled=False, windows=[])

    @classmethod
    def default(cls) -> "DaySchedule":
        return cls(enabled=True, windows=[DEFAULT_WINDOW])


WeekSchedule = Dict[DayOfWeek, DaySchedule]


@dataclass(frozen=True)
class BookingLimit:
    """At most ``max_count`` appointments per ``period_length`` ``period_unit``."""
    max_count: int
    period_length: int = 1
    period_unit: PeriodUnit = PeriodUnit.DAY

    @property
    def is_effective(self) -> bool:
        """Non-positive counts mean "no limit" and are never stored."""
        return self.max_count > 0 and self.period_length > 0


@dataclass(frozen=True)
class Coding:
    """A single code from a code system."""
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in (("system", self.system), ("code", self.code), ("display", self.display)) if v}


@dataclass(frozen=True)
class CodeableConcept:
    """Service-type concept that keys a configuration override."""
    coding: Tuple[Coding, ...] = ()
    text: Optional[str] = None

    @property
    def key(self) -> Tuple[Any, ...]:
        """Identity of the concept: its (system, code) pairs, or its text when uncoded."""
        codes = tuple(sorted((c.system or "", c.code or "") for c in self.coding if c.code))
        return codes if codes else (("", self.text or ""),)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.coding:
            result["coding"] = [c.to_dict() for c in self.coding]
        if self.text:
            result["text"] = self.text
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeableConcept":
        coding = tuple(
            Coding(system=c.get("system"), code=c.get("code"), display=c.get("display"))
            for c in data.get("coding") or []
        )
        return cls(coding=coding, text=data.get("text"))


def make_default_week() -> WeekSchedule:
    """Monday to Friday 09:00-17:00, weekend off."""
    week: WeekSchedule = {}
    for day in CANONICAL_DAYS:
        week[day] = DaySchedule.off() if day in (DayOfWeek.SAT, DayOfWeek.SUN) else DaySchedule.default()
    return week


def make_empty_week() -> WeekSchedule:
    """All seven days disabled."""
    return {day: DaySchedule.off() for day in CANONICAL_DAYS}


@dataclass
class AvailabilityConfig:
    """
    One configuration scope: the default availability of a schedule or the
    total replacement used for a single service type.

    Buffers and alignment values are whole minutes; zero means unset.
    """
    duration_value: float = DEFAULT_DURATION_VALUE
    duration_unit: str = DEFAULT_DURATION_UNIT
    week: WeekSchedule = field(default_factory=make_default_week)
    buffer_before: int = 0
    buffer_after: int = 0
    alignment_interval: int = 0
    alignment_offset: int = 0
    booking_limits: List[BookingLimit] = field(default_factory=list)
    timezone: Optional[str] = None
    service_type: Optional[CodeableConcept] = None

    @property
    def is_override(self) -> bool:
        return self.service_type is not None

    def enabled_days(self) -> List[DayOfWeek]:
        """Enabled days in canonical order."""
        return [day for day in CANONICAL_DAYS if self.week.get(day, DaySchedule.off()).enabled]


@dataclass
class SchedulingParameters:
    """
    All configuration scopes of a schedule.

    ``default`` is None when the schedule carries no default block; the editing
    form then starts from ``AvailabilityConfig()`` while the slot generator
    produces nothing.
    """
    default: Optional[AvailabilityConfig] = None
    overrides: List[AvailabilityConfig] = field(default_factory=list)

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def effective_default(self) -> AvailabilityConfig:
        return self.default if self.default is not None else AvailabilityConfig()

    def override_for(self, service_type: CodeableConcept) -> Optional[AvailabilityConfig]:
        """The override keyed by ``service_type``; overrides never merge with the default."""
        for override in self.overrides:
            if override.service_type is not None and override.service_type.key == service_type.key:
                return override
        return None

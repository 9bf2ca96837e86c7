"""
Scheduling parameters service: the recurrence codec.

A schedule persists each configuration scope as one scheduling-parameters
extension block:

    {
        "url": SCHEDULING_PARAMETERS_URI,
        "extension": [
            {"url": "serviceType", "valueCodeableConcept": {...}},       # overrides only
            {"url": "duration", "valueDuration": {"value": 30, "unit": "min"}},
            {"url": "availability", "valueTiming": {"repeat": {
                "dayOfWeek": ["mon", "wed"], "timeOfDay": ["09:00:00"],
                "duration": 8, "durationUnit": "h"}}},
            {"url": "bufferBefore", "valueDuration": {"value": 10, "unit": "min"}},
            {"url": "bookingLimit", "valueTiming": {"repeat": {
                "frequency": 5, "period": 1, "periodUnit": "d"}}},
            {"url": "timezone", "valueCode": "America/New_York"},
        ],
    }

This module is the only place that reads or writes that tree. Everything else
works with the typed model in ``shared_types.availability``.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Tuple

from core.constants import (
    DEFAULT_AVAILABILITY_DURATION_HOURS,
    DEFAULT_AVAILABILITY_TIME_OF_DAY,
    DEFAULT_DURATION_UNIT,
    DEFAULT_DURATION_VALUE,
    SCHEDULING_PARAMETERS_URI,
)
from shared_types.availability import (
    CANONICAL_DAYS,
    DEFAULT_WINDOW,
    AvailabilityConfig,
    BookingLimit,
    CodeableConcept,
    DayOfWeek,
    DaySchedule,
    PeriodUnit,
    SchedulingParameters,
    TimeWindow,
    WeekSchedule,
    make_empty_week,
)
from utils.time_utils import (
    duration_to_minutes,
    minutes_to_duration,
    minutes_to_time_of_day,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

Extension = Dict[str, Any]

# Composite grouping keys for the two compaction passes
WindowKey = Tuple[int, int]  # (start minute, duration minutes)
DaySetKey = Tuple[Tuple[DayOfWeek, ...], int]  # (days in canonical order, duration minutes)


class SchedulingParametersService:
    """
    Decodes and encodes availability configuration.

    Decoding is eager and lenient: malformed entries are logged and skipped so a
    bad persisted value never hides the rest of a schedule. Encoding produces a
    compact set of recurring-rule entries by grouping identical windows.
    """

    # ------------------------------------------------------------------
    # Raw tree helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sub_extensions(ext: Extension, url: str) -> List[Extension]:
        return [sub for sub in ext.get("extension") or [] if sub.get("url") == url]

    @staticmethod
    def _sub_value(ext: Extension, url: str, value_key: str) -> Any:
        """Value of the first sub-extension with ``url``, like getExtensionValue."""
        for sub in SchedulingParametersService._sub_extensions(ext, url):
            return sub.get(value_key)
        return None

    @staticmethod
    def _duration_minutes(ext: Extension, url: str) -> int:
        """Buffer/alignment durations normalized to minutes; absent means 0."""
        value = SchedulingParametersService._sub_value(ext, url, "valueDuration")
        if not isinstance(value, dict) or value.get("value") is None:
            return 0
        try:
            return duration_to_minutes(value["value"], value.get("unit", "min"))
        except ValueError:
            logger.warning(f"Ignoring malformed {url} duration: {value!r}")
            return 0

    @staticmethod
    def is_scheduling_parameters(ext: Extension) -> bool:
        return ext.get("url") == SCHEDULING_PARAMETERS_URI

    @staticmethod
    def service_type_of(ext: Extension) -> Optional[CodeableConcept]:
        value = SchedulingParametersService._sub_value(ext, "serviceType", "valueCodeableConcept")
        return CodeableConcept.from_dict(value) if value else None

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    @staticmethod
    def parse_week_schedule(ext: Extension) -> WeekSchedule:
        """
        Decode the ``availability`` entries of one block into a week.

        Every day starts disabled; each entry enables its days and appends one
        window per time of day. An enabled day left without windows receives
        the default 09:00-17:00 window.
        """
        week = make_empty_week()

        for avail in SchedulingParametersService._sub_extensions(ext, "availability"):
            repeat = (avail.get("valueTiming") or {}).get("repeat")
            if not isinstance(repeat, dict) or not repeat:
                continue

            duration = repeat.get("duration")
            if duration is None:
                duration = DEFAULT_AVAILABILITY_DURATION_HOURS
            try:
                duration_minutes = duration_to_minutes(duration, repeat.get("durationUnit") or "h")
            except ValueError:
                logger.warning(f"Ignoring availability entry with malformed duration: {repeat}")
                continue
            times = repeat.get("timeOfDay") or [DEFAULT_AVAILABILITY_TIME_OF_DAY]
            if isinstance(times, str):
                times = [times]

            windows: List[TimeWindow] = []
            if duration_minutes <= 0:
                logger.warning(f"Ignoring availability entry with non-positive duration: {repeat}")
            else:
                for time_of_day in times:
                    try:
                        windows.append(TimeWindow(time_to_minutes(time_of_day), duration_minutes))
                    except ValueError:
                        logger.warning(f"Ignoring malformed time of day in availability entry: {time_of_day!r}")

            for day_code in repeat.get("dayOfWeek") or []:
                try:
                    day = DayOfWeek(day_code)
                except ValueError:
                    logger.warning(f"Ignoring unknown day of week in availability entry: {day_code!r}")
                    continue
                week[day].enabled = True
                week[day].windows.extend(windows)

        for day in CANONICAL_DAYS:
            if week[day].enabled and not week[day].windows:
                week[day].windows.append(DEFAULT_WINDOW)

        return week

    @staticmethod
    def parse_booking_limits(ext: Extension) -> List[BookingLimit]:
        """Decode booking limits, dropping non-positive counts (they mean "no limit")."""
        limits: List[BookingLimit] = []
        for sub in SchedulingParametersService._sub_extensions(ext, "bookingLimit"):
            repeat = (sub.get("valueTiming") or {}).get("repeat") or {}
            try:
                unit = PeriodUnit(repeat.get("periodUnit") or PeriodUnit.DAY.value)
            except ValueError:
                logger.warning(f"Ignoring booking limit with unknown period unit: {repeat}")
                continue
            try:
                limit = BookingLimit(
                    max_count=int(repeat.get("frequency") or 0),
                    period_length=int(repeat.get("period") or 1),
                    period_unit=unit,
                )
            except (TypeError, ValueError):
                logger.warning(f"Ignoring booking limit with non-numeric count or period: {repeat}")
                continue
            if limit.is_effective:
                limits.append(limit)
        return limits

    @staticmethod
    def config_from_extension(ext: Extension) -> AvailabilityConfig:
        """
        Decode one scheduling-parameters block.

        Args:
            ext: Raw extension block

        Returns:
            AvailabilityConfig with buffers and alignment in minutes
        """
        duration = SchedulingParametersService._sub_value(ext, "duration", "valueDuration") or {}
        if not isinstance(duration, dict) or not isinstance(duration.get("value"), (int, float, type(None))):
            logger.warning(f"Ignoring malformed appointment duration: {duration!r}")
            duration = {}
        timezone = SchedulingParametersService._sub_value(ext, "timezone", "valueCode")

        return AvailabilityConfig(
            duration_value=duration.get("value") or DEFAULT_DURATION_VALUE,
            duration_unit=duration.get("unit") or DEFAULT_DURATION_UNIT,
            week=SchedulingParametersService.parse_week_schedule(ext),
            buffer_before=SchedulingParametersService._duration_minutes(ext, "bufferBefore"),
            buffer_after=SchedulingParametersService._duration_minutes(ext, "bufferAfter"),
            alignment_interval=SchedulingParametersService._duration_minutes(ext, "alignmentInterval"),
            alignment_offset=SchedulingParametersService._duration_minutes(ext, "alignmentOffset"),
            booking_limits=SchedulingParametersService.parse_booking_limits(ext),
            timezone=timezone or None,
            service_type=SchedulingParametersService.service_type_of(ext),
        )

    @staticmethod
    def parse_schedule_extensions(extensions: List[Extension]) -> SchedulingParameters:
        """
        Decode every scheduling-parameters block of a schedule.

        At most one block without a service type is used as the default;
        overrides are kept one per distinct service type (first one wins).
        Extensions with other URLs are ignored.
        """
        params = SchedulingParameters()
        seen_keys: Set[Tuple[Any, ...]] = set()

        for ext in extensions or []:
            if not SchedulingParametersService.is_scheduling_parameters(ext):
                continue
            config = SchedulingParametersService.config_from_extension(ext)
            if config.service_type is None:
                if params.default is not None:
                    logger.warning("Schedule carries more than one default scheduling-parameters block; using the first")
                    continue
                params.default = config
            else:
                key = config.service_type.key
                if key in seen_keys:
                    logger.warning(f"Duplicate scheduling-parameters block for service type {key}; using the first")
                    continue
                seen_keys.add(key)
                params.overrides.append(config)

        return params

    @staticmethod
    def list_service_types(extensions: List[Extension]) -> List[Optional[CodeableConcept]]:
        """One entry per block, None standing for the default (wildcard) block."""
        return [
            SchedulingParametersService.service_type_of(ext)
            for ext in extensions or []
            if SchedulingParametersService.is_scheduling_parameters(ext)
        ]

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    @staticmethod
    def _group_days_by_window(week: WeekSchedule) -> Dict[WindowKey, Set[DayOfWeek]]:
        """
        First pass: days sharing an identical window collapse into one group.

        Keys are sets, so a window repeated on the same day is written once.
        Decoding an encoded week therefore reproduces each day's distinct
        windows; duplicates within a day are not preserved.
        """
        groups: Dict[WindowKey, Set[DayOfWeek]] = defaultdict(set)
        for day in CANONICAL_DAYS:
            day_schedule = week.get(day)
            if day_schedule is None or not day_schedule.enabled:
                continue
            for window in day_schedule.windows or [DEFAULT_WINDOW]:
                groups[(window.start_minute, window.duration_minutes)].add(day)
        return groups

    @staticmethod
    def _group_times_by_day_set(groups: Dict[WindowKey, Set[DayOfWeek]]) -> Dict[DaySetKey, Set[int]]:
        """Second pass: start times shared by an identical day-set and duration collapse into one entry."""
        super_groups: Dict[DaySetKey, Set[int]] = defaultdict(set)
        for (start_minute, duration_minutes), days in groups.items():
            day_set = tuple(sorted(days, key=lambda d: d.order))
            super_groups[(day_set, duration_minutes)].add(start_minute)
        return super_groups

    @staticmethod
    def availability_extensions(week: WeekSchedule) -> List[Extension]:
        """
        Encode a week into a compact set of ``availability`` entries.

        The grouping depends only on key equality, so any iteration order of an
        equivalent week yields the same entries. Output is sorted by first day,
        duration and earliest start to keep it stable.
        """
        groups = SchedulingParametersService._group_days_by_window(week)
        super_groups = SchedulingParametersService._group_times_by_day_set(groups)

        ordered = sorted(
            super_groups.items(),
            key=lambda item: ([d.order for d in item[0][0]], item[0][1], min(item[1])),
        )

        result: List[Extension] = []
        for (day_set, duration_minutes), start_minutes in ordered:
            duration_value, duration_unit = minutes_to_duration(duration_minutes)
            result.append({
                "url": "availability",
                "valueTiming": {
                    "repeat": {
                        "dayOfWeek": [d.value for d in day_set],
                        "timeOfDay": [minutes_to_time_of_day(m) for m in sorted(start_minutes)],
                        "duration": duration_value,
                        "durationUnit": duration_unit,
                    }
                },
            })
        return result

    @staticmethod
    def extension_from_config(config: AvailabilityConfig) -> Extension:
        """
        Encode one configuration scope as a scheduling-parameters block.

        Zero buffers and a zero alignment interval are omitted, the alignment
        offset is only written alongside an interval, and ineffective booking
        limits are dropped.
        """
        subs: List[Extension] = []

        if config.service_type is not None:
            subs.append({"url": "serviceType", "valueCodeableConcept": config.service_type.to_dict()})

        subs.append({"url": "duration", "valueDuration": {"value": config.duration_value, "unit": config.duration_unit}})
        subs.extend(SchedulingParametersService.availability_extensions(config.week))

        if config.buffer_before > 0:
            subs.append({"url": "bufferBefore", "valueDuration": {"value": config.buffer_before, "unit": "min"}})
        if config.buffer_after > 0:
            subs.append({"url": "bufferAfter", "valueDuration": {"value": config.buffer_after, "unit": "min"}})
        if config.alignment_interval > 0:
            subs.append({"url": "alignmentInterval", "valueDuration": {"value": config.alignment_interval, "unit": "min"}})
            if config.alignment_offset > 0:
                subs.append({"url": "alignmentOffset", "valueDuration": {"value": config.alignment_offset, "unit": "min"}})

        for limit in config.booking_limits:
            if not limit.is_effective:
                continue
            subs.append({
                "url": "bookingLimit",
                "valueTiming": {
                    "repeat": {
                        "frequency": limit.max_count,
                        "period": limit.period_length,
                        "periodUnit": limit.period_unit.value,
                    }
                },
            })

        if config.timezone:
            subs.append({"url": "timezone", "valueCode": config.timezone})

        return {"url": SCHEDULING_PARAMETERS_URI, "extension": subs}

    @staticmethod
    def build_schedule_extensions(params: SchedulingParameters) -> List[Extension]:
        """
        Encode all scopes: the default block first, then one block per override.

        Raises:
            ValueError: If two overrides share a service type or an override has none
        """
        default = replace(params.effective_default(), service_type=None)
        extensions = [SchedulingParametersService.extension_from_config(default)]

        seen_keys: Set[Tuple[Any, ...]] = set()
        for override in params.overrides:
            if override.service_type is None:
                raise ValueError("Service override requires a service type")
            key = override.service_type.key
            if key in seen_keys:
                raise ValueError(f"Duplicate service override for service type {key}")
            seen_keys.add(key)
            extensions.append(SchedulingParametersService.extension_from_config(override))

        return extensions

    @staticmethod
    def apply_scheduling_parameters(
        existing_extensions: List[Extension],
        params: SchedulingParameters,
    ) -> List[Extension]:
        """Replace the scheduling-parameters blocks of a schedule, keeping its other extensions."""
        kept = [
            ext for ext in existing_extensions or []
            if not SchedulingParametersService.is_scheduling_parameters(ext)
        ]
        return kept + SchedulingParametersService.build_schedule_extensions(params)


def weeks_equivalent(a: WeekSchedule, b: WeekSchedule) -> bool:
    """
    Compare two weeks by enabled days and their window multisets.

    Window order within a day does not matter. Encoding drops repeated
    windows on one day, so only weeks without such repeats round-trip equal.
    """
    for day in CANONICAL_DAYS:
        da = a.get(day) or DaySchedule.off()
        db = b.get(day) or DaySchedule.off()
        if da.enabled != db.enabled:
            return False
        if da.enabled and sorted(
            (w.start_minute, w.duration_minutes) for w in da.windows
        ) != sorted((w.start_minute, w.duration_minutes) for w in db.windows):
            return False
    return True

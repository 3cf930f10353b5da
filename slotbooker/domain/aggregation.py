"""
Scheduling-mode policies combining per-participant slots.
"""

from datetime import date
from typing import Dict, List, Mapping, Sequence

from .models import SchedulingMode, Slot
from .timezones import calendar_date


def aggregate_slots(
    mode: SchedulingMode,
    participant_slots: Mapping[str, Sequence[Slot]],
    participant_ids: Sequence[str]
) -> List[Slot]:
    """
    Combine participant slot lists according to the scheduling mode.

    Slots line up on identical start instants because every participant
    slices with the same event duration.

    - any_available: union; eligible = everyone producing that start
    - all_available: intersection; eligible = the full participant list
    - specific_person: the configured person's slots unchanged

    Returns slots sorted ascending by start. Eligible participants keep the
    order of ``participant_ids``.
    """
    if mode == SchedulingMode.ANY_AVAILABLE:
        combined = _union(participant_slots, participant_ids)
    elif mode == SchedulingMode.ALL_AVAILABLE:
        combined = _intersection(participant_slots, participant_ids)
    else:
        combined = [
            slot
            for participant_id in participant_ids
            for slot in participant_slots.get(participant_id, [])
        ]

    return sorted(combined, key=lambda slot: slot.start)


def _union(
    participant_slots: Mapping[str, Sequence[Slot]],
    participant_ids: Sequence[str]
) -> List[Slot]:
    by_start: Dict[object, Slot] = {}
    eligible: Dict[object, List[str]] = {}

    for participant_id in participant_ids:
        for slot in participant_slots.get(participant_id, []):
            key = slot.start
            if key not in by_start:
                by_start[key] = slot
                eligible[key] = []
            if participant_id not in eligible[key]:
                eligible[key].append(participant_id)

    return [
        Slot(time_range=slot.time_range, eligible_participant_ids=tuple(eligible[key]))
        for key, slot in by_start.items()
    ]


def _intersection(
    participant_slots: Mapping[str, Sequence[Slot]],
    participant_ids: Sequence[str]
) -> List[Slot]:
    if not participant_ids:
        return []

    by_start: Dict[object, Slot] = {}
    counts: Dict[object, int] = {}

    for participant_id in participant_ids:
        seen = set()
        for slot in participant_slots.get(participant_id, []):
            key = slot.start
            if key in seen:
                continue
            seen.add(key)
            by_start.setdefault(key, slot)
            counts[key] = counts.get(key, 0) + 1

    everyone = tuple(participant_ids)
    return [
        Slot(time_range=slot.time_range, eligible_participant_ids=everyone)
        for key, slot in by_start.items()
        if counts[key] == len(participant_ids)
    ]


def filter_to_guest_date(
    slots: Sequence[Slot],
    target_date: date,
    guest_timezone: str
) -> List[Slot]:
    """
    Keep slots starting on ``target_date`` as seen by the guest.

    Slots computed in a participant's timezone may fall on an adjacent
    calendar day for the guest.
    """
    return [
        slot for slot in slots
        if calendar_date(slot.start, guest_timezone) == target_date
    ]

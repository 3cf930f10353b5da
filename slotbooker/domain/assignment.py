"""
Organizer assignment for a booked slot.
"""

from typing import Mapping, Sequence

from .exceptions import AssignmentImpossible


def select_assignee(
    eligible_ids: Sequence[str],
    booking_counts: Mapping[str, int]
) -> str:
    """
    Pick the least-loaded eligible participant.

    Load is the number of confirmed bookings each participant already holds
    for the template. Ties go to the participant listed first, so the result
    is deterministic for a given eligible order. This balances load within
    one template only.

    Raises:
        AssignmentImpossible: If no participant is eligible
    """
    if not eligible_ids:
        raise AssignmentImpossible("No eligible participant for the requested slot")

    if len(eligible_ids) == 1:
        return eligible_ids[0]

    assignee = eligible_ids[0]
    min_count = booking_counts.get(assignee, 0)

    for participant_id in eligible_ids[1:]:
        count = booking_counts.get(participant_id, 0)
        if count < min_count:
            min_count = count
            assignee = participant_id

    return assignee

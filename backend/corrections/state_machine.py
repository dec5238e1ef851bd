from django.core.exceptions import ValidationError

from corrections.models import Correction

# Every status other than pending is terminal.
VALID_TRANSITIONS = {
    "pending": {"approved", "modified", "rejected", "superseded"},
    "approved": set(),
    "modified": set(),
    "rejected": set(),
    "superseded": set(),
}

REVIEW_DECISIONS = {"approved", "modified", "rejected"}


def can_transition(from_status: str, to_status: str, *, allow_same=False) -> bool:
    # Plain strings, choices members do not hash like their values.
    from_status, to_status = str(from_status), str(to_status)
    if from_status == to_status:
        return allow_same
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def validate_transition(
    from_status: str,
    to_status: str,
    *,
    allow_same=False,
    entity_name="Correction",
) -> None:
    if can_transition(from_status, to_status, allow_same=allow_same):
        return
    if from_status != Correction.Status.PENDING and str(to_status) in REVIEW_DECISIONS:
        raise ValidationError(f"{entity_name} has already been reviewed")
    raise ValidationError(
        f"Invalid {entity_name} state transition: {from_status} -> {to_status}."
    )


def transition_correction(correction: Correction, to_status: str):
    """Set the status in memory after checking the move is allowed."""
    validate_transition(correction.status, to_status)
    correction.status = to_status
    return correction

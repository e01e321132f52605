"""Submission lifecycle state machine.

Submissions move through a fixed table of legal status changes::

    pending    -> processing, failed
    processing -> completed, failed
    completed  -> (terminal)
    failed     -> (terminal)

:func:`transition` validates a requested change and returns a new
:class:`~feedcast.models.ContentSubmission`; it never mutates its input and
provides no mutual exclusion. Callers changing the same submission from
several threads must serialize those calls themselves.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Mapping, Optional

from feedcast.core.clock import utc_now
from feedcast.errors import InvalidTransitionError, ValidationError
from feedcast.models import ContentSubmission, ContentType, SubmissionStatus, as_utc

TRANSITIONS: Mapping[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.PROCESSING, SubmissionStatus.FAILED}),
    SubmissionStatus.PROCESSING: frozenset({SubmissionStatus.COMPLETED, SubmissionStatus.FAILED}),
    SubmissionStatus.COMPLETED: frozenset(),
    SubmissionStatus.FAILED: frozenset(),
}


def allowed_targets(status: SubmissionStatus) -> FrozenSet[SubmissionStatus]:
    """Return the statuses reachable from ``status`` in one step."""
    return TRANSITIONS[SubmissionStatus(status)]


def is_terminal(status: SubmissionStatus) -> bool:
    """Return True when no further transition is permitted from ``status``."""
    return not allowed_targets(status)


def _parse_status(value: Any) -> SubmissionStatus:
    if isinstance(value, SubmissionStatus):
        return value
    try:
        return SubmissionStatus(value)
    except ValueError:
        valid = ", ".join(status.value for status in SubmissionStatus)
        raise ValidationError(
            f"Unknown target status {value!r}. Must be one of: {valid}", field="status"
        )


def transition(
    submission: ContentSubmission,
    target_status: Any,
    error_message: Optional[str] = None,
    processed_at: Optional[datetime] = None,
    episode_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContentSubmission:
    """Move a submission to ``target_status``.

    Args:
        submission: Current submission value
        target_status: Requested status (enum member or its string value)
        error_message: Failure reason, required when entering ``failed``
        processed_at: Completion time, required when entering a terminal status
        episode_id: Id of the produced episode, only valid when entering ``completed``
        now: Transition time, defaults to the current UTC time

    Returns:
        A new submission value in the target status.

    Raises:
        InvalidTransitionError: If the change is not in the transition table
        ValidationError: If the data accompanying the change is missing or invalid
    """
    target = _parse_status(target_status)
    source = submission.status

    if target not in TRANSITIONS[source]:
        raise InvalidTransitionError(source.value, target.value)

    if target == SubmissionStatus.FAILED:
        if error_message is None or not error_message.strip():
            raise ValidationError(
                "Entering 'failed' requires a non-empty error_message", field="error_message"
            )
    elif error_message is not None:
        raise ValidationError(
            f"error_message is not accepted when entering '{target.value}'", field="error_message"
        )

    if target.is_terminal:
        if processed_at is None:
            raise ValidationError(
                f"Entering '{target.value}' requires processed_at", field="processed_at"
            )
    elif processed_at is not None:
        raise ValidationError(
            f"processed_at is not accepted when entering '{target.value}'", field="processed_at"
        )

    if episode_id is not None and target != SubmissionStatus.COMPLETED:
        raise ValidationError(
            f"episode_id is not accepted when entering '{target.value}'", field="episode_id"
        )

    # updated_at must strictly advance even when the clock has not
    changed_at = as_utc(now or utc_now())
    if changed_at <= submission.updated_at:
        changed_at = submission.updated_at + timedelta(microseconds=1)

    return replace(
        submission,
        status=target,
        error_message=error_message.strip() if error_message is not None else None,
        processed_at=processed_at,
        episode_id=episode_id,
        updated_at=changed_at,
    )


def new_submission(
    content_url: str,
    content_type: Any,
    user_note: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    submission_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContentSubmission:
    """Create a pending submission from intake data.

    Raises:
        ValidationError: If the URL, content type or note is invalid
    """
    if content_url is None or not str(content_url).strip():
        raise ValidationError("content_url is required", field="content_url")
    if content_type is None:
        raise ValidationError("content_type is required", field="content_type")
    if user_note is not None and len(user_note) > 1000:
        raise ValidationError("user_note must not exceed 1000 characters", field="user_note")

    created_at = as_utc(now or utc_now())
    return ContentSubmission(
        id=submission_id or str(uuid.uuid4()),
        content_url=str(content_url).strip(),
        content_type=content_type if isinstance(content_type, ContentType) else str(content_type),
        status=SubmissionStatus.PENDING,
        created_at=created_at,
        updated_at=created_at,
        user_note=user_note,
        metadata=dict(metadata or {}),
    )

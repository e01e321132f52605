"""Submission lifecycle."""

from .state_machine import TRANSITIONS, allowed_targets, is_terminal, new_submission, transition

__all__ = ["TRANSITIONS", "allowed_targets", "is_terminal", "new_submission", "transition"]

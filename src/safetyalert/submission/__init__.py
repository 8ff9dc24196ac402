"""Draft validation and commit workflow."""

from safetyalert.submission.workflow import SubmissionOutcome, SubmissionState, SubmissionWorkflow

__all__ = ["SubmissionOutcome", "SubmissionState", "SubmissionWorkflow"]

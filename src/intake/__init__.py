"""
Feedback intake flow: identity, form specs and the submission orchestrator.

The UI hands over plain form values, the identity captured in the first step,
raw images and a signature; `SubmissionOrchestrator.submit` returns a
`Success` or `Failure` result.
"""

from .config import IntakeSettings, load_settings
from .models import Failure, Identity, Success
from .orchestrator import SubmissionOrchestrator, SubmissionState, submit

__all__ = [
    "Failure",
    "Identity",
    "IntakeSettings",
    "SubmissionOrchestrator",
    "SubmissionState",
    "Success",
    "load_settings",
    "submit",
]

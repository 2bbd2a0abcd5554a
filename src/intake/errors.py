from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Type

from common.envelope import DecryptError, EnvelopeError, FormatError, ParseError
from common.images import ImageDecodeError, ImageTooLargeError


class SubmissionError(RuntimeError):
    """Base error for a failed submission attempt."""


class ValidationError(SubmissionError):
    """One or more form fields failed validation; lists every failing field."""

    def __init__(self, messages: Mapping[str, str]) -> None:
        self.messages: Dict[str, str] = dict(messages)
        self.fields: List[str] = list(self.messages)
        super().__init__(f"Invalid fields: {', '.join(self.fields)}")


class NetworkError(SubmissionError):
    """The request never produced an HTTP response."""


class ServerError(SubmissionError):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, detail: Optional[str] = None) -> None:
        self.status = status
        self.detail = detail
        msg = f"HTTP {status} from collection server"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class ResponseDecodeError(SubmissionError):
    """A response body could not be opened, even if the status was 2xx."""

    def __init__(self, message: str, *, reason: Optional[Type[EnvelopeError]] = None) -> None:
        super().__init__(message)
        self.reason = reason


class InternalError(SubmissionError):
    """Payload could not be sealed; indicates a bug rather than bad input."""


_MESSAGES = {
    ValidationError: "Please complete the form and add your signature.",
    ImageDecodeError: "Could not process image. Please upload a JPEG/PNG.",
    ImageTooLargeError: "Image too large. Please select a smaller image.",
    NetworkError: "Network error. Please try again.",
    ServerError: "Error submitting feedback.",
    InternalError: "Something went wrong while preparing your submission.",
}

_DECODE_MESSAGES = {
    FormatError: "Server response has an unknown format.",
    DecryptError: "Failed to decrypt server response",
    ParseError: "Server response could not be read.",
}


def user_message(error: BaseException) -> str:
    """Map an error kind to the text shown to the user."""
    if isinstance(error, ResponseDecodeError):
        if error.reason is not None:
            return _DECODE_MESSAGES.get(error.reason, "Failed to decrypt server response")
        return "Server response could not be read."
    if isinstance(error, ServerError) and error.detail:
        return error.detail
    if isinstance(error, ImageTooLargeError):
        return str(error) or _MESSAGES[ImageTooLargeError]
    for kind, text in _MESSAGES.items():
        if isinstance(error, kind):
            return text
    return "Submission failed. Please try again."


__all__ = [
    "InternalError",
    "NetworkError",
    "ResponseDecodeError",
    "ServerError",
    "SubmissionError",
    "ValidationError",
    "user_message",
]

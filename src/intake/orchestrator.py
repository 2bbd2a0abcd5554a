"""
Submission orchestrator: validate, encode media, seal, send, open.

One orchestrator serves one form on screen. Each call to `submit` is an
independent at-most-once attempt; nothing is retried automatically because a
submission carries one-shot media. Expected failures come back as `Failure`
results, never as exceptions.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import anyio
import httpx

from common.envelope import EnvelopeCodec, EnvelopeError
from common.images import MediaError, RawImage, check_normalized_size, check_raw_size, normalize
from common.media import SignatureBitmap, to_base64

from .config import IntakeSettings
from .errors import (
    InternalError,
    NetworkError,
    ResponseDecodeError,
    ServerError,
    ValidationError,
    user_message,
)
from .forms import FormSpec, assemble_payload, get_form, validate
from .models import Failure, Identity, Success, SubmissionResult


logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Feedback submitted successfully!"


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    ENCODING_MEDIA = "encoding_media"
    SEALING = "sealing"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    OPENING = "opening"
    SUCCESS = "success"
    FAILED = "failed"


_TERMINAL = (SubmissionState.IDLE, SubmissionState.SUCCESS, SubmissionState.FAILED)

Observer = Callable[[SubmissionState], None]


class SubmissionOrchestrator:
    """
    Drives one submission through the pipeline.

    States: idle -> validating -> encoding_media -> sealing -> sending ->
    awaiting_response -> opening -> success | failed. Terminal states accept
    a new submission. Cancelling the task running `submit` propagates the
    cancellation and puts the orchestrator back to idle.
    """

    def __init__(
        self,
        settings: IntakeSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        codec: Optional[EnvelopeCodec] = None,
        on_transition: Optional[Observer] = None,
    ) -> None:
        self._settings = settings
        self._codec = codec or settings.codec()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout)
        self._on_transition = on_transition
        self._state = SubmissionState.IDLE

    @property
    def state(self) -> SubmissionState:
        return self._state

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SubmissionOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def submit(
        self,
        form: Union[FormSpec, str],
        form_state: Mapping[str, Any],
        identity: Union[Identity, Mapping[str, Any], None] = None,
        images: Sequence[RawImage] = (),
        signature: Optional[SignatureBitmap] = None,
    ) -> SubmissionResult:
        """
        Validate, encode, seal and send one form submission.

        Returns Success with the decrypted acknowledgement, or Failure with the
        typed error and a user-facing message. Raises RuntimeError when a
        submission is already in flight and KeyError for an unknown form.
        """
        spec = get_form(form) if isinstance(form, str) else form
        if not isinstance(identity, Identity):
            identity = Identity.from_form(dict(identity or {}))
        if self._state not in _TERMINAL:
            raise RuntimeError("A submission is already in progress")

        logger.info("Submitting %s (%d image(s))", spec.form_type, len(images))
        try:
            result = await self._run(spec, form_state, identity, list(images), signature)
        finally:
            if self._state not in _TERMINAL:
                # Cancelled mid-flight
                logger.info("Submission of %s abandoned in state %s", spec.form_type, self._state.value)
                self._transition(SubmissionState.IDLE)
        return result

    # --------------- Internal ---------------
    def _transition(self, state: SubmissionState) -> None:
        logger.debug("Submission state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_transition is not None:
            self._on_transition(state)

    def _fail(self, error: Exception) -> Failure:
        logger.warning("Submission failed: %s: %s", type(error).__name__, error)
        self._transition(SubmissionState.FAILED)
        return Failure(error=error, message=user_message(error))

    async def _run(
        self,
        spec: FormSpec,
        form_state: Mapping[str, Any],
        identity: Identity,
        images: List[RawImage],
        signature: Optional[SignatureBitmap],
    ) -> SubmissionResult:
        self._transition(SubmissionState.VALIDATING)
        has_signature = signature is not None and not signature.is_empty()
        errors = validate(spec, form_state, identity, photo_count=len(images), has_signature=has_signature)
        if errors:
            return self._fail(ValidationError(errors))

        self._transition(SubmissionState.ENCODING_MEDIA)
        try:
            photos = await self._encode_images(images)
            signature_b64 = await to_base64(signature)
        except MediaError as exc:
            return self._fail(exc)

        self._transition(SubmissionState.SEALING)
        try:
            payload = assemble_payload(spec, form_state, identity, photos=photos, signature=signature_b64)
            envelope = self._codec.seal(payload)
        except Exception as exc:  # sealing a well-formed payload cannot fail
            return self._fail(InternalError(f"Failed to seal payload: {exc}"))

        self._transition(SubmissionState.SENDING)
        url = self._settings.endpoint_url(spec.endpoint)
        try:
            request = self._client.build_request("POST", url, json={"envelope": envelope})
            self._transition(SubmissionState.AWAITING_RESPONSE)
            resp = await self._client.send(request)
        except httpx.HTTPError as exc:
            return self._fail(NetworkError(f"Request to {spec.endpoint} failed: {exc}"))

        if not resp.is_success:
            return self._fail(ServerError(resp.status_code, self._error_detail(resp)))

        self._transition(SubmissionState.OPENING)
        try:
            data = self._open_response(resp)
        except ResponseDecodeError as exc:
            return self._fail(exc)

        message = data.get("message") if isinstance(data.get("message"), str) else None
        self._transition(SubmissionState.SUCCESS)
        logger.info("Submitted %s", spec.form_type)
        return Success(message=message or DEFAULT_SUCCESS_MESSAGE, data=data)

    async def _encode_images(self, images: List[RawImage]) -> List[str]:
        """Normalize and encode every image concurrently; join before returning."""
        results: List[Optional[str]] = [None] * len(images)
        failures: List[Optional[MediaError]] = [None] * len(images)

        async def encode_one(index: int, raw: RawImage) -> None:
            try:
                check_raw_size(raw, self._settings.max_raw_bytes)
                normalized = await normalize(
                    raw,
                    max_width=self._settings.max_width,
                    quality=self._settings.jpeg_quality,
                    max_raw_bytes=self._settings.max_raw_bytes,
                )
                check_normalized_size(normalized, self._settings.max_normalized_bytes)
                results[index] = await to_base64(normalized)
            except MediaError as exc:
                failures[index] = exc

        async with anyio.create_task_group() as tg:
            for i, raw in enumerate(images):
                tg.start_soon(encode_one, i, raw)

        for exc in failures:
            if exc is not None:
                raise exc
        return [r for r in results if r is not None]

    def _open_response(self, resp: httpx.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as exc:
            raise ResponseDecodeError("Response body is not JSON") from exc
        envelope = body.get("envelope") if isinstance(body, dict) else None
        if not isinstance(envelope, str):
            raise ResponseDecodeError("Response has no envelope")
        try:
            data = self._codec.open(envelope)
        except EnvelopeError as exc:
            raise ResponseDecodeError(f"Could not open response: {exc}", reason=type(exc)) from exc
        if not isinstance(data, dict):
            raise ResponseDecodeError("Decrypted response is not an object")
        return data

    def _error_detail(self, resp: httpx.Response) -> Optional[str]:
        # Error bodies are usually sealed too; surface their text when they open
        try:
            data = self._open_response(resp)
        except ResponseDecodeError:
            return None
        detail = data.get("error") or data.get("message")
        return str(detail) if detail else None


async def submit(
    settings: IntakeSettings,
    form: Union[FormSpec, str],
    form_state: Mapping[str, Any],
    identity: Union[Identity, Mapping[str, Any], None] = None,
    images: Sequence[RawImage] = (),
    signature: Optional[SignatureBitmap] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> SubmissionResult:
    """One-shot convenience wrapper around SubmissionOrchestrator."""
    async with SubmissionOrchestrator(settings, client=client) as orchestrator:
        return await orchestrator.submit(form, form_state, identity, images, signature)


__all__ = [
    "DEFAULT_SUCCESS_MESSAGE",
    "SubmissionOrchestrator",
    "SubmissionState",
    "submit",
]

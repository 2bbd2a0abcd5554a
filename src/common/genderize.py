from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx


logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.genderize.io"

_GENDER_MAP = {"male": "Male", "female": "Female"}


class GenderizeError(RuntimeError):
    """Request to the gender prediction API failed or returned junk."""


class GenderizeClient:
    """
    Minimal genderize.io client used to pre-select the gender field.

    Notes
    - One GET per prediction, no retries: a suggestion is optional and the
      user can always pick the value by hand.
    - Returns the identification form's option values ("Male"/"Female") or None.
    """

    def __init__(
        self,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "GenderizeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def predict(self, first_name: str, last_name: str = "") -> Optional[str]:
        """Predict "Male"/"Female" for a name; None when unknown or blank."""
        name = " ".join(p for p in (first_name.strip(), last_name.strip()) if p)
        if not first_name.strip():
            return None

        try:
            resp = await self._client.get(f"{self._api_base}/", params={"name": name})
        except httpx.HTTPError as exc:
            raise GenderizeError("Gender prediction request failed") from exc
        if resp.status_code != 200:
            raise GenderizeError(f"HTTP {resp.status_code} from genderize: {resp.text[:200]}")
        try:
            data: Dict[str, Any] = resp.json()
        except ValueError as exc:
            raise GenderizeError("Failed to parse JSON from genderize") from exc
        if not isinstance(data, dict):
            raise GenderizeError("Malformed response from genderize")

        gender = data.get("gender")
        if isinstance(gender, str):
            return _GENDER_MAP.get(gender.lower())
        return None


async def suggest_gender(client: GenderizeClient, first_name: str, last_name: str = "") -> Optional[str]:
    """Best-effort prediction: failures are logged and yield None."""
    try:
        return await client.predict(first_name, last_name)
    except GenderizeError as exc:
        logger.warning("Gender prediction unavailable: %s", exc)
        return None


__all__ = [
    "GenderizeClient",
    "GenderizeError",
    "suggest_gender",
]

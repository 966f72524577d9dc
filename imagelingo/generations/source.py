"""Status-fetch interface for generation records.

Any transport satisfying `GenerationSource` can back the poller. The HTTP
implementation talks to `GET /api/generations/{id}` on the ImageLingo API.
"""

from __future__ import annotations

from typing import Protocol

import httpx
from pydantic import ValidationError

from config import settings
from imagelingo.errors import FetchError
from imagelingo.schemas import GenerationResult
from imagelingo.utils.logger import logger


class GenerationSource(Protocol):
    """Anything that can fetch the current state of a generation."""

    async def fetch_generation(self, generation_id: str) -> GenerationResult: ...


class HttpGenerationSource:
    """Fetch generation records from the ImageLingo HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        user_id: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.user_id = user_id
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.request_timeout
        )

    def _headers(self) -> dict[str, str]:
        return {"X-User-Id": self.user_id} if self.user_id else {}

    async def fetch_generation(self, generation_id: str) -> GenerationResult:
        """GET one generation.

        Raises:
            FetchError: transport failure, non-2xx response or malformed body.
        """
        url = f"{self.base_url}/api/generations/{generation_id}"
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise FetchError(
                str(exc) or "Failed to fetch generation",
                original_error=exc,
                context={"generation_id": generation_id},
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = None
            if isinstance(data, dict):
                message = data.get("error") or data.get("detail")
            raise FetchError(
                str(message or "Failed to fetch generation"),
                context={"generation_id": generation_id, "status_code": response.status_code},
            )

        try:
            return GenerationResult.model_validate(data)
        except ValidationError as exc:
            raise FetchError(
                "Malformed generation response",
                original_error=exc,
                context={"generation_id": generation_id},
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpGenerationSource:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


async def fetch_generation_result(
    source: GenerationSource, generation_id: str
) -> GenerationResult | None:
    """Fetch a generation and its URLs, or None on any failure (logged)."""
    try:
        return await source.fetch_generation(generation_id)
    except Exception as exc:
        logger.error(f"[Source] Error fetching generation result {generation_id}: {exc}")
        return None

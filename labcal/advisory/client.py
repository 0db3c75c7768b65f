"""
Biomni Client — HTTP client for the external AI advisory service.

Biomni is external. The core never depends on its availability: every
failure surfaces as AdvisoryTimeout or AdvisoryServiceError and the
adapter falls back to the deterministic score.
"""

from typing import Optional, Protocol

import httpx
import structlog
from pydantic import ValidationError

from labcal.advisory.schemas import AdvisoryRequest, AdvisoryResponse
from labcal.errors import AdvisoryServiceError, AdvisoryTimeout

logger = structlog.get_logger(__name__)

ADVISORY_PATH = "/api/v1/calibration/advisory"


class AdvisoryClient(Protocol):
    """Anything that can answer an advisory request."""

    async def request_advisory(self, request: AdvisoryRequest) -> AdvisoryResponse: ...


class BiomniAdvisoryClient:
    """HTTP client for the Biomni calibration advisory endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        if not self.api_key:
            logger.warning("biomni_api_key_missing", msg="Advisory requests are sent unauthenticated")

    def _client(self) -> httpx.AsyncClient:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def request_advisory(self, request: AdvisoryRequest) -> AdvisoryResponse:
        """
        POST the request and parse the answer.

        Raises:
            AdvisoryTimeout: transport-level timeout
            AdvisoryServiceError: non-2xx status, transport failure,
                or a body that is not a valid advisory response
        """
        payload = request.model_dump(mode="json", by_alias=True)

        try:
            async with self._client() as client:
                resp = await client.post(ADVISORY_PATH, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except httpx.TimeoutException as e:
            logger.warning("biomni_timeout", timeout=self.timeout)
            raise AdvisoryTimeout(self.timeout) from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "biomni_api_error",
                status=e.response.status_code,
                body=e.response.text[:500],
            )
            raise AdvisoryServiceError(
                f"Advisory service returned HTTP {e.response.status_code}",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.warning("biomni_unavailable", error=str(e))
            raise AdvisoryServiceError(
                "Advisory service unreachable", details={"error": str(e)}
            ) from e
        except ValueError as e:
            logger.warning("biomni_invalid_json", error=str(e))
            raise AdvisoryServiceError("Advisory response is not JSON") from e

        # Accept both a bare object and the {"data": {...}} envelope.
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]

        try:
            return AdvisoryResponse.model_validate(body)
        except ValidationError as e:
            logger.warning("biomni_invalid_response", errors=e.error_count())
            raise AdvisoryServiceError(
                "Advisory response failed validation",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

# =============================================================================
# lib/replicate_client.py - Replicate API Client Wrapper
# =============================================================================
# Thin synchronous wrapper over the Replicate HTTP API used by the submission
# endpoint (create) and the Celery worker (poll + download).
#
# Usage:
#   from lib.replicate_client import ReplicateClient
#
#   client = ReplicateClient()
#   prediction = client.create_prediction(input=transformation.to_provider_input())
#   prediction = client.get_prediction(prediction.id)
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from app.config import settings
from app.exceptions import ProviderError

logger = logging.getLogger(__name__)

# Prediction states reported by the provider
RUNNING_STATES = frozenset({"starting", "processing"})
SUCCEEDED = "succeeded"


class Prediction(BaseModel):
    """
    Subset of a Replicate prediction that the pipeline reads.

    Example:
        {
            "id": "abc123",
            "status": "succeeded",
            "output": ["https://replicate.delivery/.../out-0.png"],
            "error": null
        }
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Prediction id, used as the operationId")
    status: str = Field(..., description="starting | processing | succeeded | failed | canceled")
    output: Any = Field(default=None, description="Output URL or list of URLs once succeeded")
    error: str | None = Field(default=None, description="Provider error text")

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_STATES

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


class ReplicateClient:
    """
    Synchronous client for the Replicate predictions API.

    Every failure (transport error, non-2xx status, unexpected body) is
    raised as ProviderError so callers only handle one exception type.
    """

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        self.http_client = http_client or httpx.Client(
            base_url=base_url or settings.REPLICATE_API_URL,
            headers={"Authorization": f"Bearer {api_token or settings.REPLICATE_API_TOKEN}"},
            timeout=timeout,
        )

    def close(self) -> None:
        self.http_client.close()

    def __enter__(self) -> "ReplicateClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Predictions
    # -------------------------------------------------------------------------

    def create_prediction(self, input: dict[str, Any], version: str | None = None) -> Prediction:
        """
        Create a prediction for the pinned model version.

        Args:
            input: Model input (see TransformationInput.to_provider_input)
            version: Model version; defaults to REPLICATE_MODEL_VERSION

        Returns:
            Prediction: The newly created prediction

        Raises:
            ProviderError: If the provider rejects the request
        """
        payload = {"version": version or settings.REPLICATE_MODEL_VERSION, "input": input}
        prediction = self._request("POST", "/predictions", json=payload)
        logger.info(f"Prediction created: {prediction.id}")
        return prediction

    def get_prediction(self, prediction_id: str) -> Prediction:
        """
        Fetch the current state of a prediction.

        Raises:
            ProviderError: If the prediction cannot be fetched
        """
        return self._request("GET", f"/predictions/{prediction_id}")

    def _request(self, method: str, path: str, **kwargs: Any) -> Prediction:
        try:
            response = self.http_client.request(method, path, **kwargs)
            response.raise_for_status()
            return Prediction.model_validate(response.json())

        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error(f"Replicate {method} {path} failed: HTTP {e.response.status_code} {detail}")
            raise ProviderError(detail or f"HTTP {e.response.status_code}")

        except httpx.HTTPError as e:
            logger.error(f"Replicate {method} {path} failed: {e}")
            raise ProviderError(str(e) or type(e).__name__)

        except ValueError as e:
            # Invalid JSON or an unexpected prediction shape
            logger.error(f"Replicate {method} {path} returned an invalid body: {e}")
            raise ProviderError("Invalid response from AI service")

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    def download(self, url: str) -> bytes:
        """
        Download an output file.

        Output URLs are absolute and served from a CDN, so the bearer token
        is not sent.

        Raises:
            ProviderError: If the download fails
        """
        try:
            response = httpx.get(url, timeout=self.http_client.timeout, follow_redirects=True)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise ProviderError(f"Download failed for {url}: {e}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)

"""HTTP client for the orchestrator's run API."""

from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from stepflow.config import Settings
from stepflow.errors import ApiError
from stepflow.hashing import hash_signing_key

logger = structlog.get_logger(__name__)


class ApiClient:
    """
    Fetches run data that was too large to inline in an invocation payload.

    Requests are authenticated with the hashed signing key.  If the
    orchestrator rejects it and a fallback key is configured, the request is
    retried once with the fallback.
    """

    def __init__(
        self,
        base_url: str,
        signing_key: Optional[str] = None,
        signing_key_fallback: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._hashed_key = hash_signing_key(signing_key)
        self._hashed_fallback_key = hash_signing_key(signing_key_fallback)
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ApiClient":
        return cls(
            base_url=settings.api_base_url,
            signing_key=settings.signing_key,
            signing_key_fallback=settings.signing_key_fallback,
            timeout=settings.request_timeout,
        )

    async def get_run_steps(self, run_id: str, version: int = 1) -> Dict[str, Any]:
        """Memoized step outcomes for a run, keyed by hashed step id."""
        data = await self._get(f"/v0/runs/{run_id}/actions", "retrieving step data")
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected step data for run {run_id}", status=500)
        logger.debug("run_steps_fetched", run_id=run_id, steps=len(data), version=version)
        return data

    async def get_run_batch(self, run_id: str) -> List[Dict[str, Any]]:
        """Events that triggered a batched run."""
        data = await self._get(f"/v0/runs/{run_id}/batch", "retrieving event batch")
        if not isinstance(data, list):
            raise ApiError(f"Unexpected event batch for run {run_id}", status=500)
        logger.debug("run_batch_fetched", run_id=run_id, events=len(data))
        return data

    async def _get(self, path: str, action: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                status, body = await self._request(session, url, self._hashed_key)
                if status in (401, 403) and self._hashed_fallback_key:
                    logger.debug("api_auth_fallback", url=url, status=status)
                    status, body = await self._request(session, url, self._hashed_fallback_key)
        except aiohttp.ClientError as e:
            logger.error("api_request_failed", url=url, error=str(e))
            raise ApiError(f"Unknown error {action}: {e}", status=500) from e

        if status >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise ApiError(message or f"Unknown error {action}", status=status)

        return body

    @staticmethod
    async def _request(session: aiohttp.ClientSession, url: str, token: str):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        async with session.get(url, headers=headers) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None
            return response.status, body

"""
Violation Transport - Authenticated HTTP client for the assessment server

Endpoints:
- POST /assessments/{assessment_id}/attempts/{attempt_id}/violations        (single)
- POST /assessments/{assessment_id}/attempts/{attempt_id}/violations/batch  (batch)
- POST /identity-verification/{attempt_id}/comparison-log                  (identity log)
- GET  /identity-verification/{attempt_id}/descriptor                      (reference face)

Every call reports success/failure instead of raising. No retries happen
here: retry cadence belongs to the violation ledger.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..violations.types import Violation

logger = logging.getLogger(__name__)


class ViolationTransport:
    """
    Posts violations to the assessment server over httpx.

    Args:
        base_url: Server API root, e.g. ``https://host/api/v1``
        token: Bearer token for the candidate session
        timeout: Per-request timeout in seconds
        client: Optional pre-built ``httpx.AsyncClient`` (not closed by us)
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily create the owned client"""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout
            )
        return self._client

    @staticmethod
    def violations_path(assessment_id: str, attempt_id: str) -> str:
        return f"/assessments/{assessment_id}/attempts/{attempt_id}/violations"

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        response = await self.client.post(path, json=payload)
        response.raise_for_status()
        return response

    async def send_batch(
        self,
        assessment_id: str,
        attempt_id: str,
        violations: Sequence[Violation]
    ) -> bool:
        """
        Deliver a batch of violations.

        Returns:
            True on a 2xx response (or an empty batch), False otherwise
        """
        if not violations:
            return True

        path = self.violations_path(assessment_id, attempt_id) + "/batch"
        payload = {"violations": [v.to_payload() for v in violations]}

        try:
            await self._post(path, payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send violation batch ({len(violations)}): {e}")
            return False

        logger.info(f"Sent violation batch: {len(violations)} violation(s) for attempt {attempt_id}")
        return True

    async def send_immediate(self, violation: Violation) -> bool:
        """
        Deliver one violation, addressed by the violation's own session ids.

        Returns:
            True on a 2xx response, False otherwise
        """
        path = self.violations_path(violation.assessment_id, violation.attempt_id)

        try:
            await self._post(path, violation.to_payload())
        except httpx.HTTPError as e:
            logger.error(f"Failed to send critical violation {violation.type.value}: {e}")
            return False

        logger.info(f"Sent critical violation {violation.type.value} (#{violation.count})")
        return True

    async def log_face_comparison(
        self,
        attempt_id: str,
        comparison: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Log one identity comparison result.

        Non-critical: returns the response body, or None when logging failed.
        """
        path = f"/identity-verification/{attempt_id}/comparison-log"

        try:
            response = await self._post(path, comparison)
        except httpx.HTTPError as e:
            logger.error(f"Failed to log face comparison: {e}")
            return None

        try:
            return response.json()
        except ValueError:
            return {}

    async def get_reference_descriptor(self, attempt_id: str) -> Optional[List[float]]:
        """Fetch the reference face descriptor captured at identity verification"""
        path = f"/identity-verification/{attempt_id}/descriptor"

        try:
            response = await self.client.get(path)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to get reference descriptor: {e}")
            return None

        # Server wraps payloads as {"data": {...}} or returns them bare
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        descriptor = data.get("descriptor") if isinstance(data, dict) else None
        if not isinstance(descriptor, list):
            logger.warning(f"No reference descriptor stored for attempt {attempt_id}")
            return None
        return [float(x) for x in descriptor]

    async def aclose(self):
        """Close the owned HTTP client"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

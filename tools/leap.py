import httpx
from typing import Dict, Any, List, Optional
from loguru import logger

from settings import Settings
from tools.errors import UpstreamError


def _records(body: Any) -> List[Dict[str, Any]]:
    """Pull the list of records out of a Leap search response."""
    if isinstance(body, list):
        return [r for r in body if isinstance(r, dict)]
    if isinstance(body, dict):
        for key in ("data", "customers", "results"):
            if isinstance(body.get(key), list):
                return [r for r in body[key] if isinstance(r, dict)]
    return []


def _record(body: Any) -> Dict[str, Any]:
    """Unwrap a single Leap record, which may arrive inside a `data` envelope."""
    if isinstance(body, dict):
        if isinstance(body.get("data"), dict):
            return body["data"]
        return body
    return {}


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class LeapClient:
    """Leap (JobProgress) CRM REST client."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.leap_api_key
        self.base_url = settings.leap_base_url
        self.job_resource = settings.job_resource
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for Leap API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._get_headers(),
            transport=self._transport
        )

    async def find_customer(self, email: str = "", phone: str = "") -> Optional[Dict[str, Any]]:
        """
        Look up an existing customer by contact information.

        The first returned record with an id wins. Any failure is logged and
        reported as no match so the caller can fall through to creation.

        Args:
            email: First email address of the customer
            phone: First phone number of the customer

        Returns:
            Matching customer record or None
        """
        params = {k: v for k, v in (("email", email), ("phone", phone)) if v}
        if not params:
            logger.info("No email or phone to search on, skipping customer lookup")
            return None

        try:
            async with self._client() as client:
                response = await client.get("/customers", params=params)
                response.raise_for_status()
                matches = [r for r in _records(response.json()) if r.get("id") is not None]
        except httpx.HTTPStatusError as e:
            logger.warning(f"Customer search returned {e.response.status_code}, treating as no match")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Customer search failed, treating as no match: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Customer search returned malformed JSON, treating as no match: {e}")
            return None

        if not matches:
            logger.info(f"No existing customer for {params}")
            return None
        logger.info(f"Found {len(matches)} existing customer(s), using {matches[0]['id']}")
        return matches[0]

    async def create_customer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new customer in Leap."""
        return await self._create("/customers", payload, "customer")

    async def create_job(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a job/estimate attached to an existing customer."""
        return await self._create(f"/{self.job_resource}", payload, self.job_resource.rstrip("s"))

    async def _create(self, path: str, payload: Dict[str, Any], kind: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error(f"Leap {kind} creation failed with {e.response.status_code}: {detail}")
            raise UpstreamError(
                f"Leap {kind} creation failed",
                upstream_status=e.response.status_code,
                detail=detail
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Leap {kind} creation failed: {e}")
            raise UpstreamError(f"Leap {kind} creation failed", detail=str(e)) from e
        except ValueError as e:
            raise UpstreamError(f"Leap {kind} response was not JSON", detail=str(e)) from e

        record = _record(body)
        if record.get("id") is None:
            raise UpstreamError(f"Leap {kind} response did not include an id", detail=body)

        logger.info(f"Created Leap {kind} {record['id']}")
        return record

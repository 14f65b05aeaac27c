from typing import Dict, Any, Optional
import copy

import httpx
import structlog

logger = structlog.get_logger(__name__)


class CollaboratorError(Exception):
    """An external service call failed; carries the service's own error text"""

    def __init__(self, service: str, status_code: Optional[int], detail: str):
        self.service = service
        self.status_code = status_code
        self.detail = detail
        prefix = f"{service} failed" if status_code is None else f"{service} failed ({status_code})"
        super().__init__(f"{prefix}: {detail}" if detail else prefix)


def error_text(response: httpx.Response) -> str:
    """Best available error text from a failed response"""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            if body.get(key):
                return str(body[key])

    return response.text.strip() or f"HTTP {response.status_code}"


class CollaboratorClient:
    """Base for HTTP clients of external services"""

    service_name = "collaborator"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def with_token(self, token: Optional[str]):
        """Copy of this client that forwards the given bearer token"""
        clone = copy.copy(self)
        clone.token = token
        return clone

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.error("Collaborator request failed", service=self.service_name, path=path, error=str(e))
                raise CollaboratorError(self.service_name, None, str(e)) from e

        if response.is_error:
            detail = error_text(response)
            logger.error(
                "Collaborator returned error",
                service=self.service_name,
                path=path,
                status_code=response.status_code,
                error=detail,
            )
            raise CollaboratorError(self.service_name, response.status_code, detail)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"text": response.text}

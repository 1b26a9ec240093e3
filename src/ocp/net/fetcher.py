"""Network access for the proxy: a thin httpx wrapper with a uniform failure type."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.models import ProxyRequest, ProxyResponse
from ..errors import NetworkError
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Never forwarded upstream. httpx sends its own Accept-Encoding, limited to
# the encodings it can decode.
HOP_BY_HOP = {
    "accept-encoding",
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
}


class Network(ABC):
    """Anything able to turn a ``ProxyRequest`` into a ``ProxyResponse``."""

    @abstractmethod
    async def fetch(self, request: ProxyRequest) -> ProxyResponse:
        """
        Perform the request.

        Returns the response whatever its status code.

        Raises:
            NetworkError: when no response could be obtained at all
        """
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpxNetwork(Network):
    """Network implementation backed by a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
            headers={"User-Agent": user_agent} if user_agent else None,
            follow_redirects=True,
        )

    @staticmethod
    def _forward_headers(headers: Dict[str, str]) -> Dict[str, str]:
        return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP}

    async def fetch(self, request: ProxyRequest) -> ProxyResponse:
        logger.debug("Fetching from network", extra={"method": request.method, "url": request.url})
        try:
            response = await self.client.request(
                request.method,
                request.url,
                headers=self._forward_headers(request.headers),
                content=request.body or None,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"{request.method} {request.url} failed: {e!r}", url=request.url) from e
        return ProxyResponse.from_httpx(response, url=request.url)

    async def close(self) -> None:
        await self.client.aclose()


async def precache_fetch(network: Network, request: ProxyRequest, attempts: int = 3) -> ProxyResponse:
    """
    Fetch a manifest resource for install-time population.

    Transient network failures are retried with exponential backoff; a
    response with a non-OK status fails immediately since retrying would
    not change what the server serves.

    Raises:
        NetworkError: if every attempt failed or the status is not OK
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        retry=retry_if_exception_type(NetworkError),
        reraise=True,
    ):
        with attempt:
            response = await network.fetch(request)
    if not response.ok:
        raise NetworkError(f"{request.url} answered {response.status}", url=request.url)
    return response


class OfflineNetwork(Network):
    """A network that is always unreachable."""

    async def fetch(self, request: ProxyRequest) -> ProxyResponse:
        raise NetworkError(f"offline: {request.method} {request.url}", url=request.url)

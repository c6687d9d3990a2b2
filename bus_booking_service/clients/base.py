"""
Shared plumbing for HTTP collaborators.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import get_settings
from ..utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, get_circuit_breaker
from ..utils.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Base class for REST collaborators.

    Requests go through the service's circuit breaker. 5xx answers and
    transport errors surface as ExternalServiceError; 4xx answers are returned
    for the subclass to interpret.
    """

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        settings = get_settings()
        timeout = timeout or settings.http_timeout_seconds

        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.breaker = breaker or get_circuit_breaker(
            self.service_name,
            CircuitBreakerConfig(
                failure_threshold=settings.circuit_breaker_failure_threshold,
                recovery_timeout=settings.circuit_breaker_recovery_timeout,
                expected_exception=httpx.HTTPError,
                timeout=timeout,
            ),
            enabled=settings.enable_circuit_breakers,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async def send() -> httpx.Response:
            response = await self.http.request(method, path, **kwargs)
            if response.status_code >= 500:
                raise ExternalServiceError(
                    self.service_name,
                    f"{method} {path} returned {response.status_code}",
                    status_code=response.status_code,
                )
            return response

        return await self.breaker.call(send)

    def _unexpected(self, response: httpx.Response, action: str) -> ExternalServiceError:
        logger.error(
            f"{self.service_name} rejected {action}: {response.status_code} {response.text[:200]}"
        )
        return ExternalServiceError(
            self.service_name,
            f"{action} failed with status {response.status_code}",
            status_code=response.status_code,
        )

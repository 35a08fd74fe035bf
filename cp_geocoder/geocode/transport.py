"""Geocoding transport: one ladder attempt, one spaced and retried request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cp_geocoder.common.http import HttpClient, RetryableHttpError
from cp_geocoder.common.logging import log_event
from cp_geocoder.geocode.models import Candidate, parse_candidates
from cp_geocoder.geocode.strategies import GeocodeQuery


@dataclass(frozen=True)
class TransportResult:
    candidates: list[Candidate] = field(default_factory=list)
    ok: bool = True
    status: int | None = None


class GeocodeTransport:
    def __init__(
        self,
        client: HttpClient,
        *,
        search_url: str,
        email: str | None = None,
        result_limit: int = 5,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.search_url = search_url
        self.email = email
        self.result_limit = result_limit
        self.logger = logger or logging.getLogger(__name__)

    def _params(self, query: GeocodeQuery) -> dict[str, str]:
        params = dict(query.params)
        params["format"] = "jsonv2"
        params["addressdetails"] = "1"
        params["limit"] = str(self.result_limit)
        if self.email:
            params["email"] = self.email
        return params

    def send(self, query: GeocodeQuery) -> TransportResult:
        try:
            payload = self.client.get_json(self.search_url, params=self._params(query))
        except RetryableHttpError as exc:
            log_event(
                self.logger,
                f"retries exhausted for {query.strategy.value}: {exc}",
                level=logging.WARNING,
                strategy=query.strategy.value,
                event="HTTP_EXHAUSTED",
                status="error",
                error_code=exc.error_code,
            )
            return TransportResult(candidates=[], ok=False, status=exc.status)
        return TransportResult(candidates=parse_candidates(payload), ok=True, status=200)

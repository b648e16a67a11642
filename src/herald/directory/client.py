#!/usr/bin/env python3
"""
Directory Service HTTP Client

This module provides:
- EndpointKind: the three exchanges a directory service accepts
- ExchangeResult: outcome of one request/response round trip
- DirectoryTransport: protocol the registration controller depends on
- DirectoryClient: form-encoded HTTP client for a NodeListServer-style directory
"""

import asyncio
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class EndpointKind(Enum):
    """Directory endpoint kinds"""
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


DEFAULT_ENDPOINTS: dict[EndpointKind, str] = {
    EndpointKind.ADD: "/add",
    EndpointKind.UPDATE: "/update",
    EndpointKind.REMOVE: "/remove",
}


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of a single exchange with the directory."""
    success: bool
    status_code: int
    error_detail: str = ""


class DirectoryTransport(Protocol):
    """Anything that can perform one exchange with a directory service."""

    async def send(self, kind: EndpointKind,
                   fields: Mapping[str, str]) -> ExchangeResult:
        ...


class DirectoryClient:
    """Thin HTTP client that posts form fields to the directory endpoints."""

    def __init__(self, server_address: str = "http://127.0.0.1:8889",
                 endpoints: Optional[Mapping[EndpointKind, str]] = None,
                 timeout: float = 10):
        self._base = server_address.rstrip("/")
        self._endpoints = dict(DEFAULT_ENDPOINTS)
        if endpoints:
            self._endpoints.update(endpoints)
        self._timeout = timeout
        # Directories usually sit on the same private network as the game
        # server, so ignore any http_proxy settings.
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def url_for(self, kind: EndpointKind) -> str:
        return f"{self._base}{self._endpoints[kind]}"

    def _post(self, kind: EndpointKind, fields: Mapping[str, str]) -> ExchangeResult:
        url = self.url_for(kind)
        body = urllib.parse.urlencode(fields).encode()
        request = urllib.request.Request(
            url,
            data=body,
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        try:
            with self._opener.open(request, timeout=self._timeout) as resp:
                status = resp.status
                text = resp.read().decode(errors="replace")
        except urllib.error.HTTPError as exc:
            return ExchangeResult(False, exc.code, f"HTTP {exc.code}: {exc.reason}")
        except (urllib.error.URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            return ExchangeResult(False, 0, str(reason))

        logger.debug("POST %s -> %d", url, status)
        if status == 200:
            return ExchangeResult(True, status)
        return ExchangeResult(False, status, text.strip() or f"HTTP {status}")

    async def send(self, kind: EndpointKind,
                   fields: Mapping[str, str]) -> ExchangeResult:
        """POST *fields* to the endpoint for *kind*.

        Only HTTP 200 counts as success.  Network errors are reported as a
        failed result with status code 0 rather than raised.
        """
        return await asyncio.to_thread(self._post, kind, fields)

"""Async HTTP transport: one API call, one parsed document or one error."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import AsyncIterable, Mapping
from typing import Protocol

import httpx

from ..config import QuickBaseClientConfig
from .errors import QuickBaseError, QuickBaseTransportError
from .transport_shared import (
    build_action_headers,
    build_default_headers,
    build_default_timeout,
    ensure_http_success,
    evaluate_document,
    wrap_network_error,
)
from .wire import aiter_envelope_chunks, encode_params

logger = logging.getLogger("quickbase_api_client")


class AsyncTransportClient(Protocol):
    def build_request(self, method: str, url: str, **kwargs: object) -> httpx.Request: ...
    async def send(self, request: httpx.Request, *, stream: bool = False) -> httpx.Response: ...
    async def aclose(self) -> None: ...


class AsyncTransport:
    """Asynchronous transport for the QuickBase XML API."""

    def __init__(
        self,
        config: QuickBaseClientConfig,
        *,
        client: AsyncTransportClient | None = None,
    ) -> None:
        self._config = config
        self._closed = False
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=build_default_headers(config),
            timeout=build_default_timeout(config),
        )

    @property
    def config(self) -> QuickBaseClientConfig:
        return self._config

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    def _ensure_open(self) -> None:
        if self._closed:
            raise QuickBaseTransportError("transport is already closed")

    async def call(self, url: str, action: str, params: Mapping[str, str]) -> ET.Element:
        return await self.post(url, action, content=encode_params(params))

    async def post(
        self,
        url: str,
        action: str,
        *,
        content: bytes | AsyncIterable[bytes],
    ) -> ET.Element:
        self._ensure_open()
        logger.debug("request start action=%s url=%s", action, url)
        request = self._client.build_request(
            "POST",
            url,
            headers=build_action_headers(action),
            content=content,
        )
        try:
            response = await self._client.send(request)
        except Exception as exc:
            logger.error(
                "request network error action=%s error=%s",
                action,
                exc.__class__.__name__,
            )
            raise wrap_network_error(exc, action=action) from exc

        http_status = response.status_code
        logger.debug("response received action=%s http_status=%s", action, http_status)
        try:
            tree = evaluate_document(response.content, action=action, http_status=http_status)
        except QuickBaseError as exc:
            logger.error(
                "request failed action=%s http_status=%s error=%s",
                action,
                http_status,
                exc.__class__.__name__,
            )
            raise
        logger.info("request success action=%s", action)
        return tree

    async def open_stream(
        self,
        url: str,
        action: str,
        params: Mapping[str, str],
    ) -> httpx.Response:
        self._ensure_open()
        logger.debug("stream request start action=%s url=%s", action, url)
        request = self._client.build_request(
            "POST",
            url,
            headers=build_action_headers(action),
            content=aiter_envelope_chunks(params),
        )
        return await self._send_stream(request, action=action)

    async def open_get_stream(self, url: str, params: Mapping[str, str]) -> httpx.Response:
        self._ensure_open()
        logger.debug("download start url=%s", url)
        request = self._client.build_request("GET", url, params=params)
        return await self._send_stream(request, action="download")

    async def _send_stream(self, request: httpx.Request, *, action: str) -> httpx.Response:
        try:
            response = await self._client.send(request, stream=True)
        except Exception as exc:
            logger.error(
                "stream request network error action=%s error=%s",
                action,
                exc.__class__.__name__,
            )
            raise wrap_network_error(exc, action=action) from exc
        logger.debug(
            "stream response received action=%s http_status=%s",
            action,
            response.status_code,
        )
        try:
            ensure_http_success(response, action=action)
        except QuickBaseTransportError:
            await response.aclose()
            raise
        return response


__all__ = [
    "AsyncTransport",
]

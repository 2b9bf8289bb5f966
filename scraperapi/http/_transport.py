import logging
import socket

import httpx

from scraperapi.config import ClientConfig
from scraperapi.debug import API_KEY_PLACEHOLDER

logger = logging.getLogger(__name__)


def default_socket_options(timeout: float) -> list[tuple]:
    '''
    cross platform socket options for the long lived keepalive
    connections to the ScraperAPI endpoint

    Parameters
    ----------
    timeout : float
        The per-attempt timeout in seconds, bounds TCP_USER_TIMEOUT

    Returns
    -------
    list[SockOpt]
    '''
    opts = []

    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))

    if hasattr(socket, "SO_KEEPALIVE"):
        opts.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    if hasattr(socket, "TCP_KEEPIDLE"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60))

    if hasattr(socket, "TCP_KEEPINTVL"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10))

    if hasattr(socket, "TCP_USER_TIMEOUT"):
        opts.append(
            (socket.IPPROTO_TCP, socket.TCP_USER_TIMEOUT, int(timeout * 1000)))

    return opts


class ScraperTransport(httpx.BaseTransport):
    '''
    Pooled HTTP/2 transport with keepalive socket options. Connection
    retries are left to `RetryPolicy`, so the inner transport never retries.
    '''
    def __init__(self, *, http2: bool = True, timeout: float = 60.0) -> None:
        self._inner: httpx.HTTPTransport = httpx.HTTPTransport(
            http2=http2,
            socket_options=default_socket_options(timeout),
            retries=0,
        )

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._inner.handle_request(request)

    def close(self) -> None:
        self._inner.close()


class AsyncScraperTransport(httpx.AsyncBaseTransport):
    def __init__(self, *, http2: bool = True, timeout: float = 60.0) -> None:
        self._inner: httpx.AsyncHTTPTransport = httpx.AsyncHTTPTransport(
            http2=http2,
            socket_options=default_socket_options(timeout),
            retries=0,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()


def log_request(request: httpx.Request) -> None:
    url = request.url
    if "api_key" in url.params:
        url = url.copy_set_param("api_key", API_KEY_PLACEHOLDER)
    logger.debug(f'Sending request: {request.method} {url}')


async def alog_request(request: httpx.Request) -> None:
    log_request(request)


def create_client(
    config: ClientConfig,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    '''
    Create the synchronous httpx client for a configuration.

    Parameters
    ----------
    config : ClientConfig
    transport : httpx.BaseTransport | None, optional
        Replaces the default `ScraperTransport` (e.g. `httpx.MockTransport`)

    Returns
    -------
    httpx.Client
    '''
    return httpx.Client(
        base_url=config.base_url,
        transport=transport or ScraperTransport(
            http2=config.http2,
            timeout=config.timeout,
        ),
        limits=config.limits,
        timeout=config.timeouts(),
        follow_redirects=config.follow_redirects,
        event_hooks={'request': [log_request]},
    )


def create_async_client(
    config: ClientConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.base_url,
        transport=transport or AsyncScraperTransport(
            http2=config.http2,
            timeout=config.timeout,
        ),
        limits=config.limits,
        timeout=config.timeouts(),
        follow_redirects=config.follow_redirects,
        event_hooks={'request': [alog_request]},
    )

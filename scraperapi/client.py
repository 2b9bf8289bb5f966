'''
**scraperapi.client**
---------

The ScraperAPI clients. Every request goes through the ScraperAPI endpoint
with the `api_key` and target `url` as query parameters, and is retried
with a linear back-off until it returns 200 or runs out of attempts.

`ScraperClient` is synchronous and runs its promises on a thread pool,
`AsyncScraperClient` runs them as asyncio tasks. Both resolve a batch of
promises into a mapping with the same keys, or raise the error of the
first request that failed.

See https://www.scraperapi.com/documentation/
'''
from __future__ import annotations

import asyncio
import concurrent.futures as cf
import copy
import functools
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any, Self, overload

import httpx

from scraperapi.config import ClientConfig
from scraperapi.debug import BatchProgress, DebugSink, RequestContext, redact
from scraperapi.errors import ConfigurationError, TransportError, status_error
from scraperapi.http import (
    TRANSPORT_ERRORS,
    AttemptOutcome,
    RetryPolicy,
    create_async_client,
    create_client,
)
from scraperapi.params import (
    HttpMethod,
    RequestDescriptor,
    build_account_request,
    build_request,
)

logger = logging.getLogger(__name__)

_POOL_FIELDS = ('http2', 'limits', 'max_workers')


class PendingRequest:
    '''
    A request already dispatched to the client's thread pool.
    '''
    __slots__ = ('descriptor', '_future', '_context')

    def __init__(
        self,
        descriptor: RequestDescriptor,
        future: cf.Future[httpx.Response],
        context: RequestContext,
    ) -> None:
        self.descriptor = descriptor
        self._future = future
        self._context = context

    @property
    def future(self) -> cf.Future[httpx.Response]:
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> httpx.Response:
        return self._future.result(timeout)

    @property
    def progress(self) -> BatchProgress:
        return self._context.progress

    def attach(self, progress: BatchProgress) -> None:
        self._context.attach(progress)


class AsyncPendingRequest:
    '''
    A request already scheduled as an asyncio task.
    '''
    __slots__ = ('descriptor', '_task', '_context')

    def __init__(
        self,
        descriptor: RequestDescriptor,
        task: asyncio.Task[httpx.Response],
        context: RequestContext,
    ) -> None:
        self.descriptor = descriptor
        self._task = task
        self._context = context

    @property
    def task(self) -> asyncio.Task[httpx.Response]:
        return self._task

    def done(self) -> bool:
        return self._task.done()

    @property
    def progress(self) -> BatchProgress:
        return self._context.progress

    def attach(self, progress: BatchProgress) -> None:
        self._context.attach(progress)

    def __await__(self):
        return self._task.__await__()


def _retrieve_exception(task: asyncio.Task) -> None:
    # marks the error of a task whose batch already failed as retrieved
    if not task.cancelled():
        task.exception()


def _split_batch(promises):
    if isinstance(promises, Mapping):
        return list(promises.keys()), list(promises.values())
    return None, list(promises)


class _BaseScraperClient:
    '''
    Configuration, request building and outcome handling shared
    by the sync and async clients.
    '''

    def _setup(self, config: ClientConfig) -> None:
        self._config: ClientConfig = config
        self._sink = DebugSink(
            config.debug,
            logger=config.logger,
            level=config.log_level,
        )
        self._policy = RetryPolicy(
            tries=config.tries,
            delay_multiplier=config.delay_multiplier,
            sink=self._sink,
        )

    @staticmethod
    def _resolve_config(
        api_key: str | None,
        config: ClientConfig | None,
        options: dict[str, Any],
    ) -> ClientConfig:
        if config is None:
            return ClientConfig(api_key=api_key or '', **options)
        if api_key:
            options['api_key'] = api_key
        return config.replace(**options) if options else config

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _redact(self, uri: str) -> str:
        return redact(uri, self._config.api_key, show_api_key=self._config.show_api_key)

    def _build(
        self,
        method: HttpMethod,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> RequestDescriptor:
        return build_request(
            self._config,
            method,
            url,
            api_params,
            headers,
            body=body,
            form=form,
            json=json,
        )

    def _outcome(
        self,
        attempt_no: int,
        request: httpx.Request,
        started: float,
        *,
        response: httpx.Response | None = None,
        error: BaseException | None = None,
    ) -> AttemptOutcome:
        elapsed = time.perf_counter() - started
        uri = self._redact(str(request.url))
        self._sink.emit(f'{elapsed:.3f}s ({request.method} {uri})')
        return AttemptOutcome(
            attempt=attempt_no,
            uri=uri,
            elapsed=elapsed,
            response=response,
            error=error,
        )

    def _final(self, descriptor: RequestDescriptor, outcome: AttemptOutcome) -> httpx.Response:
        if outcome.response is None:
            logger.debug(f'{descriptor.method} {outcome.uri} failed: {outcome.error!r}')
            raise TransportError(
                f'{descriptor.method} {outcome.uri} failed after '
                f'{outcome.attempt} attempt(s): {outcome.error}',
                error_code=outcome.failure_code or 'unknown',
                uri=outcome.uri,
            ) from outcome.error

        if not outcome.response.is_success:
            raise status_error(
                outcome.response,
                uri=outcome.uri,
                max_length=self._config.max_error_length,
            )

        return outcome.response

    def _derive(self, config: ClientConfig) -> Self:
        clone = copy.copy(self)
        clone._setup(config)
        clone._owns_http = False
        return clone

    def with_params(self, **fields: Any) -> Self:
        '''
        A client sharing this client's connections whose default API
        parameters have `fields` overridden.

        Raises
        ------
        ConfigurationError
            If a field is not a recognised API parameter.
        '''
        params = self._config.params.replace(**fields)
        return self._derive(self._config.replace(params=params))

    def with_config(self, **changes: Any) -> Self:
        '''
        A client sharing this client's connections with some
        configuration fields overridden.

        Raises
        ------
        ConfigurationError
            If a field of the shared connection pool would change
            (`http2`, `limits`, `max_workers`), create a new client instead.
        '''
        pinned = sorted(
            name for name in _POOL_FIELDS
            if name in changes and changes[name] != getattr(self._config, name)
        )
        if pinned:
            raise ConfigurationError(
                f'{", ".join(pinned)} cannot change on a derived client, '
                'it shares the connection pool of its parent'
            )
        return self._derive(self._config.replace(**changes))


class ScraperClient(_BaseScraperClient):
    '''
    Synchronous ScraperAPI client, promises run on a thread pool.
    '''

    def __init__(
        self,
        api_key: str | None = None,
        *,
        config: ClientConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        **options: Any,
    ) -> None:
        '''
        Parameters
        ----------
        api_key : str | None, optional
            The ScraperAPI key, required unless given through `config`
        config : ClientConfig | None, optional
            A complete configuration, `api_key` and `options` override it
        transport : httpx.BaseTransport | None, optional
            Replaces the default pooled transport
        **options
            Any other `ClientConfig` field (tries, delay_multiplier, debug...)
        '''
        self._setup(self._resolve_config(api_key, config, options))
        self._http: httpx.Client = create_client(self._config, transport)
        self._pool = cf.ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix='scraperapi',
        )
        self._owns_http = True

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        if not self._owns_http:
            return
        self._pool.shutdown(wait=True)
        self._http.close()

    def _attempt(self, descriptor: RequestDescriptor, attempt_no: int) -> AttemptOutcome:
        request = self._http.build_request(
            **descriptor.send_kwargs(self._config.base_url),
            timeout=self._config.timeouts(),
        )
        started = time.perf_counter()
        try:
            response = self._http.send(
                request,
                follow_redirects=self._config.follow_redirects,
            )
        except TRANSPORT_ERRORS as exc:
            return self._outcome(attempt_no, request, started, error=exc)
        return self._outcome(attempt_no, request, started, response=response)

    def _execute(self, descriptor: RequestDescriptor, context: RequestContext) -> httpx.Response:
        outcome = self._policy.run(
            functools.partial(self._attempt, descriptor),
            context,
        )
        return self._final(descriptor, outcome)

    def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        '''
        Send a request, retrying until it succeeds or runs out of attempts.

        Parameters
        ----------
        descriptor : RequestDescriptor

        Returns
        -------
        httpx.Response

        Raises
        ------
        TransportError
            The last attempt got no response.
        HttpStatusError
            The last attempt got a non 2xx response.
        '''
        started = time.perf_counter()
        self._sink.emit(f'{descriptor.method} request started')
        try:
            return self._execute(descriptor, RequestContext())
        finally:
            self._sink.runtime(started)

    def account_info(self) -> str:
        '''
        The raw JSON text of the ScraperAPI account endpoint
        (concurrencyLimit, concurrentRequests, failedRequestCount,
        requestCount, requestLimit).
        '''
        started = time.perf_counter()
        self._sink.emit('Get ScraperAPI account info')
        try:
            response = self._execute(build_account_request(self._config), RequestContext())
        finally:
            self._sink.runtime(started)
        return response.text

    def get(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return self.execute(self._build('GET', url, api_params, headers))

    def post(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return self.execute(self._build('POST', url, api_params, headers, body, form, json))

    def put(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return self.execute(self._build('PUT', url, api_params, headers, body, form, json))

    def enqueue(self, descriptor: RequestDescriptor) -> PendingRequest:
        '''
        Dispatch a request to the thread pool without waiting for it.
        '''
        context = RequestContext()
        future = self._pool.submit(self._execute, descriptor, context)
        return PendingRequest(descriptor, future, context)

    def get_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> PendingRequest:
        return self.enqueue(self._build('GET', url, api_params, headers))

    def post_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> PendingRequest:
        return self.enqueue(self._build('POST', url, api_params, headers, body, form, json))

    def put_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> PendingRequest:
        return self.enqueue(self._build('PUT', url, api_params, headers, body, form, json))

    @overload
    def resolve_promises(
        self, promises: Mapping[str, PendingRequest]
    ) -> dict[str, httpx.Response]: ...

    @overload
    def resolve_promises(
        self, promises: Sequence[PendingRequest]
    ) -> list[httpx.Response]: ...

    def resolve_promises(self, promises):
        '''
        Wait for a batch of promises. Either every request is fulfilled
        or a request error is raised as soon as one request fails: of the
        requests already finished at that moment, the first failed one in
        input order. The other requests still run to completion in the
        background.

        Parameters
        ----------
        promises : Mapping[str, PendingRequest] | Sequence[PendingRequest]

        Returns
        -------
        dict[str, httpx.Response] | list[httpx.Response]
            _keyed (or ordered) like the input_
        '''
        keys, pending = _split_batch(promises)
        if not pending:
            return {} if keys is not None else []

        started = time.perf_counter()
        progress = BatchProgress(total=len(pending))
        self._sink.emit(f'Promises resolving started ({progress.total} pcs)')
        for promise in pending:
            promise.attach(progress)

        futures = [promise.future for promise in pending]
        done, _ = cf.wait(futures, return_when=cf.FIRST_EXCEPTION)
        for future in futures:
            if future in done and (exc := future.exception()) is not None:
                raise exc

        responses = [future.result() for future in futures]
        self._sink.runtime(started)

        if keys is None:
            return responses
        return dict(zip(keys, responses))


class AsyncScraperClient(_BaseScraperClient):
    '''
    asyncio ScraperAPI client, promises run as tasks on the running loop.
    '''

    def __init__(
        self,
        api_key: str | None = None,
        *,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **options: Any,
    ) -> None:
        self._setup(self._resolve_config(api_key, config, options))
        self._http: httpx.AsyncClient = create_async_client(self._config, transport)
        self._owns_http = True

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _attempt(self, descriptor: RequestDescriptor, attempt_no: int) -> AttemptOutcome:
        request = self._http.build_request(
            **descriptor.send_kwargs(self._config.base_url),
            timeout=self._config.timeouts(),
        )
        started = time.perf_counter()
        try:
            response = await self._http.send(
                request,
                follow_redirects=self._config.follow_redirects,
            )
        except TRANSPORT_ERRORS as exc:
            return self._outcome(attempt_no, request, started, error=exc)
        return self._outcome(attempt_no, request, started, response=response)

    async def _execute(self, descriptor: RequestDescriptor, context: RequestContext) -> httpx.Response:
        outcome = await self._policy.arun(
            functools.partial(self._attempt, descriptor),
            context,
        )
        return self._final(descriptor, outcome)

    async def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        started = time.perf_counter()
        self._sink.emit(f'{descriptor.method} request started')
        try:
            return await self._execute(descriptor, RequestContext())
        finally:
            self._sink.runtime(started)

    async def account_info(self) -> str:
        started = time.perf_counter()
        self._sink.emit('Get ScraperAPI account info')
        try:
            response = await self._execute(build_account_request(self._config), RequestContext())
        finally:
            self._sink.runtime(started)
        return response.text

    async def get(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return await self.execute(self._build('GET', url, api_params, headers))

    async def post(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return await self.execute(self._build('POST', url, api_params, headers, body, form, json))

    async def put(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return await self.execute(self._build('PUT', url, api_params, headers, body, form, json))

    def enqueue(self, descriptor: RequestDescriptor) -> AsyncPendingRequest:
        '''
        Schedule a request on the running event loop without waiting for it.

        Raises
        ------
        RuntimeError
            If called outside of a running event loop.
        '''
        loop = asyncio.get_running_loop()
        context = RequestContext()
        task = loop.create_task(self._execute(descriptor, context))
        task.add_done_callback(_retrieve_exception)
        return AsyncPendingRequest(descriptor, task, context)

    def get_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncPendingRequest:
        return self.enqueue(self._build('GET', url, api_params, headers))

    def post_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncPendingRequest:
        return self.enqueue(self._build('POST', url, api_params, headers, body, form, json))

    def put_promise(
        self,
        url: str,
        api_params: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        json: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncPendingRequest:
        return self.enqueue(self._build('PUT', url, api_params, headers, body, form, json))

    @overload
    async def resolve_promises(
        self, promises: Mapping[str, AsyncPendingRequest]
    ) -> dict[str, httpx.Response]: ...

    @overload
    async def resolve_promises(
        self, promises: Sequence[AsyncPendingRequest]
    ) -> list[httpx.Response]: ...

    async def resolve_promises(self, promises):
        '''
        Await a batch of promises, raising the first error to occur.
        Tasks are never cancelled, failed batches leave the other
        requests running to their own end.
        '''
        keys, pending = _split_batch(promises)
        if not pending:
            return {} if keys is not None else []

        started = time.perf_counter()
        progress = BatchProgress(total=len(pending))
        self._sink.emit(f'Promises resolving started ({progress.total} pcs)')
        for promise in pending:
            promise.attach(progress)

        responses = await asyncio.gather(*(promise.task for promise in pending))
        self._sink.runtime(started)

        if keys is None:
            return list(responses)
        return dict(zip(keys, responses))

import asyncio
import gc

import httpx
import pytest

from scraperapi import AsyncScraperClient, HttpStatusError, TransportError

from conftest import API_KEY, ScriptedService


@pytest.mark.asyncio
async def test_get_retries_until_success(service: ScriptedService) -> None:
    service.script('https://example.com', 500, 500, 200)

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=3,
        delay_multiplier=0,
    ) as client:
        response = await client.get('https://example.com')

    assert service.calls['https://example.com'] == 3
    assert response.text == 'https://example.com -> 200 (call 3)'


@pytest.mark.asyncio
async def test_exhausted_attempts_raise_status_error(service: ScriptedService) -> None:
    service.script('https://example.com', 429)

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=2,
        delay_multiplier=0,
    ) as client:
        with pytest.raises(HttpStatusError) as exc_info:
            await client.get('https://example.com')

    assert exc_info.value.status_code == 429
    assert service.calls['https://example.com'] == 2


@pytest.mark.asyncio
async def test_transport_error(service: ScriptedService) -> None:
    service.script('https://example.com', httpx.ConnectTimeout('timed out'))

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=2,
        delay_multiplier=0,
    ) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.post('https://example.com', form={'a': '1'})

    assert exc_info.value.error_code == 'ConnectTimeout'


@pytest.mark.asyncio
async def test_account_info(service: ScriptedService) -> None:
    async with AsyncScraperClient(API_KEY, transport=httpx.MockTransport(service)) as client:
        text = await client.account_info()

    assert text == '/account -> 200 (call 1)'


@pytest.mark.asyncio
async def test_batch_preserves_keys_regardless_of_completion_order() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        target = request.url.params['url']
        if target.endswith('/slow'):
            await asyncio.sleep(0.05)
        return httpx.Response(200, text=target)

    async with AsyncScraperClient(API_KEY, transport=httpx.MockTransport(handler)) as client:
        responses = await client.resolve_promises({
            'slow': client.get_promise('https://example.com/slow'),
            'fast': client.get_promise('https://example.com/fast'),
            'put': client.put_promise('https://example.com/put', json=[1, 2]),
        })

    assert list(responses) == ['slow', 'fast', 'put']
    assert responses['slow'].text == 'https://example.com/slow'
    assert responses['put'].request.method == 'PUT'


@pytest.mark.asyncio
async def test_one_failure_fails_the_batch(service: ScriptedService) -> None:
    service.script('https://example.com/broken', 500)

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=3,
        delay_multiplier=0,
    ) as client:
        promises = [
            client.get_promise('https://example.com/ok'),
            client.get_promise('https://example.com/broken'),
        ]
        with pytest.raises(HttpStatusError):
            await client.resolve_promises(promises)
        await asyncio.gather(*(p.task for p in promises), return_exceptions=True)

    assert service.calls['https://example.com/broken'] == 3


@pytest.mark.asyncio
async def test_back_off_of_one_request_does_not_block_others(service: ScriptedService) -> None:
    service.script('https://example.com/flaky', 500, 200)

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=2,
        delay_multiplier=0.2,
    ) as client:
        flaky = client.get_promise('https://example.com/flaky')
        quick = client.get_promise('https://example.com/quick')
        await quick
        assert not flaky.done()
        responses = await client.resolve_promises([flaky, quick])

    assert [r.status_code for r in responses] == [200, 200]


@pytest.mark.asyncio
async def test_empty_batch(service: ScriptedService, capsys: pytest.CaptureFixture[str]) -> None:
    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        debug=True,
    ) as client:
        assert await client.resolve_promises({}) == {}

    assert capsys.readouterr().out == ''


@pytest.mark.asyncio
async def test_batch_progress_messages(
    service: ScriptedService,
    capsys: pytest.CaptureFixture[str],
) -> None:
    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        debug=True,
    ) as client:
        await client.resolve_promises({
            name: client.get_promise(f'https://example.com/{name}')
            for name in ('a', 'b')
        })

    out = capsys.readouterr().out
    assert 'Promises resolving started (2 pcs)' in out
    assert '(2/2)' in out
    assert API_KEY not in out


def test_promise_outside_event_loop_fails(service: ScriptedService) -> None:
    client = AsyncScraperClient(API_KEY, transport=httpx.MockTransport(service))

    with pytest.raises(RuntimeError):
        client.get_promise('https://example.com')


@pytest.mark.asyncio
async def test_redirect_loop_is_retried_and_raised_as_transport_error() -> None:
    calls: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(302, headers={'Location': str(request.url)})

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(handler),
        tries=3,
        delay_multiplier=0,
    ) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.get('https://example.com/loop')

    assert exc_info.value.error_code == 'TooManyRedirects'
    assert len(calls) == 3 * 21


@pytest.mark.asyncio
async def test_derived_client_does_not_follow_redirects() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == '/landed':
            return httpx.Response(200, text='landed')
        return httpx.Response(302, headers={'Location': 'https://api.scraperapi.com/landed'})

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(handler),
        tries=1,
    ) as client:
        with pytest.raises(HttpStatusError) as exc_info:
            await client.with_config(follow_redirects=False).get('https://example.com')
        assert exc_info.value.status_code == 302

        response = await client.get('https://example.com')

    assert response.text == 'landed'


@pytest.mark.asyncio
async def test_failed_promises_never_report_unretrieved_exceptions(
    service: ScriptedService,
) -> None:
    service.script('https://example.com/first', 500)
    service.script('https://example.com/second', 500, 500)
    unhandled: list[dict] = []
    asyncio.get_running_loop().set_exception_handler(
        lambda loop, context: unhandled.append(context)
    )

    async with AsyncScraperClient(
        API_KEY,
        transport=httpx.MockTransport(service),
        tries=2,
        delay_multiplier=0,
    ) as client:
        promises = [
            client.get_promise('https://example.com/first'),
            client.get_promise('https://example.com/second'),
        ]
        with pytest.raises(HttpStatusError):
            await client.resolve_promises(promises)
        abandoned = client.get_promise('https://example.com/first')
        pending = [*promises, abandoned]
        while not all(p.done() for p in pending):
            await asyncio.sleep(0)

    del promises, abandoned, pending
    gc.collect()

    assert unhandled == []

import threading

import httpx
import pytest

from scraperapi import HttpStatusError, ScraperClient, TransportError

from conftest import API_KEY, ScriptedService


@pytest.fixture()
def client(transport: httpx.MockTransport):
    with ScraperClient(API_KEY, transport=transport, delay_multiplier=0) as client:
        yield client


def test_batch_preserves_keys(client: ScraperClient, service: ScriptedService) -> None:
    service.script('https://example.com/b', 500, 500, 200)
    promises = {
        'a': client.get_promise('https://example.com/a'),
        'b': client.get_promise('https://example.com/b'),
        'c': client.post_promise('https://example.com/c', json={'q': 1}),
    }

    responses = client.resolve_promises(promises)

    assert list(responses) == ['a', 'b', 'c']
    assert responses['a'].text == 'https://example.com/a -> 200 (call 1)'
    assert responses['b'].text == 'https://example.com/b -> 200 (call 3)'
    assert responses['c'].request.method == 'POST'


def test_batch_result_order_ignores_completion_order() -> None:
    release_first = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        target = request.url.params['url']
        if target.endswith('/slow'):
            release_first.wait(timeout=5)
        else:
            release_first.set()
        return httpx.Response(200, text=target)

    with ScraperClient(API_KEY, transport=httpx.MockTransport(handler)) as client:
        responses = client.resolve_promises({
            'slow': client.get_promise('https://example.com/slow'),
            'fast': client.get_promise('https://example.com/fast'),
        })

    assert list(responses) == ['slow', 'fast']
    assert responses['slow'].text == 'https://example.com/slow'
    assert responses['fast'].text == 'https://example.com/fast'


def test_batch_of_sequence_returns_list(client: ScraperClient) -> None:
    pending = [client.get_promise(f'https://example.com/{i}') for i in range(5)]

    responses = client.resolve_promises(pending)

    assert [r.text.split(' ')[0] for r in responses] == [
        f'https://example.com/{i}' for i in range(5)
    ]


def test_one_exhausted_request_fails_the_batch(
    client: ScraperClient,
    service: ScriptedService,
) -> None:
    service.script('https://example.com/broken', 503)
    promises = {
        'ok': client.get_promise('https://example.com/ok'),
        'broken': client.get_promise('https://example.com/broken'),
        'also-ok': client.put_promise('https://example.com/put', body=b'data'),
    }

    with pytest.raises(HttpStatusError) as exc_info:
        client.resolve_promises(promises)

    assert exc_info.value.status_code == 503
    assert service.calls['https://example.com/broken'] == client.config.tries


def test_transport_failure_fails_the_batch(
    client: ScraperClient,
    service: ScriptedService,
) -> None:
    service.script('https://example.com/down', httpx.ReadTimeout('read timed out'))

    with pytest.raises(TransportError) as exc_info:
        client.resolve_promises([
            client.get_promise('https://example.com/up'),
            client.get_promise('https://example.com/down'),
        ])

    assert exc_info.value.error_code == 'ReadTimeout'


def test_empty_batch(
    transport: httpx.MockTransport,
    capsys: pytest.CaptureFixture[str],
) -> None:
    with ScraperClient(API_KEY, transport=transport, debug=True) as client:
        assert client.resolve_promises({}) == {}
        assert client.resolve_promises([]) == []

    assert capsys.readouterr().out == ''


def test_promises_are_dispatched_before_resolution(
    client: ScraperClient,
    service: ScriptedService,
) -> None:
    promise = client.get_promise('https://example.com/eager')
    promise.result(timeout=5)

    assert service.calls['https://example.com/eager'] == 1
    assert client.resolve_promises({'eager': promise})['eager'].status_code == 200


def test_batch_progress_reaches_total(
    transport: httpx.MockTransport,
    service: ScriptedService,
    capsys: pytest.CaptureFixture[str],
) -> None:
    service.script('https://example.com/2', 500, 200)

    with ScraperClient(API_KEY, transport=transport, delay_multiplier=0, debug=True) as client:
        promises = {
            str(i): client.get_promise(f'https://example.com/{i}')
            for i in range(3)
        }
        client.resolve_promises(promises)

    progress = promises['0'].progress
    assert all(p.progress is progress for p in promises.values())
    assert (progress.fulfilled, progress.total) == (3, 3)
    assert 'Promises resolving started (3 pcs)' in capsys.readouterr().out


def test_overlapping_batches_keep_separate_progress(transport: httpx.MockTransport) -> None:
    with ScraperClient(API_KEY, transport=transport) as client:
        first = {'a': client.get_promise('https://example.com/a')}
        second = {
            'b': client.get_promise('https://example.com/b'),
            'c': client.get_promise('https://example.com/c'),
        }
        client.resolve_promises(second)
        client.resolve_promises(first)

    first_progress = first['a'].progress
    second_progress = second['b'].progress
    assert first_progress is not second_progress
    assert (first_progress.fulfilled, first_progress.total) == (1, 1)
    assert (second_progress.fulfilled, second_progress.total) == (2, 2)

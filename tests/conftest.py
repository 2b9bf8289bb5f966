from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable

import httpx
import pytest

API_KEY = 'test-key-0123456789'


class ScriptedService:
    '''
    Fake ScraperAPI endpoint answering each target url with
    a scripted sequence of status codes (the last one repeats).
    '''

    def __init__(self, default: Iterable[int] = (200,)) -> None:
        self.default = list(default)
        self.scripts: dict[str, list[int | Exception]] = {}
        self.calls: dict[str, int] = defaultdict(int)
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def script(self, url: str, *outcomes: int | Exception) -> None:
        self.scripts[url] = list(outcomes)

    def total_calls(self) -> int:
        return sum(self.calls.values())

    def __call__(self, request: httpx.Request) -> httpx.Response:
        target = request.url.params.get('url', request.url.path)
        with self._lock:
            self.requests.append(request)
            index = self.calls[target]
            self.calls[target] += 1

        outcomes = self.scripts.get(target, self.default)
        outcome = outcomes[min(index, len(outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome

        return httpx.Response(outcome, text=f'{target} -> {outcome} (call {index + 1})')


@pytest.fixture()
def service() -> ScriptedService:
    return ScriptedService()


@pytest.fixture()
def transport(service: ScriptedService) -> httpx.MockTransport:
    return httpx.MockTransport(service)


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr('scraperapi.http._retry.time.sleep', recorded.append)
    return recorded
'''
linear back-off retry policy for ScraperAPI requests

Only a 200 response counts as a success, every other status code is
retried exactly like a transport failure since the proxy reports failed
scrapes through its status codes as often as through dropped connections.
'''

import asyncio
import dataclasses as dc
import time
from collections.abc import Awaitable, Callable

import httpcore
import httpx

from scraperapi.debug import DebugSink, RequestContext

TRANSPORT_ERRORS = (
    ConnectionError,
    TimeoutError,
    httpx.RequestError,
    httpcore.ConnectError,
)


@dc.dataclass(frozen=True, slots=True)
class AttemptOutcome:
    '''
    The result of one physical attempt: either a response or
    the transport error that prevented one.
    '''
    attempt: int
    uri: str
    elapsed: float = 0.0
    response: httpx.Response | None = None
    error: BaseException | None = None

    @property
    def status_code(self) -> int | None:
        if self.response is None:
            return None
        return self.response.status_code

    @property
    def failure_code(self) -> str | None:
        if self.response is not None:
            return str(self.response.status_code)
        if self.error is not None:
            return type(self.error).__name__
        return None


@dc.dataclass(frozen=True, slots=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0


class RetryPolicy:

    def __init__(
        self,
        *,
        tries: int = 3,
        delay_multiplier: float = 1.0,
        sink: DebugSink | None = None,
    ) -> None:
        '''
        Parameters
        ----------
        tries : int, optional
            The maximum number of attempts, by default 3
        delay_multiplier : float, optional
            Seconds added to the delay after every failed attempt, by default 1.0
        sink : DebugSink | None, optional
            Where attempt messages go, by default a disabled sink
        '''
        self.tries: int = tries
        self.delay_multiplier: float = delay_multiplier
        self.sink: DebugSink = sink or DebugSink()

    def get_delay(self, attempt_no: int) -> float:
        '''
        Seconds to wait after failed attempt `attempt_no` (1-based).
        '''
        return self.delay_multiplier * attempt_no

    def decide(
        self,
        retries: int,
        outcome: AttemptOutcome,
        context: RequestContext,
    ) -> RetryDecision:
        '''
        Decide whether the request is sent again.

        Parameters
        ----------
        retries : int
            Number of retries already made (the attempt index before increment)
        outcome : AttemptOutcome
        context : RequestContext
            Tracks the batch the request belongs to, credited on success

        Returns
        -------
        RetryDecision
        '''
        attempt_no = retries + 1

        if outcome.status_code == 200:
            self.sink.emit(
                f'Attempt {attempt_no} completed successfully{context.record_success()}'
            )
            return RetryDecision(retry=False)

        if attempt_no >= self.tries:
            self.sink.emit(
                f'Maximum number of attempts ({self.tries}) reached, request failed'
            )
            return RetryDecision(retry=False)

        code = outcome.failure_code
        reason = f' (code {code})' if code is not None else ''
        self.sink.emit(f'Attempt {attempt_no} failed{reason}, repeating')

        return RetryDecision(retry=True, delay=self.get_delay(attempt_no))

    def run(
        self,
        send: Callable[[int], AttemptOutcome],
        context: RequestContext,
    ) -> AttemptOutcome:
        '''
        Call `send` with the 1-based attempt number until the policy stops,
        sleeping the back-off delay between attempts.

        Returns
        -------
        AttemptOutcome
            The outcome of the last attempt.
        '''
        retries = 0
        while True:
            outcome = send(retries + 1)
            decision = self.decide(retries, outcome, context)
            if not decision.retry:
                return outcome
            retries += 1
            if decision.delay > 0:
                time.sleep(decision.delay)

    async def arun(
        self,
        send: Callable[[int], Awaitable[AttemptOutcome]],
        context: RequestContext,
    ) -> AttemptOutcome:
        retries = 0
        while True:
            outcome = await send(retries + 1)
            decision = self.decide(retries, outcome, context)
            if not decision.retry:
                return outcome
            retries += 1
            if decision.delay > 0:
                await asyncio.sleep(decision.delay)

'''
**scraperapi.debug**
---------

Debug statements for following requests (mostly useful for batches of
concurrent requests). Messages go to stdout by default, or to a
`logging.Logger` when one is configured. Nothing is emitted unless the
client was created with `debug=True`.
'''
from __future__ import annotations

import dataclasses as dc
import logging
import sys
import threading
import time
from typing import TextIO
from urllib.parse import quote

API_KEY_PLACEHOLDER = 'API_KEY'


def redact(uri: str, api_key: str, *, show_api_key: bool = False) -> str:
    if show_api_key or not api_key:
        return uri
    for secret in (api_key, quote(api_key, safe='')):
        uri = uri.replace(secret, API_KEY_PLACEHOLDER)
    return uri


@dc.dataclass(slots=True)
class BatchProgress:
    '''
    Number of fulfilled requests out of the batch being resolved.
    A `total` of 0 means the request is not part of a batch.
    '''
    total: int = 0
    fulfilled: int = 0
    _lock: threading.Lock = dc.field(
        default_factory=threading.Lock,
        repr=False,
        compare=False,
    )

    def fulfil(self) -> int:
        with self._lock:
            self.fulfilled += 1
            return self.fulfilled

    def describe(self, fulfilled: int) -> str:
        if self.total == 0:
            return ''
        return f' ({fulfilled}/{self.total})'


class RequestContext:
    '''
    Links one logical request to the batch currently resolving it.
    A pending request is dispatched before its batch exists, so the
    progress it reports into is swapped in by `attach`.
    '''
    __slots__ = ('_progress', '_succeeded', '_lock')

    def __init__(self, progress: BatchProgress | None = None) -> None:
        self._progress = progress or BatchProgress()
        self._succeeded = False
        self._lock = threading.Lock()

    @property
    def progress(self) -> BatchProgress:
        return self._progress

    def attach(self, progress: BatchProgress) -> None:
        with self._lock:
            self._progress = progress
            if self._succeeded:
                progress.fulfil()

    def record_success(self) -> str:
        '''
        Credit the success to the current batch.

        Returns
        -------
        str
            The ` (fulfilled/total)` suffix for debug messages, empty
            outside of a batch.
        '''
        with self._lock:
            self._succeeded = True
            progress = self._progress
            fulfilled = progress.fulfil()
        return progress.describe(fulfilled)


class DebugSink:
    def __init__(
        self,
        enabled: bool = False,
        *,
        logger: logging.Logger | None = None,
        level: int | None = None,
        stream: TextIO | None = None,
    ) -> None:
        '''
        Parameters
        ----------
        enabled : bool, optional
            Emit nothing when False, by default False
        logger : logging.Logger | None, optional
            Logger receiving the messages, by default None (write to `stream`)
        level : int | None, optional
            Log level for `logger`, by default None (DEBUG)
        stream : TextIO | None, optional
            Output stream used when there is no logger, by default sys.stdout
        '''
        self.enabled = enabled
        self._logger = logger
        self._level = logging.DEBUG if level is None else level
        self._stream = stream

    def emit(self, message: str) -> None:
        if not self.enabled:
            return

        if self._logger is not None:
            self._logger.log(self._level, message)
            return

        stream = self._stream or sys.stdout
        stream.write(message + '\n')

    def runtime(self, started: float) -> None:
        self.emit(f'Completed in {time.perf_counter() - started:.3f} seconds')

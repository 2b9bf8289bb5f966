'''
**scraperapi.errors**
---------

Exceptions raised by the ScraperAPI clients. Attempts that fail are retried
internally, so only the terminal failure of a request ever reaches the caller.
'''
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


class ScraperApiError(Exception):
    '''
    Base class for every error raised by this package.
    '''


class ConfigurationError(ScraperApiError, ValueError):
    '''
    Raised for invalid client configuration, unknown API parameter names
    or a request that sets more than one payload form.

    Parent: ScraperApiError, ValueError
    '''


class TransportError(ScraperApiError):
    '''
    The last attempt could not produce a response at all
    (DNS, connect, read timeout...).

    Parent: ScraperApiError
    '''

    def __init__(self, message: str, *, error_code: str, uri: str) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.uri = uri


class HttpStatusError(ScraperApiError):
    '''
    The last attempt returned a non 2xx response.

    Parent: ScraperApiError
    '''

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        excerpt: str,
        uri: str,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.excerpt = excerpt
        self.uri = uri
        self.response = response


def summarize_body(body: str, max_length: int) -> str:
    '''
    Truncate a response body for use in an error message.

    Parameters
    ----------
    body : str
    max_length : int
        Maximum number of characters kept, 0 drops the body entirely.

    Returns
    -------
    str
    '''
    body = body.strip()
    if max_length <= 0 or not body:
        return ''
    if len(body) > max_length:
        return body[:max_length] + ' (truncated...)'
    return body


def status_error(
    response: httpx.Response,
    *,
    uri: str,
    max_length: int,
) -> HttpStatusError:
    '''
    Build the `HttpStatusError` for a final non 2xx response.

    Parameters
    ----------
    response : httpx.Response
    uri : str
        The (already redacted) effective URI of the request.
    max_length : int
        Maximum length of the body excerpt.

    Returns
    -------
    HttpStatusError
    '''
    code = response.status_code
    if 400 <= code < 500:
        kind = 'Client error'
    elif code >= 500:
        kind = 'Server error'
    else:
        kind = 'Unsuccessful request'

    excerpt = summarize_body(response.text, max_length)
    method = response.request.method
    message = (
        f'{kind}: `{method} {uri}` resulted in a '
        f'`{code} {response.reason_phrase}` response'
    )
    if excerpt:
        message += f':\n{excerpt}'

    return HttpStatusError(
        message,
        status_code=code,
        excerpt=excerpt,
        uri=uri,
        response=response,
    )

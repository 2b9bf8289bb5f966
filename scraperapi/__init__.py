'''
**scraperapi**
---------

Client library for the ScraperAPI web scraping proxy
(https://www.scraperapi.com/documentation/). Requests are forwarded through
the ScraperAPI endpoint and retried with a linear back-off, either one at
a time or as batches of concurrent promises.

    from scraperapi import ScraperClient

    with ScraperClient('API_KEY', tries=3, debug=True) as client:
        promises = {
            'first': client.get_promise('https://example.com/1'),
            'second': client.get_promise('https://example.com/2'),
        }
        responses = client.resolve_promises(promises)
'''
from scraperapi.client import (
    AsyncPendingRequest,
    AsyncScraperClient,
    PendingRequest,
    ScraperClient,
)
from scraperapi.config import SCRAPERAPI_URL, ClientConfig
from scraperapi.debug import BatchProgress, DebugSink, RequestContext, redact
from scraperapi.errors import (
    ConfigurationError,
    HttpStatusError,
    ScraperApiError,
    TransportError,
)
from scraperapi.params import ApiParams, RequestDescriptor, build_request

__all__ = [
    'AsyncPendingRequest',
    'AsyncScraperClient',
    'PendingRequest',
    'ScraperClient',
    'SCRAPERAPI_URL',
    'ClientConfig',
    'BatchProgress',
    'DebugSink',
    'RequestContext',
    'redact',
    'ConfigurationError',
    'HttpStatusError',
    'ScraperApiError',
    'TransportError',
    'ApiParams',
    'RequestDescriptor',
    'build_request',
]

'''
**scraperapi.http**
---------

The transport and retry layer under the ScraperAPI clients: pooled HTTP/2
transports built on httpx and the linear back-off `RetryPolicy` that decides
after every attempt whether the request is sent again.
'''
from scraperapi.http._retry import (
    TRANSPORT_ERRORS,
    AttemptOutcome,
    RetryDecision,
    RetryPolicy,
)
from scraperapi.http._transport import (
    AsyncScraperTransport,
    ScraperTransport,
    create_async_client,
    create_client,
    default_socket_options,
)

__all__ = [
    'TRANSPORT_ERRORS',
    'AttemptOutcome',
    'RetryDecision',
    'RetryPolicy',
    'AsyncScraperTransport',
    'ScraperTransport',
    'create_async_client',
    'create_client',
    'default_socket_options',
]

'''
**scraperapi.params**
---------

Builds the request that is sent to the ScraperAPI endpoint. Default API
parameters and headers from the client configuration are merged with the
per-call overrides, and the reserved `api_key` and `url` query parameters
are always injected last so a caller can never spoof them.
'''
from __future__ import annotations

import dataclasses as dc
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal, Self

from scraperapi.errors import ConfigurationError

if TYPE_CHECKING:
    from scraperapi.config import ClientConfig


HttpMethod = Literal['GET', 'POST', 'PUT']

ACCOUNT_ENDPOINT = 'account'


def stringify_param(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any] | None) -> dict[str, str]:
    merged = {
        key: stringify_param(value)
        for key, value in defaults.items()
        if value is not None
    }
    for key, value in (overrides or {}).items():
        if value is None:
            merged.pop(key, None)
            continue
        merged[key] = stringify_param(value)
    return merged


@dc.dataclass(frozen=True, slots=True)
class ApiParams:
    '''
    The ScraperAPI query parameters a client sends with every request.
    Every recognised parameter has its own field, anything else the service
    accepts goes into `extra`.

    See https://www.scraperapi.com/documentation/
    '''
    country_code: str | None = None
    render: bool | None = None
    premium: bool | None = None
    session_number: int | None = None
    keep_headers: bool | None = None
    device_type: Literal['desktop', 'mobile'] | None = None
    autoparse: bool | None = None
    extra: Mapping[str, Any] = dc.field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'extra', MappingProxyType(dict(self.extra)))

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in dc.fields(cls) if f.name != 'extra')

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> Self:
        '''
        Split a flat parameter mapping into the named fields and `extra`.

        Parameters
        ----------
        params : Mapping[str, Any]

        Returns
        -------
        ApiParams
        '''
        known = cls.field_names()
        named = {k: v for k, v in params.items() if k in known}
        extra = {k: v for k, v in params.items() if k not in known}
        return cls(**named, extra=extra)

    def replace(self, **fields: Any) -> Self:
        '''
        Derive a new instance with some fields overridden.

        Raises
        ------
        ConfigurationError
            If a field name is not a recognised API parameter.
        '''
        unknown = set(fields) - self.field_names() - {'extra'}
        if unknown:
            raise ConfigurationError(
                f'Unknown API parameter(s): {", ".join(sorted(unknown))}, '
                'use extra={...} for parameters without a dedicated field'
            )
        return dc.replace(self, **fields)

    def as_query(self) -> dict[str, str]:
        named = {
            name: getattr(self, name)
            for name in sorted(self.field_names())
        }
        return _merge(named, self.extra)


@dc.dataclass(frozen=True, slots=True)
class RequestDescriptor:
    '''
    A fully merged request ready to go through the transport.
    At most one of `content`, `data` and `json` is set.
    '''
    method: HttpMethod
    url: str | None
    params: Mapping[str, str]
    headers: Mapping[str, str] = dc.field(default_factory=dict)
    endpoint: str = ''
    content: bytes | str | Any | None = None
    data: Mapping[str, Any] | None = None
    json: Any = None

    def send_kwargs(self, base_url: str = '') -> dict[str, Any]:
        '''
        Keyword arguments for `httpx.Client.build_request`.
        '''
        kwargs: dict[str, Any] = {
            'method': self.method,
            'url': f'{base_url.rstrip("/")}/{self.endpoint}' if base_url else self.endpoint,
            'params': dict(self.params),
            'headers': dict(self.headers),
        }
        if self.content is not None:
            kwargs['content'] = self.content
        elif self.data is not None:
            kwargs['data'] = dict(self.data)
        elif self.json is not None:
            kwargs['json'] = self.json
        return kwargs


def build_request(
    config: ClientConfig,
    method: HttpMethod,
    url: str,
    api_params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    *,
    body: bytes | str | Any | None = None,
    form: Mapping[str, Any] | None = None,
    json: Any = None,
) -> RequestDescriptor:
    '''
    Merge the configured defaults with per-call overrides.

    Parameters
    ----------
    config : ClientConfig
    method : HttpMethod
    url : str
        The page ScraperAPI should fetch.
    api_params : Mapping[str, Any] | None, optional
        Per-call API parameters, override the defaults key by key.
    headers : Mapping[str, str] | None, optional
        Per-call headers, override the default headers key by key.
    body, form, json : optional
        The payload, only one of them may be given.

    Returns
    -------
    RequestDescriptor

    Raises
    ------
    ConfigurationError
        If more than one payload form is given.
    '''
    payloads = [name for name, value in (
        ('body', body),
        ('form', form),
        ('json', json),
    ) if value is not None]
    if len(payloads) > 1:
        raise ConfigurationError(
            f'Only one payload form may be set, got: {", ".join(payloads)}'
        )

    params = _merge(config.params.as_query(), api_params)
    params['api_key'] = config.api_key
    params['url'] = url

    return RequestDescriptor(
        method=method,
        url=url,
        params=params,
        headers=_merge(config.headers, headers),
        content=body,
        data=form,
        json=json,
    )


def build_account_request(config: ClientConfig) -> RequestDescriptor:
    return RequestDescriptor(
        method='GET',
        url=None,
        params={'api_key': config.api_key},
        headers=dict(config.headers),
        endpoint=ACCOUNT_ENDPOINT,
    )
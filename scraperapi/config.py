'''
**scraperapi.config**
---------

The immutable configuration shared by `ScraperClient` and `AsyncScraperClient`.
'''
from __future__ import annotations

import dataclasses as dc
import logging
import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Self

import httpx

from scraperapi.errors import ConfigurationError
from scraperapi.params import ApiParams

SCRAPERAPI_URL = 'https://api.scraperapi.com'

_TRUTHY = frozenset({'1', 'true', 'yes', 'on'})


def _base_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=100,
        max_keepalive_connections=20,
        keepalive_expiry=15,
    )


@dc.dataclass(frozen=True, slots=True)
class ClientConfig:
    '''
    Configuration options for the ScraperAPI clients, only the
    API key is required. Use `dataclasses.replace` (or the clients'
    `with_config`) to derive a modified copy.
    '''
    api_key: str = dc.field(repr=False)
    params: ApiParams = dc.field(default_factory=ApiParams)
    headers: Mapping[str, str] = dc.field(default_factory=dict, hash=False)
    timeout: float = 60.0
    tries: int = 3
    delay_multiplier: float = 1.0
    debug: bool = False
    show_api_key: bool = False
    max_error_length: int = 120
    logger: logging.Logger | None = None
    log_level: int | None = None
    base_url: str = SCRAPERAPI_URL
    http2: bool = True
    follow_redirects: bool = True
    limits: httpx.Limits = dc.field(default_factory=_base_limits, hash=False)
    max_workers: int = 10

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError('An API key is required')
        if self.tries < 1:
            raise ConfigurationError(f'tries must be >= 1, got {self.tries}')
        if self.delay_multiplier < 0:
            raise ConfigurationError(
                f'delay_multiplier must be >= 0, got {self.delay_multiplier}'
            )
        if self.max_error_length < 0:
            raise ConfigurationError(
                f'max_error_length must be >= 0, got {self.max_error_length}'
            )
        if self.timeout <= 0:
            raise ConfigurationError(f'timeout must be > 0, got {self.timeout}')
        if self.max_workers < 1:
            raise ConfigurationError(f'max_workers must be >= 1, got {self.max_workers}')

        if isinstance(self.params, Mapping):
            object.__setattr__(self, 'params', ApiParams.from_mapping(self.params))
        object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))

    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout)

    def replace(self, **changes: Any) -> Self:
        return dc.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> Self:
        '''
        Build a configuration from `SCRAPERAPI_*` environment variables.

        Parameters
        ----------
        environ : Mapping[str, str] | None, optional
            The environment to read, by default `os.environ`
        **overrides
            Fields set explicitly, these win over the environment.

        Returns
        -------
        ClientConfig

        Raises
        ------
        ConfigurationError
            If `SCRAPERAPI_API_KEY` is missing or a value cannot be parsed.
        '''
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {'api_key': env.get('SCRAPERAPI_API_KEY', '')}

        converters = {
            'SCRAPERAPI_TIMEOUT': ('timeout', float),
            'SCRAPERAPI_TRIES': ('tries', int),
            'SCRAPERAPI_DELAY_MULTIPLIER': ('delay_multiplier', float),
            'SCRAPERAPI_MAX_ERROR_LENGTH': ('max_error_length', int),
        }
        for var, (name, convert) in converters.items():
            if (raw := env.get(var)) is None:
                continue
            try:
                kwargs[name] = convert(raw)
            except ValueError as exc:
                raise ConfigurationError(f'Invalid value for {var}: {raw!r}') from exc

        if (debug := env.get('SCRAPERAPI_DEBUG')) is not None:
            kwargs['debug'] = debug.strip().lower() in _TRUTHY

        kwargs.update(overrides)
        return cls(**kwargs)

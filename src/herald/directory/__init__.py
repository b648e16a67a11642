"""
Directory Service Client

This package provides:
1. DirectoryClient — HTTP form client for the add/update/remove endpoints
2. DirectoryTransport — the protocol the registration controller relies on
3. EndpointKind / ExchangeResult — request kind and outcome of one exchange
"""

from .client import (
    DEFAULT_ENDPOINTS,
    DirectoryClient,
    DirectoryTransport,
    EndpointKind,
    ExchangeResult,
)

__version__ = '0.1.0'
__all__ = [
    'DEFAULT_ENDPOINTS',
    'DirectoryClient',
    'DirectoryTransport',
    'EndpointKind',
    'ExchangeResult',
]

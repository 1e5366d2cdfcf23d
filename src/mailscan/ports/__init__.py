"""Ports - interfaces for external dependencies."""

from .api import (
    ApiError,
    ApiStatusError,
    AuthApiPort,
    MalformedResponseError,
    NetworkUnavailableError,
    RequestTimeoutError,
    ScanApiPort,
)
from .storage import StoragePort

__all__ = [
    "ApiError",
    "ApiStatusError",
    "AuthApiPort",
    "MalformedResponseError",
    "NetworkUnavailableError",
    "RequestTimeoutError",
    "ScanApiPort",
    "StoragePort",
]

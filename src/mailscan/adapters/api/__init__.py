"""Remote API adapters."""

from ...config import ApiConfig
from .httpx_client import HttpxApiAdapter

__all__ = ["HttpxApiAdapter", "create_api_adapter"]


def create_api_adapter(config: ApiConfig) -> HttpxApiAdapter:
    """Create the API adapter from configuration."""
    return HttpxApiAdapter(
        base_url=config.base_url,
        timeout=config.timeout,
        upload_timeout=config.upload_timeout,
    )

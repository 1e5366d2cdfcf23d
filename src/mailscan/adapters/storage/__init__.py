"""Storage adapters."""

from .yaml_store import YamlStore

__all__ = ["YamlStore"]

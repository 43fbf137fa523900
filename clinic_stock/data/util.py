from __future__ import annotations

from typing import Literal, Optional

from .backends.json_backend import JsonFileDataStore
from .backends.memory_backend import InMemoryDataStore
from .interface import DataStore
from ..config import get_config


def get_data_store(kind: Optional[Literal["memory", "json"]] = None) -> DataStore:
    config = get_config()
    kind = kind or config.store_kind
    if kind == "memory":
        return InMemoryDataStore()
    if kind == "json":
        # Reads from configured data folder
        return JsonFileDataStore(data_dir=config.data_dir)
    raise ValueError(f"Unknown data store kind: {kind}")

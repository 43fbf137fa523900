from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..interface import COLLECTIONS, Collection, DataStore
from ...errors import ConcurrencyConflict, PersistenceFailure
from ...logging import get_logger
from ._keys import keyed_items


class InMemoryDataStore(DataStore):
    """
    Process-local implementation.
    - Loads and saves deep copies, so callers never share state with the store.
    - Useful for tests and for a single-session deployment.
    """

    def __init__(self, initial: Optional[Dict[str, Sequence[Dict[str, Any]]]] = None) -> None:
        self.logger = get_logger(__name__)
        self._data: Dict[str, Tuple[int, List[Dict[str, Any]]]] = {}
        for collection, items in (initial or {}).items():
            self._check_collection(collection)
            self._data[collection] = (1, keyed_items(collection, items))

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise PersistenceFailure(f"Unknown collection: {collection}", collection=collection)

    def version(self, collection: Collection) -> int:
        self._check_collection(collection)
        return self._data.get(collection, (0, []))[0]

    def load_all(self, collection: Collection) -> List[Dict[str, Any]]:
        self._check_collection(collection)
        _, items = self._data.get(collection, (0, []))
        return copy.deepcopy(items)

    def replace_all(
        self,
        collection: Collection,
        items: Sequence[Dict[str, Any]],
        expected_version: Optional[int] = None,
    ) -> int:
        self._check_collection(collection)
        current = self.version(collection)
        if expected_version is not None and expected_version != current:
            raise ConcurrencyConflict(collection, expected_version, current)
        # build the new contents fully before swapping them in
        stored = keyed_items(collection, items)
        self._data[collection] = (current + 1, stored)
        self.logger.debug(f"Replaced '{collection}' with {len(stored)} entities (version {current + 1})")
        return current + 1

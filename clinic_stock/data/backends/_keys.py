from __future__ import annotations

import copy
from typing import Any, Dict, List, Sequence

from ...errors import PersistenceFailure


def keyed_items(collection: str, items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Deep-copy ``items`` keyed by ``id`` (a later duplicate replaces an earlier one)."""
    by_id: Dict[str, Dict[str, Any]] = {}
    for item in items:
        if "id" not in item:
            raise PersistenceFailure(f"Entity without 'id' cannot be stored in '{collection}'", collection=collection)
        by_id[item["id"]] = copy.deepcopy(dict(item))
    return list(by_id.values())

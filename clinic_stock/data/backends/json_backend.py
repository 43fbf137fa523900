from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..interface import COLLECTIONS, Collection, DataStore
from ...config import get_config
from ...errors import ConcurrencyConflict, PersistenceFailure
from ...logging import get_logger
from ._keys import keyed_items


class JsonFileDataStore(DataStore):
    """
    JSON-file-backed implementation.
    - One ``<collection>.json`` file per collection under ``data_dir``, holding
      ``{"version": int, "items": [...]}``.
    - Writes go to a temporary file in the same directory and are moved into
      place with ``os.replace``, so a failed save leaves the old file intact.
    """

    def __init__(self, data_dir: str | Path = None) -> None:
        if data_dir is None:
            config = get_config()
            data_dir = config.data_dir

        self.data_dir = Path(data_dir)
        self.logger = get_logger(__name__)

        # If the path is relative, make it relative to the repository root
        if not self.data_dir.is_absolute():
            current = Path.cwd()
            repo_root = None

            # Look up the directory tree for pyproject.toml
            for parent in [current] + list(current.parents):
                if (parent / "pyproject.toml").exists():
                    repo_root = parent
                    break

            self.data_dir = (repo_root or current) / self.data_dir

    # ---------- file helpers ----------

    def _path(self, collection: str) -> Path:
        if collection not in COLLECTIONS:
            raise PersistenceFailure(f"Unknown collection: {collection}", collection=collection)
        return self.data_dir / f"{collection}.json"

    def _read(self, collection: str) -> Tuple[int, List[Dict[str, Any]]]:
        path = self._path(collection)
        if not path.exists():
            return 0, []
        try:
            with path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
            return int(document["version"]), list(document["items"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.error(f"Failed to read {path}: {exc}")
            raise PersistenceFailure(f"Cannot read collection '{collection}' from {path}: {exc}", collection=collection) from exc

    # ---------- DataStore ----------

    def version(self, collection: Collection) -> int:
        return self._read(collection)[0]

    def load_all(self, collection: Collection) -> List[Dict[str, Any]]:
        return self._read(collection)[1]

    def replace_all(
        self,
        collection: Collection,
        items: Sequence[Dict[str, Any]],
        expected_version: Optional[int] = None,
    ) -> int:
        path = self._path(collection)
        current = self.version(collection)
        if expected_version is not None and expected_version != current:
            raise ConcurrencyConflict(collection, expected_version, current)

        document = {"version": current + 1, "items": keyed_items(collection, items)}
        tmp_name = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.data_dir, prefix=f".{collection}.", suffix=".tmp", delete=False
            ) as fh:
                tmp_name = fh.name
                json.dump(document, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            self.logger.error(f"Failed to write {path}: {exc}")
            raise PersistenceFailure(f"Cannot write collection '{collection}' to {path}: {exc}", collection=collection) from exc

        self.logger.debug(f"Wrote {len(document['items'])} entities to {path} (version {current + 1})")
        return current + 1

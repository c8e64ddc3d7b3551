"""
Local key-value store for saved mappings, SKU images and templates.

Each key is kept as its own JSON file under the data directory. Writes are
atomic: the value is written to a temp file and moved into place, and the
previous version is kept as a .backup copy so a failed write can be rolled
back. Reads never fail; a missing or corrupt value returns the default.
"""

import json
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, List, Union

from exceptions import StorageError
from logger import get_logger

logger = get_logger(__name__)

STORE_VERSION = '1.0'

_VALID_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStore:
    """
    JSON-file backed key-value store.

    Attributes:
        base_dir (Path): Directory holding one <key>.json file per key
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Local store at {self.base_dir}")

    def _path(self, key: str) -> Path:
        if not _VALID_KEY.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.base_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a value.

        Both the versioned envelope ({"version", "timestamp", "data"}) and a
        bare JSON value are accepted.
        """
        path = self._path(key)
        if not path.exists():
            return default

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Error loading '{key}' from local store: {e}, using default")
            return default

        if isinstance(data, dict) and 'data' in data and 'version' in data:
            return data['data']
        return data

    def set(self, key: str, value: Any) -> None:
        """
        Write a value atomically.

        Raises:
            StorageError: If the value cannot be written
        """
        path = self._path(key)
        envelope = {
            'version': STORE_VERSION,
            'timestamp': datetime.now().isoformat(),
            'data': value,
        }
        backup_path = path.with_suffix('.json.backup')
        tmp_path = None

        try:
            if path.exists():
                shutil.copy2(path, backup_path)

            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=self.base_dir,
                prefix=f'.tmp_{key}_',
                suffix='.json',
                delete=False,
                encoding='utf-8'
            ) as tmp_file:
                tmp_path = tmp_file.name
                json.dump(envelope, tmp_file, indent=2, ensure_ascii=False)

            shutil.move(tmp_path, path)
            logger.debug(f"Saved '{key}' to local store")

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save '{key}' to local store: {e}", exc_info=True)

            if tmp_path and Path(tmp_path).exists():
                Path(tmp_path).unlink()

            if backup_path.exists():
                try:
                    shutil.copy2(backup_path, path)
                    logger.warning(f"Restored '{key}' from backup")
                except OSError as restore_error:
                    logger.error(f"Failed to restore '{key}' from backup: {restore_error}")

            raise StorageError(f"Could not save '{key}': {e}")

    def delete(self, key: str) -> bool:
        """Remove a key; returns True if it existed."""
        path = self._path(key)
        existed = path.exists()
        for candidate in (path, path.with_suffix('.json.backup')):
            if candidate.exists():
                candidate.unlink()
        if existed:
            logger.info(f"Deleted '{key}' from local store")
        return existed

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.base_dir.glob('*.json') if not p.name.startswith('.tmp_'))

    def clear(self) -> int:
        """Delete every stored key. Returns the number of keys removed."""
        removed = 0
        for key in self.keys():
            if self.delete(key):
                removed += 1
        logger.info(f"Cleared local store: {removed} key(s) removed")
        return removed

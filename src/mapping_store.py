"""
Saved column mappings.

Mappings are stored by name under a single store key, each one in the
compact list form (header per field in FIELD_IDS order, "" for unmapped).
The mapping named "default" is the one applied automatically on import.
"""

from typing import Dict, List, Mapping, Optional

from field_mapping import FieldMapping, mapping_from_list, mapping_to_list, normalize_mapping
from local_store import LocalStore
from logger import get_logger

logger = get_logger(__name__)

STORE_KEY = 'columnMappings'
DEFAULT_MAPPING_NAME = 'default'


class ColumnMappingStore:
    """Persistence for named column mappings."""

    def __init__(self, store: LocalStore):
        self.store = store

    def _load_all(self) -> Dict[str, List[str]]:
        data = self.store.get(STORE_KEY, {})
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed saved mappings: {type(data).__name__}")
            return {}
        return data

    def list_names(self) -> List[str]:
        return sorted(self._load_all())

    def load(self, name: str) -> Optional[FieldMapping]:
        """
        Load a saved mapping.

        Returns:
            The mapping, or None if no mapping has that name
        """
        values = self._load_all().get(name)
        if values is None:
            return None
        if isinstance(values, dict):
            return normalize_mapping(values)
        return mapping_from_list(values)

    def load_default(self) -> Optional[FieldMapping]:
        return self.load(DEFAULT_MAPPING_NAME)

    def save(self, name: str, mapping: Mapping[str, Optional[str]]) -> None:
        """
        Save a mapping under a name, replacing any mapping with that name.

        Raises:
            ValueError: If the name is empty
            StorageError: If the store cannot be written
        """
        name = name.strip()
        if not name:
            raise ValueError("Mapping name cannot be empty")

        mappings = self._load_all()
        mappings[name] = mapping_to_list(normalize_mapping(mapping))
        self.store.set(STORE_KEY, mappings)
        logger.info(f"Column mapping '{name}' saved")

    def save_default(self, mapping: Mapping[str, Optional[str]]) -> None:
        self.save(DEFAULT_MAPPING_NAME, mapping)

    def delete(self, name: str) -> bool:
        mappings = self._load_all()
        if name not in mappings:
            return False
        del mappings[name]
        self.store.set(STORE_KEY, mappings)
        logger.info(f"Column mapping '{name}' deleted")
        return True

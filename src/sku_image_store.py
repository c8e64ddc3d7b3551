import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from exceptions import CsvParseError
from local_store import LocalStore
from logger import get_logger

logger = get_logger(__name__)

STORE_KEY = 'skuImages'

SKU_COLUMN_HINTS = ('sku', 'code')
IMAGE_COLUMN_HINTS = ('image', 'url', 'link', 'photo')


def detect_column(headers: Sequence[str], hints: Sequence[str]) -> Optional[str]:
    """Return the first header containing any of the hints (case-insensitive)."""
    for header in headers:
        lowered = str(header).lower()
        if any(hint in lowered for hint in hints):
            return header
    return None


class SkuImageStore:
    """
    Manages the SKU-to-image-URL lookup used on packing slips.

    Entries are stored as a list of {"sku", "imageUrl"} records in the local
    store. The aggregator only ever sees the plain dict returned by get_map(),
    looked up by SKU first and by seller SKU second.
    """

    def __init__(self, store: LocalStore):
        """
        Initializes the manager and loads the stored images.

        Args:
            store (LocalStore): Local key-value store holding the images.
        """
        self.store = store
        self.images = self.load_images()

    def load_images(self) -> List[Dict[str, str]]:
        """
        Loads the stored SKU images.

        Malformed entries are skipped; a missing or invalid store value gives
        an empty list.

        Returns:
            List[Dict[str, str]]: Records with "sku" and "imageUrl" keys.
        """
        data = self.store.get(STORE_KEY, [])
        if not isinstance(data, list):
            return []
        return [
            {'sku': str(item['sku']), 'imageUrl': str(item['imageUrl'])}
            for item in data
            if isinstance(item, dict) and item.get('sku') and item.get('imageUrl')
        ]

    def save_images(self, images: List[Dict[str, str]]):
        """
        Saves the provided records and updates the in-memory list.

        Args:
            images (List[Dict[str, str]]): Records to save.
        """
        self.store.set(STORE_KEY, images)
        self.images = images
        logger.info(f"Saved {len(images)} SKU images")

    def get_map(self) -> Dict[str, str]:
        """
        Returns the SKU -> image URL lookup. Later records win on duplicates.

        Returns:
            Dict[str, str]: The current lookup.
        """
        return {item['sku']: item['imageUrl'] for item in self.images}

    def search(self, query: str) -> List[Dict[str, str]]:
        """Records whose SKU contains the query (case-insensitive)."""
        query = query.lower()
        return [item for item in self.images if query in item['sku'].lower()]

    def delete(self, sku: str) -> bool:
        remaining = [item for item in self.images if item['sku'] != sku]
        if len(remaining) == len(self.images):
            return False
        self.save_images(remaining)
        logger.info(f"Image for SKU '{sku}' deleted")
        return True

    def clear(self):
        self.store.delete(STORE_KEY)
        self.images = []
        logger.info("All SKU images deleted")

    @staticmethod
    def read_image_file(file_path: Union[str, Path]) -> pd.DataFrame:
        """
        Read a CSV or Excel file listing SKU images.

        Raises:
            CsvParseError: If the file cannot be read
        """
        path = Path(file_path)
        extension = os.path.splitext(path.name)[1].lower()
        try:
            if extension in ('.xlsx', '.xls'):
                df = pd.read_excel(path, dtype=str)
            else:
                df = pd.read_csv(path, dtype=str, encoding='utf-8-sig')
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.error(f"Failed to read SKU image file: {e}")
            raise CsvParseError(f"Could not read the SKU image file: {e}")
        return df.fillna('')

    def import_from_file(self, file_path: Union[str, Path], sku_column: Optional[str] = None,
                         image_column: Optional[str] = None) -> int:
        """
        Replace the stored images with the contents of a CSV/Excel file.

        Columns are auto-detected when not given: the SKU column is the first
        header containing "sku" or "code", the image column the first one
        containing "image", "url", "link" or "photo". Rows missing either value
        are skipped.

        Returns:
            int: Number of imported records.

        Raises:
            CsvParseError: If the file cannot be read or the columns are missing
        """
        logger.info(f"Importing SKU images from: {file_path}")
        df = self.read_image_file(file_path)
        headers = [str(column).strip() for column in df.columns]
        df.columns = headers

        sku_column, image_column = self._resolve_columns(headers, sku_column, image_column)

        images = []
        for sku, url in zip(df[sku_column], df[image_column]):
            sku, url = str(sku).strip(), str(url).strip()
            if sku and url:
                images.append({'sku': sku, 'imageUrl': url})

        self.save_images(images)
        logger.info(f"Imported {len(images)} SKU images (columns: {sku_column}, {image_column})")
        return len(images)

    @staticmethod
    def _resolve_columns(headers: List[str], sku_column: Optional[str],
                         image_column: Optional[str]) -> Tuple[str, str]:
        sku_column = sku_column or detect_column(headers, SKU_COLUMN_HINTS)
        image_column = image_column or detect_column(
            [h for h in headers if h != sku_column], IMAGE_COLUMN_HINTS
        )

        missing = [
            label for label, column in (('SKU', sku_column), ('Image URL', image_column))
            if not column or column not in headers
        ]
        if missing:
            raise CsvParseError(
                f"Please select both SKU and Image URL columns. Missing: {', '.join(missing)}\n\n"
                f"Available columns: {', '.join(headers)}"
            )
        return sku_column, image_column

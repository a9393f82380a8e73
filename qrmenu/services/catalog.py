"""
Menu Catalog Provider

Loads the menu from a CSV file once per process and answers name lookups
used for price resolution.

CSV columns:
    category, subcategory, name_local (or name_ja), name_alt (or name_en),
    price, recommended, is_new (or new), stock, image_path

Rows with an empty category are skipped. A missing file falls back to the
built-in cafe menu.
"""

import asyncio
import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd

from qrmenu.core.config import get_settings
from qrmenu.core.exceptions import CatalogLoadError
from qrmenu.schemas import MenuItem

logger = logging.getLogger(__name__)


# Header aliases accepted in menu files
COLUMN_ALIASES = {
    "name_ja": "name_local",
    "name_en": "name_alt",
    "new": "is_new",
}


def _item(category, subcategory, name_local, name_alt, price, recommended, image_path):
    return MenuItem(
        category=category,
        subcategory=subcategory,
        name_local=name_local,
        name_alt=name_alt,
        price=price,
        recommended=recommended,
        is_new=0,
        stock=1,
        image_path=image_path,
    )


BUILTIN_MENU: tuple[MenuItem, ...] = (
    _item("Drinks", "コーヒー", "ブレンドコーヒー", "Blend Coffee", 350, 1, "drinks/coffee-blend.png"),
    _item("Drinks", "コーヒー", "カフェラテ", "Cafe Latte", 450, 1, "drinks/coffee-latte.png"),
    _item("Drinks", "コーヒー", "カプチーノ", "Cappuccino", 450, 0, "drinks/coffee-cappuccino.png"),
    _item("Drinks", "紅茶", "アールグレイ", "Earl Grey", 400, 1, "drinks/tea-earl-grey.png"),
    _item("Drinks", "紅茶", "ダージリン", "Darjeeling", 400, 0, "drinks/tea-darjeeling.png"),
    _item("Drinks", "紅茶", "レモンティー", "Lemon Tea", 450, 0, "drinks/tea-lemon.png"),
    _item("Drinks", "その他", "オレンジジュース", "Orange Juice", 300, 0, "drinks/juice-orange.png"),
    _item("Drinks", "その他", "アップルジュース", "Apple Juice", 300, 0, "drinks/juice-apple.png"),
    _item("Drinks", "その他", "ミネラルウォーター", "Mineral Water", 200, 0, "drinks/water.png"),
    _item("Specials", "チョコレート", "チョコレートケーキ", "Chocolate Cake", 500, 1, "sweets/cake-chocolate.png"),
    _item("Specials", "チョコレート", "チョコレートムース", "Chocolate Mousse", 550, 0, "sweets/mousse-chocolate.png"),
    _item("Specials", "フルーツ", "ストロベリーショートケーキ", "Strawberry Shortcake", 600, 1, "sweets/cake-strawberry.png"),
    _item("Specials", "フルーツ", "アップルパイ", "Apple Pie", 550, 0, "sweets/pie-apple.png"),
    _item("Specials", "チーズ", "チーズケーキ", "Cheesecake", 500, 1, "sweets/cake-cheese.png"),
    _item("Specials", "チーズ", "ティラミス", "Tiramisu", 650, 1, "sweets/tiramisu.png"),
    _item("Snacks", "サンドイッチ", "ハムサンドイッチ", "Ham Sandwich", 400, 0, "meals/sandwich-ham.png"),
    _item("Snacks", "サンドイッチ", "チキンサンドイッチ", "Chicken Sandwich", 450, 1, "meals/sandwich-chicken.png"),
    _item("Snacks", "サンドイッチ", "ツナサンドイッチ", "Tuna Sandwich", 400, 0, "meals/sandwich-tuna.png"),
    _item("Snacks", "パスタ", "カルボナーラ", "Carbonara", 800, 1, "meals/pasta-carbonara.png"),
    _item("Snacks", "パスタ", "ペペロンチーノ", "Peperoncino", 750, 0, "meals/pasta-peperoncino.png"),
    _item("Snacks", "パスタ", "ナポリタン", "Napolitan", 700, 0, "meals/pasta-napolitan.png"),
)


def parse_int(value, default: int = 0) -> int:
    """
    Parse an integer cell the way a lenient CSV reader would.

    "350", "350.0" and " 350 " all give 350; blanks and junk give default.
    """
    if value is None:
        return default
    if isinstance(value, float) and math.isnan(value):
        return default
    text = str(value).strip()
    if not text:
        return default
    try:
        return int(float(text))
    except ValueError:
        return default


class CatalogProvider:
    """
    Process-wide menu cache.

    The first load() reads the source and every later call returns the same
    tuple. Two concurrent first loads may both read the file; they produce
    equal results and the last one wins.

    Example:
        >>> catalog = CatalogProvider("menu.csv")
        >>> items = await catalog.load()
        >>> catalog.find_by_name("Blend Coffee").price
        350
    """

    def __init__(self, source: Union[str, Path, None] = None):
        self.source = Path(source) if source is not None else None
        self._items: Optional[tuple[MenuItem, ...]] = None
        self._index: dict[str, MenuItem] = {}

    @property
    def loaded(self) -> bool:
        return self._items is not None

    async def load(self) -> Sequence[MenuItem]:
        """
        Return the menu, reading the source on first use.

        Raises:
            CatalogLoadError: The file exists but cannot be read or parsed
        """
        if self._items is not None:
            return self._items

        items = await asyncio.to_thread(self._read_source)
        self._set_items(items)
        return items

    def find_by_name(self, name: str) -> Optional[MenuItem]:
        """Look up an item by either display name; None before load or on miss."""
        return self._index.get(name)

    def price_for(self, name: str) -> int:
        item = self.find_by_name(name)
        return item.price if item is not None else 0

    def _set_items(self, items: tuple[MenuItem, ...]) -> None:
        index: dict[str, MenuItem] = {}
        for item in items:
            for name in (item.name_local, item.name_alt):
                if name and name not in index:
                    index[name] = item
        self._index = index
        self._items = items

    def _read_source(self) -> tuple[MenuItem, ...]:
        if self.source is None or not self.source.exists():
            logger.info(f"Menu file not found ({self.source}); using built-in menu")
            return BUILTIN_MENU

        try:
            df = pd.read_csv(
                self.source,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
            )
        except Exception as e:
            logger.error(f"Failed to read menu file {self.source}: {e}")
            raise CatalogLoadError(detail=str(e)) from e

        df = df.rename(columns=lambda c: COLUMN_ALIASES.get(c.strip(), c.strip()))

        items = []
        for row in df.to_dict(orient="records"):
            item = self._parse_row(row)
            if item is not None:
                items.append(item)

        logger.info(f"Loaded {len(items)} menu items from {self.source}")
        return tuple(items)

    @staticmethod
    def _parse_row(row: dict) -> Optional[MenuItem]:
        category = str(row.get("category") or "").strip()
        if not category:
            logger.warning(f"Skipping menu row with empty category: {row}")
            return None

        name_local = str(row.get("name_local") or "").strip()
        name_alt = str(row.get("name_alt") or "").strip()
        if not name_local and not name_alt:
            logger.warning(f"Skipping menu row without a name: {row}")
            return None

        return MenuItem(
            category=category,
            subcategory=str(row.get("subcategory") or "").strip(),
            name_local=name_local or name_alt,
            name_alt=name_alt,
            price=max(parse_int(row.get("price")), 0),
            recommended=1 if parse_int(row.get("recommended")) else 0,
            is_new=1 if parse_int(row.get("is_new")) else 0,
            stock=1 if parse_int(row.get("stock"), default=1) else 0,
            image_path=str(row.get("image_path") or "").strip(),
        )


@lru_cache()
def get_catalog() -> CatalogProvider:
    """Get the process-wide catalog for the configured menu file."""
    settings = get_settings()
    return CatalogProvider(settings.menu_csv_file)


def reset_catalog() -> None:
    """Drop the cached catalog; the next get_catalog() re-reads the menu."""
    get_catalog.cache_clear()

"""Tests for the menu catalog provider."""

import pytest

from qrmenu.core.exceptions import CatalogLoadError
from qrmenu.services.catalog import BUILTIN_MENU, CatalogProvider, parse_int


MENU_CSV = (
    "category,subcategory,name_local,name_alt,price,recommended,is_new,stock,image_path\n"
    "Drinks,コーヒー,ブレンドコーヒー,Blend Coffee,350,1,0,1,drinks/coffee-blend.png\n"
    ",,Ghost Row,Ghost,100,0,0,1,\n"
    "Specials,チーズ,チーズケーキ,Cheesecake,500,1,1,,sweets/cake-cheese.png\n"
    "Snacks,パスタ,ナポリタン,Napolitan,abc,0,0,0,\n"
)


@pytest.fixture
def menu_file(tmp_path):
    path = tmp_path / "menu.csv"
    path.write_text(MENU_CSV, encoding="utf-8")
    return path


class TestCsvLoading:
    """Reading menu files."""

    async def test_rows_with_empty_category_are_skipped(self, menu_file):
        items = await CatalogProvider(menu_file).load()
        names = [item.name_local for item in items]
        assert names == ["ブレンドコーヒー", "チーズケーキ", "ナポリタン"]

    async def test_fields_are_parsed(self, menu_file):
        items = await CatalogProvider(menu_file).load()
        coffee, cheesecake, napolitan = items

        assert coffee.category == "Drinks"
        assert coffee.subcategory == "コーヒー"
        assert coffee.name_alt == "Blend Coffee"
        assert coffee.price == 350
        assert coffee.recommended == 1
        assert coffee.image_path == "drinks/coffee-blend.png"

        assert cheesecake.is_new == 1
        assert cheesecake.stock == 1  # blank stock means in stock

        assert napolitan.price == 0
        assert napolitan.stock == 0

    async def test_header_aliases(self, tmp_path):
        path = tmp_path / "menu.csv"
        path.write_text(
            "category,subcategory,name_ja,name_en,price,recommended,new,stock,image_path\n"
            "Drinks,紅茶,アールグレイ,Earl Grey,400,1,1,1,drinks/tea-earl-grey.png\n",
            encoding="utf-8",
        )
        (item,) = await CatalogProvider(path).load()
        assert item.name_local == "アールグレイ"
        assert item.name_alt == "Earl Grey"
        assert item.is_new == 1

    async def test_utf8_bom_is_ignored(self, tmp_path):
        path = tmp_path / "menu.csv"
        path.write_bytes(("\ufeff" + MENU_CSV).encode("utf-8"))
        items = await CatalogProvider(path).load()
        assert items[0].category == "Drinks"

    async def test_missing_file_uses_builtin_menu(self, tmp_path):
        items = await CatalogProvider(tmp_path / "absent.csv").load()
        assert items == BUILTIN_MENU

    async def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "menu.csv"
        path.mkdir()  # a directory cannot be parsed as CSV
        with pytest.raises(CatalogLoadError):
            await CatalogProvider(path).load()


class TestCaching:
    """The menu is read once per provider."""

    async def test_second_load_returns_cached_items(self, menu_file):
        catalog = CatalogProvider(menu_file)
        first = await catalog.load()
        menu_file.write_text("category,name_local,price\nDrinks,Other,1\n", encoding="utf-8")
        second = await catalog.load()
        assert second is first

    async def test_loaded_flag(self, menu_file):
        catalog = CatalogProvider(menu_file)
        assert not catalog.loaded
        await catalog.load()
        assert catalog.loaded


class TestLookup:
    """Name lookups used for price resolution."""

    async def test_find_by_either_name(self, catalog):
        await catalog.load()
        assert catalog.find_by_name("ブレンドコーヒー").price == 350
        assert catalog.find_by_name("Blend Coffee").price == 350

    async def test_unknown_name(self, catalog):
        await catalog.load()
        assert catalog.find_by_name("Sushi") is None
        assert catalog.price_for("Sushi") == 0

    def test_lookup_before_load_misses(self, catalog):
        assert catalog.find_by_name("ブレンドコーヒー") is None

    def test_builtin_menu_spelling(self):
        assert "Earl Grey" in {item.name_alt for item in BUILTIN_MENU}


class TestParseInt:

    @pytest.mark.parametrize(
        "value,expected",
        [("350", 350), (" 350 ", 350), ("350.0", 350), ("", 0), ("abc", 0), (None, 0)],
    )
    def test_values(self, value, expected):
        assert parse_int(value) == expected

    def test_custom_default(self):
        assert parse_int("", default=1) == 1

"""Catalog record loading and canonical content rendering."""

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .config import config
from .errors import SourceUnavailable
from .models import (
    MAX_FLAVOR_PROFILES,
    CatalogRecord,
    Dish,
    FlavorProfile,
    Ingredient,
    MainFlavor,
    Wine,
)

logger = config.get_logger(__name__)

NONE_MARKER = "無"
NOT_PROVIDED_MARKER = "未提供"


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _decode_flavor_profiles(raw_profiles: object) -> tuple[FlavorProfile, ...]:
    profiles = []
    for raw in raw_profiles or []:
        profile = FlavorProfile(
            index=_text(raw.get("index")).strip(),
            remark=_text(raw.get("remark")).strip(),
        )
        if not profile.is_blank():
            profiles.append(profile)
    return tuple(profiles[:MAX_FLAVOR_PROFILES])


def _decode_ingredients(raw_items: object) -> tuple[Ingredient, ...]:
    ingredients = []
    for raw in raw_items or []:
        name = _text(raw.get("name")).strip()
        if not name:
            continue
        ingredients.append(
            Ingredient(
                name=name,
                story=_text(raw.get("story")).strip(),
                flavor_profiles=_decode_flavor_profiles(raw.get("flavor_profiles")),
            )
        )
    return tuple(ingredients)


def _decode_main_flavors(raw_items: object) -> tuple[MainFlavor, ...]:
    flavors = []
    for raw in raw_items or []:
        name = _text(raw.get("name")).strip()
        if not name:
            continue
        flavors.append(
            MainFlavor(
                name=name,
                flavor_profiles=_decode_flavor_profiles(raw.get("flavor_profiles")),
            )
        )
    return tuple(flavors)


def _infer_kind(raw: Mapping[str, Any]) -> str:
    if "type" in raw:
        return str(raw["type"]).lower()
    if "ingredients" in raw:
        return "dish"
    if "main_flavors" in raw or "flavors" in raw:
        return "wine"
    msg = f"Cannot tell whether record {raw.get('id')!r} is a dish or a wine"
    raise ValueError(msg)


def decode_record(raw: Mapping[str, Any], kind: str | None = None) -> CatalogRecord:
    """Decode one loosely typed catalog row into a ``Dish`` or ``Wine``.

    Args:
        raw: Row as read from the catalog source.
        kind: ``"dish"`` or ``"wine"``; inferred from the row when omitted.

    Returns:
        The typed catalog record.

    Raises:
        ValueError: If the row lacks a name or a numeric price, or its kind
            cannot be determined.
    """
    kind = (kind or _infer_kind(raw)).lower()
    name = _text(raw.get("name")).strip()
    if not name:
        msg = f"Catalog record {raw.get('id')!r} has no name"
        raise ValueError(msg)
    try:
        price = float(raw["price"])
    except (KeyError, TypeError, ValueError) as exc:
        msg = f"Catalog record {name!r} has no valid price"
        raise ValueError(msg) from exc

    story = _text(raw.get("story")).strip() or None
    common: dict[str, Any] = {
        "id": int(raw.get("id") or 0),
        "name": name,
        "price": price,
        "story": story,
        "in_stock": bool(raw.get("in_stock", True)),
    }

    if kind == "dish":
        return Dish(ingredients=_decode_ingredients(raw.get("ingredients")), **common)
    if kind == "wine":
        if raw.get("main_flavors") is None and raw.get("flavors") is not None:
            tags = tuple(
                tag for tag in (_text(t).strip() for t in raw["flavors"]) if tag
            )
            return Wine(flavor_tags=tags, **common)
        return Wine(main_flavors=_decode_main_flavors(raw.get("main_flavors")), **common)

    msg = f"Unsupported catalog record type: {kind}"
    raise ValueError(msg)


class CatalogLoader:
    """Reads catalog records from a JSON export of the catalog tables.

    The file holds either ``{"dishes": [...], "wines": [...]}`` or a flat list
    of rows carrying a ``type`` field.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else config.CATALOG_PATH

    async def fetch_all(self) -> list[CatalogRecord]:
        """Load and decode every record.

        Returns:
            Dishes first, then wines, in file order.

        Raises:
            SourceUnavailable: If the file is missing, unreadable or malformed.
        """
        try:
            with self.path.open(encoding="utf-8") as file:
                payload = json.load(file)
            records = self._decode_payload(payload)
        except (OSError, json.JSONDecodeError, ValueError, AttributeError) as exc:
            logger.exception("Error loading catalog from %s", self.path)
            msg = f"Catalog source unavailable: {exc}"
            raise SourceUnavailable(msg) from exc

        logger.info("Loaded %d catalog records from %s", len(records), self.path)
        return records

    @staticmethod
    def _decode_payload(payload: object) -> list[CatalogRecord]:
        if isinstance(payload, Mapping):
            dishes = [decode_record(row, "dish") for row in payload.get("dishes", [])]
            wines = [decode_record(row, "wine") for row in payload.get("wines", [])]
            return [*dishes, *wines]
        if isinstance(payload, list):
            return [decode_record(row) for row in payload]
        msg = f"Unexpected catalog payload of type {type(payload).__name__}"
        raise ValueError(msg)


class ContentRenderer:
    """Renders catalog records into the canonical text stored for retrieval.

    Every section is always present; blank optional text becomes an explicit
    marker so the language model never mistakes an omission for absence.
    """

    @staticmethod
    def format_price(price: float) -> str:
        if float(price).is_integer():
            return f"{int(price)} 元"
        return f"{price} 元"

    @staticmethod
    def _render_profiles(profiles: Iterable[FlavorProfile], indent: str) -> str:
        lines = [
            f"{indent}- Index {fp.index or NONE_MARKER}: {fp.remark or NONE_MARKER}"
            for fp in profiles
        ]
        return "\n".join(lines) or f"{indent}- {NONE_MARKER}"

    @classmethod
    def render_dish(cls, dish: Dish) -> str:
        ingredients_text = (
            "\n".join(
                f"  - 食材「{ing.name}」的故事是：{ing.story or NONE_MARKER}\n"
                "    其風味細節如下：\n"
                f"{cls._render_profiles(ing.flavor_profiles, ' ' * 6)}"
                for ing in dish.ingredients
            )
            or NOT_PROVIDED_MARKER
        )
        return (
            f"# 菜品資訊：{dish.name}\n"
            "## 菜品故事\n"
            f"{dish.story or NONE_MARKER}\n"
            "## 食材細節\n"
            f"{ingredients_text}\n"
            "## 價格\n"
            f"{cls.format_price(dish.price)}"
        )

    @classmethod
    def render_wine(cls, wine: Wine) -> str:
        if wine.flavor_tags is not None:
            flavors_text = (
                f"  - 風味標籤：{'、'.join(wine.flavor_tags)}"
                if wine.flavor_tags
                else NOT_PROVIDED_MARKER
            )
        else:
            flavors_text = (
                "\n".join(
                    f"  - 主要風味「{mf.name}」的細節描述如下：\n"
                    f"{cls._render_profiles(mf.flavor_profiles, ' ' * 4)}"
                    for mf in wine.main_flavors
                )
                or NOT_PROVIDED_MARKER
            )
        return (
            f"# 酒品資訊：{wine.name}\n"
            "## 酒品故事\n"
            f"{wine.story or NONE_MARKER}\n"
            "## 風味細節\n"
            f"{flavors_text}\n"
            "## 價格\n"
            f"{cls.format_price(wine.price)}"
        )

    @classmethod
    def render(cls, record: CatalogRecord) -> str:
        """Render a record; the output is stripped of surrounding whitespace.

        Returns:
            The canonical content string for the record.
        """
        if isinstance(record, Dish):
            return cls.render_dish(record).strip()
        return cls.render_wine(record).strip()

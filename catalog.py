"""
Catalog Module
==============
Typed, immutable catalog records and the per-validation snapshot.

A CatalogSnapshot is built once per validation call and resolves every
product, variant, modifier group, modifier and pizza ingredient into
id-keyed lookup maps. Records are frozen: the engine never mutates menu
data, and a catalog change after the snapshot is taken cannot produce a
torn read.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from prometheus_client import Counter


logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

CENTS = Decimal("0.01")
MAX_ITEM_PRICE = Decimal("10000.00")
MAX_NAME_LENGTH = 200


# ============================================================================
# METRICS
# ============================================================================

catalog_snapshots_built = Counter(
    'catalog_snapshots_built_total',
    'Catalog snapshots built for validation'
)
catalog_record_errors = Counter(
    'catalog_record_errors_total',
    'Malformed catalog records rejected',
    ['record_type']
)


class CatalogError(Exception):
    """Raised when catalog data is malformed (not a customer error)."""
    pass


def to_money(value: Any) -> Optional[Decimal]:
    """
    Normalize a price to a Decimal quantized to cents.

    Accepts int, float, Decimal and strings such as "$1,250.50".
    Returns None for anything that is not a finite amount.
    """
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str):
            amount = Decimal(value.replace("$", "").replace(",", "").strip())
        else:
            return None
    except InvalidOperation:
        return None

    if not amount.is_finite():
        return None

    return amount.quantize(CENTS)


# ============================================================================
# RECORDS
# ============================================================================

class IngredientType(Enum):
    """Pizza ingredient kind."""
    FLAVOR = "FLAVOR"
    INGREDIENT = "INGREDIENT"


@dataclass(frozen=True)
class ProductVariant:
    id: str
    name: str
    price: Decimal
    product_id: str
    available: bool = True


@dataclass(frozen=True)
class Modifier:
    id: str
    name: str
    price: Decimal
    group_id: str
    available: bool = True


@dataclass(frozen=True)
class ModifierGroup:
    """
    Named set of related add-on choices.

    Selection range: accepts_multiple False means exactly one, True means
    one up to the group size. Explicit min/max selections override either
    bound.
    """
    id: str
    name: str
    required: bool = False
    accepts_multiple: bool = False
    modifier_ids: Tuple[str, ...] = field(default_factory=tuple)
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None

    def selection_range(self) -> Tuple[int, int]:
        minimum = self.min_selections if self.min_selections is not None else 1
        if self.max_selections is not None:
            maximum = self.max_selections
        elif self.accepts_multiple:
            maximum = max(len(self.modifier_ids), minimum)
        else:
            maximum = 1
        return minimum, maximum


@dataclass(frozen=True)
class PizzaIngredient:
    id: str
    name: str
    product_id: str
    value: int = 1
    type: IngredientType = IngredientType.INGREDIENT
    available: bool = True


@dataclass(frozen=True)
class MenuProduct:
    id: str
    name: str
    price: Optional[Decimal] = None
    variant_ids: Tuple[str, ...] = field(default_factory=tuple)
    modifier_group_ids: Tuple[str, ...] = field(default_factory=tuple)
    pizza_ingredient_ids: Tuple[str, ...] = field(default_factory=tuple)
    available: bool = True

    @property
    def has_variants(self) -> bool:
        return bool(self.variant_ids)

    @property
    def is_pizza(self) -> bool:
        return bool(self.pizza_ingredient_ids)


# ============================================================================
# SNAPSHOT
# ============================================================================

class CatalogSnapshot:
    """
    Point-in-time view of the catalog, keyed by id.

    Lookups never raise; they return None for unknown ids so validators can
    report customer errors instead.
    """

    def __init__(
        self,
        products: Iterable[MenuProduct] = (),
        variants: Iterable[ProductVariant] = (),
        modifier_groups: Iterable[ModifierGroup] = (),
        modifiers: Iterable[Modifier] = (),
        pizza_ingredients: Iterable[PizzaIngredient] = ()
    ):
        self._products: Dict[str, MenuProduct] = {p.id: p for p in products}
        self._variants: Dict[str, ProductVariant] = {v.id: v for v in variants}
        self._groups: Dict[str, ModifierGroup] = {g.id: g for g in modifier_groups}
        self._modifiers: Dict[str, Modifier] = {m.id: m for m in modifiers}
        self._ingredients: Dict[str, PizzaIngredient] = {i.id: i for i in pizza_ingredients}

        catalog_snapshots_built.inc()

        logger.debug(
            "Catalog snapshot built",
            extra={
                "products": len(self._products),
                "variants": len(self._variants),
                "modifier_groups": len(self._groups),
                "modifiers": len(self._modifiers),
                "pizza_ingredients": len(self._ingredients)
            }
        )

    def product(self, product_id: str) -> Optional[MenuProduct]:
        return self._products.get(product_id)

    def variant(self, variant_id: str) -> Optional[ProductVariant]:
        return self._variants.get(variant_id)

    def modifier_group(self, group_id: str) -> Optional[ModifierGroup]:
        return self._groups.get(group_id)

    def modifier(self, modifier_id: str) -> Optional[Modifier]:
        return self._modifiers.get(modifier_id)

    def pizza_ingredient(self, ingredient_id: str) -> Optional[PizzaIngredient]:
        return self._ingredients.get(ingredient_id)

    def variants_of(self, product: MenuProduct) -> List[ProductVariant]:
        """Variants owned by product, in catalog order."""
        return [
            variant for variant in
            (self._variants.get(vid) for vid in product.variant_ids)
            if variant is not None and variant.product_id == product.id
        ]

    def modifier_groups_of(self, product: MenuProduct) -> List[ModifierGroup]:
        return [
            group for group in
            (self._groups.get(gid) for gid in product.modifier_group_ids)
            if group is not None
        ]

    def pizza_ingredients_of(self, product: MenuProduct) -> Dict[str, PizzaIngredient]:
        return {
            ingredient.id: ingredient for ingredient in
            (self._ingredients.get(iid) for iid in product.pizza_ingredient_ids)
            if ingredient is not None
        }

    def __len__(self):
        return len(self._products)

    # ------------------------------------------------------------------------
    # LOADING
    # ------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CatalogSnapshot":
        """
        Build a snapshot from plain records.

        Expected keys: products, variants, modifier_groups, modifiers,
        pizza_ingredients (each a list of dicts). Missing keys are empty.

        Raises:
            CatalogError: If any record is malformed
        """
        if not isinstance(raw, Mapping):
            raise CatalogError("Catalog must be a mapping")

        return cls(
            products=[_parse_product(r) for r in _records(raw, "products")],
            variants=[_parse_variant(r) for r in _records(raw, "variants")],
            modifier_groups=[_parse_group(r) for r in _records(raw, "modifier_groups")],
            modifiers=[_parse_modifier(r) for r in _records(raw, "modifiers")],
            pizza_ingredients=[_parse_ingredient(r) for r in _records(raw, "pizza_ingredients")]
        )


def _records(raw: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    records = raw.get(key) or []
    if not isinstance(records, list):
        raise CatalogError(f"Catalog {key} must be a list")
    return records


def _fail(record_type: str, message: str) -> CatalogError:
    catalog_record_errors.labels(record_type=record_type).inc()
    logger.error(f"Invalid {record_type} record: {message}")
    return CatalogError(f"Invalid {record_type} record: {message}")


def _require(record: Mapping[str, Any], key: str, record_type: str) -> str:
    if not isinstance(record, Mapping):
        raise _fail(record_type, f"expected mapping, got {type(record).__name__}")
    value = record.get(key)
    if value is None or str(value).strip() == "":
        raise _fail(record_type, f"missing {key}")
    text = str(value).strip()
    if key == "name" and len(text) > MAX_NAME_LENGTH:
        raise _fail(record_type, f"name too long ({len(text)} chars)")
    return text


def _price(record: Mapping[str, Any], key: str, record_type: str, required: bool = True) -> Optional[Decimal]:
    value = record.get(key)
    if value is None:
        if required:
            raise _fail(record_type, f"missing {key}")
        return None
    price = to_money(value)
    if price is None or abs(price) > MAX_ITEM_PRICE:
        raise _fail(record_type, f"invalid {key}: {value!r}")
    return price


def _ids(record: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    return tuple(str(i) for i in (record.get(key) or []))


def _parse_product(record: Mapping[str, Any]) -> MenuProduct:
    product_id = _require(record, "id", "product")
    price = _price(record, "price", "product", required=False)
    if price is not None and price < 0:
        raise _fail("product", f"negative price for {product_id}")
    return MenuProduct(
        id=product_id,
        name=_require(record, "name", "product"),
        price=price,
        variant_ids=_ids(record, "variant_ids"),
        modifier_group_ids=_ids(record, "modifier_group_ids"),
        pizza_ingredient_ids=_ids(record, "pizza_ingredient_ids"),
        available=bool(record.get("available", True))
    )


def _parse_variant(record: Mapping[str, Any]) -> ProductVariant:
    price = _price(record, "price", "variant")
    if price < 0:
        raise _fail("variant", f"negative price: {price}")
    return ProductVariant(
        id=_require(record, "id", "variant"),
        name=_require(record, "name", "variant"),
        price=price,
        product_id=_require(record, "product_id", "variant"),
        available=bool(record.get("available", True))
    )


def _parse_group(record: Mapping[str, Any]) -> ModifierGroup:
    group = ModifierGroup(
        id=_require(record, "id", "modifier_group"),
        name=_require(record, "name", "modifier_group"),
        required=bool(record.get("required", False)),
        accepts_multiple=bool(record.get("accepts_multiple", False)),
        modifier_ids=_ids(record, "modifier_ids"),
        min_selections=record.get("min_selections"),
        max_selections=record.get("max_selections")
    )
    minimum, maximum = group.selection_range()
    if minimum < 0 or maximum < minimum:
        raise _fail("modifier_group", f"invalid selection range {minimum}..{maximum} for {group.id}")
    return group


def _parse_modifier(record: Mapping[str, Any]) -> Modifier:
    return Modifier(
        id=_require(record, "id", "modifier"),
        name=_require(record, "name", "modifier"),
        price=_price(record, "price", "modifier", required=False) or Decimal("0.00"),
        group_id=_require(record, "group_id", "modifier"),
        available=bool(record.get("available", True))
    )


def _parse_ingredient(record: Mapping[str, Any]) -> PizzaIngredient:
    raw_value = record.get("value", 1)
    if isinstance(raw_value, bool) or not isinstance(raw_value, int) or raw_value < 0:
        raise _fail("pizza_ingredient", f"invalid value: {raw_value!r}")

    raw_type = str(record.get("type", IngredientType.INGREDIENT.value)).upper()
    try:
        ingredient_type = IngredientType(raw_type)
    except ValueError:
        raise _fail("pizza_ingredient", f"invalid type: {raw_type}")

    return PizzaIngredient(
        id=_require(record, "id", "pizza_ingredient"),
        name=_require(record, "name", "pizza_ingredient"),
        product_id=_require(record, "product_id", "pizza_ingredient"),
        value=raw_value,
        type=ingredient_type,
        available=bool(record.get("available", True))
    )

"""
Pizza Module
============
Validation and pricing of the half/half pizza customization language.

A pizza's customizations are either all FULL or all split across HALF_1 /
HALF_2. The first INCLUDED_INGREDIENT_VALUE units of ingredient value are
part of the base price; value beyond that is surcharged per unit, at half
the full-pie rate on each half.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from catalog import CatalogSnapshot, IngredientType, MenuProduct, PizzaIngredient
from errors import (
    InvalidPizzaConfiguration,
    ItemNotAvailable,
    MissingRequiredField,
    OrderError,
    PizzaCustomizationRequired,
    raise_collected,
)


logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

INCLUDED_INGREDIENT_VALUE = 4
FULL_UNIT_SURCHARGE = Decimal("10")
HALF_UNIT_SURCHARGE = Decimal("5")


class PizzaHalf(Enum):
    FULL = "FULL"
    HALF_1 = "HALF_1"
    HALF_2 = "HALF_2"


class CustomizationAction(Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"


@dataclass(frozen=True)
class PizzaCustomization:
    """One requested ingredient change on a pizza."""
    ingredient_id: str
    half: PizzaHalf = PizzaHalf.FULL
    action: CustomizationAction = CustomizationAction.ADD

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], item_index: Optional[int] = None) -> "PizzaCustomization":
        """
        Parse a customization, accepting enum names in any case.

        Raises:
            MissingRequiredField: If the id, half or action is missing or unknown
        """
        if not isinstance(raw, Mapping):
            raise MissingRequiredField("pizza_customizations", item_index, raw)

        ingredient_id = raw.get("ingredient_id") or raw.get("pizza_ingredient_id")
        if not ingredient_id:
            raise MissingRequiredField("pizza_customizations.ingredient_id", item_index, ingredient_id)

        half = raw.get("half", PizzaHalf.FULL.value)
        action = raw.get("action", CustomizationAction.ADD.value)
        try:
            half = half if isinstance(half, PizzaHalf) else PizzaHalf(str(half).upper())
        except ValueError:
            raise MissingRequiredField("pizza_customizations.half", item_index, half)
        try:
            action = action if isinstance(action, CustomizationAction) else CustomizationAction(str(action).upper())
        except ValueError:
            raise MissingRequiredField("pizza_customizations.action", item_index, action)

        return cls(ingredient_id=str(ingredient_id), half=half, action=action)


@dataclass(frozen=True)
class SelectedIngredient:
    """Customization enriched with catalog data, for display."""
    ingredient_id: str
    name: str
    type: IngredientType
    half: PizzaHalf
    action: CustomizationAction
    value: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredient_id": self.ingredient_id,
            "name": self.name,
            "type": self.type.value,
            "half": self.half.value,
            "action": self.action.value,
            "value": self.value,
        }


@dataclass(frozen=True)
class PizzaPricing:
    surcharge: Decimal
    customizations: Tuple[SelectedIngredient, ...] = field(default_factory=tuple)
    full_value: int = 0
    left_value: int = 0
    right_value: int = 0


# ============================================================================
# PRICING
# ============================================================================

def compute_surcharge(full_value: int, left_value: int, right_value: int) -> Decimal:
    """Surcharge for ingredient value above the included amount."""
    surcharge_full = max(full_value - INCLUDED_INGREDIENT_VALUE, 0) * FULL_UNIT_SURCHARGE
    surcharge_left = max(left_value - INCLUDED_INGREDIENT_VALUE, 0) * HALF_UNIT_SURCHARGE
    surcharge_right = max(right_value - INCLUDED_INGREDIENT_VALUE, 0) * HALF_UNIT_SURCHARGE
    return (surcharge_full + surcharge_left + surcharge_right).quantize(Decimal("0.01"))


def _accumulate(selected: Sequence[SelectedIngredient]) -> Tuple[int, int, int]:
    totals = {PizzaHalf.FULL: 0, PizzaHalf.HALF_1: 0, PizzaHalf.HALF_2: 0}
    for entry in selected:
        sign = 1 if entry.action is CustomizationAction.ADD else -1
        totals[entry.half] += sign * entry.value
    return totals[PizzaHalf.FULL], totals[PizzaHalf.HALF_1], totals[PizzaHalf.HALF_2]


# ============================================================================
# VALIDATION
# ============================================================================

def collect_pizza_errors(
    product: MenuProduct,
    catalog: CatalogSnapshot,
    customizations: Sequence[PizzaCustomization],
    item_index: Optional[int] = None
) -> Tuple[List[OrderError], List[SelectedIngredient]]:
    """
    Check every pizza rule and collect all violations.

    Returns:
        (errors, enriched customizations for the entries that resolved)
    """
    errors: List[OrderError] = []
    selected: List[SelectedIngredient] = []

    if not any(c.action is CustomizationAction.ADD for c in customizations):
        errors.append(PizzaCustomizationRequired(product.name, item_index))

    has_full = any(c.half is PizzaHalf.FULL for c in customizations)
    has_half = any(c.half is not PizzaHalf.FULL for c in customizations)
    if has_full and has_half:
        errors.append(InvalidPizzaConfiguration(
            product.name,
            "a whole-pizza choice cannot be combined with half-pizza choices",
            item_index
        ))

    known: Dict[str, PizzaIngredient] = catalog.pizza_ingredients_of(product)
    seen = set()

    for custom in customizations:
        key = (custom.ingredient_id, custom.half)
        if key in seen:
            errors.append(InvalidPizzaConfiguration(
                product.name,
                f"ingredient {custom.ingredient_id} is repeated on {custom.half.value}",
                item_index,
                ingredient_id=custom.ingredient_id,
                half=custom.half
            ))
            continue
        seen.add(key)

        ingredient = known.get(custom.ingredient_id)
        if ingredient is None:
            errors.append(InvalidPizzaConfiguration(
                product.name,
                f"ingredient {custom.ingredient_id} does not belong to this pizza",
                item_index,
                ingredient_id=custom.ingredient_id
            ))
            continue

        if not ingredient.available and custom.action is CustomizationAction.ADD:
            errors.append(ItemNotAvailable(
                ingredient.name,
                "Pizza ingredient",
                item_index,
                ingredient_id=ingredient.id
            ))
            continue

        selected.append(SelectedIngredient(
            ingredient_id=ingredient.id,
            name=ingredient.name,
            type=ingredient.type,
            half=custom.half,
            action=custom.action,
            # Removing an unavailable ingredient has no pricing effect
            value=ingredient.value if ingredient.available else 0
        ))

    return errors, selected


def price_pizza(
    product: MenuProduct,
    catalog: CatalogSnapshot,
    customizations: Sequence[PizzaCustomization],
    item_index: Optional[int] = None
) -> PizzaPricing:
    """
    Validate and price a pizza's customizations.

    Raises:
        PizzaCustomizationRequired, InvalidPizzaConfiguration,
        ItemNotAvailable, or MultipleValidationErrors when several apply
    """
    errors, selected = collect_pizza_errors(product, catalog, customizations, item_index)
    if errors:
        logger.info(
            f"Pizza validation failed for {product.name}",
            extra={"product_id": product.id, "error_count": len(errors)}
        )
    raise_collected(errors)

    pricing = build_pricing(selected)

    logger.debug(
        f"Pizza surcharge for {product.name}: {pricing.surcharge}",
        extra={
            "product_id": product.id,
            "full_value": pricing.full_value,
            "left_value": pricing.left_value,
            "right_value": pricing.right_value
        }
    )

    return pricing


def build_pricing(selected: Sequence[SelectedIngredient]) -> PizzaPricing:
    """Price already-validated customizations."""
    full_value, left_value, right_value = _accumulate(selected)
    surcharge = compute_surcharge(full_value, left_value, right_value)

    return PizzaPricing(
        surcharge=surcharge,
        customizations=tuple(selected),
        full_value=full_value,
        left_value=left_value,
        right_value=right_value
    )

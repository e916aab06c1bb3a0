"""
Order Item Module
=================
Validation and pricing of individual order lines against a catalog snapshot.

Every line of an order is checked before anything is reported, so the
customer receives one consolidated list of problems:
- product exists and is available
- a valid, available variant is chosen when the product has variants
- modifier groups are satisfied (required, selection count)
- selected modifiers belong to the product and are available
- pizza customizations are valid (see pizza.py)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from prometheus_client import Counter

from catalog import CatalogSnapshot, MenuProduct, ModifierGroup, Modifier
from errors import (
    EmptyOrder,
    InvalidPizzaConfiguration,
    InvalidProduct,
    ItemNotAvailable,
    MissingRequiredField,
    ModifierGroupRequired,
    ModifierSelectionCountInvalid,
    OrderError,
    VariantRequired,
    raise_collected,
)
from pizza import (
    PizzaCustomization,
    SelectedIngredient,
    build_pricing,
    collect_pizza_errors,
)


logger = logging.getLogger(__name__)


# ============================================================================
# METRICS
# ============================================================================

order_validation_failures = Counter(
    'order_validation_failures_total',
    'Order validation failures',
    ['kind']
)
order_items_priced = Counter(
    'order_items_priced_total',
    'Order lines validated and priced'
)


# ============================================================================
# INPUT / OUTPUT
# ============================================================================

@dataclass(frozen=True)
class RequestedOrderItem:
    """One loosely-structured order line as requested by the customer."""
    product_id: str
    quantity: Any = 1
    variant_id: Optional[str] = None
    modifier_ids: Tuple[str, ...] = field(default_factory=tuple)
    pizza_customizations: Tuple[PizzaCustomization, ...] = field(default_factory=tuple)
    comments: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], item_index: Optional[int] = None) -> "RequestedOrderItem":
        """
        Parse an order line.

        Quantity is kept as given; it is checked by the validator.

        Raises:
            MissingRequiredField: If the line is not a mapping, product_id is
                missing, or modifier ids or pizza customizations cannot be parsed
        """
        if not isinstance(raw, Mapping):
            raise MissingRequiredField("item", item_index, raw)

        product_id = raw.get("product_id")
        if not product_id:
            raise MissingRequiredField("product_id", item_index, product_id)

        # A lone id is accepted as a one-element list
        modifier_ids = raw.get("modifier_ids") or []
        if isinstance(modifier_ids, str):
            modifier_ids = [modifier_ids]
        elif not isinstance(modifier_ids, (list, tuple)):
            raise MissingRequiredField("modifier_ids", item_index, modifier_ids)

        raw_customizations = raw.get("pizza_customizations") or []
        if not isinstance(raw_customizations, (list, tuple)):
            raise MissingRequiredField("pizza_customizations", item_index, raw_customizations)

        customizations = tuple(
            PizzaCustomization.from_dict(entry, item_index)
            for entry in raw_customizations
        )

        return cls(
            product_id=str(product_id),
            quantity=raw.get("quantity", 1),
            variant_id=raw.get("variant_id") or None,
            modifier_ids=tuple(str(m) for m in modifier_ids),
            pizza_customizations=customizations,
            comments=raw.get("comments")
        )


@dataclass(frozen=True)
class PricedOrderItem:
    """Validated order line with prices and display names."""
    product_id: str
    quantity: int
    base_price: Decimal
    modifiers_price: Decimal
    unit_price: Decimal
    total_price: Decimal
    product_name: str
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    modifier_ids: Tuple[str, ...] = field(default_factory=tuple)
    modifier_names: Tuple[str, ...] = field(default_factory=tuple)
    pizza_customizations: Tuple[PizzaCustomization, ...] = field(default_factory=tuple)
    selected_ingredients: Tuple[SelectedIngredient, ...] = field(default_factory=tuple)
    pizza_surcharge: Decimal = Decimal("0.00")
    comments: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.variant_name:
            return f"{self.product_name} ({self.variant_name})"
        return self.product_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "quantity": self.quantity,
            "modifier_ids": list(self.modifier_ids),
            "modifier_names": list(self.modifier_names),
            "pizza_customizations": [i.to_dict() for i in self.selected_ingredients],
            "comments": self.comments,
            "base_price": str(self.base_price),
            "modifiers_price": str(self.modifiers_price),
            "pizza_surcharge": str(self.pizza_surcharge),
            "unit_price": str(self.unit_price),
            "total_price": str(self.total_price),
        }


def parse_requested_items(raw_items: Sequence[Any]) -> List[RequestedOrderItem]:
    """
    Parse raw order lines, collecting parse errors across all lines.

    Lines that are already RequestedOrderItem instances pass through.

    Raises:
        EmptyOrder: If there are no lines
        MissingRequiredField / MultipleValidationErrors: On unparseable lines
    """
    if not raw_items:
        raise EmptyOrder()

    items: List[RequestedOrderItem] = []
    errors: List[OrderError] = []

    for index, raw in enumerate(raw_items):
        if isinstance(raw, RequestedOrderItem):
            items.append(raw)
            continue
        try:
            items.append(RequestedOrderItem.from_dict(raw, index))
        except MissingRequiredField as e:
            errors.append(e)

    raise_collected(errors)
    return items


def is_valid_quantity(quantity: Any) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity >= 1


# ============================================================================
# VALIDATOR
# ============================================================================

class OrderItemValidator:
    """
    Validates and prices order lines against one catalog snapshot.

    Stateless apart from the snapshot; safe to share between threads.
    """

    def __init__(self, catalog: CatalogSnapshot):
        self.catalog = catalog

    def validate_items(self, items: Sequence[RequestedOrderItem]) -> List[PricedOrderItem]:
        """
        Validate every line and price the order.

        Returns:
            Priced lines, in request order

        Raises:
            EmptyOrder: If there are no lines
            OrderError: The single error found, or MultipleValidationErrors
                wrapping all of them
        """
        if not items:
            raise EmptyOrder()

        logger.info(f"Validating {len(items)} order items")

        priced: List[PricedOrderItem] = []
        errors: List[OrderError] = []

        for index, item in enumerate(items):
            result, item_errors = self.validate_item(item, index)
            errors.extend(item_errors)
            if result is not None:
                priced.append(result)

        if errors:
            for error in errors:
                order_validation_failures.labels(kind=error.kind.value).inc()
            logger.warning(
                f"Order validation failed with {len(errors)} errors",
                extra={"error_kinds": [e.kind.value for e in errors]}
            )

        raise_collected(errors)

        order_items_priced.inc(len(priced))
        return priced

    def validate_item(
        self,
        item: RequestedOrderItem,
        item_index: Optional[int] = None
    ) -> Tuple[Optional[PricedOrderItem], List[OrderError]]:
        """
        Validate one line.

        Returns:
            (priced line or None, errors found on this line)
        """
        errors: List[OrderError] = []

        if not is_valid_quantity(item.quantity):
            errors.append(MissingRequiredField("quantity", item_index, item.quantity))

        product = self.catalog.product(item.product_id)
        if product is None:
            errors.append(InvalidProduct(item.product_id, item_index))
            return None, errors

        # Inactive product blocks the rest of this line's checks
        if not product.available:
            errors.append(ItemNotAvailable(
                product.name,
                "Product",
                item_index,
                product_id=product.id
            ))
            return None, errors

        base_price, variant_name = self._resolve_base_price(product, item, item_index, errors)
        modifiers = self._check_modifiers(product, item, item_index, errors)

        selected_ingredients: Tuple[SelectedIngredient, ...] = ()
        pizza_surcharge = Decimal("0.00")

        if product.is_pizza:
            pizza_errors, selected = collect_pizza_errors(
                product,
                self.catalog,
                item.pizza_customizations,
                item_index
            )
            errors.extend(pizza_errors)
            if not pizza_errors:
                pricing = build_pricing(selected)
                selected_ingredients = pricing.customizations
                pizza_surcharge = pricing.surcharge
        elif item.pizza_customizations:
            errors.append(InvalidPizzaConfiguration(
                product.name,
                "this product does not take pizza customizations",
                item_index
            ))

        if errors:
            return None, errors

        modifiers_price = sum((m.price for m in modifiers), Decimal("0.00")) + pizza_surcharge
        unit_price = base_price + modifiers_price
        total_price = unit_price * item.quantity

        return PricedOrderItem(
            product_id=product.id,
            quantity=item.quantity,
            base_price=base_price,
            modifiers_price=modifiers_price,
            unit_price=unit_price,
            total_price=total_price,
            product_name=product.name,
            variant_id=item.variant_id,
            variant_name=variant_name,
            modifier_ids=tuple(m.id for m in modifiers),
            modifier_names=tuple(m.name for m in modifiers),
            pizza_customizations=item.pizza_customizations,
            selected_ingredients=selected_ingredients,
            pizza_surcharge=pizza_surcharge,
            comments=item.comments
        ), errors

    # ------------------------------------------------------------------------
    # RULES
    # ------------------------------------------------------------------------

    def _resolve_base_price(
        self,
        product: MenuProduct,
        item: RequestedOrderItem,
        item_index: Optional[int],
        errors: List[OrderError]
    ) -> Tuple[Decimal, Optional[str]]:
        """A product with variants is priced by the chosen variant, never by default."""
        if product.has_variants:
            variants = self.catalog.variants_of(product)
            variant = next((v for v in variants if v.id == item.variant_id), None)

            if variant is None or not variant.available:
                errors.append(VariantRequired(
                    product.name,
                    [v.name for v in variants if v.available],
                    item_index,
                    variant_id=item.variant_id
                ))
                return Decimal("0.00"), None

            return variant.price, variant.name

        if item.variant_id:
            errors.append(InvalidProduct(
                product.id,
                item_index,
                reason=f"has no variant {item.variant_id!r}"
            ))
            return Decimal("0.00"), None

        if product.price is None:
            errors.append(InvalidProduct(product.id, item_index, reason="has no price"))
            return Decimal("0.00"), None

        return product.price, None

    def _check_modifiers(
        self,
        product: MenuProduct,
        item: RequestedOrderItem,
        item_index: Optional[int],
        errors: List[OrderError]
    ) -> List[Modifier]:
        """Check group rules and selected modifiers; return the usable ones."""
        groups = self.catalog.modifier_groups_of(product)
        owner: Dict[str, ModifierGroup] = {
            modifier_id: group
            for group in groups
            for modifier_id in group.modifier_ids
        }

        # Duplicate ids count once
        selected_ids = list(dict.fromkeys(item.modifier_ids))
        usable: List[Modifier] = []
        counts: Dict[str, int] = {group.id: 0 for group in groups}

        for modifier_id in selected_ids:
            modifier = self.catalog.modifier(modifier_id)
            group = owner.get(modifier_id)

            if modifier is None or group is None or modifier.group_id != group.id:
                errors.append(ItemNotAvailable(
                    modifier.name if modifier else f"modifier {modifier_id}",
                    "Modifier",
                    item_index,
                    modifier_id=modifier_id,
                    product_id=product.id
                ))
                continue

            counts[group.id] += 1

            if not modifier.available:
                errors.append(ItemNotAvailable(
                    modifier.name,
                    "Modifier",
                    item_index,
                    modifier_id=modifier_id,
                    product_id=product.id
                ))
                continue

            usable.append(modifier)

        for group in groups:
            count = counts[group.id]
            if count == 0:
                if group.required:
                    errors.append(ModifierGroupRequired(product.name, group.name, item_index))
                continue

            minimum, maximum = group.selection_range()
            if not minimum <= count <= maximum:
                errors.append(ModifierSelectionCountInvalid(
                    product.name,
                    group.name,
                    count,
                    minimum,
                    maximum,
                    item_index
                ))

        return usable

"""Controller for the product catalogue, the insurer register and the broker register."""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from src.access.authorization import (
    can_manage_brokers,
    can_manage_insurers,
    can_manage_products,
    is_authenticated,
    require,
)
from src.errors import InvalidStateError, NotFoundError
from src.integrations.contracts.conditions import ConditionSyntaxError, parse_condition
from src.integrations.contracts.interfaces import (
    ActorContext,
    Broker,
    CustomFieldDefinition,
    FieldType,
    Insurer,
    Product,
    ProductCategory,
    Role,
)
from src.integrations.contracts.storage import BrokerageStore
from src.validation import (
    add_error,
    optional_str,
    parse_bool,
    parse_decimal,
    parse_int,
    raise_if_errors,
    require_str,
    validate_email,
    validate_in,
    validate_phone,
)

logger = logging.getLogger(__name__)

_FIELD_TYPES = {t.value for t in FieldType}
_CATEGORIES = {c.value for c in ProductCategory}
_ROLES = {r.value for r in Role}


def _parse_custom_field(raw: Any, prefix: str, seen: set, errors: Dict[str, str]) -> Optional[CustomFieldDefinition]:
    if not isinstance(raw, dict):
        add_error(errors, prefix, "Custom field must be an object")
        return None

    field_errors: Dict[str, str] = {}
    name = require_str(raw, "name", field_errors, label="Field name")
    if name in seen:
        add_error(field_errors, "name", f"Duplicate field name '{name}'")
    if name:
        seen.add(name)

    label = optional_str(raw, "label") or name
    field_type = validate_in(str(raw.get("type") or FieldType.TEXT.value).lower(), _FIELD_TYPES, field_errors, "type")

    options = raw.get("options") or []
    if not isinstance(options, list):
        add_error(field_errors, "options", "Options must be a list")
        options = []
    options = [str(o).strip() for o in options if str(o).strip()]
    if field_type == FieldType.SELECT.value and not options:
        add_error(field_errors, "options", "Select fields need at least one option")

    multiplier = parse_decimal(raw, "factor_multiplier", field_errors, min_value=Decimal("0"))
    condition = optional_str(raw, "factor_condition") or None
    if condition is not None:
        try:
            parse_condition(condition)
        except ConditionSyntaxError as e:
            add_error(field_errors, "factor_condition", str(e))
    required = parse_bool(raw, "required", field_errors)

    for key, message in field_errors.items():
        add_error(errors, f"{prefix}.{key}", message)
    if field_errors:
        return None
    return CustomFieldDefinition(
        name=name,
        label=label,
        type=FieldType(field_type),
        required=required,
        options=options,
        factor_multiplier=multiplier,
        factor_condition=condition,
    )


class CatalogController:
    def __init__(self, db: BrokerageStore):
        self.db = db

    # Insurers
    def _insurer_contact(self, payload: Dict[str, Any], errors: Dict[str, str]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if "contact_email" in payload:
            fields["contact_email"] = validate_email(payload.get("contact_email"), errors, "contact_email", required=False)
        if "contact_phone" in payload:
            fields["contact_phone"] = validate_phone(payload.get("contact_phone"), errors, "contact_phone")
        if "address" in payload:
            fields["address"] = optional_str(payload, "address")
        return fields

    def create_insurer(self, actor: ActorContext, payload: Dict[str, Any]) -> Insurer:
        require(can_manage_insurers, actor, "manage insurers")
        errors: Dict[str, str] = {}
        name = require_str(payload, "name", errors, label="Insurer name")
        code = require_str(payload, "code", errors, label="Insurer code").upper()
        contact = self._insurer_contact(payload, errors)
        active = parse_bool(payload, "active", errors, default=True)
        if code and any(i.code == code for i in self.db.list_insurers()):
            add_error(errors, "code", f"Insurer code {code} already exists")
        raise_if_errors(errors, "Invalid insurer")

        insurer = self.db.create_insurer(Insurer(name=name, code=code, active=active, **contact))
        logger.info("Insurer %s (%s) registered", insurer.code, insurer.id)
        return insurer

    def get_insurer(self, actor: ActorContext, insurer_id: int) -> Insurer:
        require(is_authenticated, actor, "view insurers")
        insurer = self.db.get_insurer(insurer_id)
        if insurer is None:
            raise NotFoundError(f"Insurer {insurer_id} not found")
        return insurer

    def list_insurers(self, actor: ActorContext, active_only: bool = False) -> List[Insurer]:
        require(is_authenticated, actor, "view insurers")
        insurers = self.db.list_insurers()
        return [i for i in insurers if i.active] if active_only else insurers

    def update_insurer(self, actor: ActorContext, insurer_id: int, payload: Dict[str, Any]) -> Insurer:
        require(can_manage_insurers, actor, "manage insurers")
        insurer = self.get_insurer(actor, insurer_id)

        errors: Dict[str, str] = {}
        updates = self._insurer_contact(payload, errors)
        if "name" in payload:
            updates["name"] = require_str(payload, "name", errors, label="Insurer name")
        if "active" in payload:
            updates["active"] = parse_bool(payload, "active", errors, default=insurer.active)
        raise_if_errors(errors, "Invalid insurer")

        if not updates:
            return insurer
        updated = self.db.update_insurer(insurer_id, updates)
        if updated is None:
            raise NotFoundError(f"Insurer {insurer_id} not found")
        logger.info("Insurer %s updated (%s)", updated.code, ", ".join(sorted(updates)))
        return updated

    def delete_insurer(self, actor: ActorContext, insurer_id: int) -> None:
        require(can_manage_insurers, actor, "manage insurers")
        insurer = self.get_insurer(actor, insurer_id)
        if any(p.insurer_id == insurer_id for p in self.db.list_products()):
            raise InvalidStateError(f"Insurer {insurer.code} still has products and cannot be deleted")
        if not self.db.delete_insurer(insurer_id):
            raise NotFoundError(f"Insurer {insurer_id} not found")
        logger.info("Insurer %s deleted by user %s", insurer.code, actor.user_id)

    # Products
    def create_product(self, actor: ActorContext, payload: Dict[str, Any]) -> Product:
        """
        Validate and store a product definition.

        Factor conditions are parsed here, once; a product whose condition
        text cannot be parsed is rejected with an error naming the field.
        """
        require(can_manage_products, actor, "manage products")
        errors: Dict[str, str] = {}
        name = require_str(payload, "name", errors, label="Product name")
        code = require_str(payload, "code", errors, label="Product code").upper()
        category = validate_in(str(payload.get("category", "")).upper(), _CATEGORIES, errors, "category")
        insurer_id = parse_int(payload, "insurer_id", errors)
        insurer_name = optional_str(payload, "insurer_name")
        if insurer_id is not None:
            insurer = self.db.get_insurer(insurer_id)
            if insurer is None:
                add_error(errors, "insurer_id", "Insurer does not exist")
            elif not insurer.active:
                add_error(errors, "insurer_id", "Insurer is not active")
            else:
                insurer_name = insurer.name
        base_premium = parse_decimal(payload, "base_premium", errors, min_value=Decimal("0"))
        base_rate = parse_decimal(payload, "base_rate", errors, min_value=Decimal("0"))
        active = parse_bool(payload, "active", errors, default=True)

        if code and any(p.code == code for p in self.db.list_products()):
            add_error(errors, "code", f"Product code {code} already exists")

        raw_fields = payload.get("custom_fields") or []
        fields: List[CustomFieldDefinition] = []
        if not isinstance(raw_fields, list):
            add_error(errors, "custom_fields", "Custom fields must be a list")
            raw_fields = []
        seen: set = set()
        for index, raw in enumerate(raw_fields):
            definition = _parse_custom_field(raw, f"custom_fields[{index}]", seen, errors)
            if definition is not None:
                fields.append(definition)
        raise_if_errors(errors, "Invalid product definition")

        product = self.db.create_product(
            Product(
                name=name,
                code=code,
                category=ProductCategory(category),
                insurer_id=insurer_id,
                insurer_name=insurer_name,
                base_premium=base_premium if base_premium is not None else Decimal("0"),
                base_rate=base_rate,
                active=active,
                custom_fields=fields,
            )
        )
        logger.info("Product %s (%s) created with %d custom fields", product.code, product.id, len(fields))
        return product

    def get_product(self, actor: ActorContext, product_id: int) -> Product:
        require(is_authenticated, actor, "view products")
        product = self.db.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def list_products(self, actor: ActorContext, active_only: bool = False) -> List[Product]:
        require(is_authenticated, actor, "view products")
        products = self.db.list_products()
        return [p for p in products if p.active] if active_only else products

    # Brokers
    def create_broker(self, actor: ActorContext, payload: Dict[str, Any]) -> Broker:
        require(can_manage_brokers, actor, "manage brokers")
        errors: Dict[str, str] = {}
        first_name = require_str(payload, "first_name", errors, label="First Name")
        last_name = require_str(payload, "last_name", errors, label="Last Name")
        email = validate_email(payload.get("email"), errors)
        rate = parse_decimal(payload, "commission_rate", errors, min_value=Decimal("0"), max_value=Decimal("1"), required=True)
        role = validate_in(str(payload.get("role") or Role.BROKER.value).upper(), _ROLES, errors, "role")
        active = parse_bool(payload, "active", errors, default=True)
        raise_if_errors(errors)

        broker = self.db.create_broker(
            Broker(
                first_name=first_name,
                last_name=last_name,
                email=email,
                commission_rate=rate,
                license_number=optional_str(payload, "license_number"),
                role=Role(role),
                active=active,
            )
        )
        logger.info("Broker %s registered (rate %s)", broker.id, broker.commission_rate)
        return broker

    def list_brokers(self, actor: ActorContext) -> List[Broker]:
        require(can_manage_brokers, actor, "manage brokers")
        return self.db.list_brokers()

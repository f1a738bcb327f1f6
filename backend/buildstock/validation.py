# Overview: Boundary validation; turns raw JSON payloads and query args into typed commands.

"""
Every mutating operation takes a frozen command object built here.

Routes call ``<Command>.from_payload(request.get_json(...))`` and hand the
result to the service, so services never see raw dicts. All checks in this
module run before any database state is touched and raise ValidationError.

Integer inputs are strict: floats, decimals, booleans and scientific
notation are rejected rather than truncated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping

from .errors import ValidationError
from .models.auth import VALID_ROLES
from .models.inventory import (
    MAIN_CATEGORY_CONSUMABLE,
    VALID_MAIN_CATEGORIES,
    VALID_PRODUCT_STATUSES,
    VALID_REQUEST_STATUSES,
)
from .models.locations import VALID_LOCATION_STATUSES


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def coerce_int(value: Any, field_name: str) -> int:
    """Strict integer coercion for JSON numbers and query-string digits."""
    # bool is a subclass of int
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field_name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field_name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    raise ValidationError(f"{field_name} must be an integer")


def coerce_positive_int(value: Any, field_name: str) -> int:
    number = coerce_int(value, field_name)
    if number <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return number


def coerce_non_negative_int(value: Any, field_name: str) -> int:
    number = coerce_int(value, field_name)
    if number < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return number


def require_positive_int(data: Mapping, field_name: str) -> int:
    if data.get(field_name) is None:
        raise ValidationError(f"{field_name} is required")
    return coerce_positive_int(data[field_name], field_name)


def optional_positive_int(data: Mapping, field_name: str, default: int | None = None) -> int | None:
    value = data.get(field_name)
    if value is None or value == "":
        return default
    return coerce_positive_int(value, field_name)


def require_str(data: Mapping, field_name: str, max_length: int = 255) -> str:
    value = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def optional_str(data: Mapping, field_name: str, max_length: int | None = None) -> str | None:
    value = data.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value or None


def optional_choice(data: Mapping, field_name: str, choices) -> str | None:
    value = optional_str(data, field_name)
    if value is None:
        return None
    value = value.upper()
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(sorted(choices))}")
    return value


def parse_price_cents(value: Any) -> int:
    """
    Convert a decimal price (e.g. 12.5 or "12.50") into integer cents.

    Rounds half-up to the cent; rejects negatives and values above MAX_PRICE_CENTS.
    """
    if isinstance(value, bool):
        raise ValidationError("price must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("price must be a number")
    if not amount.is_finite():
        raise ValidationError("price must be a number")
    if amount < 0:
        raise ValidationError("price must not be negative")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_PRICE_CENTS:
        raise ValidationError("price exceeds maximum allowed value")
    return cents


@dataclass(frozen=True)
class Page:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def envelope(self, items: list, total: int) -> dict:
        return {
            "items": items,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": total,
                "pages": (total + self.limit - 1) // self.limit,
            },
        }


def parse_page(args: Mapping, default_limit: int = DEFAULT_PAGE_SIZE) -> Page:
    page = optional_positive_int(args, "page", default=1)
    limit = optional_positive_int(args, "limit", default=default_limit)
    return Page(page=page, limit=min(limit, MAX_PAGE_SIZE))


# =============================================================================
# Inventory commands
# =============================================================================


@dataclass(frozen=True)
class AdjustCommand:
    """Deduct stock (usage) from one inventory record."""
    inventory_id: int
    quantity: int
    reason: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "AdjustCommand":
        return cls(
            inventory_id=require_positive_int(data, "inventory_id"),
            quantity=require_positive_int(data, "quantity"),
            reason=optional_str(data, "reason", max_length=500),
        )


@dataclass(frozen=True)
class TransferCommand:
    """Move stock from one inventory record to another location (default 1 unit)."""
    inventory_id: int
    target_location_id: int
    quantity: int = 1
    reason: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "TransferCommand":
        return cls(
            inventory_id=require_positive_int(data, "inventory_id"),
            target_location_id=require_positive_int(data, "target_location_id"),
            quantity=optional_positive_int(data, "quantity", default=1),
            reason=optional_str(data, "reason", max_length=500),
        )


@dataclass(frozen=True)
class InventoryFilter:
    store_id: int | None = None
    site_id: int | None = None
    product_id: int | None = None
    category: str | None = None
    search: str | None = None
    page: Page = field(default_factory=lambda: Page(limit=50))

    @classmethod
    def from_args(cls, args: Mapping) -> "InventoryFilter":
        return cls(
            store_id=optional_positive_int(args, "store_id"),
            site_id=optional_positive_int(args, "site_id"),
            product_id=optional_positive_int(args, "product_id"),
            category=optional_str(args, "category"),
            search=optional_str(args, "search", max_length=100),
            page=parse_page(args, default_limit=50),
        )


# =============================================================================
# Request commands
# =============================================================================


@dataclass(frozen=True)
class CreateRequestCommand:
    product_id: int
    quantity: int
    location_id: int | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "CreateRequestCommand":
        return cls(
            product_id=require_positive_int(data, "product_id"),
            quantity=require_positive_int(data, "quantity"),
            location_id=optional_positive_int(data, "location_id"),
            notes=optional_str(data, "notes", max_length=1000),
        )


def parse_request_status(args: Mapping) -> str | None:
    return optional_choice(args, "status", VALID_REQUEST_STATUSES)


# =============================================================================
# Product commands
# =============================================================================


@dataclass(frozen=True)
class CreateProductCommand:
    name: str
    category: str
    unit: str
    main_category: str = MAIN_CATEGORY_CONSUMABLE
    description: str | None = None
    price_cents: int = 0
    default_min_stock: int = 0
    location_id: int | None = None
    status: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "CreateProductCommand":
        price = data.get("price")
        min_stock = data.get("default_min_stock")
        return cls(
            name=require_str(data, "name"),
            category=require_str(data, "category", max_length=64),
            unit=require_str(data, "unit", max_length=32),
            main_category=optional_choice(data, "main_category", VALID_MAIN_CATEGORIES) or MAIN_CATEGORY_CONSUMABLE,
            description=optional_str(data, "description"),
            price_cents=parse_price_cents(price) if price not in (None, "") else 0,
            default_min_stock=coerce_non_negative_int(min_stock, "default_min_stock") if min_stock is not None else 0,
            location_id=optional_positive_int(data, "location_id"),
            status=optional_choice(data, "status", VALID_PRODUCT_STATUSES),
        )


@dataclass(frozen=True)
class UpdateProductCommand:
    """Partial update of catalog attributes; status moves only through lifecycle operations."""
    changes: dict

    @classmethod
    def from_payload(cls, data: Mapping) -> "UpdateProductCommand":
        if "status" in data:
            raise ValidationError("status cannot be changed directly")
        changes: dict = {}
        if "name" in data:
            changes["name"] = require_str(data, "name")
        if "category" in data:
            changes["category"] = require_str(data, "category", max_length=64)
        if "unit" in data:
            changes["unit"] = require_str(data, "unit", max_length=32)
        if "description" in data:
            changes["description"] = optional_str(data, "description")
        if "main_category" in data:
            changes["main_category"] = optional_choice(data, "main_category", VALID_MAIN_CATEGORIES) or MAIN_CATEGORY_CONSUMABLE
        if "price" in data:
            changes["price_cents"] = parse_price_cents(data["price"])
        if "default_min_stock" in data:
            changes["default_min_stock"] = coerce_non_negative_int(data["default_min_stock"], "default_min_stock")
        if not changes:
            raise ValidationError("No updatable fields provided")
        return cls(changes=changes)


@dataclass(frozen=True)
class ProductFilter:
    category: str | None = None
    main_category: str | None = None
    status: str | None = None
    search: str | None = None
    page: Page = field(default_factory=Page)

    @classmethod
    def from_args(cls, args: Mapping) -> "ProductFilter":
        return cls(
            category=optional_str(args, "category"),
            main_category=optional_choice(args, "main_category", VALID_MAIN_CATEGORIES),
            status=optional_choice(args, "status", VALID_PRODUCT_STATUSES),
            search=optional_str(args, "search", max_length=100),
            page=parse_page(args),
        )


# =============================================================================
# Location / user commands
# =============================================================================


@dataclass(frozen=True)
class NewUserSpec:
    """Credentials for a manager/engineer created together with a location."""
    email: str
    password: str
    name: str

    @classmethod
    def from_payload(cls, data: Any) -> "NewUserSpec":
        if not isinstance(data, Mapping):
            raise ValidationError("new_user must be an object with email, password and name")
        email = require_str(data, "email").lower()
        if "@" not in email:
            raise ValidationError("email must be a valid email address")
        password = data.get("password")
        if not isinstance(password, str) or not password:
            raise ValidationError("password is required")
        return cls(email=email, password=password, name=require_str(data, "name", max_length=128))


@dataclass(frozen=True)
class CreateUserCommand:
    email: str
    password: str
    name: str
    role: str
    location_id: int | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "CreateUserCommand":
        credentials = NewUserSpec.from_payload(data)
        role = optional_choice(data, "role", VALID_ROLES)
        if role is None:
            raise ValidationError("role is required")
        return cls(
            email=credentials.email,
            password=credentials.password,
            name=credentials.name,
            role=role,
            location_id=optional_positive_int(data, "location_id"),
        )


@dataclass(frozen=True)
class CreateLocationCommand:
    name: str
    region: str | None = None
    description: str | None = None
    address: str | None = None
    assigned_user_id: int | None = None
    new_user: NewUserSpec | None = None

    @classmethod
    def from_payload(cls, data: Mapping) -> "CreateLocationCommand":
        assigned_user_id = optional_positive_int(data, "assigned_user_id")
        new_user = NewUserSpec.from_payload(data["new_user"]) if data.get("new_user") is not None else None
        if assigned_user_id is not None and new_user is not None:
            raise ValidationError("Provide either assigned_user_id or new_user, not both")
        return cls(
            name=require_str(data, "name", max_length=128),
            region=optional_str(data, "region", max_length=128),
            description=optional_str(data, "description"),
            address=optional_str(data, "address"),
            assigned_user_id=assigned_user_id,
            new_user=new_user,
        )


@dataclass(frozen=True)
class UpdateLocationCommand:
    """Partial update; ``assigned_user_id: null`` explicitly unassigns."""
    changes: dict

    @classmethod
    def from_payload(cls, data: Mapping) -> "UpdateLocationCommand":
        changes: dict = {}
        if "name" in data:
            changes["name"] = require_str(data, "name", max_length=128)
        for key in ("region", "description", "address"):
            if key in data:
                changes[key] = optional_str(data, key)
        if "status" in data:
            status = optional_choice(data, "status", VALID_LOCATION_STATUSES)
            if status is None:
                raise ValidationError("status must not be empty")
            changes["status"] = status
        if "assigned_user_id" in data:
            changes["assigned_user_id"] = optional_positive_int(data, "assigned_user_id")
        if not changes:
            raise ValidationError("No updatable fields provided")
        return cls(changes=changes)

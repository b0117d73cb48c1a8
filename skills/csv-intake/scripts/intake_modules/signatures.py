"""Platform signature registry.

Registration order is the tie-break order when two platforms score the same.
The registry is built once at import and never mutated.
"""

from __future__ import annotations

import re
from types import MappingProxyType

from intake_modules.shared import PlatformSignature

CYRILLIC_RE = re.compile(r"[а-яё]", re.IGNORECASE)


def _patterns(**patterns: str) -> tuple[tuple[str, "re.Pattern[str]"], ...]:
    return tuple((key, re.compile(pattern)) for key, pattern in patterns.items())


def _shopify_bonus(headers: list[str], sample_rows: list[list[str]]) -> float:
    bonus = 0.0
    if "Handle" in headers and "Vendor" in headers:
        bonus += 5
    if any(header.startswith("Option") for header in headers):
        bonus += 3
    return bonus


def _amazon_bonus(headers: list[str], sample_rows: list[list[str]]) -> float:
    bonus = 0.0
    if any("ASIN" in header for header in headers):
        bonus += 5
    if sum(1 for header in headers if "Bullet Point" in header) >= 3:
        bonus += 3
    return bonus


def _woocommerce_bonus(headers: list[str], sample_rows: list[list[str]]) -> float:
    bonus = 0.0
    if "Regular price" in headers and "Sale price" in headers:
        bonus += 4
    if any("attribute" in header for header in headers):
        bonus += 2
    return bonus


def _khoroshop_bonus(headers: list[str], sample_rows: list[list[str]]) -> float:
    cyrillic = [header for header in headers if CYRILLIC_RE.search(header)]
    return 5.0 if len(cyrillic) > len(headers) * 0.5 else 0.0


SIGNATURES: tuple[PlatformSignature, ...] = (
    PlatformSignature(
        platform="shopify",
        required=("Handle", "Title", "Vendor"),
        optional=(
            "Body (HTML)", "Type", "Tags", "Published", "Option1 Name",
            "Option1 Value", "Variant SKU", "Variant Price",
        ),
        patterns=_patterns(
            handle=r"^[a-z0-9-]+$",
            published=r"(?i)^(true|false)$",
            price=r"^\d+\.\d{2}$",
        ),
        weight=10,
        bonus=_shopify_bonus,
    ),
    PlatformSignature(
        platform="amazon",
        required=("ASIN", "Product Title"),
        optional=(
            "Brand", "Manufacturer", "Product Description", "Bullet Point 1",
            "Bullet Point 2", "Search Terms",
        ),
        patterns=_patterns(
            asin=r"^[A-Z0-9]{10}$",
            bulletPoint=r"^Bullet Point \d+$",
        ),
        weight=10,
        bonus=_amazon_bonus,
    ),
    PlatformSignature(
        platform="woocommerce",
        required=("SKU", "Name", "Regular price"),
        optional=(
            "Short description", "Description", "Categories", "Tags", "Stock",
            "Weight", "Length", "Width", "Height",
        ),
        patterns=_patterns(
            sku=r"^[A-Z0-9-_]+$",
            price=r"^\d+(\.\d{2})?$",
            stock=r"^\d+$",
        ),
        weight=9,
        bonus=_woocommerce_bonus,
    ),
    PlatformSignature(
        platform="ebay",
        required=("Item ID", "Title", "Category"),
        optional=(
            "Condition", "Price", "Quantity", "Format", "Duration",
            "Start Price", "Reserve Price",
        ),
        patterns=_patterns(
            itemId=r"^\d{12}$",
            format=r"(?i)^(Auction|FixedPrice)$",
            condition=r"(?i)^(New|Used|Refurbished)$",
        ),
        weight=9,
    ),
    PlatformSignature(
        platform="etsy",
        required=("Listing ID", "Title", "Tags"),
        optional=("Description", "Price", "Quantity", "SKU", "Materials", "Shop Section"),
        patterns=_patterns(
            listingId=r"^\d{8,12}$",
            tags=r"^[^,]+(,[^,]+)*$",
            materials=r"^[^,]+(,[^,]+)*$",
        ),
        weight=8,
    ),
    PlatformSignature(
        platform="magento",
        required=("sku", "name", "price"),
        optional=("description", "short_description", "weight", "status", "visibility", "tax_class_id"),
        patterns=_patterns(
            sku=r"^[A-Z0-9-_]+$",
            status=r"^[01]$",
            visibility=r"^[1-4]$",
        ),
        weight=7,
    ),
    PlatformSignature(
        platform="prestashop",
        required=("ID", "Name", "Price"),
        optional=("Description", "Short description", "Reference", "EAN13", "UPC", "Weight", "Categories"),
        patterns=_patterns(
            id=r"^\d+$",
            ean13=r"^\d{13}$",
            upc=r"^\d{12}$",
        ),
        weight=7,
    ),
    PlatformSignature(
        platform="bigcommerce",
        required=("Product ID", "Product Name", "Price"),
        optional=("Description", "SKU", "Weight", "Width", "Height", "Depth", "Categories", "Brand"),
        patterns=_patterns(
            productId=r"^\d+$",
            price=r"^\d+(\.\d{2})?$",
        ),
        weight=7,
    ),
    PlatformSignature(
        platform="opencart",
        required=("product_id", "name", "price"),
        optional=("description", "model", "sku", "quantity", "status", "weight", "length", "width", "height"),
        patterns=_patterns(
            productId=r"^\d+$",
            status=r"^[01]$",
            quantity=r"^\d+$",
        ),
        weight=6,
    ),
    PlatformSignature(
        platform="khoroshop",
        required=("Назва", "Ціна", "Категорія"),
        optional=("Опис", "Артикул", "Бренд", "Вага", "Наявність", "Знижка"),
        patterns=_patterns(
            price=r"^\d+(\.\d{2})?\s*(грн|UAH)?$",
            availability=r"^(В наявності|Немає в наявності|Під замовлення)$",
        ),
        weight=8,
        bonus=_khoroshop_bonus,
    ),
)

SIGNATURES_BY_PLATFORM = MappingProxyType({signature.platform: signature for signature in SIGNATURES})


def platform_ids() -> list[str]:
    return [signature.platform for signature in SIGNATURES]


def get_signature(platform: str) -> PlatformSignature | None:
    return SIGNATURES_BY_PLATFORM.get(platform)

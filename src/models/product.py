"""Product model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class Brand(str, Enum):
    """Brands carried by the store."""

    NIKE = "Nike"
    ADIDAS = "Adidas"
    REEBOK = "Reebok"
    VANS = "Vans"
    CONVERSE = "Converse"
    PUMA = "Puma"
    ASICS = "Asics"
    NEW_BALANCE = "New Balance"


class Product(TypedDict):
    """Product table row representation.

    Represents a product stored in the products table.
    """

    id: UUID
    name: str
    brand: str
    price: float
    price_vnd: float
    image: str
    description: str
    sizes: list[float]
    in_stock: bool
    created_at: datetime


class ProductCreate(TypedDict, total=False):
    """Data required to create a new product."""

    name: str
    brand: str
    price: float
    price_vnd: float
    image: str
    description: str
    sizes: list[float]
    in_stock: bool


class ProductUpdate(TypedDict, total=False):
    """Data that can be updated on a product."""

    name: str
    brand: str
    price: float
    price_vnd: float
    image: str
    description: str
    sizes: list[float]
    in_stock: bool

"""
Catalog read endpoints.

Products are owned by the catalog admin; this router only reads them and
shows the server-side effective price.

Endpoints:
    GET /products          — active products
    GET /products/{id}     — one active product
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Product
from domain.errors import NotFoundError
from models import ProductResponse
from services.pricing import effective_price, to_money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["catalog"])


def _to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        slug=product.slug,
        name=product.name,
        price=to_money(product.price),
        effective_price=effective_price(product),
        stock=product.stock,
        discount_active=bool(product.discount_active),
        discount_type=product.discount_type,
        discount_value=to_money(product.discount_value),
    )


@router.get("", response_model=List[ProductResponse])
async def list_products(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Product).where(Product.active == True).order_by(Product.id))  # noqa: E712
    return [_to_response(p) for p in result.scalars().all()]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await db.get(Product, product_id)
    if not product or not product.active:
        raise NotFoundError("Product", str(product_id))
    return _to_response(product)

"""Product record as seen by the checkout core.

The catalogue owns products; checkout only reads price, discount and the
active flag, and mutates ``stock`` exclusively through the inventory ledger.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, Numeric, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from checkout.domain import Base, utc_now
from checkout.errors import ProductInactive, ProductNotFound


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(50), unique=True)
    category_id: Mapped[int | None] = mapped_column(Integer, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Product {self.id} {self.name!r} stock={self.stock}>"


@dataclass(frozen=True)
class ProductSnapshot:
    """Read-only view of a product taken at checkout time."""

    id: int
    name: str
    category_id: int | None
    unit_price: Decimal
    discount_percent: Decimal
    stock: int
    is_active: bool


def get_product(session: Session, product_id: int) -> ProductSnapshot:
    """Look up one product, failing with ProductNotFound when it does not exist."""
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return _snapshot(product)


def load_products_for_checkout(session: Session, product_ids) -> dict[int, ProductSnapshot]:
    """Load every requested product, failing fast on the first missing or inactive one.

    Products are checked in ascending id order so the reported failure is
    deterministic for a given cart.
    """
    wanted = sorted(set(product_ids))
    rows = session.scalars(select(Product).where(Product.id.in_(wanted))).all()
    found = {product.id: _snapshot(product) for product in rows}

    for product_id in wanted:
        snapshot = found.get(product_id)
        if snapshot is None:
            raise ProductNotFound(product_id)
        if not snapshot.is_active:
            raise ProductInactive(product_id)

    return found


def _snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        category_id=product.category_id,
        unit_price=Decimal(product.price),
        discount_percent=Decimal(product.discount_percent or 0),
        stock=product.stock,
        is_active=product.is_active,
    )

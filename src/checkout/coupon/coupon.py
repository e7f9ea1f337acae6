"""Coupon record and its per-product applicability rules.

Coupons come in three closed types. ``used_count`` is a monotonic counter:
it is incremented once per order that applies the coupon and is never
decremented, not even when that order is later cancelled.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from checkout.domain import Base, as_utc, utc_now


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_coupons_used_count_within_limit",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    coupon_type: Mapped[str] = mapped_column(String(20), nullable=False, default=CouponType.PERCENTAGE.value)
    value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_order_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    usage_limit: Mapped[int | None] = mapped_column(Integer)
    per_user_limit: Mapped[int | None] = mapped_column(Integer, default=1)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    applicable_products: Mapped[list | None] = mapped_column(JSON)
    excluded_products: Mapped[list | None] = mapped_column(JSON)
    applicable_categories: Mapped[list | None] = mapped_column(JSON)
    excluded_categories: Mapped[list | None] = mapped_column(JSON)
    min_items: Mapped[int | None] = mapped_column(Integer)
    max_items: Mapped[int | None] = mapped_column(Integer)
    first_time_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    new_customer_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Coupon {self.code} {self.coupon_type} used={self.used_count}/{self.usage_limit}>"

    @property
    def type(self) -> CouponType:
        return CouponType(self.coupon_type)

    def has_started(self, now: datetime) -> bool:
        return self.starts_at is None or now >= as_utc(self.starts_at)

    def has_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > as_utc(self.expires_at)

    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def is_excluded(self, product_id, category_id) -> bool:
        """True when the item hits the excluded-products or excluded-categories set."""
        if self.excluded_products and product_id in self.excluded_products:
            return True
        return bool(self.excluded_categories) and category_id in self.excluded_categories

    def is_allowed(self, product_id, category_id) -> bool:
        """True when the item matches the allow-lists, or when no allow-list is declared."""
        if not self.applicable_products and not self.applicable_categories:
            return True
        if self.applicable_products and product_id in self.applicable_products:
            return True
        return bool(self.applicable_categories) and category_id in self.applicable_categories

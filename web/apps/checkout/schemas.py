"""Pydantic schemas for the checkout API.

Request bodies are validated here before anything reaches the domain;
response DTOs serialize domain records with money as strings.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .cards import normalize_card
from .domain import CartItem, CheckoutForm, DiscountType, PaymentMethod


class CartItemIn(BaseModel):
    """One cart line as sent by the storefront's cart."""

    id: Optional[str] = None
    product_id: str = Field(min_length=1)
    variation_id: Optional[str] = None
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(gt=0, le=999)
    variation_name: Optional[str] = None
    image: Optional[str] = None

    def to_domain(self) -> CartItem:
        return CartItem(
            id=self.id,
            product_id=self.product_id,
            variation_id=self.variation_id,
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            variation_name=self.variation_name,
            image=self.image,
        )


class CardDetailsIn(BaseModel):
    card_number: str = ""
    card_name: str = ""
    expiry_date: str = ""
    cvv: str = ""


class QuoteIn(BaseModel):
    """Cart plus the options that change the price."""

    items: list[CartItemIn] = Field(default_factory=list)
    express_shipping: bool = False
    gift_wrapping: bool = False
    coupon_code: Optional[str] = Field(default=None, max_length=64)

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon_is_none(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        return v.strip().upper() or None


class CheckoutIn(QuoteIn):
    """Schema for submitting an order."""

    address_id: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    card: CardDetailsIn = Field(default_factory=CardDetailsIn)
    delivery_date: str = ""
    delivery_time: str = ""
    gift_note: str = Field(default="", max_length=500)
    special_instructions: str = Field(default="", max_length=1000)

    def to_form(self, user_id: str) -> CheckoutForm:
        return CheckoutForm(
            user_id=user_id,
            items=[i.to_domain() for i in self.items],
            address_id=self.address_id,
            payment_method=self.payment_method,
            card=normalize_card(**self.card.model_dump()),
            delivery_date=self.delivery_date,
            delivery_time=self.delivery_time,
            gift_wrapping=self.gift_wrapping,
            gift_note=self.gift_note if self.gift_wrapping else "",
            special_instructions=self.special_instructions,
            express_shipping=self.express_shipping,
            coupon_code=self.coupon_code,
        )


class CouponCheckIn(BaseModel):
    code: str = Field(max_length=64)
    subtotal: Decimal = Field(ge=0)


class CouponIn(BaseModel):
    """Back-office coupon payload. Codes are stored upper-case."""

    code: str = Field(min_length=1, max_length=64)
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    minimum_purchase: Optional[Decimal] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v2 = v.strip().upper()
        if not v2:
            raise ValueError("Coupon code is required")
        return v2

    @model_validator(mode="after")
    def percentage_at_most_100(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self

    def to_row(self) -> dict:
        return {
            "code": self.code,
            "discount_type": self.discount_type.value,
            "discount_value": float(self.discount_value),
            "minimum_purchase": float(self.minimum_purchase) if self.minimum_purchase is not None else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "is_active": self.is_active,
        }


class CouponPatchIn(BaseModel):
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    minimum_purchase: Optional[Decimal] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None
    is_active: Optional[bool] = None

    def to_row(self) -> dict:
        row = {}
        for key, value in self.model_dump(exclude_unset=True).items():
            if isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, DiscountType):
                value = value.value
            row[key] = value
        return row


class ReviewIn(BaseModel):
    product_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    text: str = Field(default="", max_length=2000)

"""Register configuration.

Values are read from the environment (``POS_`` prefix) or a ``.env`` file.
"""
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from PosCheckout.enums import CustomerSegment, PaymentMethod


class CheckoutSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="POS_", extra="ignore")

    DEFAULT_TAX_RATE: Decimal = Decimal(18)
    TAX_ENABLED_BY_DEFAULT: bool = True
    RETAIL_BUYER_DETAILS_THRESHOLD: Decimal = Decimal(5000)
    DEFAULT_SEGMENT: CustomerSegment = CustomerSegment.RETAILER
    DEFAULT_COUNTRY: str = "IN"
    DEFAULT_PAYMENT_METHOD: Optional[PaymentMethod] = None
    LOW_STOCK_THRESHOLD: int = Field(default=5, ge=0)
    QUOTATION_PREFIX: str = "Q"
    QUOTATION_VALIDITY_DAYS: int = Field(default=7, ge=0)
    CATALOG_SEARCH_LIMIT: int = Field(default=10, gt=0)
    PERSISTENCE_TIMEOUT_SEC: float = Field(default=30.0, gt=0)
    LOG_LEVEL: str = "INFO"

    @field_validator("DEFAULT_TAX_RATE")
    @classmethod
    def validate_tax_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Tax rate must be between 0 and 100")
        return v


settings = CheckoutSettings()

"""Request models for the public API.

Field names are camelCase on the wire.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class DepositAddressRequest(RequestModel):
    """Request for a new deposit intent and address."""

    user_id: str = Field(..., alias="userId", max_length=255)
    currency: str = Field(..., max_length=20)
    network: str = Field(..., max_length=20)
    identifier: Optional[str] = Field(None, max_length=255)
    target_currency: Optional[str] = Field(None, alias="targetCurrency", max_length=20)
    target_network: Optional[str] = Field(None, alias="targetNetwork", max_length=20)


class QuoteRequest(RequestModel):
    source: str = Field(..., max_length=20)
    target: str = Field(..., max_length=20)
    side: str = Field(..., description="BUY or SELL")
    amount: Decimal


class TradeRequest(QuoteRequest):
    intent_id: str = Field(..., alias="intentId")
    quote_id: Optional[str] = Field(None, alias="quoteId")


class WithdrawRequest(RequestModel):
    intent_id: str = Field(..., alias="intentId")
    currency: str = Field(..., max_length=20)
    network: str = Field(..., max_length=20)
    amount: Decimal
    address: str = Field(..., max_length=255)
    memo: Optional[str] = Field(None, max_length=255)


class RejectRequest(RequestModel):
    reason: Optional[str] = Field(None, max_length=1000)

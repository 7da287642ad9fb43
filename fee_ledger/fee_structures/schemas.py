# fee_ledger/fee_structures/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeeStructureUpsertRequest(BaseModel):
    """Request schema for creating or replacing a class fee structure."""
    model_config = ConfigDict(json_schema_extra={
        "examples": [{"book_fee": 1500.00, "tuition_fee": 9000.00}]
    })

    book_fee: Decimal = Field(..., ge=0, decimal_places=2, description="Book fee for the period")
    tuition_fee: Decimal = Field(..., ge=0, decimal_places=2, description="Tuition fee before concession")


class FeeStructureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    class_id: int = Field(..., description="Class the structure applies to")
    period_id: int = Field(..., description="Academic period")
    book_fee: Decimal
    tuition_fee: Decimal
    created_on: Optional[datetime] = None
    updated_on: Optional[datetime] = None


class TransportFeeUpsertRequest(BaseModel):
    """Request schema for creating or replacing a route/slab transport fee."""
    model_config = ConfigDict(json_schema_extra={"examples": [{"amount": 6000.00}]})

    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Transport fee before concession")


class TransportFeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    period_id: int
    route_id: int = Field(..., description="Bus route")
    slab_id: int = Field(..., description="Distance slab on the route")
    amount: Decimal
    created_on: Optional[datetime] = None
    updated_on: Optional[datetime] = None

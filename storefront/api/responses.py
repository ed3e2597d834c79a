"""
Pydantic models for API responses.
These define the contract between the API and external clients.
"""

from typing import Optional

from pydantic import BaseModel

from storefront.domain import DeliveryPhase


class HealthCheckResponse(BaseModel):
    status: str
    version: str


class DeliveryPhaseResponse(BaseModel):
    """Which cancellation track an order is on right now."""

    order_id: str
    delivery_phase: DeliveryPhase
    evidence_required: bool


class ReconciliationRequiredResponse(BaseModel):
    """Payment taken but the order needs an operator; no internals leak."""

    message: str
    case_id: str
    order_id: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    request_id: Optional[str] = None

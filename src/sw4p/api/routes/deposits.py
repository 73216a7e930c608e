"""Deposit address issuance and status endpoints."""

import logging

from fastapi import APIRouter, Depends

from sw4p.api.deps import get_controller
from sw4p.api.schemas import DepositAddressRequest
from sw4p.intents.models import IntentStatus
from sw4p.lifecycle.controller import IntentLifecycleController
from sw4p.lifecycle.status import build_status_view, to_external_status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/deposit-address")
async def create_deposit_address(
    request: DepositAddressRequest,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Create a deposit intent and issue its address.

    The intent starts PENDING (admin approval required) unless the service
    runs with automatic approval.
    """
    intent = await controller.request_deposit_address(
        user_id=request.user_id,
        currency=request.currency,
        network=request.network,
        identifier=request.identifier,
        target_currency=request.target_currency,
        target_network=request.target_network,
    )
    status = IntentStatus(intent.status)

    if status == IntentStatus.PENDING:
        message = "Deposit address generated. Waiting for admin approval."
    else:
        message = "Deposit address generated successfully. Automatic processing enabled."

    return {
        "success": True,
        "data": {
            "intentId": intent.id,
            "address": intent.address,
            "memo": intent.memo,
            "currency": intent.currency,
            "network": intent.network,
            "status": to_external_status(status).value,
        },
        "message": message,
    }


@router.get("/deposit-status/{intent_id}")
async def get_deposit_status(
    intent_id: str,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Get the externally visible status of a deposit intent."""
    intent = await controller.get_intent(intent_id)
    view = build_status_view(intent)
    # Older clients read the summary under "deposit"
    deposit = {k: v for k, v in view.items() if k not in ("internalStatus", "message")}
    return {"success": True, "status": view["status"], "deposit": deposit, "data": view}

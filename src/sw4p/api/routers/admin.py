"""Admin API endpoints (token-protected)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from sw4p.api.deps import get_controller, require_admin_token
from sw4p.api.schemas import RejectRequest
from sw4p.errors import ValidationError
from sw4p.intents.models import IntentStatus
from sw4p.lifecycle.controller import IntentLifecycleController
from sw4p.lifecycle.status import intent_to_dict, transaction_to_dict

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_token)])


def _parse_status(value: Optional[str]) -> Optional[IntentStatus]:
    if not value:
        return None
    try:
        return IntentStatus(value.upper())
    except ValueError:
        raise ValidationError(
            f"Unknown status: {value}",
            details={"allowed": [s.value for s in IntentStatus]},
        )


@router.get("/deposits")
async def list_deposits(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    controller: IntentLifecycleController = Depends(get_controller),
):
    """List deposit intents, newest first."""
    intents = await controller.list_intents(
        status=_parse_status(status), limit=limit, offset=offset
    )
    return {
        "success": True,
        "data": [intent_to_dict(intent) for intent in intents],
        "pagination": {"limit": limit, "offset": offset, "count": len(intents)},
    }


@router.get("/deposits/{intent_id}")
async def get_deposit(
    intent_id: str,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Get a deposit intent with its transactions."""
    intent, transactions = await controller.get_intent_detail(intent_id)
    data = intent_to_dict(intent)
    data["transactions"] = [transaction_to_dict(tx) for tx in transactions]
    return {"success": True, "data": data}


@router.post("/deposits/{intent_id}/approve")
async def approve_deposit(
    intent_id: str,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Approve a pending deposit intent."""
    intent = await controller.approve_intent(intent_id)
    return {
        "success": True,
        "data": intent_to_dict(intent),
        "message": "Deposit approved. Monitoring for incoming funds.",
    }


@router.post("/deposits/{intent_id}/reject")
async def reject_deposit(
    intent_id: str,
    request: RejectRequest,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Reject a deposit intent."""
    intent = await controller.reject_intent(intent_id, request.reason or "")
    return {"success": True, "data": intent_to_dict(intent), "message": "Deposit rejected"}


@router.get("/stats")
async def get_stats(controller: IntentLifecycleController = Depends(get_controller)):
    """Get intent counts per status."""
    return {"success": True, "data": await controller.get_stats()}


@router.get("/monitoring")
async def get_monitoring(controller: IntentLifecycleController = Depends(get_controller)):
    """Get detector and chain monitoring status."""
    return {"success": True, "data": controller.get_monitoring_status()}

"""Exchange rate endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from sw4p.api.deps import get_controller
from sw4p.lifecycle.controller import IntentLifecycleController

router = APIRouter()


@router.get("/currencies")
async def list_currencies(controller: IntentLifecycleController = Depends(get_controller)):
    """List currencies supported by the exchange gateway."""
    currencies = await controller.list_currencies()
    return {"success": True, "currencies": currencies}


@router.get("/{source}/{target}")
async def get_rate(
    source: str,
    target: str,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Get the rate for one unit of ``source`` in ``target``."""
    rate = await controller.get_rate(source, target)
    return {
        "success": True,
        "rate": rate["rate"],
        "data": rate,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

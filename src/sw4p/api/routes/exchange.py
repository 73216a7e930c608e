"""Quote, trade and withdrawal endpoints."""

from fastapi import APIRouter, Depends

from sw4p.api.deps import get_controller
from sw4p.api.schemas import QuoteRequest, TradeRequest, WithdrawRequest
from sw4p.lifecycle.controller import IntentLifecycleController

router = APIRouter()


@router.post("/quote")
async def create_quote(
    request: QuoteRequest,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Get a conversion quote."""
    quote = await controller.create_quote(
        request.source, request.target, request.side, request.amount
    )
    return {"success": True, "data": quote.to_dict()}


@router.post("/trade")
async def execute_trade(
    request: TradeRequest,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Execute a trade for an approved deposit intent."""
    trade = await controller.execute_trade(
        intent_id=request.intent_id,
        source=request.source,
        target=request.target,
        side=request.side,
        amount=request.amount,
        quote_id=request.quote_id,
    )
    return {"success": True, "data": trade.to_dict(), "message": "Trade executed successfully"}


@router.post("/withdraw")
async def withdraw(
    request: WithdrawRequest,
    controller: IntentLifecycleController = Depends(get_controller),
):
    """Withdraw funds for an approved deposit intent."""
    withdrawal = await controller.process_withdrawal(
        intent_id=request.intent_id,
        currency=request.currency,
        network=request.network,
        amount=request.amount,
        address=request.address,
        memo=request.memo,
    )
    return {
        "success": True,
        "data": withdrawal.to_dict(),
        "message": "Withdrawal processed successfully",
    }


@router.get("/status")
async def gateway_status(controller: IntentLifecycleController = Depends(get_controller)):
    """Get exchange gateway client status."""
    return {"success": True, "data": controller.gateway.get_status()}

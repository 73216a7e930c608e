"""External status projection.

Callers outside the service only ever see PENDING, APPROVED or REJECTED.
Internal progress (processing, confirmation, conversion) is reported through
the status message instead.
"""

from enum import Enum

from sw4p.intents.models import DepositIntent, DepositTransaction, IntentStatus


class ExternalStatus(str, Enum):
    """Status exposed to API callers."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


EXTERNAL_STATUS: dict[IntentStatus, ExternalStatus] = {
    IntentStatus.PENDING: ExternalStatus.PENDING,
    IntentStatus.APPROVED: ExternalStatus.APPROVED,
    IntentStatus.PROCESSING: ExternalStatus.APPROVED,
    IntentStatus.CONFIRMED: ExternalStatus.APPROVED,
    IntentStatus.COMPLETED: ExternalStatus.APPROVED,
    IntentStatus.REJECTED: ExternalStatus.REJECTED,
    IntentStatus.FAILED: ExternalStatus.REJECTED,
    IntentStatus.SWAP_FAILED: ExternalStatus.REJECTED,
}

STATUS_MESSAGES: dict[IntentStatus, str] = {
    IntentStatus.PENDING: "Waiting for admin approval",
    IntentStatus.APPROVED: "Deposit address generated. Waiting for your deposit...",
    IntentStatus.PROCESSING: "Deposit detected! Processing your swap...",
    IntentStatus.CONFIRMED: "Deposit confirmed on-chain.",
    IntentStatus.COMPLETED: "Swap completed successfully!",
    IntentStatus.REJECTED: "Deposit rejected",
    IntentStatus.FAILED: "Swap processing failed. Please contact support.",
    IntentStatus.SWAP_FAILED: "Automatic conversion failed. Please contact support.",
}


def to_external_status(status: IntentStatus) -> ExternalStatus:
    """Project an internal status onto the external vocabulary."""
    return EXTERNAL_STATUS[IntentStatus(status)]


def status_message(intent: DepositIntent) -> str:
    """Human readable message for the intent's current status."""
    status = IntentStatus(intent.status)
    if status == IntentStatus.REJECTED:
        return f"Deposit rejected: {intent.rejection_reason or 'No reason provided'}"
    return STATUS_MESSAGES[status]


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def intent_to_dict(intent: DepositIntent) -> dict:
    """Full intent representation for admin views."""
    status = IntentStatus(intent.status)
    return {
        "id": intent.id,
        "userId": intent.user_id,
        "currency": intent.currency,
        "network": intent.network,
        "targetCurrency": intent.target_currency,
        "targetNetwork": intent.target_network,
        "address": intent.address,
        "memo": intent.memo,
        "status": status.value,
        "externalStatus": to_external_status(status).value,
        "rejectionReason": intent.rejection_reason,
        "detectionMode": intent.detection_mode,
        "createdAt": _iso(intent.created_at),
        "updatedAt": _iso(intent.updated_at),
    }


def build_status_view(intent: DepositIntent) -> dict:
    """Public deposit status payload."""
    status = IntentStatus(intent.status)
    return {
        "intentId": intent.id,
        "status": to_external_status(status).value,
        "internalStatus": status.value,
        "address": intent.address,
        "memo": intent.memo,
        "currency": intent.currency,
        "network": intent.network,
        "createdAt": _iso(intent.created_at),
        "updatedAt": _iso(intent.updated_at),
        "message": status_message(intent),
    }


def transaction_to_dict(tx: DepositTransaction) -> dict:
    """Transaction record representation."""
    return {
        "id": tx.id,
        "intentId": tx.intent_id,
        "txHash": tx.tx_hash,
        "amount": str(tx.amount),
        "currency": tx.currency,
        "type": tx.type,
        "status": tx.status,
        "confirmations": tx.confirmations,
        "createdAt": _iso(tx.created_at),
    }

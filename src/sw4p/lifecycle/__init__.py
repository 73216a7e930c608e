"""Deposit intent lifecycle: approval, detection and processing."""

from sw4p.lifecycle.controller import IntentLifecycleController
from sw4p.lifecycle.detectors import ChainDetector, DepositDetector, SimulatedDetector
from sw4p.lifecycle.status import ExternalStatus, build_status_view, to_external_status

__all__ = [
    "ChainDetector",
    "DepositDetector",
    "ExternalStatus",
    "IntentLifecycleController",
    "SimulatedDetector",
    "build_status_view",
    "to_external_status",
]

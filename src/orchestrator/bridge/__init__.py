"""Cross-chain bridge amount solving."""

from src.orchestrator.bridge.solver import BridgeAmountSolver, BridgePlan

__all__ = ["BridgeAmountSolver", "BridgePlan"]

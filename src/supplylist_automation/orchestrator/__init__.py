from .flow import FLOW_FAILED, FLOW_NEEDS_SELECTION, FLOW_OK, FlowOutcome, SupplyListFlow, build_flow

__all__ = ["FLOW_FAILED", "FLOW_NEEDS_SELECTION", "FLOW_OK", "FlowOutcome", "SupplyListFlow", "build_flow"]

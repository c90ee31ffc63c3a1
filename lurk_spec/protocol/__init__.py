"""Protocol - the boundary between traces and folding schemes."""

from lurk_spec.protocol.folder import (
    Domain,
    ReceiptChainFolder,
    ReceiptChainProof,
    StepInstance,
    TraceBundle,
    TraceFolder,
    bundle_trace,
    check_contiguity,
    state_commitment,
)

__all__ = [
    "Domain",
    "ReceiptChainFolder",
    "ReceiptChainProof",
    "StepInstance",
    "TraceBundle",
    "TraceFolder",
    "bundle_trace",
    "check_contiguity",
    "state_commitment",
]

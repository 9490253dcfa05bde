from .wallet import (
    Vertical,
    TrackedWallet,
    Transaction,
    TokenTransfer,
    TokenBalance,
    WalletBalance,
    normalize_address,
)
from .signal import Signal, SignalContext, SIGNAL_TYPE_NEW_CONTRACT

__all__ = [
    "Vertical",
    "TrackedWallet",
    "Transaction",
    "TokenTransfer",
    "TokenBalance",
    "WalletBalance",
    "normalize_address",
    "Signal",
    "SignalContext",
    "SIGNAL_TYPE_NEW_CONTRACT",
]

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Vertical(str, Enum):
    DEFI = "DeFi"
    AI = "AI"
    SOCIALFI = "SocialFi"


def _to_float(value: object, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: object, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_address(address: object) -> str:
    """Lowercase and trim an address; empty/None become ''."""
    if address is None:
        return ""
    return str(address).strip().lower()


@dataclass
class TrackedWallet:
    """A wallet under observation.

    ``known_contracts`` and ``cursor`` are the detector's state: the set of
    contract addresses already seen for this wallet (append-only) and the
    hash of the newest transaction already processed.
    """

    address: str
    vertical: Vertical
    label: str
    volume_30d_usd: Optional[float] = None
    known_contracts: set[str] = field(default_factory=set)
    cursor: Optional[str] = None

    def __post_init__(self):
        self.address = normalize_address(self.address)
        self.vertical = Vertical(self.vertical)
        if not self.label:
            self.label = self.address[:10] + "..."


class TokenTransfer(BaseModel):
    token_address: str = ""
    symbol: str = ""
    amount: float = 0.0
    usd_amount: float = 0.0


class Transaction(BaseModel):
    """A wallet transaction as returned by the provider. Read-only once fetched."""

    hash: str
    from_address: str = ""
    to_address: str = ""
    value: str = "0"
    block_timestamp: str = ""
    block_number: int = 0
    method_name: Optional[str] = None
    token_transfers: list[TokenTransfer] = []

    @classmethod
    def from_api(cls, data: dict) -> Optional["Transaction"]:
        """Parse a provider transaction dict; None when it has no hash."""
        if not isinstance(data, dict):
            return None
        tx_hash = str(data.get("hash") or data.get("transaction_hash") or "").strip()
        if not tx_hash:
            return None

        transfers = []
        raw_transfers = data.get("token_transfers") or []
        if isinstance(raw_transfers, list):
            for raw in raw_transfers:
                if not isinstance(raw, dict):
                    continue
                transfers.append(
                    TokenTransfer(
                        token_address=normalize_address(raw.get("token_address")),
                        symbol=str(raw.get("symbol") or raw.get("token_symbol") or ""),
                        amount=_to_float(raw.get("amount")),
                        usd_amount=_to_float(raw.get("usd_amount")),
                    )
                )

        method_name = data.get("method_name")
        return cls(
            hash=tx_hash,
            from_address=normalize_address(data.get("from_address")),
            to_address=normalize_address(data.get("to_address")),
            value=str(data.get("value") if data.get("value") is not None else "0"),
            block_timestamp=str(data.get("block_timestamp") or ""),
            block_number=_to_int(data.get("block_number")),
            method_name=str(method_name) if method_name else None,
            token_transfers=transfers,
        )


class TokenBalance(BaseModel):
    token_address: str = ""
    symbol: str = ""
    name: str = ""
    balance: float = 0.0
    usd_value: float = 0.0


class WalletBalance(BaseModel):
    chain: str
    address: str
    tokens: list[TokenBalance] = []

    @classmethod
    def from_api(cls, data: dict) -> Optional["WalletBalance"]:
        if not isinstance(data, dict):
            return None
        tokens = []
        for raw in data.get("tokens") or []:
            if not isinstance(raw, dict):
                continue
            tokens.append(
                TokenBalance(
                    token_address=normalize_address(raw.get("token_address")),
                    symbol=str(raw.get("symbol") or ""),
                    name=str(raw.get("name") or ""),
                    balance=_to_float(raw.get("balance")),
                    usd_value=_to_float(raw.get("usd_value")),
                )
            )
        return cls(
            chain=str(data.get("chain") or ""),
            address=normalize_address(data.get("address")),
            tokens=tokens,
        )

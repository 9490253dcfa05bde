from typing import Literal, Optional

from pydantic import BaseModel

from models.wallet import Vertical

SIGNAL_TYPE_NEW_CONTRACT = "NEW_CONTRACT"


class SignalContext(BaseModel):
    wallet_label: str
    contract_protocol: Optional[str] = None
    tokens_involved: Optional[list[str]] = None
    method_name: Optional[str] = None


class Signal(BaseModel):
    """A tracked wallet's first interaction with a contract."""

    id: str
    type: Literal["NEW_CONTRACT"] = SIGNAL_TYPE_NEW_CONTRACT
    wallet: str
    vertical: Vertical
    transaction_hash: str
    target_contract: str
    timestamp: str
    actionability_score: int  # 1-5
    is_first_mover: bool
    vertical_tag: Optional[str] = None
    common_neighbors: int = 0
    display_name: Optional[str] = None
    persona: Optional[str] = None
    context: SignalContext

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")

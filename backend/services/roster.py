"""Static wallet roster and protocol watchlist loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from config import ConfigurationError
from models.wallet import TrackedWallet, Vertical, normalize_address
from services.lookups import read_json_config
from utils.logger import get_logger

logger = get_logger("roster")


def parse_wallets(raw: object) -> list[TrackedWallet]:
    if not isinstance(raw, list):
        raise ConfigurationError("Wallet roster must be a JSON array")

    wallets: list[TrackedWallet] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("address"):
            raise ConfigurationError(f"Wallet roster entry {index} has no address")
        try:
            vertical = Vertical(entry.get("vertical"))
        except ValueError as exc:
            raise ConfigurationError(
                f"Wallet roster entry {index} has unknown vertical {entry.get('vertical')!r}"
            ) from exc

        address = normalize_address(entry["address"])
        if address in seen:
            logger.warning("Duplicate wallet in roster ignored", address=address)
            continue
        seen.add(address)

        volume = entry.get("volume_30d_usd")
        wallets.append(
            TrackedWallet(
                address=address,
                vertical=vertical,
                label=str(entry.get("label") or ""),
                volume_30d_usd=float(volume) if volume is not None else None,
            )
        )

    if not wallets:
        raise ConfigurationError("Wallet roster is empty")
    return wallets


def load_wallets(path: str | Path) -> list[TrackedWallet]:
    """Load the tracked-wallet roster. Missing, malformed or empty rosters are fatal."""
    wallets = parse_wallets(read_json_config(path))
    logger.info("Wallet roster loaded", path=str(path), wallets=len(wallets))
    return wallets


class Watchlist:
    """Protocol addresses flagged from the dashboard, persisted as a JSON array."""

    def __init__(self, path: Optional[str | Path] = None, addresses: Optional[list[str]] = None):
        self._path = Path(path) if path else None
        self._addresses: list[str] = []
        for address in addresses or []:
            self._append(address)

    @classmethod
    def load(cls, path: str | Path) -> "Watchlist":
        if not Path(path).exists():
            return cls(path)
        raw = read_json_config(path)
        if not isinstance(raw, list):
            raise ConfigurationError(f"Watchlist file {path} must contain a JSON array")
        return cls(path, [str(a) for a in raw])

    def items(self) -> list[str]:
        return list(self._addresses)

    def add(self, address: str) -> list[str]:
        if self._append(address):
            self._save()
        return self.items()

    def remove(self, address: str) -> list[str]:
        normalized = normalize_address(address)
        if normalized in self._addresses:
            self._addresses.remove(normalized)
            self._save()
        return self.items()

    def _append(self, address: str) -> bool:
        normalized = normalize_address(address)
        if not normalized or normalized in self._addresses:
            return False
        self._addresses.append(normalized)
        return True

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._addresses, indent=2), encoding="utf-8")

"""Read-only address lookups used to enrich signals.

Both directories are built once from static configuration and handed to the
evaluator at construction time; nothing mutates them afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from config import ConfigurationError
from models.wallet import normalize_address
from utils.logger import get_logger

logger = get_logger("lookups")

# Keys inside a project entry that hold a single contract address
_ADDRESS_KEYS = ("router", "core", "token_address")

DEFAULT_PERSONA = "Active Whale"


@dataclass(frozen=True)
class SocialIdentity:
    name: Optional[str]
    persona: str


class ProtocolDirectory:
    """Maps contract addresses to protocol labels."""

    def __init__(self, labels: Optional[Mapping[str, str]] = None):
        normalized = {normalize_address(k): v for k, v in (labels or {}).items() if k}
        self._labels: Mapping[str, str] = MappingProxyType(normalized)

    def __len__(self) -> int:
        return len(self._labels)

    def identify(self, address: Optional[str]) -> Optional[str]:
        if not address:
            return None
        return self._labels.get(normalize_address(address))

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ProtocolDirectory":
        """Build from a ``{"verticals": {name: {"projects": {...}}}}`` document.

        Each project contributes its ``router``, ``core`` and
        ``token_address`` entries plus every value of its ``contracts`` map,
        all labelled with the project's ``label``.
        """
        labels: dict[str, str] = {}
        verticals = config.get("verticals") or {}
        for vertical_name, vertical_config in verticals.items():
            projects = (vertical_config or {}).get("projects") or {}
            for project_name, project in projects.items():
                if not isinstance(project, dict):
                    continue
                label = project.get("label") or project_name
                for key in _ADDRESS_KEYS:
                    if project.get(key):
                        labels[normalize_address(project[key])] = label
                for address in (project.get("contracts") or {}).values():
                    if address:
                        labels[normalize_address(address)] = label
        return cls(labels)

    @classmethod
    def load(cls, path: str | Path) -> "ProtocolDirectory":
        data = read_json_config(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Contracts file {path} must contain a JSON object")
        directory = cls.from_config(data)
        logger.info("Protocol directory loaded", path=str(path), addresses=len(directory))
        return directory


class SocialDirectory:
    """Maps wallet addresses to a display name and persona."""

    def __init__(self, identities: Optional[Mapping[str, SocialIdentity]] = None):
        normalized = {normalize_address(k): v for k, v in (identities or {}).items() if k}
        self._identities: Mapping[str, SocialIdentity] = MappingProxyType(normalized)

    def __len__(self) -> int:
        return len(self._identities)

    def resolve(self, address: str) -> SocialIdentity:
        """Identity for ``address``; unknown wallets get a nameless default persona."""
        return self._identities.get(
            normalize_address(address),
            SocialIdentity(name=None, persona=DEFAULT_PERSONA),
        )

    @classmethod
    def load(cls, path: str | Path) -> "SocialDirectory":
        """Load ``{address: {"name": ..., "persona": ...}}``; a missing file is an empty directory."""
        if not Path(path).exists():
            logger.info("No social identity file, using default personas", path=str(path))
            return cls()
        data = read_json_config(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Social identity file {path} must contain a JSON object")
        identities = {
            address: SocialIdentity(
                name=entry.get("name"),
                persona=entry.get("persona") or DEFAULT_PERSONA,
            )
            for address, entry in data.items()
            if isinstance(entry, dict)
        }
        return cls(identities)


def read_json_config(path: str | Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc

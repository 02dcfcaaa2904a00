"""YAML-backed owner directory.

Owners are the people automations run on behalf of. Each owner has a
display name and a list of platform identities, for example::

    owners:
      - id: alice
        name: Alice
        identities:
          - platform: events
            id: s3cret-webhook-token
          - platform: telegram
            id: "123456789"
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
import yaml

from ..exceptions import InvalidConfigError, MissingConfigError
from ..utils.constants import TELEGRAM_PLATFORM

logger = structlog.get_logger()


@dataclass(frozen=True)
class PlatformIdentity:
    """An owner's id on one platform."""

    platform: str
    id: str


@dataclass(frozen=True)
class OwnerDefinition:
    """Owner entry from YAML configuration."""

    id: str
    name: str
    identities: Tuple[PlatformIdentity, ...] = ()


class OwnerDirectory:
    """In-memory validated owner directory."""

    def __init__(self, owners: List[OwnerDefinition]) -> None:
        self._owners = owners
        self._by_id: Dict[str, OwnerDefinition] = {o.id: o for o in owners}
        self._by_name: Dict[str, OwnerDefinition] = {o.name: o for o in owners}

    @property
    def owners(self) -> List[OwnerDefinition]:
        """Return all owners."""
        return list(self._owners)

    def get(self, owner_id: str) -> Optional[OwnerDefinition]:
        return self._by_id.get(owner_id)

    def resolve_display_name(self, name: str) -> Optional[str]:
        """Map a display name to an owner id (exact match)."""
        owner = self._by_name.get(name)
        return owner.id if owner else None

    def identities(self, owner_id: str, platform: str) -> List[str]:
        """All of an owner's ids on ``platform``; empty for unknown owners."""
        owner = self._by_id.get(owner_id)
        if owner is None:
            return []
        return [i.id for i in owner.identities if i.platform == platform]

    def telegram_chat_ids(self, owner_id: str) -> List[int]:
        """Telegram chat ids for an owner, skipping non-numeric entries."""
        chat_ids = []
        for raw in self.identities(owner_id, TELEGRAM_PLATFORM):
            try:
                chat_ids.append(int(raw))
            except ValueError:
                logger.warning(
                    "Ignoring non-numeric telegram identity", owner_id=owner_id
                )
        return chat_ids


def load_owner_directory(config_path: Path) -> OwnerDirectory:
    """Load and validate owner definitions from YAML."""
    if not config_path.exists():
        raise MissingConfigError(f"Owners config file does not exist: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidConfigError(f"Owners config is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise InvalidConfigError("Owners config must be a YAML object")

    raw_owners = data.get("owners")
    if not isinstance(raw_owners, list):
        raise InvalidConfigError("Owners config must contain an 'owners' list")

    seen_ids = set()
    seen_names = set()
    owners: List[OwnerDefinition] = []

    for idx, raw in enumerate(raw_owners):
        if not isinstance(raw, dict):
            raise InvalidConfigError(f"Owner entry at index {idx} must be an object")

        owner_id = str(raw.get("id", "")).strip()
        name = str(raw.get("name", "")).strip()
        if not owner_id:
            raise InvalidConfigError(f"Owner entry at index {idx} is missing 'id'")
        if not name:
            raise InvalidConfigError(f"Owner '{owner_id}' is missing 'name'")
        if ":" in name:
            # The webhook token is "<name>:<secret>".
            raise InvalidConfigError(f"Owner name may not contain ':': {name}")
        if owner_id in seen_ids:
            raise InvalidConfigError(f"Duplicate owner id: {owner_id}")
        if name in seen_names:
            raise InvalidConfigError(f"Duplicate owner name: {name}")

        raw_identities = raw.get("identities") or []
        if not isinstance(raw_identities, list):
            raise InvalidConfigError(f"Owner '{owner_id}' identities must be a list")

        identities = []
        for raw_identity in raw_identities:
            if not isinstance(raw_identity, dict):
                raise InvalidConfigError(
                    f"Owner '{owner_id}' has an identity that is not an object"
                )
            platform = str(raw_identity.get("platform", "")).strip()
            identity_id = str(raw_identity.get("id", "")).strip()
            if not platform or not identity_id:
                raise InvalidConfigError(
                    f"Owner '{owner_id}' identities need 'platform' and 'id'"
                )
            identities.append(PlatformIdentity(platform=platform, id=identity_id))

        seen_ids.add(owner_id)
        seen_names.add(name)
        owners.append(
            OwnerDefinition(id=owner_id, name=name, identities=tuple(identities))
        )

    logger.info("Owner directory loaded", path=str(config_path), owners=len(owners))
    return OwnerDirectory(owners)

"""Owner directory."""

from .directory import (
    OwnerDefinition,
    OwnerDirectory,
    PlatformIdentity,
    load_owner_directory,
)

__all__ = [
    "OwnerDefinition",
    "OwnerDirectory",
    "PlatformIdentity",
    "load_owner_directory",
]

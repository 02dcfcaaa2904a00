"""Owner-facing tools for managing automations."""

from .automation import AutomationTools

__all__ = ["AutomationTools"]

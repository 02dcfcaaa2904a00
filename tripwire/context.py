"""Application context.

All long-lived components are built once here and passed explicitly to
whatever needs them.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from telegram import Bot

from .actions.scheduler import ActionScheduler
from .config.features import FeatureFlags
from .config.settings import Settings
from .events.bus import EventBus
from .events.registry import Clock, EventRegistry, utcnow
from .execution.bridge import ExecutionBridge, MessagingChannel
from .execution.executor import (
    HttpInstructionExecutor,
    InstructionExecutor,
    UnconfiguredInstructionExecutor,
)
from .listeners.manager import ListenerManager
from .notifications.service import TelegramChannel
from .owners.directory import OwnerDirectory, load_owner_directory
from .storage.facade import Storage
from .tools.automation import AutomationTools

logger = structlog.get_logger()


@dataclass
class AppContext:
    """Wired application components."""

    settings: Settings
    features: FeatureFlags
    storage: Storage
    directory: OwnerDirectory
    event_bus: EventBus
    registry: EventRegistry
    executor: InstructionExecutor
    channel: Optional[MessagingChannel]
    bridge: ExecutionBridge
    listeners: ListenerManager
    actions: ActionScheduler
    tools: AutomationTools

    async def start(self) -> None:
        """Start background work: channel, listener sweep, action scheduler."""
        if isinstance(self.channel, TelegramChannel):
            await self.channel.start()
        await self.listeners.start()
        if self.features.scheduler_enabled:
            await self.actions.start()
        else:
            await self.actions.actions.load()
            logger.info("Action scheduler disabled, actions loaded but not scheduled")

    async def stop(self) -> None:
        """Ordered shutdown: schedulers, in-flight triggers, channel, storage."""
        await self.actions.stop()
        await self.listeners.stop()
        await self.event_bus.stop()
        if isinstance(self.channel, TelegramChannel):
            await self.channel.stop()
        if isinstance(self.executor, HttpInstructionExecutor):
            await self.executor.close()
        await self.storage.close()


def _load_directory(settings: Settings) -> OwnerDirectory:
    path = settings.owners_path
    if not path.exists():
        logger.warning(
            "No owners config found, webhooks will reject all tokens",
            path=str(path),
        )
        return OwnerDirectory([])
    return load_owner_directory(path)


def _build_executor(settings: Settings) -> InstructionExecutor:
    if not settings.instruction_executor_url:
        logger.warning("Instruction executor not configured")
        return UnconfiguredInstructionExecutor()
    return HttpInstructionExecutor(
        settings.instruction_executor_url,
        token=settings.executor_token_str,
        timeout_seconds=settings.instruction_executor_timeout_seconds,
    )


def _build_channel(
    settings: Settings, directory: OwnerDirectory
) -> Optional[MessagingChannel]:
    token = settings.telegram_token_str
    if not token:
        logger.warning("Telegram bot token not configured, notifications disabled")
        return None
    return TelegramChannel(Bot(token), directory)


async def build_context(
    settings: Settings,
    *,
    directory: Optional[OwnerDirectory] = None,
    executor: Optional[InstructionExecutor] = None,
    channel: Optional[MessagingChannel] = None,
    clock: Clock = utcnow,
) -> AppContext:
    """Create every component and load persisted state.

    ``directory``, ``executor`` and ``channel`` default to what the
    settings describe.
    """
    features = FeatureFlags(settings)

    storage = Storage(settings.database_url)
    await storage.initialize()

    directory = directory if directory is not None else _load_directory(settings)
    executor = executor or _build_executor(settings)
    if channel is None:
        channel = _build_channel(settings, directory)

    event_bus = EventBus()
    registry = EventRegistry(
        storage.events,
        storage.listeners,
        public_host=settings.public_events_host,
        clock=clock,
    )
    bridge = ExecutionBridge(executor, channel)
    listeners = ListenerManager(
        storage.listeners,
        registry,
        event_bus,
        bridge,
        sweep_interval_seconds=settings.listener_sweep_interval_seconds,
        clock=clock,
    )
    actions = ActionScheduler(
        storage.actions,
        bridge,
        timezone=settings.scheduler_timezone,
        clock=clock,
    )
    tools = AutomationTools(registry, listeners, actions)

    await storage.events.load()
    await listeners.load()

    logger.info(
        "Application context created",
        events=len(storage.events),
        listeners=len(storage.listeners),
        owners=len(directory.owners),
    )
    return AppContext(
        settings=settings,
        features=features,
        storage=storage,
        directory=directory,
        event_bus=event_bus,
        registry=registry,
        executor=executor,
        channel=channel,
        bridge=bridge,
        listeners=listeners,
        actions=actions,
        tools=tools,
    )

"""Scheduler for owner-defined actions.

Wraps APScheduler's AsyncIOScheduler. Delay actions run once and are then
deleted; cron actions run until removed. Job handles are kept per action
so an update or removal always cancels what was installed before.
"""

from typing import Dict, List, Optional

import structlog
from apscheduler.job import Job  # type: ignore[import-untyped]
from apscheduler.jobstores.base import JobLookupError  # type: ignore[import-untyped]
from apscheduler.schedulers.asyncio import (
    AsyncIOScheduler,  # type: ignore[import-untyped]
)
from apscheduler.triggers.base import BaseTrigger  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]
from apscheduler.triggers.date import DateTrigger  # type: ignore[import-untyped]

from ..events.registry import Clock, utcnow
from ..exceptions import (
    AlreadyExistsError,
    AuthorizationError,
    NotFoundError,
    SchedulingError,
)
from ..execution.bridge import ExecutionBridge
from ..execution.types import Delivered, ExecutionContext, TriggerSpec
from ..storage.models import ActionModel, CronSchedule, DelaySchedule, Schedule
from ..storage.repositories import ActionRepository
from ..utils.constants import DEFAULT_SCHEDULER_TIMEZONE

logger = structlog.get_logger()


def validate_schedule(schedule: Schedule, timezone: str) -> None:
    """Raise SchedulingError for a schedule that can never run."""
    if isinstance(schedule, DelaySchedule):
        if schedule.seconds <= 0:
            raise SchedulingError("Delay must be a positive number of seconds.")
        return
    try:
        CronTrigger.from_crontab(schedule.expression, timezone=timezone)
    except ValueError as e:
        raise SchedulingError(
            f'Invalid cron expression "{schedule.expression}": {e}'
        ) from e


class ActionScheduler:
    """CRUD and timing for scheduled actions."""

    def __init__(
        self,
        actions: ActionRepository,
        bridge: ExecutionBridge,
        timezone: str = DEFAULT_SCHEDULER_TIMEZONE,
        clock: Clock = utcnow,
    ) -> None:
        self.actions = actions
        self.bridge = bridge
        self.timezone = timezone
        self.clock = clock
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._jobs: Dict[str, Job] = {}

    async def start(self) -> None:
        """Load persisted actions, install their jobs and start the scheduler."""
        loaded = await self.actions.load()
        for action in loaded:
            try:
                self._install(action)
            except SchedulingError:
                logger.exception(
                    "Failed to schedule persisted action",
                    action_id=action.action_id,
                )
        self._scheduler.start()
        logger.info("Action scheduler started", actions=len(self._jobs))

    async def stop(self) -> None:
        """Shutdown the scheduler without waiting for running jobs."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Action scheduler stopped")

    # Queries

    def get_action(self, action_id: str) -> Optional[ActionModel]:
        return self.actions.get(action_id)

    def list_actions(self, owner_id: str) -> List[ActionModel]:
        return self.actions.by_owner(owner_id)

    def get_job(self, action_id: str) -> Optional[Job]:
        return self._scheduler.get_job(self._job_id(action_id))

    def scheduled_job_count(self, action_id: Optional[str] = None) -> int:
        """Number of installed action jobs, overall or for one action."""
        jobs = [
            job for job in self._scheduler.get_jobs() if job.id.startswith("action:")
        ]
        if action_id is not None:
            jobs = [job for job in jobs if job.id == self._job_id(action_id)]
        return len(jobs)

    # Mutations

    async def create_action(
        self,
        owner_id: str,
        action_id: str,
        description: str,
        schedule: Schedule,
        trigger: TriggerSpec,
        notify: bool = True,
    ) -> ActionModel:
        """Persist a new action and schedule it.

        Args:
            owner_id: Owner the action runs on behalf of.
            action_id: Owner-chosen unique id.
            description: Human-readable summary.
            schedule: Delay (run once) or cron (recurring).
            trigger: What to run when the schedule fires.
            notify: Whether delivered output is sent to the owner.

        Returns:
            The stored action.
        """
        if action_id in self.actions:
            raise AlreadyExistsError(f'Action with ID "{action_id}" already exists.')
        validate_schedule(schedule, self.timezone)

        action = ActionModel(
            action_id=action_id,
            description=description,
            owner_id=owner_id,
            schedule=schedule,
            trigger=trigger,
            notify=notify,
            created_at=self.clock(),
        )
        self.actions.put(action)
        await self.actions.flush()
        self._install(action)

        logger.info(
            "Action created",
            action_id=action_id,
            owner_id=owner_id,
            schedule=action.schedule.type,
        )
        return action

    async def update_action(
        self,
        owner_id: str,
        action_id: str,
        description: str,
        schedule: Schedule,
        trigger: TriggerSpec,
        notify: bool = True,
    ) -> ActionModel:
        """Replace an action's definition and reschedule it.

        The creation time is kept, so a delay counts from the original
        creation.
        """
        current = self.actions.get(action_id)
        if current is None:
            raise NotFoundError(f'Action with ID "{action_id}" not found.')
        if current.owner_id != owner_id:
            raise AuthorizationError(
                "You do not have permission to update this action."
            )
        validate_schedule(schedule, self.timezone)

        action = ActionModel(
            action_id=action_id,
            description=description,
            owner_id=owner_id,
            schedule=schedule,
            trigger=trigger,
            notify=notify,
            created_at=current.created_at,
        )
        self._cancel(action_id)
        self.actions.put(action)
        await self.actions.flush()
        self._install(action)

        logger.info(
            "Action updated and rescheduled",
            action_id=action_id,
            schedule=action.schedule.type,
        )
        return action

    async def remove_action(
        self, action_id: str, owner_id: Optional[str] = None
    ) -> bool:
        """Cancel and delete an action; returns False if it did not exist."""
        action = self.actions.get(action_id)
        if action is None:
            self._cancel(action_id)
            return False
        if owner_id is not None and action.owner_id != owner_id:
            raise AuthorizationError(
                "You do not have permission to remove this action."
            )

        self._cancel(action_id)
        self.actions.discard(action_id)
        await self.actions.flush()

        logger.info("Action removed", action_id=action_id, owner_id=action.owner_id)
        return True

    # Execution

    async def run_action(self, action_id: str) -> Optional[str]:
        """Called by APScheduler when an action's job fires.

        Returns the delivered text, or None when nothing was produced.
        """
        action = self.actions.get(action_id)
        if action is None:
            logger.warning("Scheduled action no longer exists", action_id=action_id)
            return None

        logger.info(
            "Scheduled action fired",
            action_id=action_id,
            schedule=action.schedule.type,
        )
        try:
            result = await self.bridge.run(
                action.trigger,
                owner_id=action.owner_id,
                payload={},
                notify=action.notify,
                context=ExecutionContext(
                    kind="action",
                    source_id=action_id,
                    description=action.description,
                ),
            )
        finally:
            # A delay action replaced while running keeps its new definition.
            if not action.is_recurring and self.actions.get(action_id) is action:
                self._jobs.pop(action_id, None)
                self.actions.discard(action_id)
                await self.actions.flush()
                logger.info(
                    "One-time action completed and removed", action_id=action_id
                )

        if isinstance(result, Delivered):
            return result.text
        return None

    # Internals

    @staticmethod
    def _job_id(action_id: str) -> str:
        return f"action:{action_id}"

    def _build_trigger(self, action: ActionModel) -> BaseTrigger:
        if isinstance(action.schedule, CronSchedule):
            try:
                return CronTrigger.from_crontab(
                    action.schedule.expression, timezone=self.timezone
                )
            except ValueError as e:
                raise SchedulingError(
                    f'Invalid cron expression "{action.schedule.expression}": {e}'
                ) from e

        due_at = action.due_at()
        now = self.clock()
        if due_at is None or due_at < now:
            logger.info(
                "Delay already elapsed, running action now",
                action_id=action.action_id,
            )
            due_at = now
        return DateTrigger(run_date=due_at, timezone=self.timezone)

    def _install(self, action: ActionModel) -> None:
        trigger = self._build_trigger(action)
        job = self._scheduler.add_job(
            self.run_action,
            trigger=trigger,
            args=[action.action_id],
            id=self._job_id(action.action_id),
            name=action.description,
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        self._jobs[action.action_id] = job
        logger.debug(
            "Action job installed",
            action_id=action.action_id,
            job_id=job.id,
        )

    def _cancel(self, action_id: str) -> None:
        job = self._jobs.pop(action_id, None)
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError:
            # One-time jobs leave the job store once they have fired.
            logger.debug("Action job already gone", action_id=action_id)

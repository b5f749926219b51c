from __future__ import annotations

from typing import Optional

from .config import AutomationSettings, ConfigurationError
from .credentials import resolve_credentials
from .driver import DriverProvider, Page
from .models import (
    AutomationOutcome,
    Credentials,
    DraftRecord,
    ExecutionContext,
    Failure,
    Stage,
    TargetPortal,
)
from .scripts import StepTracker, TaskScript, describe_error, redact, script_for
from .session import SessionTimeout, with_session


CONTEXT_UNAVAILABLE = "automation unavailable in this context"
MISSING_CREDENTIALS = "missing credentials"
TIMEOUT = "timeout"


class AutomationRunner:
    """
    Single entry point for portal automation.

    Both public coroutines are total: they always return a value and never
    let an exception reach the caller. Each call owns its own browser
    session, so calls may run concurrently without sharing any state.
    """

    def __init__(
        self,
        settings: Optional[AutomationSettings] = None,
        *,
        provider: Optional[DriverProvider] = None,
    ) -> None:
        self._settings = settings or AutomationSettings()
        self._provider = provider or DriverProvider(self._settings.execution_context)

    @property
    def context(self) -> ExecutionContext:
        return self._settings.execution_context

    @property
    def settings(self) -> AutomationSettings:
        return self._settings

    @property
    def provider(self) -> DriverProvider:
        return self._provider

    async def run_automated_task(
        self,
        portal: TargetPortal,
        draft: DraftRecord,
        credentials: Optional[Credentials] = None,
    ) -> AutomationOutcome:
        """Create ``draft`` on ``portal`` and record the outcome on the draft."""
        try:
            outcome = await self._run(portal, draft, credentials)
        except Exception as exc:
            reason = self._redact(describe_error(exc), portal, credentials)
            outcome = Failure(reason=reason, stage=Stage.UNKNOWN)
        draft.outcome = outcome
        return outcome

    async def validate_credentials(
        self,
        portal: TargetPortal,
        credentials: Optional[Credentials] = None,
    ) -> bool:
        """Log into ``portal`` and report whether the dashboard appeared."""
        if self.context is not ExecutionContext.TRUSTED:
            return False
        try:
            resolved = resolve_credentials(portal, credentials, settings=self._settings)
        except ConfigurationError:
            return False

        script = self._script(portal)

        async def _check(page: Page) -> bool:
            return await script.authenticate(page, resolved)

        try:
            driver = await self._provider.get_driver()
            if self._provider.is_stand_in:
                return False
            return await with_session(
                driver,
                _check,
                budget=self._settings.task_budget,
                headless=self._settings.headless,
            )
        except Exception:
            return False

    async def _run(
        self,
        portal: TargetPortal,
        draft: DraftRecord,
        credentials: Optional[Credentials],
    ) -> AutomationOutcome:
        if self.context is not ExecutionContext.TRUSTED:
            return Failure(reason=CONTEXT_UNAVAILABLE, stage=Stage.CONTEXT)

        try:
            resolved = resolve_credentials(portal, credentials, settings=self._settings)
        except ConfigurationError:
            return Failure(reason=MISSING_CREDENTIALS, stage=Stage.LOGIN)

        script = self._script(portal)
        tracker = StepTracker()

        async def _task(page: Page) -> AutomationOutcome:
            return await script.run(page, draft, resolved, tracker)

        try:
            driver = await self._provider.get_driver()
            return await with_session(
                driver,
                _task,
                budget=self._settings.task_budget,
                headless=self._settings.headless,
            )
        except SessionTimeout:
            return Failure(reason=TIMEOUT, stage=tracker.stage)
        except Exception as exc:
            return Failure(reason=redact(describe_error(exc), resolved), stage=Stage.UNKNOWN)

    def _redact(
        self,
        message: str,
        portal: TargetPortal,
        explicit: Optional[Credentials],
    ) -> str:
        for candidate in (explicit, self._settings.credentials_for(portal)):
            if candidate is not None:
                message = redact(message, candidate)
        return message

    def _script(self, portal: TargetPortal) -> TaskScript:
        return script_for(
            portal,
            confirm_timeout=self._settings.confirm_timeout,
            login_timeout=self._settings.login_timeout,
        )


_default_runner: Optional[AutomationRunner] = None


def default_runner() -> AutomationRunner:
    """Runner configured from the environment, built once per process."""
    global _default_runner
    if _default_runner is None:
        _default_runner = AutomationRunner(AutomationSettings.from_env())
    return _default_runner


async def run_automated_task(
    portal: TargetPortal,
    draft: DraftRecord,
    credentials: Optional[Credentials] = None,
    *,
    runner: Optional[AutomationRunner] = None,
) -> AutomationOutcome:
    """Run one task with ``runner``, or with the environment-configured runner."""
    if runner is None:
        try:
            runner = default_runner()
        except ConfigurationError as exc:
            outcome = Failure(reason=str(exc), stage=Stage.CONTEXT)
            draft.outcome = outcome
            return outcome
    return await runner.run_automated_task(portal, draft, credentials)


async def validate_credentials(
    portal: TargetPortal,
    credentials: Optional[Credentials] = None,
    *,
    runner: Optional[AutomationRunner] = None,
) -> bool:
    if runner is None:
        try:
            runner = default_runner()
        except ConfigurationError:
            return False
    return await runner.validate_credentials(portal, credentials)

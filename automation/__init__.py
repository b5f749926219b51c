from __future__ import annotations

"""
Headless browser automation that creates invoices and reservations on the
restaurant's third-party portals.

Modules exported here are safe to import from application code; Playwright
itself is only imported when a real driver is loaded.
"""

from .config import AutomationSettings, ConfigurationError
from .credentials import resolve_credentials
from .driver import STAND_IN_CONTENT, DriverProvider, StandInDriver
from .models import (
    AutomationOutcome,
    Credentials,
    ExecutionContext,
    Failure,
    InvoiceDraft,
    LineItem,
    ReservationDraft,
    Stage,
    Success,
    TargetPortal,
)
from .session import BrowserSession, SessionTimeout, with_session
from .tasks import AutomationRunner, run_automated_task, validate_credentials

__all__ = [
    "AutomationOutcome",
    "AutomationRunner",
    "AutomationSettings",
    "BrowserSession",
    "ConfigurationError",
    "Credentials",
    "DriverProvider",
    "ExecutionContext",
    "Failure",
    "InvoiceDraft",
    "LineItem",
    "ReservationDraft",
    "STAND_IN_CONTENT",
    "SessionTimeout",
    "Stage",
    "StandInDriver",
    "Success",
    "TargetPortal",
    "resolve_credentials",
    "run_automated_task",
    "validate_credentials",
    "with_session",
]

"""Shared fixtures for the automation tests."""

import pytest

from automation.config import AutomationSettings
from automation.models import Credentials, TargetPortal
from tests.fakes import PASSWORD, USERNAME


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username=USERNAME, password=PASSWORD)


@pytest.fixture
def settings(credentials: Credentials) -> AutomationSettings:
    """Trusted settings with short timeouts and both portals configured."""
    return AutomationSettings(
        task_budget=1.0,
        confirm_timeout=0.2,
        login_timeout=0.2,
        credentials={
            TargetPortal.INVOICING: credentials,
            TargetPortal.RESERVATION: credentials,
        },
    )

from __future__ import annotations

from typing import Optional

from .config import AutomationSettings, ConfigurationError
from .models import Credentials, TargetPortal


def resolve_credentials(
    portal: TargetPortal,
    explicit: Optional[Credentials] = None,
    *,
    settings: AutomationSettings,
) -> Credentials:
    """
    Pick the credentials used to log into ``portal``.

    Explicit credentials win only when both fields are filled in; otherwise
    the configured pair for the portal is used.
    """
    if explicit is not None and explicit.complete:
        return explicit

    configured = settings.credentials_for(portal)
    if configured is not None and configured.complete:
        return configured

    raise ConfigurationError(f"No credentials configured for the {portal.value} portal.")

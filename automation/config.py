from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .models import Credentials, ExecutionContext, TargetPortal


DEFAULT_TASK_BUDGET = 30.0
DEFAULT_CONFIRM_TIMEOUT = 10.0
DEFAULT_LOGIN_TIMEOUT = 5.0

# (username variable, password variable) per portal.
CREDENTIAL_ENV: Dict[TargetPortal, Tuple[str, str]] = {
    TargetPortal.INVOICING: ("UNION_USERNAME", "UNION_PASSWORD"),
    TargetPortal.RESERVATION: (
        "RESERVATION_SYSTEM_USERNAME",
        "RESERVATION_SYSTEM_PASSWORD",
    ),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigurationError(RuntimeError):
    """Raised when automation settings or credentials are missing or malformed."""


@dataclass(frozen=True, slots=True)
class AutomationSettings:
    """
    Process-wide automation configuration.

    Built once (usually from the environment) and handed to the runner, so
    nothing in the automation core reads ``os.environ`` on its own.
    """

    execution_context: ExecutionContext = ExecutionContext.TRUSTED
    headless: bool = True
    task_budget: float = DEFAULT_TASK_BUDGET
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    login_timeout: float = DEFAULT_LOGIN_TIMEOUT
    credentials: Mapping[TargetPortal, Credentials] = field(default_factory=dict, repr=False)

    def credentials_for(self, portal: TargetPortal) -> Optional[Credentials]:
        return self.credentials.get(portal)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AutomationSettings":
        env = os.environ if environ is None else environ

        raw_context = env.get("AUTOMATION_CONTEXT", ExecutionContext.TRUSTED.value)
        try:
            context = ExecutionContext(raw_context.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"AUTOMATION_CONTEXT must be 'trusted' or 'untrusted', got {raw_context!r}."
            ) from exc

        credentials: Dict[TargetPortal, Credentials] = {}
        for portal, (user_var, password_var) in CREDENTIAL_ENV.items():
            username = env.get(user_var, "")
            password = env.get(password_var, "")
            if username or password:
                credentials[portal] = Credentials(username=username, password=password)

        return cls(
            execution_context=context,
            headless=_parse_bool(env, "AUTOMATION_HEADLESS", True),
            task_budget=_parse_seconds(env, "AUTOMATION_TASK_BUDGET", DEFAULT_TASK_BUDGET),
            confirm_timeout=_parse_seconds(env, "AUTOMATION_CONFIRM_TIMEOUT", DEFAULT_CONFIRM_TIMEOUT),
            login_timeout=_parse_seconds(env, "AUTOMATION_LOGIN_TIMEOUT", DEFAULT_LOGIN_TIMEOUT),
            credentials=credentials,
        )


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {raw!r}.")


def _parse_seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}.") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}.")
    return value

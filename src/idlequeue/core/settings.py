"""Environment-driven settings for idle queues.

``IdleQueueSettings`` gathers the knobs an application usually wants to
control from the environment rather than code: the parallelism budget, the
unmatched-unlock policy, an optional default request deadline, and logging.

Features:
    - **Pydantic validation:** ``parallels`` must be >= 1, timeouts > 0
    - **env_prefix:** ``IDLEQUEUE_PARALLELS``, ``IDLEQUEUE_UNLOCK_POLICY``, ...
    - **.env file support:** Automatic loading via pydantic-settings
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from idlequeue.core.settings import IdleQueueSettings
    >>> settings = IdleQueueSettings(parallels=4)
    >>> queue = IdleQueue.from_settings(settings)
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

UnlockPolicy = Literal["clamp", "raise"]


class IdleQueueSettings(BaseSettings):
    """Settings consumed by :meth:`idlequeue.IdleQueue.from_settings`.

    Fields
    ──────
    parallels          : Lock count still considered idle is ``< parallels``
    unlock_policy      : ``clamp`` unmatched unlocks at zero, or ``raise``
    default_timeout_ms : Deadline applied to requests that pass none
    log_level          : Level passed to ``configure_logging`` by ``from_settings``
    log_json           : JSON output (True), console (False), auto (None)
    """

    model_config = SettingsConfigDict(
        env_prefix="IDLEQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    parallels: int = Field(default=1, ge=1)
    unlock_policy: UnlockPolicy = "clamp"
    default_timeout_ms: float | None = Field(default=None, gt=0)

    log_level: str = "INFO"
    log_json: bool | None = None


__all__ = ["IdleQueueSettings", "UnlockPolicy"]

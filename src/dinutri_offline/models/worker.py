"""Worker lifecycle states and the worker/page message protocol."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class WorkerState(str, Enum):
    """Activation phase of one worker version.

    ``INSTALLED`` is the waiting phase: installed but not yet in control.
    """

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class MessageAction(str, Enum):
    """Actions exchanged between pages and workers."""

    SKIP_WAITING = "SKIP_WAITING"
    SW_UPDATED = "SW_UPDATED"


class WorkerMessage(BaseModel):
    """Single message shape: ``{"action": ...}``."""

    model_config = ConfigDict(frozen=True)

    action: MessageAction = Field(..., description="Requested or reported action")

    @classmethod
    def skip_waiting(cls) -> "WorkerMessage":
        return cls(action=MessageAction.SKIP_WAITING)

    @classmethod
    def updated(cls) -> "WorkerMessage":
        return cls(action=MessageAction.SW_UPDATED)

"""Submission controller: prompt in, one relay call, image or notification out.

The controller owns a single immutable :class:`ControllerState`. Each
transition replaces it with a new value and informs subscribed listeners,
so a UI only has to render whatever state it is handed.

    Idle ──submit──▶ Submitting ──▶ Success | Failed
      ▲                  │
      └─────cancel───────┘
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from ..config import Settings, get_settings
from ..errors import ErrorKind, ImageForgeError, PromptValidationError
from ..utils import decode_data_uri, export_filename, validate_prompt
from . import notifications
from .notifications import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

_KIND_TO_MESSAGE = {
    ErrorKind.RATE_LIMITED: notifications.RATE_LIMITED,
    ErrorKind.PAYMENT_REQUIRED: notifications.PAYMENT_REQUIRED,
}


class ImageRelay(Protocol):
    async def generate(self, prompt: str) -> str: ...


class Phase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ControllerState:
    phase: Phase = Phase.IDLE
    prompt: str = ""
    image: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.phase is Phase.SUBMITTING


StateListener = Callable[[ControllerState], None]


def notification_for(exc: BaseException) -> str:
    """Map a failure to the single user-facing message it produces."""
    if isinstance(exc, ImageForgeError):
        return _KIND_TO_MESSAGE.get(exc.kind, notifications.GENERATION_FAILED)
    return notifications.UNEXPECTED_ERROR


class GenerationController:
    """Owns prompt, result image and busy flag for one client session."""

    def __init__(
        self,
        relay: ImageRelay,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._relay = relay
        self._notifier = notifier or LoggingNotifier()
        self._state = ControllerState()
        self._listeners: List[StateListener] = []
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def can_submit(self) -> bool:
        """Whether the generate control should be enabled."""
        return not self._state.busy and bool(self._state.prompt.strip())

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def set_prompt(self, prompt: str) -> ControllerState:
        return self._transition(prompt=prompt)

    def _transition(self, **changes) -> ControllerState:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener %r failed", listener)
        return self._state

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def submit(self, prompt: Optional[str] = None) -> ControllerState:
        """Issue exactly one relay call for the current prompt.

        Failures never propagate: they end in ``Phase.FAILED`` plus one error
        notification. Cancellation returns the state to ``Phase.IDLE`` without
        a notification and re-raises :class:`asyncio.CancelledError`.
        """
        if self._state.busy:
            logger.debug("Generation already in flight; ignoring submit")
            return self._state

        if prompt is not None and prompt != self._state.prompt:
            self.set_prompt(prompt)

        try:
            validate_prompt(self._state.prompt)
        except PromptValidationError:
            self._notifier.error(notifications.EMPTY_PROMPT)
            return self._state

        # Switched before the first await so a concurrent submit sees busy.
        self._transition(phase=Phase.SUBMITTING)
        try:
            image = await self._relay.generate(self._state.prompt)
        except asyncio.CancelledError:
            logger.info("Generation cancelled")
            self._transition(phase=Phase.IDLE)
            raise
        except Exception as exc:
            logger.error("Image generation failed: %s", exc)
            self._transition(phase=Phase.FAILED)
            self._notifier.error(notification_for(exc))
            return self._state

        if not image:
            self._transition(phase=Phase.FAILED)
            self._notifier.error(notifications.GENERATION_FAILED)
            return self._state

        self._transition(phase=Phase.SUCCESS, image=image)
        self._notifier.success(notifications.GENERATION_SUCCEEDED)
        return self._state

    def start(self, prompt: Optional[str] = None) -> asyncio.Task:
        """Schedule :meth:`submit` on the running loop and return its task.

        While a generation is pending the pending task is returned instead.
        """
        if self._task is not None and not self._task.done():
            return self._task
        task = asyncio.get_running_loop().create_task(self.submit(prompt))
        self._task = task
        task.add_done_callback(self._forget_task)
        return task

    def cancel(self) -> bool:
        """Cancel the in-flight generation started with :meth:`start`."""
        if self._task is None or self._task.done():
            return False
        return self._task.cancel()

    def _forget_task(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def export(self, directory: Optional[Path] = None) -> Optional[Path]:
        """Save the held image as ``generated-image-<timestamp>.png``.

        Returns ``None`` without side effects when no image is held.
        """
        image = self._state.image
        if not image:
            return None

        target_dir = Path(directory) if directory is not None else self.settings.download_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / export_filename()
        path.write_bytes(decode_data_uri(image))

        logger.info("Exported image to %s", path)
        self._notifier.success(notifications.IMAGE_DOWNLOADED)
        return path

from __future__ import annotations

import inspect
import logging
from typing import Callable, Iterable

from marketplace_client.errors import (
    ErrorDescriptor,
    Messages,
    describe_api_error,
    describe_missing_capability,
)
from marketplace_client.models import MessageAction, MessageBoxState

logger = logging.getLogger(__name__)

Listener = Callable[[MessageBoxState], None]


class MessageBoxStore:
    """The single global modal-message slot.

    Only one message is live at a time: ``show`` discards whatever was there,
    seen or not. Readers subscribe to be told about every change.
    """

    def __init__(self):
        self._state = MessageBoxState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> MessageBoxState:
        return self._state

    def show(
        self,
        title: str | None = None,
        message: str | None = None,
        actions: Iterable[MessageAction] | None = None,
    ) -> None:
        resolved = tuple(actions or ())
        if not resolved:
            resolved = (MessageAction(label=Messages.BACK),)
        self._set(MessageBoxState(is_visible=True, title=title, message=message, actions=resolved))

    def hide(self) -> None:
        self._set(MessageBoxState())

    async def dispatch(self, action: MessageAction) -> None:
        try:
            if action.on_press is not None:
                result = action.on_press()
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.exception("Message box action %r failed", action.label)
        finally:
            self.hide()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: MessageBoxState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Message box listener failed")


def show_error_message(box: MessageBoxStore, descriptor: ErrorDescriptor, title: str = "Error") -> None:
    box.show(
        title=title,
        message=describe_api_error(descriptor),
        actions=[MessageAction(label=Messages.OK)],
    )


def show_permission_denied(box: MessageBoxStore, capability: str) -> None:
    box.show(
        title=Messages.PERMISSION_DENIED_TITLE,
        message=describe_missing_capability(capability),
        actions=[MessageAction(label=Messages.OK)],
    )

from __future__ import annotations

import pytest

from marketplace_client.errors import ErrorDescriptor, Messages
from marketplace_client.messagebox import MessageBoxStore, show_error_message, show_permission_denied
from marketplace_client.models import MessageAction


def test_second_show_replaces_first_payload():
    box = MessageBoxStore()

    box.show(title="First", message="one", actions=[MessageAction(label="A")])
    box.show(title="Second", message="two", actions=[MessageAction(label="B", variant="danger")])

    assert box.state.is_visible is True
    assert box.state.title == "Second"
    assert box.state.message == "two"
    assert [(a.label, a.variant) for a in box.state.actions] == [("B", "danger")]


def test_missing_actions_get_a_default_dismiss():
    box = MessageBoxStore()

    box.show(title="Heads up")

    assert len(box.state.actions) == 1
    assert box.state.actions[0].label == Messages.BACK
    assert box.state.actions[0].on_press is None


def test_hide_clears_content():
    box = MessageBoxStore()
    box.show(title="T", message="M")

    box.hide()

    assert box.state.is_visible is False
    assert box.state.title is None
    assert box.state.message is None
    assert box.state.actions == ()


def test_unknown_variant_is_rejected():
    with pytest.raises(ValueError):
        MessageAction(label="Nope", variant="warning")


@pytest.mark.asyncio
async def test_dispatch_runs_action_then_hides():
    box = MessageBoxStore()
    pressed = []
    action = MessageAction(label="Retry", on_press=lambda: pressed.append(True))
    box.show(message="Try again?", actions=[action])

    await box.dispatch(action)

    assert pressed == [True]
    assert box.state.is_visible is False


@pytest.mark.asyncio
async def test_dispatch_hides_when_async_action_rejects():
    box = MessageBoxStore()

    async def rejecting():
        raise RuntimeError("request failed")

    action = MessageAction(label="Send", on_press=rejecting)
    box.show(message="Send now?", actions=[action])

    await box.dispatch(action)

    assert box.state.is_visible is False


@pytest.mark.asyncio
async def test_dispatch_hides_when_sync_action_raises():
    box = MessageBoxStore()

    def exploding():
        raise ValueError("bad input")

    action = MessageAction(label="Go", on_press=exploding)
    box.show(actions=[action])

    await box.dispatch(action)

    assert box.state.is_visible is False


@pytest.mark.asyncio
async def test_action_can_open_a_follow_up_message():
    box = MessageBoxStore()
    action = MessageAction(label="Next", on_press=lambda: box.show(title="Follow-up"))
    box.show(title="First", actions=[action])

    await box.dispatch(action)

    # hide() always runs last, so the follow-up is closed too
    assert box.state.is_visible is False


def test_subscribers_receive_each_state():
    box = MessageBoxStore()
    seen = []
    unsubscribe = box.subscribe(lambda state: seen.append(state.is_visible))

    box.show(title="T")
    box.hide()
    unsubscribe()
    box.show(title="Unseen")

    assert seen == [True, False]


def test_show_error_message_uses_classifier():
    box = MessageBoxStore()

    show_error_message(box, ErrorDescriptor(status=400, message="Phone is invalid"), title="Store Error")

    assert box.state.title == "Store Error"
    assert box.state.message == "Phone is invalid"
    assert [a.label for a in box.state.actions] == [Messages.OK]


def test_show_permission_denied():
    box = MessageBoxStore()

    show_permission_denied(box, "can_manage_stores")

    assert box.state.title == Messages.PERMISSION_DENIED_TITLE
    assert box.state.message == 'You need the "manage stores" capability to perform this action.'

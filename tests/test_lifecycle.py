import pytest

import lifecycle
from lifecycle import InvalidTransition, next_status


@pytest.mark.parametrize("current,action,expected", [
    ("draft", lifecycle.SUBMIT, "pending"),
    ("revisable", lifecycle.SUBMIT, "pending"),
    ("pending", lifecycle.APPROVE, "approved"),
    ("pending", lifecycle.REVISE, "revisable"),
    ("pending", lifecycle.REJECT, "rejected"),
])
def test_allowed_transitions(current, action, expected):
    assert next_status(current, action) == expected


@pytest.mark.parametrize("current,action", [
    ("pending", lifecycle.SUBMIT),
    ("approved", lifecycle.SUBMIT),
    ("rejected", lifecycle.SUBMIT),
    ("draft", lifecycle.APPROVE),
    ("approved", lifecycle.REJECT),
    ("revisable", lifecycle.REVISE),
])
def test_rejected_transitions(current, action):
    with pytest.raises(InvalidTransition) as exc:
        next_status(current, action)
    assert exc.value.current_status == current


def test_error_message_names_expected_status():
    with pytest.raises(InvalidTransition, match="must be in pending status to approve"):
        next_status("draft", lifecycle.APPROVE)


def test_unknown_action_and_status():
    with pytest.raises(InvalidTransition, match="Unknown action"):
        next_status("draft", "archive")
    with pytest.raises(InvalidTransition):
        next_status("archived", lifecycle.SUBMIT)


def test_decision_action():
    assert lifecycle.decision_action("approved") == lifecycle.APPROVE
    assert lifecycle.decision_action("revisable") == lifecycle.REVISE
    assert lifecycle.decision_action("rejected") == lifecycle.REJECT
    with pytest.raises(ValueError):
        lifecycle.decision_action("pending")


def test_editable_and_deletable_states():
    assert lifecycle.can_edit("draft") and lifecycle.can_edit("revisable")
    assert not lifecycle.can_edit("pending")
    assert not lifecycle.can_owner_delete("approved")

import pytest

from app.tickets.state import TicketStateMachine, TicketStatus


def test_initial_state_is_open():
    assert TicketStateMachine.initial_state() is TicketStatus.OPEN


def test_assigning_open_ticket_starts_work():
    status = TicketStateMachine.assignment_transition(TicketStatus.OPEN, was_assigned=False, is_assigned=True)
    assert status is TicketStatus.IN_PROGRESS


def test_unassigning_in_progress_ticket_reopens_it():
    status = TicketStateMachine.assignment_transition(TicketStatus.IN_PROGRESS, was_assigned=True, is_assigned=False)
    assert status is TicketStatus.OPEN


@pytest.mark.parametrize(
    ("current", "was_assigned", "is_assigned"),
    [
        (TicketStatus.IN_PROGRESS, True, True),
        (TicketStatus.RESOLVED, False, True),
        (TicketStatus.CLOSED, True, False),
        (TicketStatus.OPEN, True, False),
        (TicketStatus.OPEN, False, False),
    ],
)
def test_other_assignment_changes_keep_status(current, was_assigned, is_assigned):
    status = TicketStateMachine.assignment_transition(current, was_assigned=was_assigned, is_assigned=is_assigned)
    assert status is current


def test_explicit_different_status_beats_assignment_rule():
    status = TicketStateMachine.resolve_status(
        TicketStatus.OPEN, TicketStatus.RESOLVED, was_assigned=False, is_assigned=True
    )
    assert status is TicketStatus.RESOLVED


def test_repeated_current_status_lets_assignment_rule_fire():
    status = TicketStateMachine.resolve_status(
        TicketStatus.OPEN, TicketStatus.OPEN, was_assigned=False, is_assigned=True
    )
    assert status is TicketStatus.IN_PROGRESS


def test_terminal_statuses():
    assert TicketStateMachine.is_terminal(TicketStatus.RESOLVED)
    assert TicketStateMachine.is_terminal(TicketStatus.CLOSED)
    assert not TicketStateMachine.is_terminal(TicketStatus.IN_PROGRESS)

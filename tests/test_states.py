import pytest

from storefront.domain.errors import InvalidTransition
from storefront.domain.states import (
    ALLOWED_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    allowed_transitions,
    check_transition,
    initial_status,
    is_terminal,
    status_badge,
)


def test_every_status_has_a_transition_entry():
    assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)


@pytest.mark.parametrize("current", list(OrderStatus))
@pytest.mark.parametrize("requested", list(OrderStatus))
def test_check_transition_follows_table(current, requested):
    if requested in ALLOWED_TRANSITIONS[current]:
        check_transition(current, requested)
    else:
        with pytest.raises(InvalidTransition) as exc:
            check_transition(current, requested)
        assert exc.value.allowed == sorted(s.value for s in ALLOWED_TRANSITIONS[current])


def test_processing_cannot_skip_delivering():
    with pytest.raises(InvalidTransition) as exc:
        check_transition(OrderStatus.PROCESSING, OrderStatus.DELIVERED)

    assert exc.value.allowed == ["CANCELLED", "DELIVERING"]
    assert "PROCESSING" in str(exc.value)
    assert exc.value.code == "INVALID_TRANSITION"


def test_delivering_can_no_longer_be_cancelled():
    assert allowed_transitions(OrderStatus.DELIVERING) == {OrderStatus.DELIVERED}


@pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED])
def test_terminal_statuses(status):
    assert is_terminal(status)
    with pytest.raises(InvalidTransition) as exc:
        check_transition(status, OrderStatus.PENDING)
    assert exc.value.allowed == []
    assert "terminal" in str(exc.value)


def test_initial_status_depends_on_payment_method():
    assert initial_status(PaymentMethod.GATEWAY) is OrderStatus.PENDING_PAYMENT
    assert initial_status(PaymentMethod.CASH_ON_DELIVERY) is OrderStatus.PENDING


def test_check_transition_accepts_raw_strings():
    check_transition("PENDING_PAYMENT", "PENDING")


def test_every_status_has_a_distinct_badge():
    badges = [status_badge(s) for s in OrderStatus]
    assert all(b.label and b.tone for b in badges)
    assert len({b.label for b in badges}) == len(OrderStatus)

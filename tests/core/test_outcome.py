import pytest

from core.exceptions import DeadlineExceededError, NotFoundError, StaleStateError
from core.outcome import ALREADY_APPLIED, APPLIED, REJECTED, Outcome


@pytest.mark.unit
class TestOutcome:
    def test_ok_defaults_to_accepted(self):
        outcome = Outcome.ok("value")
        assert outcome.accepted
        assert outcome.status == "accepted"
        assert outcome.reason is None
        assert outcome.unwrap() == "value"

    def test_ok_with_status(self):
        assert Outcome.ok(1, status=APPLIED).status == "applied"
        assert Outcome.ok(1, status=ALREADY_APPLIED).accepted

    def test_rejected_carries_reason(self):
        outcome = Outcome.rejected(StaleStateError("changed"))
        assert not outcome.accepted
        assert outcome.status == REJECTED
        assert outcome.reason == "stale-state"

    def test_reason_override(self):
        error = DeadlineExceededError("late", reason="cancellation-window-expired")
        assert Outcome.rejected(error).reason == "cancellation-window-expired"

    def test_unwrap_raises_carried_error(self):
        outcome = Outcome.rejected(NotFoundError("missing"))
        with pytest.raises(NotFoundError, match="missing"):
            outcome.unwrap()

    def test_repr(self):
        assert repr(Outcome.ok(1)) == "Outcome(accepted)"
        assert "not-found" in repr(Outcome.rejected(NotFoundError("x")))

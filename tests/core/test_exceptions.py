import pytest

from core.exceptions import (
    ConfigurationError,
    DeadlineExceededError,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    PaymentGatewayError,
    PermanentError,
    PersistenceError,
    SignatureMismatchError,
    StaleStateError,
    TransientError,
    ValidationError,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    @pytest.mark.parametrize("cls", [PersistenceError, PaymentGatewayError])
    def test_transient_errors(self, cls):
        assert issubclass(cls, TransientError)
        assert issubclass(cls, LifecycleError)

    @pytest.mark.parametrize(
        "cls",
        [
            ValidationError,
            NotFoundError,
            InvalidTransitionError,
            StaleStateError,
            DeadlineExceededError,
            SignatureMismatchError,
            ConfigurationError,
        ],
    )
    def test_permanent_errors(self, cls):
        assert issubclass(cls, PermanentError)

    def test_default_reasons(self):
        assert StaleStateError("x").reason == "stale-state"
        assert SignatureMismatchError("x").reason == "invalid-signature"
        assert NotFoundError("x").reason == "not-found"
        assert PaymentGatewayError("x").reason == "gateway-unavailable"

    def test_reason_override_is_per_instance(self):
        error = InvalidTransitionError("x", reason="preparation-started")
        assert error.reason == "preparation-started"
        assert InvalidTransitionError("y").reason == "invalid-transition"

    def test_details_default_to_empty(self):
        error = ValidationError("bad", details={"field": "otp"})
        assert error.details == {"field": "otp"}
        assert ValidationError("bad").details == {}
        assert str(error) == "bad"

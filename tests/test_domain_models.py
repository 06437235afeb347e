"""
Tests for domain models and the transaction state machine.
"""

from decimal import Decimal

import pytest

from iap_manager.exceptions import InvariantViolationError
from iap_manager.models.domain import (
    Product,
    ProductLookup,
    RestoredTransaction,
    RestoreOutcome,
    RestoreResult,
    Transaction,
    TransactionOutcome,
    TransactionState,
)


class TestProduct:
    """Tests for Product validation."""

    def test_valid_product(self, soda_pop: Product):
        assert soda_pop.identifier == "DigitalSodaPop"
        assert soda_pop.price == Decimal("0.99")
        assert soda_pop.description == ""
        assert soda_pop.locale is None

    def test_missing_identifier(self):
        with pytest.raises(ValueError, match="identifier required"):
            Product(identifier="", title="x", formatted_price="$1", price=Decimal("1"))

    def test_negative_price(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            Product(identifier="a", title="x", formatted_price="-$1", price=Decimal("-1"))

    def test_immutable(self, soda_pop: Product):
        with pytest.raises(AttributeError):
            soda_pop.title = "Cola"  # type: ignore[misc]


class TestTransactionState:
    """Tests for state classification."""

    @pytest.mark.parametrize(
        "state", [TransactionState.PURCHASED, TransactionState.RESTORED, TransactionState.FAILED]
    )
    def test_terminal_states(self, state: TransactionState):
        assert state.is_terminal

    @pytest.mark.parametrize(
        "state", [TransactionState.IDLE, TransactionState.REQUESTED, TransactionState.DEFERRED]
    )
    def test_non_terminal_states(self, state: TransactionState):
        assert not state.is_terminal

    def test_success_states(self):
        assert TransactionState.PURCHASED.is_success
        assert TransactionState.RESTORED.is_success
        assert not TransactionState.FAILED.is_success
        assert not TransactionState.DEFERRED.is_success


class TestTransaction:
    """Tests for Transaction.transition()."""

    def test_happy_path(self):
        transaction = Transaction(product_identifier="DigitalSodaPop", token="t1")
        assert transaction.transition(TransactionState.REQUESTED) == TransactionState.IDLE
        assert transaction.transition(TransactionState.PURCHASED) == TransactionState.REQUESTED
        assert transaction.state == TransactionState.PURCHASED
        assert transaction.history == [TransactionState.IDLE, TransactionState.REQUESTED]

    def test_deferred_then_purchased(self):
        transaction = Transaction(product_identifier="DigitalSodaPop", token="t1")
        transaction.transition(TransactionState.REQUESTED)
        transaction.transition(TransactionState.DEFERRED)
        transaction.transition(TransactionState.DEFERRED)
        transaction.transition(TransactionState.PURCHASED)
        assert transaction.state == TransactionState.PURCHASED

    def test_terminal_requires_requested(self):
        """Requested must precede any terminal state."""
        transaction = Transaction(product_identifier="DigitalSodaPop", token="t1")
        with pytest.raises(InvariantViolationError):
            transaction.transition(TransactionState.PURCHASED)

    def test_no_second_terminal(self):
        transaction = Transaction(product_identifier="DigitalSodaPop", token="t1")
        transaction.transition(TransactionState.REQUESTED)
        transaction.transition(TransactionState.FAILED)
        with pytest.raises(InvariantViolationError, match="failed to purchased"):
            transaction.transition(TransactionState.PURCHASED)
        assert transaction.state == TransactionState.FAILED


class TestTransactionOutcome:
    """Tests for TransactionOutcome."""

    def test_rejects_non_outcome_states(self):
        with pytest.raises(ValueError):
            TransactionOutcome(TransactionState.REQUESTED, "t1")

    def test_failed_gets_default_error(self):
        outcome = TransactionOutcome(TransactionState.FAILED, "t1")
        assert outcome.error == "Purchase failed"

    def test_constructors(self):
        assert TransactionOutcome.purchased("t").state == TransactionState.PURCHASED
        assert TransactionOutcome.restored("t").state == TransactionState.RESTORED
        assert TransactionOutcome.deferred("t").state == TransactionState.DEFERRED
        failed = TransactionOutcome.failed("t", "declined")
        assert failed.state == TransactionState.FAILED
        assert failed.error == "declined"


class TestLookupsAndRestore:
    """Tests for ProductLookup, RestoreResult and RestoreOutcome."""

    def test_lookup_get(self, soda_pop: Product):
        lookup = ProductLookup(products={soda_pop.identifier: soda_pop}, invalid_identifiers=[])
        assert lookup.get("DigitalSodaPop") is soda_pop
        assert lookup.get("Missing") is None

    def test_restore_result_identifiers(self):
        result = RestoreResult(
            transactions=[RestoredTransaction("DigitalSodaPop"), RestoredTransaction("MonthlySodaPop")]
        )
        assert result.identifiers == ["DigitalSodaPop", "MonthlySodaPop"]
        assert RestoreResult().identifiers == []

    def test_restore_outcome_count(self):
        assert RestoreOutcome(success=True, identifiers=["a", "b"]).count == 2

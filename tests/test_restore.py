"""
Tests for PurchaseEngine.restore_purchases().
"""

from unittest.mock import AsyncMock

from iap_manager.exceptions import RestoreFailedError
from iap_manager.models.domain import RestoredTransaction, RestoreResult
from iap_manager.models.events import (
    LoadingEnded,
    LoadingStarted,
    RestoreCompleted,
    RestoreEmpty,
    RestoreFailed,
)
from iap_manager.services.engine import PurchaseEngine
from iap_manager.services.sandbox_backend import SandboxStoreBackend


class TestRestorePurchases:
    """Tests for the three restore branches."""

    async def test_restore_empty(self, engine: PurchaseEngine, storage, recorder):
        outcome = await engine.restore_purchases()

        assert outcome.success is True
        assert outcome.count == 0
        assert [type(e) for e in recorder.outcomes()] == [RestoreEmpty]
        assert storage.keys() == []

    async def test_restore_completed(
        self, engine: PurchaseEngine, backend: SandboxStoreBackend, recorder
    ):
        backend.add_history("DigitalSodaPop", "MonthlySodaPop")

        outcome = await engine.restore_purchases()

        assert outcome.success is True
        assert outcome.identifiers == ["DigitalSodaPop", "MonthlySodaPop"]
        assert engine.is_purchased("DigitalSodaPop") is True
        assert engine.is_purchased("MonthlySodaPop") is True

        completed = recorder.of_type(RestoreCompleted)
        assert len(completed) == 1
        assert completed[0].count == 2
        assert completed[0].identifiers == ["DigitalSodaPop", "MonthlySodaPop"]

    async def test_restore_is_idempotent(
        self, engine: PurchaseEngine, backend: SandboxStoreBackend, storage, recorder
    ):
        backend.add_history("DigitalSodaPop")
        engine.entitlements.mark_as_purchased("DigitalSodaPop")

        await engine.restore_purchases()
        await engine.restore_purchases()

        assert storage.keys() == ["Purchased-DigitalSodaPop"]
        assert len(recorder.of_type(RestoreCompleted)) == 2

    async def test_restore_failed(
        self, engine: PurchaseEngine, backend: SandboxStoreBackend, storage, recorder
    ):
        backend.restore_error = "User cancelled"

        outcome = await engine.restore_purchases()

        assert outcome.success is False
        assert outcome.error == "User cancelled"
        failed = recorder.of_type(RestoreFailed)
        assert len(failed) == 1
        assert failed[0].error == "User cancelled"
        assert storage.keys() == []

    async def test_restore_unreachable(
        self, engine: PurchaseEngine, backend: SandboxStoreBackend, recorder
    ):
        backend.reachable = False

        outcome = await engine.restore_purchases()

        assert outcome.success is False
        assert "offline" in outcome.error
        assert len(recorder.of_type(RestoreFailed)) == 1

    async def test_none_result_is_empty(self, engine: PurchaseEngine, recorder):
        engine.backend.restore_completed_transactions = AsyncMock(return_value=None)  # type: ignore[method-assign]

        outcome = await engine.restore_purchases()

        assert outcome.success is True
        assert len(recorder.of_type(RestoreEmpty)) == 1

    async def test_busy_scope_ends_exactly_once_on_every_branch(
        self, engine: PurchaseEngine, backend: SandboxStoreBackend, recorder
    ):
        results = [
            RestoreResult(),
            RestoreResult(transactions=[RestoredTransaction("DigitalSodaPop")]),
        ]
        engine.backend.restore_completed_transactions = AsyncMock(  # type: ignore[method-assign]
            side_effect=[*results, RestoreFailedError("nope"), RuntimeError("bug")]
        )

        for _ in range(4):
            await engine.restore_purchases()
            assert engine.busy.count == 0

        assert len(recorder.of_type(LoadingStarted)) == 4
        assert len(recorder.of_type(LoadingEnded)) == 4
        assert [type(e) for e in recorder.outcomes()] == [
            RestoreEmpty,
            RestoreCompleted,
            RestoreFailed,
            RestoreFailed,
        ]

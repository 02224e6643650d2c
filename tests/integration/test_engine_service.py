"""
Integration tests for the engine facade: run-locks and plan reload.
"""

from decimal import Decimal

import pytest

from mlm_engine.config.compensation_plan import DEFAULT_PLAN
from mlm_engine.models import MembershipTier
from mlm_engine.services.mlm_engine_service import MLMEngineService
from mlm_engine.utils.exceptions import BatchAlreadyRunningError


class TestRunLock:
    """Test batch exclusivity."""

    @pytest.mark.asyncio
    async def test_batch_rejected_while_running(self, service):
        async with service.run_lock.lock(MLMEngineService.LOCK_PAYOUT):
            with pytest.raises(BatchAlreadyRunningError):
                await service.run_payout_sweep("2026-09")

        report = await service.run_payout_sweep("2026-09")
        assert report.payouts == []

    @pytest.mark.asyncio
    async def test_different_batches_not_blocked(self, service):
        async with service.run_lock.lock(MLMEngineService.LOCK_QUALIFICATION):
            report = await service.run_rank_bonuses("2026-09")

        assert report.entries == []

    @pytest.mark.asyncio
    async def test_redis_lock_held_elsewhere(
        self, session_maker, registry, mock_redis
    ):
        mock_redis.set.return_value = None
        service = MLMEngineService(
            session_maker, registry=registry, redis_client=mock_redis
        )

        with pytest.raises(BatchAlreadyRunningError):
            await service.run_leadership_bonuses("2026-09")


class TestPlanReload:
    """Test hot-swapping the compensation plan."""

    @pytest.mark.asyncio
    async def test_reload_changes_rates_for_new_events(self, service, build_chain):
        chain = await build_chain(ancestors=1)
        before = await service.process_event(
            {"event_id": "evt-v1", "source_member_id": chain[0], "amount": "1000"}
        )

        tiers = list(DEFAULT_PLAN.tiers)
        tiers[0] = tiers[0].model_copy(
            update={"level_rates": [Decimal("8"), Decimal("4")]}
        )
        table = service.reload_plan(
            DEFAULT_PLAN.model_copy(update={"version": 2, "tiers": tiers})
        )

        after = await service.process_event(
            {"event_id": "evt-v2", "source_member_id": chain[0], "amount": "1000"}
        )

        assert table.version == 2
        assert before.entries[0].amount == Decimal("50.00")
        assert after.entries[0].amount == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_status_uses_stored_cap(self, service, add_member):
        """A reload does not rewrite the cap of an existing epoch."""
        member = await add_member(tier=MembershipTier.BRONZE_I)
        await service.get_cap_status(member)

        tiers = list(DEFAULT_PLAN.tiers)
        tiers[0] = tiers[0].model_copy(update={"cap_percentage": Decimal("300")})
        service.reload_plan(DEFAULT_PLAN.model_copy(update={"tiers": tiers}))

        status = await service.get_cap_status(member)
        assert status.cap_limit == Decimal("50000")

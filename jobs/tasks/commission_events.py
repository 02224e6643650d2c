"""
Commission event task.

Consumes triggering events (task completions, qualifying purchases).
Delivery is at-least-once; the ledger idempotency key absorbs duplicates.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import engine_service, run_async
from mlm_engine.utils.exceptions import GraphIntegrityError, ValidationError


@dramatiq.actor(max_retries=5, time_limit=60_000)
def process_commission_event(
    event_id: str,
    source_member_id: int,
    amount: str,
    event_type: str = "task",
) -> None:
    """
    Distribute commissions for one event.

    Args:
        event_id: External event ID (idempotency base)
        source_member_id: Member who completed the task / purchase
        amount: Trigger amount as a decimal string
        event_type: "task" or "purchase"
    """
    payload = {
        "event_id": event_id,
        "source_member_id": source_member_id,
        "amount": amount,
        "event_type": event_type,
    }
    try:
        result = run_async(_process_commission_event_async(payload))
    except ValidationError as e:
        logger.error(f"Rejected commission event {event_id}: {e}")
        return
    except GraphIntegrityError as e:
        logger.error(
            f"Commission event {event_id} aborted, manual repair needed: {e}",
            extra={"event_id": event_id, "member_id": e.member_id},
        )
        return

    if result.failures:
        # Raising hands the message back to Retries; created entries are skipped
        raise RuntimeError(
            f"Commission event {event_id}: {len(result.failures)} recipient(s) failed"
        )


async def _process_commission_event_async(payload: dict):
    async with engine_service() as engine:
        return await engine.process_event(payload)

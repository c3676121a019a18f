from typing import Optional
from loguru import logger

from graph.state import RelayState
from tools.idempotency import Idem


def dedupe(state: RelayState, idem: Optional[Idem]) -> RelayState:
    """Mark re-delivered webhooks as duplicates when idempotency is enabled."""
    key = state.get("idempotency_key")
    state["duplicate"] = False
    if idem is None or not key:
        return state

    if not idem.check_and_set(key):
        logger.warning(f"Duplicate webhook ignored: {key}")
        state["duplicate"] = True
    return state


def release(state: RelayState, idem: Optional[Idem]) -> RelayState:
    """Release the delivery marker after an upstream failure so SalesPro can retry."""
    key = state.get("idempotency_key")
    if idem is not None and key:
        idem.clear_key(key)
        logger.info(f"Released idempotency key {key} after upstream failure")
    return state

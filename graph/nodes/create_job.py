from loguru import logger

from graph.state import RelayState
from graph.mapping import job_payload
from tools.errors import UpstreamError
from tools.leap import LeapClient


async def create_job(state: RelayState, leap: LeapClient, no_sale_status: str = "pending") -> RelayState:
    """Create the Leap job/estimate for the resolved customer."""
    estimate = state.get("estimate", {})
    payload = job_payload(state["customer_id"], estimate, no_sale_status)
    logger.info(f"Creating Leap {leap.job_resource} '{payload['name']}' for customer {state['customer_id']}")

    try:
        record = await leap.create_job(payload)
    except UpstreamError as e:
        # A customer created earlier in this run is left in place.
        state["upstream_error"] = e
        state.setdefault("errors", []).append(f"job_create_failed: {e.message}")
        return state

    state["job_id"] = str(record["id"])
    state["job_record"] = record
    return state

from typing import Any, Dict, Tuple
from loguru import logger

from graph.state import RelayState
from graph.mapping import customer_payload
from tools.errors import UpstreamError
from tools.leap import LeapClient


async def resolve(leap: LeapClient, customer: Dict[str, Any]) -> Tuple[str, bool, Dict[str, Any]]:
    """
    Find the customer in Leap by first email and phone, creating it if absent.

    Args:
        leap: Leap CRM client
        customer: Normalized customer

    Returns:
        Tuple of (customer id, was created, Leap record)

    Raises:
        UpstreamError: if the customer had to be created and creation failed
    """
    body = customer_payload(customer)

    existing = await leap.find_customer(email=body["email"], phone=body["phone"])
    if existing:
        return str(existing["id"]), False, existing

    record = await leap.create_customer(body)
    return str(record["id"]), True, record


async def resolve_customer(state: RelayState, leap: LeapClient) -> RelayState:
    """Resolve the Leap customer for this delivery."""
    customer = state.get("customer", {})
    logger.info(f"Resolving Leap customer for {customer.get('first_name')} {customer.get('last_name')}")

    try:
        customer_id, created, record = await resolve(leap, customer)
    except UpstreamError as e:
        state["upstream_error"] = e
        state.setdefault("errors", []).append(f"customer_create_failed: {e.message}")
        return state

    state["customer_id"] = customer_id
    state["customer_created"] = created
    state["customer_record"] = record

    logger.info(f"Using Leap customer {customer_id} ({'created' if created else 'existing'})")
    return state

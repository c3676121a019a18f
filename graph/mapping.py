from typing import Any, Dict, Tuple

NO_NOTES_PLACEHOLDER = "No result notes provided"
SOLD_STATUS = "sold"


def split_name(full_name: str) -> Tuple[str, str]:
    """Split "John Smith" into ("John", "Smith"); extra words go to the last name."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _first(values) -> str:
    for value in values or []:
        if value:
            return value
    return ""


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def customer_payload(customer: Dict[str, Any]) -> Dict[str, Any]:
    """Map a normalized customer onto Leap's customer-creation body."""
    return {
        "first_name": customer.get("first_name", ""),
        "last_name": customer.get("last_name", ""),
        "email": _first(customer.get("emails")),
        "phone": _first(customer.get("phones")),
        "address": {
            "street": _text(customer.get("street")),
            "city": _text(customer.get("city")),
            "state": _text(customer.get("state")),
            "zip": _text(customer.get("zip")),
        },
    }


def job_name(estimate: Dict[str, Any]) -> str:
    source_id = estimate.get("id")
    return f"Estimate #{source_id}" if source_id else "SalesPro Appointment"


def job_payload(customer_id: str, estimate: Dict[str, Any], no_sale_status: str = "pending") -> Dict[str, Any]:
    """
    Map a normalized estimate onto Leap's job/estimate-creation body.

    Args:
        customer_id: Resolved Leap customer id
        estimate: Normalized estimate
        no_sale_status: Status label used when the estimate is not a sale

    Returns:
        Request body for POST /estimates (or /jobs)
    """
    payload = {
        "customer_id": customer_id,
        "name": job_name(estimate),
        "estimate_number": estimate.get("id") or "",
        "status": SOLD_STATUS if estimate.get("is_sale") else no_sale_status,
        "total": estimate.get("sale_amount", 0),
        "categories": list(estimate.get("categories") or []),
        "notes": estimate.get("result_note") or NO_NOTES_PLACEHOLDER,
    }
    if estimate.get("source_data") is not None:
        payload["source_data"] = estimate["source_data"]
    return payload

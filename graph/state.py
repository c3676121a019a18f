from typing import TypedDict, Optional, List, Dict, Any

from tools.errors import UpstreamError

class RelayState(TypedDict, total=False):
    """State shape for the SalesPro to Leap relay workflow."""
    raw: Any                                  # parsed webhook body
    shape: str                                # "estimate" | "appointment"
    customer: Dict[str, Any]                  # normalized customer
    estimate: Dict[str, Any]                  # normalized estimate
    validation_errors: List[Dict[str, str]]   # [{field, message}]
    idempotency_key: Optional[str]
    duplicate: bool
    customer_id: Optional[str]                # Leap customer id
    customer_created: bool
    customer_record: Dict[str, Any]
    job_id: Optional[str]                     # Leap job/estimate id
    job_record: Dict[str, Any]
    upstream_error: Optional[UpstreamError]
    errors: List[str]

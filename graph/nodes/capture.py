from typing import Any, Dict, List, Tuple
from pydantic import ValidationError as PydanticValidationError
from loguru import logger

from graph.state import RelayState
from graph.mapping import split_name
from graph.models import APPOINTMENT_KEYS, AppointmentField, EstimatePayload, appointment_fields


def _field_errors(exc: PydanticValidationError, prefix: str = "") -> List[Dict[str, str]]:
    """Flatten pydantic errors into [{field, message}] entries."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        if not loc:
            # model-level checks name their field in the error context
            loc = (err.get("ctx") or {}).get("field") or "body"
        elif prefix:
            loc = f"{prefix}.{loc}"
        errors.append({"field": loc, "message": err["msg"]})
    return errors


def normalize_estimate(payload: EstimatePayload) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Normalize an estimate-shaped body into customer and estimate dicts."""
    c, e = payload.customer, payload.estimate
    customer = {
        "first_name": c.first_name,
        "last_name": c.last_name,
        "emails": [item.email for item in c.emails if item.email],
        "phones": [item.number for item in c.phone_numbers if item.number],
        "street": c.street or "",
        "city": c.city or "",
        "state": c.state or "",
        "zip": c.zip_code or "",
        "office_id": c.office_id,
    }
    estimate = {
        "id": e.id,
        "result_note": e.result_note,
        "is_sale": e.is_sale,
        "sale_amount": e.sale_amount,
        "categories": list(e.added_categories),
        "office_id": e.office_id,
        "source_data": None,
    }
    return customer, estimate


def normalize_appointment(fields: List[AppointmentField]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Normalize appointment {appKey, value} records into customer and estimate dicts."""
    values: Dict[str, Any] = {}
    phones: List[str] = []
    emails: List[str] = []

    for item in fields:
        if item.app_key not in APPOINTMENT_KEYS or item.value is None:
            continue
        if item.app_key == "phone":
            phones.append(str(item.value))
        elif item.app_key == "email":
            emails.append(str(item.value))
        else:
            values.setdefault(item.app_key, item.value)

    first_name, last_name = split_name(str(values.get("name") or ""))
    customer = {
        "first_name": first_name,
        "last_name": last_name,
        "emails": [e for e in emails if e],
        "phones": [p for p in phones if p],
        "street": str(values.get("addressStreet") or ""),
        "city": str(values.get("addressCity") or ""),
        "state": str(values.get("addressState") or ""),
        "zip": str(values.get("addressZip") or ""),
        "office_id": None,
    }
    identifier = values.get("identifier")
    estimate = {
        "id": str(identifier) if identifier is not None else "",
        "result_note": None,
        "is_sale": False,
        "sale_amount": 0,
        "categories": [],
        "office_id": None,
        "source_data": values.get("apiSourceData"),
    }
    return customer, estimate


def capture(state: RelayState) -> RelayState:
    """Validate the inbound webhook body and normalize it for the relay."""
    raw = state.get("raw")
    state["validation_errors"] = []

    if isinstance(raw, dict):
        state["shape"] = "estimate"
        try:
            payload = EstimatePayload.model_validate(raw)
        except PydanticValidationError as e:
            state["validation_errors"] = _field_errors(e)
        else:
            state["customer"], state["estimate"] = normalize_estimate(payload)

    elif isinstance(raw, list):
        state["shape"] = "appointment"
        if not raw:
            state["validation_errors"] = [{"field": "body", "message": "appointment field list must not be empty"}]
        else:
            try:
                fields = appointment_fields.validate_python(raw)
            except PydanticValidationError as e:
                state["validation_errors"] = _field_errors(e, prefix="body")
            else:
                state["customer"], state["estimate"] = normalize_appointment(fields)

    else:
        state["validation_errors"] = [{"field": "body", "message": "expected a JSON object or array"}]

    if state["validation_errors"]:
        logger.warning(f"Rejected webhook payload: {state['validation_errors']}")
        return state

    source_id = state["estimate"].get("id")
    state["idempotency_key"] = f"salespro:{state['shape']}:{source_id}" if source_id else None

    logger.info(f"Capture completed for {state['shape']} {source_id or '(no identifier)'}")
    return state

"""
Inbound SalesPro payload schemas.

Two shapes are accepted: an estimate object ({customer, estimate}) and an
appointment array of {appKey, value} records. Both normalize into the same
customer/estimate dictionaries in graph.nodes.capture.
"""
import math
from typing import Any, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

OfficeId = Optional[Union[StrictStr, StrictInt]]


def _stringify(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class SalesProEmail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None


class SalesProPhone(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: Optional[str] = None

    @field_validator("number", mode="before")
    @classmethod
    def _number_text(cls, v: Any) -> Any:
        return _stringify(v)


class SalesProCustomer(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    emails: List[SalesProEmail] = Field(default_factory=list)
    phone_numbers: List[SalesProPhone] = Field(default_factory=list, alias="phoneNumbers")
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    office_id: OfficeId = Field(default=None, alias="officeId")

    @field_validator("first_name", "last_name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise PydanticCustomError("blank", "must not be empty")
        return v

    @field_validator("emails", "phone_numbers", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("street", "city", "state", "zip_code", mode="before")
    @classmethod
    def _address_text(cls, v: Any) -> Any:
        return _stringify(v)


class SalesProEstimate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Union[StrictStr, StrictInt]
    result_note: Optional[str] = Field(default=None, alias="resultNote")
    is_sale: bool = Field(default=False, alias="isSale")
    sale_amount: Union[int, float] = Field(alias="saleAmount")
    added_categories: List[Any] = Field(default_factory=list, alias="addedCategories")
    office_id: OfficeId = Field(default=None, alias="officeId")

    @field_validator("id")
    @classmethod
    def _id_text(cls, v: Union[str, int]) -> str:
        v = str(v).strip()
        if not v:
            raise PydanticCustomError("blank", "must not be empty")
        return v

    @field_validator("sale_amount", mode="before")
    @classmethod
    def _strict_number(cls, v: Any) -> Any:
        # zero is a valid amount; booleans and numeric strings are not
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise PydanticCustomError("number_type", "must be a number")
        if isinstance(v, float) and not math.isfinite(v):
            raise PydanticCustomError("number_type", "must be a number")
        return v

    @field_validator("is_sale", mode="before")
    @classmethod
    def _none_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("added_categories", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class EstimatePayload(BaseModel):
    """Estimate-shaped webhook body."""
    model_config = ConfigDict(extra="ignore")

    customer: SalesProCustomer
    estimate: SalesProEstimate

    @model_validator(mode="after")
    def _same_office(self) -> "EstimatePayload":
        customer_office = self.customer.office_id
        estimate_office = self.estimate.office_id
        if customer_office is not None and estimate_office is not None and customer_office != estimate_office:
            raise PydanticCustomError(
                "office_mismatch",
                "customer.officeId {customer_office} does not match estimate.officeId {estimate_office}",
                {"customer_office": customer_office, "estimate_office": estimate_office, "field": "estimate.officeId"},
            )
        return self


class AppointmentField(BaseModel):
    """One {appKey, value} record of an appointment-shaped webhook body."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    app_key: str = Field(alias="appKey")
    value: Any = None


APPOINTMENT_KEYS = {
    "identifier",
    "name",
    "addressStreet",
    "addressCity",
    "addressState",
    "addressZip",
    "phone",
    "email",
    "apiSourceData",
}

appointment_fields = TypeAdapter(List[AppointmentField])

"""
Kind-specific order details.

Orders carry a JSON column whose shape depends on the order kind. The
shapes are a discriminated union so that anything written to or read
from the column is validated.
"""

from typing import Annotated, Literal, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter

from app.fsm.states import DonationFrequency


class DonationDetails(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["DONATION"] = "DONATION"
    donor_name: str = "Anonymous"
    donor_email: Optional[EmailStr] = None
    donor_phone: Optional[str] = None
    is_anonymous: bool = False
    message: Optional[str] = None
    frequency: DonationFrequency = DonationFrequency.ONE_TIME
    source: str = "website"
    ip_address: Optional[str] = None


class SessionPaymentDetails(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["SESSION_PAYMENT"] = "SESSION_PAYMENT"
    session_id: uuid.UUID
    patient_name: Optional[str] = None
    payer_first_name: str
    payer_last_name: str
    payer_email: EmailStr
    payer_phone: str
    source: str = "parent_web"


OrderDetails = Annotated[
    Union[DonationDetails, SessionPaymentDetails],
    Field(discriminator="kind"),
]

order_details_adapter: TypeAdapter = TypeAdapter(OrderDetails)


def parse_order_details(raw: Optional[dict]) -> Union[DonationDetails, SessionPaymentDetails, None]:
    """Validate a stored details blob. Raises pydantic.ValidationError on drift."""
    if raw is None:
        return None
    return order_details_adapter.validate_python(raw)


def dump_order_details(details: Union[DonationDetails, SessionPaymentDetails]) -> dict:
    return details.model_dump(mode="json")

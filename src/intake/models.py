from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from common.images import RawImage
from common.media import SignatureBitmap


EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
TEN_DIGITS_RE = re.compile(r"^\d{10}$")

STAFF = "Staff"
VISITOR = "Visitor"
# Organisation whose employees count as staff on every form
STAFF_EMPLOYEE_TYPE = "KGISL"

IDENTITY_KEYS = (
    "firstName",
    "lastName",
    "gender",
    "email",
    "contact",
    "employeeId",
    "employeeType",
    "employeeStatus",
)


class Identity(BaseModel):
    """
    Applicant fields captured by the identification step.

    Carried unchanged into every feedback form. Missing values are empty
    strings, never None, because the server stores them in NOT NULL columns.

    Fields
    - employee_status: one of "Visitors", "Employee", "Student",
      "Entrepreneur", "Others".
    - employee_type / employee_id: only meaningful for employees; staff of
      the host organisation carry type "KGISL" and an ID.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: str = ""
    contact: str = ""
    gender: str = ""
    employee_status: str = Field("", alias="employeeStatus")
    employee_type: str = Field("", alias="employeeType")
    employee_id: str = Field("", alias="employeeId")

    @classmethod
    def from_form(cls, data: Optional[Dict[str, Any]]) -> "Identity":
        """Build from a loose key/value mapping; None values become ""."""
        clean = {k: ("" if v is None else str(v)) for k, v in (data or {}).items() if k in IDENTITY_KEYS}
        return cls.model_validate(clean)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_staff(self) -> bool:
        return self.employee_type == STAFF_EMPLOYEE_TYPE

    @property
    def role(self) -> str:
        """Visitor/Staff classification used to preselect the role field."""
        if self.employee_status == "Visitors":
            return VISITOR
        return STAFF if self.is_staff else VISITOR

    @property
    def clean_contact(self) -> str:
        # Older identification pages stored the contact as a JSON object
        try:
            parsed = json.loads(self.contact)
        except ValueError:
            return self.contact
        if isinstance(parsed, dict) and parsed.get("contact"):
            return str(parsed["contact"])
        return self.contact

    def payload_fields(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


def validate_identity(identity: Identity) -> Dict[str, str]:
    """Return {field: message} for every failing identification field."""
    errors: Dict[str, str] = {}
    if not identity.first_name:
        errors["firstName"] = "First Name is required"
    if not identity.last_name:
        errors["lastName"] = "Last Name is required"
    if not identity.email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(identity.email):
        errors["email"] = "Email address is invalid"
    if not identity.contact:
        errors["contact"] = "Contact number is required"
    elif not TEN_DIGITS_RE.match(identity.contact):
        errors["contact"] = "Contact number must be 10 digits"
    if not identity.gender:
        errors["gender"] = "Gender is required"
    if not identity.employee_status:
        errors["employeeStatus"] = "Employee Status is required"
    # Employee Type is only required if the status is 'Employee'
    if identity.employee_status == "Employee":
        if not identity.employee_type:
            errors["employeeType"] = "Employee Type is required"
        if identity.is_staff and not identity.employee_id:
            errors["employeeId"] = "Employee ID is required for KGISL employees"
    return errors


@dataclass(frozen=True)
class Success:
    """Decrypted acknowledgement from the server."""

    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """A failed attempt; `message` is ready to show to the user."""

    error: Exception
    message: str

    @property
    def ok(self) -> bool:
        return False


SubmissionResult = Union[Success, Failure]


__all__ = [
    "IDENTITY_KEYS",
    "STAFF",
    "VISITOR",
    "Failure",
    "Identity",
    "RawImage",
    "SignatureBitmap",
    "SubmissionResult",
    "Success",
    "validate_identity",
]

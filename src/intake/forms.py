from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .models import STAFF, TEN_DIGITS_RE, Identity


PHONE_10_15_RE = re.compile(r"^\d{10,15}$")

Formatter = Callable[[Any], str]
EncodedPhotos = Union[str, Sequence[str]]


def format_date(value: Any) -> str:
    """Render a date as dd/mm/yyyy; ISO strings are converted, others kept."""
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return text


@dataclass(frozen=True)
class FieldRule:
    """
    One form field: validation plus how it lands in the payload.

    - `when=(field, value)`: the field is required, and sent, only while
      `form[field] == value`; otherwise it is sent as "".
    - `key`: payload key when it differs from the form field name.
    """

    name: str
    label: str
    required: bool = True
    pattern: Optional[Pattern[str]] = None
    pattern_message: str = ""
    when: Optional[Tuple[str, str]] = None
    key: Optional[str] = None
    format: Optional[Formatter] = None

    @property
    def payload_key(self) -> str:
        return self.key or self.name

    def active(self, form: Mapping[str, Any]) -> bool:
        if self.when is None:
            return True
        other, expected = self.when
        return form.get(other) == expected


@dataclass(frozen=True)
class PhotoSlot:
    key: str
    missing_message: str
    min_count: int = 1
    max_count: int = 1

    @property
    def multiple(self) -> bool:
        return self.max_count > 1


@dataclass(frozen=True)
class FormSpec:
    """Everything that differs between the feedback forms."""

    domain: str
    form_type: str
    endpoint: str
    fields: Tuple[FieldRule, ...]
    photos: PhotoSlot
    signature_key: str = "signature"
    name_field: str = "name"
    contact_field: str = "contact"
    role_field: Optional[str] = None
    id_field: Optional[str] = None
    required_identity: Tuple[str, ...] = ()
    derive_names: bool = False


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _to_payload_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float, str)):
        return value
    return str(value)


def derive_name_parts(identity: Identity, name: Optional[str]) -> Tuple[str, str]:
    """First/last name from the identity, falling back to the form's full name."""
    first = identity.first_name.strip()
    last = identity.last_name.strip()
    if (not first or not last) and name and name.strip():
        parts = name.strip().split()
        if not first:
            first = parts.pop(0) if parts else ""
        if not last:
            last = " ".join(parts)
    return first, last


def validate(
    spec: FormSpec,
    form: Mapping[str, Any],
    identity: Identity,
    *,
    photo_count: int,
    has_signature: bool,
) -> Dict[str, str]:
    """Return {field: message} for every failing field, in form order."""
    errors: Dict[str, str] = {}
    for rule in spec.fields:
        value = form.get(rule.name)
        if not rule.active(form):
            continue
        if _blank(value):
            if rule.required:
                errors[rule.name] = f"{rule.label} is required."
            continue
        if rule.pattern is not None and not rule.pattern.match(str(value).strip()):
            errors[rule.name] = rule.pattern_message or f"{rule.label} is invalid."

    slot = spec.photos
    if photo_count < slot.min_count:
        errors[slot.key] = slot.missing_message
    elif photo_count > slot.max_count:
        errors[slot.key] = f"You can upload a maximum of {slot.max_count} images."

    if not has_signature:
        errors[spec.signature_key] = "Signature is required."

    carried = identity.payload_fields()
    for key in spec.required_identity:
        if _blank(carried.get(key)):
            errors[key] = f"{key} is required."
    return errors


def assemble_payload(
    spec: FormSpec,
    form: Mapping[str, Any],
    identity: Identity,
    *,
    photos: EncodedPhotos,
    signature: str,
) -> Dict[str, Any]:
    """
    Merge identity fields, the form's own fields and encoded media into the
    flat payload the server expects, tagged with `formType`.

    Every key is present; unknown values are "".
    """
    payload: Dict[str, Any] = dict(identity.payload_fields())
    if spec.derive_names:
        first, last = derive_name_parts(identity, form.get(spec.name_field))
        payload["firstName"] = first
        payload["lastName"] = last

    for rule in spec.fields:
        value = form.get(rule.name)
        if not rule.active(form) or _blank(value):
            payload[rule.payload_key] = ""
        elif rule.format is not None:
            payload[rule.payload_key] = rule.format(value)
        else:
            payload[rule.payload_key] = _to_payload_value(value)

    if spec.photos.multiple:
        payload[spec.photos.key] = [photos] if isinstance(photos, str) else list(photos)
    else:
        payload[spec.photos.key] = photos if isinstance(photos, str) else (photos[0] if photos else "")
    payload[spec.signature_key] = signature
    payload["formType"] = spec.form_type
    return payload


def prefill(spec: FormSpec, identity: Identity) -> Dict[str, str]:
    """Initial form values carried over from the identification step."""
    values: Dict[str, str] = {}
    if identity.first_name or identity.last_name:
        values[spec.name_field] = identity.full_name
        values[spec.contact_field] = identity.clean_contact
        if spec.role_field:
            values[spec.role_field] = identity.role
    if spec.id_field and identity.employee_id:
        # Forms without a role selector always ask for the ID
        if spec.role_field is None or identity.is_staff:
            values[spec.id_field] = identity.employee_id
    return values


def campus_selection_types(identity: Identity) -> Tuple[str, ...]:
    if identity.employee_status == "Employee":
        return ("feedback", "new idea", "escalation", "event")
    return ("event", "others")


# -------- Registered forms --------

_SELFIE = PhotoSlot("selfie", "A selfie is required.")

CAFETERIA = FormSpec(
    domain="cafeteria",
    form_type="CafeteriaFeedback",
    endpoint="/form-submission/add-info",
    fields=(
        FieldRule("eventName", "Event Name"),
        FieldRule("name", "Name"),
        FieldRule("contact", "Contact number", pattern=PHONE_10_15_RE,
                  pattern_message="Contact number must be 10-15 digits."),
        FieldRule("visitorType", "Visitor/Staff status"),
        FieldRule("idNumber", "ID Number", when=("visitorType", STAFF)),
        FieldRule("feedback", "Feedback", required=False),
    ),
    photos=_SELFIE,
    role_field="visitorType",
    id_field="idNumber",
    required_identity=("email",),
    derive_names=True,
)

MENU = FormSpec(
    domain="menu",
    form_type="MenuFeedback",
    endpoint="/form-submission/add-info",
    fields=(
        FieldRule("eventName", "Event Name"),
        FieldRule("eventDate", "Event Date", format=format_date),
        FieldRule("name", "Name"),
        FieldRule("contact", "Contact number", pattern=PHONE_10_15_RE,
                  pattern_message="Contact number must be 10-15 digits."),
        FieldRule("visitorType", "Visitor/Staff status"),
        FieldRule("idNumber", "ID Number", when=("visitorType", STAFF)),
        FieldRule("feedback", "Feedback", required=False),
    ),
    photos=_SELFIE,
    role_field="visitorType",
    id_field="idNumber",
    required_identity=("email",),
    derive_names=True,
)

CAMPUS = FormSpec(
    domain="campus",
    form_type="CampusFeedback",
    endpoint="/campus-form/add-info",
    fields=(
        FieldRule("selectionType", "Selection type"),
        FieldRule("eventName", "Event Name"),
        FieldRule("eventDate", "Event Date", key="visitDate", format=format_date),
        FieldRule("name", "Name"),
        FieldRule("mobileNumber", "Mobile number", pattern=TEN_DIGITS_RE,
                  pattern_message="Mobile number must be 10 digits."),
        FieldRule("userType", "Visitor/Staff status"),
        FieldRule("staffId", "Staff ID", when=("userType", STAFF)),
        FieldRule("feedback", "Feedback"),
    ),
    photos=PhotoSlot("selfieImage", "A selfie is required."),
    contact_field="mobileNumber",
    role_field="userType",
    id_field="staffId",
)

SECURITY = FormSpec(
    domain="security",
    form_type="SecurityIncident",
    endpoint="/security-form/add-info",
    fields=(
        FieldRule("employeeName", "Employee Name"),
        FieldRule("name", "Name"),
        FieldRule("mobileNumber", "Mobile number", pattern=TEN_DIGITS_RE,
                  pattern_message="Mobile number must be 10 digits."),
        FieldRule("staffId", "Staff ID"),
        FieldRule("verification", "Verification"),
        FieldRule("incidentReport", "Incident report"),
    ),
    photos=PhotoSlot("images", "At least one incident image is required.", min_count=1, max_count=10),
    contact_field="mobileNumber",
    id_field="staffId",
)

FORMS: Dict[str, FormSpec] = {f.domain: f for f in (MENU, CAFETERIA, CAMPUS, SECURITY)}


def get_form(domain: str) -> FormSpec:
    """Resolve a domain selection ("menu", "cafeteria", ...) to its form."""
    try:
        return FORMS[domain.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown feedback domain: {domain!r}") from None


__all__ = [
    "CAFETERIA",
    "CAMPUS",
    "FORMS",
    "MENU",
    "SECURITY",
    "FieldRule",
    "FormSpec",
    "PhotoSlot",
    "assemble_payload",
    "campus_selection_types",
    "derive_name_parts",
    "format_date",
    "get_form",
    "prefill",
    "validate",
]

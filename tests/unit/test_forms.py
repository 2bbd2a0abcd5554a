from __future__ import annotations

from datetime import date
from typing import Any, Dict

import pytest

from intake.forms import (
    CAFETERIA,
    CAMPUS,
    MENU,
    SECURITY,
    assemble_payload,
    campus_selection_types,
    derive_name_parts,
    format_date,
    get_form,
    prefill,
    validate,
)
from intake.models import IDENTITY_KEYS, Identity


def _cafeteria_state(**overrides: Any) -> Dict[str, Any]:
    state: Dict[str, Any] = {
        "eventName": "Lunch",
        "name": "Jane Doe",
        "contact": "9876543210",
        "visitorType": "Visitor",
        "idNumber": "",
        "feedback": "Great food",
    }
    state.update(overrides)
    return state


def _identity(**overrides: str) -> Identity:
    data = {"email": "jane@example.com"}
    data.update(overrides)
    return Identity.from_form(data)


def _validate(spec, state, identity=None, *, photos=1, signature=True):
    return validate(spec, state, identity or _identity(), photo_count=photos, has_signature=signature)


def test_valid_cafeteria_form_has_no_errors():
    assert _validate(CAFETERIA, _cafeteria_state()) == {}


def test_every_failing_field_is_reported():
    state = _cafeteria_state(contact="", eventName="", name="   ")
    errors = _validate(CAFETERIA, state, photos=0, signature=False)
    assert list(errors) == ["eventName", "name", "contact", "selfie", "signature"]
    assert errors["contact"] == "Contact number is required."


def test_contact_pattern():
    errors = _validate(CAFETERIA, _cafeteria_state(contact="12345"))
    assert errors == {"contact": "Contact number must be 10-15 digits."}
    assert _validate(CAFETERIA, _cafeteria_state(contact="123456789012345")) == {}
    assert "contact" in _validate(CAFETERIA, _cafeteria_state(contact="98765-43210"))


def test_id_required_only_for_staff():
    staff = _validate(CAFETERIA, _cafeteria_state(visitorType="Staff", idNumber=""))
    assert list(staff) == ["idNumber"]

    visitor = _validate(CAFETERIA, _cafeteria_state(visitorType="Visitor", idNumber=""))
    assert visitor == {}


def test_campus_staff_id_conditional():
    state = {
        "selectionType": "event",
        "eventName": "Open day",
        "eventDate": date(2024, 9, 3),
        "name": "Jane Doe",
        "mobileNumber": "9876543210",
        "userType": "Staff",
        "staffId": "",
        "feedback": "Nice",
    }
    assert list(_validate(CAMPUS, state)) == ["staffId"]
    state["userType"] = "Visitor"
    assert _validate(CAMPUS, state) == {}


def test_campus_mobile_must_be_ten_digits():
    errors = _validate(CAMPUS, {"mobileNumber": "98765432101"})
    assert errors["mobileNumber"] == "Mobile number must be 10 digits."


def test_email_required_on_identity_for_cafeteria():
    errors = _validate(CAFETERIA, _cafeteria_state(), identity=Identity())
    assert list(errors) == ["email"]


def test_security_photo_bounds():
    state = {
        "employeeName": "Guard",
        "name": "Jane Doe",
        "mobileNumber": "9876543210",
        "staffId": "S-1",
        "verification": "Verified",
        "incidentReport": "Door left open",
    }
    assert _validate(SECURITY, state, photos=3) == {}
    assert _validate(SECURITY, state, photos=0) == {"images": "At least one incident image is required."}
    assert _validate(SECURITY, state, photos=11) == {"images": "You can upload a maximum of 10 images."}
    assert "staffId" in _validate(SECURITY, dict(state, staffId=""), photos=1)


def test_cafeteria_payload_derives_names_and_defaults_everything():
    payload = assemble_payload(
        CAFETERIA,
        {"name": "Jane Doe", "contact": "9876543210", "feedback": "Great food"},
        Identity(),
        photos="data:image/jpeg;base64,AAA",
        signature="data:image/jpeg;base64,BBB",
    )
    assert payload["firstName"] == "Jane"
    assert payload["lastName"] == "Doe"
    assert payload["contact"] == "9876543210"
    assert payload["feedback"] == "Great food"
    assert payload["eventName"] == ""
    assert payload["idNumber"] == ""
    assert payload["selfie"] == "data:image/jpeg;base64,AAA"
    assert payload["signature"] == "data:image/jpeg;base64,BBB"
    assert payload["formType"] == "CafeteriaFeedback"
    for key in IDENTITY_KEYS:
        assert key in payload
    assert all(v is not None for v in payload.values())


def test_id_number_only_sent_for_staff():
    visitor = assemble_payload(
        CAFETERIA, _cafeteria_state(visitorType="Visitor", idNumber="E-77"), _identity(), photos="p", signature="s"
    )
    staff = assemble_payload(
        CAFETERIA, _cafeteria_state(visitorType="Staff", idNumber="E-77"), _identity(), photos="p", signature="s"
    )
    assert visitor["idNumber"] == ""
    assert staff["idNumber"] == "E-77"


def test_identity_names_win_over_form_name():
    payload = assemble_payload(
        MENU,
        {"name": "Someone Else", "eventDate": date(2024, 9, 3)},
        _identity(firstName="Jane", lastName="Doe"),
        photos="p",
        signature="s",
    )
    assert (payload["firstName"], payload["lastName"]) == ("Jane", "Doe")
    assert payload["eventDate"] == "03/09/2024"
    assert payload["formType"] == "MenuFeedback"


def test_campus_payload_uses_visit_date_key_and_identity_contact():
    payload = assemble_payload(
        CAMPUS,
        {"eventDate": "2024-12-25", "mobileNumber": "9876543210", "name": "J D"},
        _identity(firstName="Jane", contact="1112223334"),
        photos="p",
        signature="s",
    )
    assert payload["visitDate"] == "25/12/2024"
    assert "eventDate" not in payload
    assert payload["contact"] == "1112223334"
    assert payload["mobileNumber"] == "9876543210"
    assert payload["selfieImage"] == "p"
    # Campus does not split the free-text name
    assert payload["lastName"] == ""


def test_security_payload_lists_images():
    payload = assemble_payload(SECURITY, {}, Identity(), photos=["a", "b"], signature="s")
    assert payload["images"] == ["a", "b"]
    single = assemble_payload(SECURITY, {}, Identity(), photos="a", signature="s")
    assert single["images"] == ["a"]
    assert payload["formType"] == "SecurityIncident"


def test_payload_key_order_starts_with_identity():
    payload = assemble_payload(CAFETERIA, _cafeteria_state(), _identity(), photos="p", signature="s")
    assert list(payload)[: len(IDENTITY_KEYS)] == list(_identity().payload_fields())
    assert list(payload)[-1] == "formType"


@pytest.mark.parametrize(
    "first,last,name,expected",
    [
        ("", "", "Jane Doe", ("Jane", "Doe")),
        ("", "", "Mary Ann van Dyke", ("Mary", "Ann van Dyke")),
        ("", "", "Cher", ("Cher", "")),
        ("Jane", "", "Jane Doe", ("Jane", "Jane Doe")),
        ("Jane", "Doe", "Other Person", ("Jane", "Doe")),
        ("", "", None, ("", "")),
    ],
)
def test_derive_name_parts(first, last, name, expected):
    identity = Identity(firstName=first, lastName=last)
    assert derive_name_parts(identity, name) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        (date(2024, 1, 5), "05/01/2024"),
        ("2024-01-05", "05/01/2024"),
        ("2024-01-05T10:30:00", "05/01/2024"),
        ("05/01/2024", "05/01/2024"),
    ],
)
def test_format_date(value, expected):
    assert format_date(value) == expected


def test_prefill_for_staff_identity():
    identity = _identity(
        firstName="Jane",
        lastName="Doe",
        contact='{"contact": "9876543210"}',
        employeeStatus="Employee",
        employeeType="KGISL",
        employeeId="E-77",
    )
    assert prefill(CAFETERIA, identity) == {
        "name": "Jane Doe",
        "contact": "9876543210",
        "visitorType": "Staff",
        "idNumber": "E-77",
    }
    assert prefill(CAMPUS, identity) == {
        "name": "Jane Doe",
        "mobileNumber": "9876543210",
        "userType": "Staff",
        "staffId": "E-77",
    }


def test_prefill_for_visitor_identity():
    identity = _identity(firstName="Jane", contact="9876543210", employeeStatus="Visitors")
    assert prefill(MENU, identity) == {"name": "Jane", "contact": "9876543210", "visitorType": "Visitor"}


def test_prefill_security_always_carries_employee_id():
    identity = _identity(firstName="Jane", employeeId="X-1", employeeType="Other")
    assert prefill(SECURITY, identity)["staffId"] == "X-1"


def test_prefill_without_names_is_empty():
    assert prefill(CAFETERIA, Identity()) == {}


def test_campus_selection_types():
    assert campus_selection_types(_identity(employeeStatus="Employee")) == ("feedback", "new idea", "escalation", "event")
    assert campus_selection_types(_identity(employeeStatus="Student")) == ("event", "others")


def test_get_form():
    assert get_form("menu") is MENU
    assert get_form(" Cafeteria ") is CAFETERIA
    assert get_form("security").endpoint == "/security-form/add-info"
    assert get_form("campus").endpoint == "/campus-form/add-info"
    with pytest.raises(KeyError):
        get_form("library")

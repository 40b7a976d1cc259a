"""Small analyzed-form documents shared by the test modules."""
from typing import Any, Dict, List, Optional

from form_model import FormModel, form_model_from_dict


def control(
    name: str,
    type: str = "TextField",
    section: Optional[str] = None,
    repeating: Optional[str] = None,
    options: Optional[List[str]] = None,
    binding: Optional[str] = None,
    doc_index: int = 0,
    **extra: Any,
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "Name": name,
        "Type": type,
        "Label": name,
        "Binding": binding or f"my:{name}",
        "DocIndex": doc_index,
    }
    if section:
        doc["ParentSection"] = section
    if repeating:
        doc["IsInRepeatingSection"] = True
        doc["RepeatingSectionName"] = repeating
    if options:
        doc["DataOptions"] = [{"Value": v, "DisplayText": v, "Order": i} for i, v in enumerate(options)]
    doc.update(extra)
    return doc


def section(name: str, type: str = "repeating", parent: Optional[str] = None) -> Dict[str, Any]:
    doc = {"Name": name, "Type": type}
    if parent:
        doc["ParentSection"] = parent
    return doc


def form(name: str, controls: List[Dict[str, Any]], sections: Optional[List[Dict[str, Any]]] = None) -> FormModel:
    return form_model_from_dict(
        {"FormName": name, "Views": [{"ViewName": "View 1", "Controls": controls, "Sections": sections or []}]}
    )


def travel_request_doc() -> Dict[str, Any]:
    """Main fields, a lookup-backed dropdown and a two-level repeating chain."""
    return {
        "FormName": "TravelRequest",
        "Views": [
            {
                "ViewName": "View 1",
                "Controls": [
                    control("Employee", doc_index=1),
                    control("Approved", "DropDown", options=["Yes", "No"], doc_index=2),
                    control("Destination", section="Trips", repeating="Trips", doc_index=3),
                    control("TripDate", "DatePicker", section="Trips", repeating="Trips", doc_index=4),
                    control("Leg", section="RoundTrip", repeating="RoundTrip", doc_index=5),
                    control("Submit", "Button", doc_index=6),
                ],
                "Sections": [
                    section("Trips"),
                    section("RoundTrip", parent="Trips"),
                ],
            }
        ],
    }


def travel_request() -> FormModel:
    return form_model_from_dict(travel_request_doc())


def expenses() -> FormModel:
    return form(
        "Expenses",
        [
            control("Amount", "Number", doc_index=1),
            control("Paid", "CheckBox", doc_index=2),
            control("Item", section="Lines", repeating="Lines", doc_index=3),
        ],
        [section("Lines")],
    )


def orders() -> FormModel:
    """Two closed-choice controls sharing a name, one per table."""
    return form(
        "Orders",
        [
            control("Priority", "DropDown", options=["High", "Low"], doc_index=0),
            control("Priority", "DropDown", repeating="Items", options=["A", "B"], binding="my:Items/Priority", doc_index=1),
        ],
        [section("Items")],
    )

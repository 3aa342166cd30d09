"""
Attribute builders for rendering form controls.

Each builder takes a field accessor and returns a plain dict of attributes
(snake_case keys) for the control. Reading through the accessor records
the same dependencies a hand-written render would.
"""
from typing import Any, Dict, Optional

from formstate.field import FieldAccessor
from formstate.paths import is_container, normalize


def _aria_attributes(
    field: FieldAccessor,
    aria_attributes: bool = True,
    aria_described_by: Optional[str] = None,
) -> Dict[str, Any]:
    if not aria_attributes:
        return {}
    props: Dict[str, Any] = {}
    invalid = not field.valid
    described_by = [field.error_id] if invalid else []
    if aria_described_by:
        described_by.append(aria_described_by)
    if invalid:
        props["aria_invalid"] = True
    if described_by:
        props["aria_describedby"] = " ".join(described_by)
    return props


def _control_props(field: FieldAccessor, **options) -> Dict[str, Any]:
    props: Dict[str, Any] = {
        "id": field.id,
        "name": field.name,
        "form": field.form_id,
    }
    if field.constraint.required:
        props["required"] = True
    props.update(_aria_attributes(field, **options))
    return props


def get_form_props(form: FieldAccessor, aria_attributes: bool = True) -> Dict[str, Any]:
    """Attributes of the ``<form>`` element; ``form`` is the root accessor."""
    props: Dict[str, Any] = {"id": form.form_id, "no_validate": True}
    if aria_attributes and not form.valid:
        props["aria_invalid"] = True
        props["aria_describedby"] = form.error_id
    return props


def get_fieldset_props(field: FieldAccessor, aria_attributes: bool = True) -> Dict[str, Any]:
    props: Dict[str, Any] = {"id": field.id, "name": field.name, "form": field.form_id}
    if aria_attributes and not field.valid:
        props["aria_invalid"] = True
        props["aria_describedby"] = field.error_id
    return props


def get_input_props(
    field: FieldAccessor,
    type: str = "text",
    value: Any = True,
    aria_attributes: bool = True,
    aria_described_by: Optional[str] = None,
) -> Dict[str, Any]:
    """Attributes of an ``<input>``.

    Args:
        field: Accessor of the field
        type: Input type
        value: For checkboxes and radios the submitted value (``True`` means
               ``"on"``); ``False`` omits default value attributes entirely
        aria_attributes: Include ``aria_invalid``/``aria_describedby``
        aria_described_by: Extra id appended to ``aria_describedby``
    """
    props = _control_props(field, aria_attributes=aria_attributes, aria_described_by=aria_described_by)
    props["type"] = type

    constraint = field.constraint
    for name in ("min_length", "max_length", "min", "max", "step", "pattern", "multiple"):
        setting = getattr(constraint, name)
        if setting is not None:
            props[name] = setting

    if value is False or type == "file":
        return props

    default = field.default_value
    if type in ("checkbox", "radio"):
        submitted = "on" if value is True else value
        props["value"] = submitted
        if isinstance(default, bool):
            props["default_checked"] = default
        else:
            props["default_checked"] = normalize(default) == normalize(submitted)
    else:
        normalized = None if is_container(default) else normalize(default)
        if normalized is not None:
            props["default_value"] = normalized
    return props


def get_textarea_props(
    field: FieldAccessor,
    aria_attributes: bool = True,
    aria_described_by: Optional[str] = None,
) -> Dict[str, Any]:
    props = _control_props(field, aria_attributes=aria_attributes, aria_described_by=aria_described_by)
    constraint = field.constraint
    for name in ("min_length", "max_length"):
        if getattr(constraint, name) is not None:
            props[name] = getattr(constraint, name)
    default = normalize(field.default_value)
    if default is not None and not is_container(default):
        props["default_value"] = default
    return props


def get_select_props(
    field: FieldAccessor,
    aria_attributes: bool = True,
    aria_described_by: Optional[str] = None,
) -> Dict[str, Any]:
    props = _control_props(field, aria_attributes=aria_attributes, aria_described_by=aria_described_by)
    if field.constraint.multiple:
        props["multiple"] = True
    default = normalize(field.default_value)
    if default is not None:
        props["default_value"] = default
    return props

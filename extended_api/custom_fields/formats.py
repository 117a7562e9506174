"""Custom field formats and the attributes each one exposes.

Capabilities (multiple values, filtering, search) are reported by the format
itself so the attribute policy never hardcodes them per format name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CustomFieldType(str, Enum):
    ISSUE = "IssueCustomField"
    USER = "UserCustomField"
    PROJECT = "ProjectCustomField"
    VERSION = "VersionCustomField"
    GROUP = "GroupCustomField"
    TIME_ENTRY = "TimeEntryCustomField"
    TIME_ENTRY_ACTIVITY = "TimeEntryActivityCustomField"
    DOCUMENT = "DocumentCustomField"
    DOCUMENT_CATEGORY = "DocumentCategoryCustomField"
    ISSUE_PRIORITY = "IssuePriorityCustomField"

    @classmethod
    def parse(cls, value: object) -> CustomFieldType | None:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None

    @property
    def customized_type(self) -> str:
        # IssueCustomField -> issue, TimeEntryActivityCustomField -> time_entry_activity
        stem = self.value[: -len("CustomField")]
        return "".join("_" + c.lower() if c.isupper() else c for c in stem).lstrip("_")


@dataclass(frozen=True)
class FieldFormat:
    name: str
    display_attributes: tuple[str, ...] = ()
    assignable_attributes: tuple[str, ...] = ()
    # Only for IssueCustomField
    issue_attributes: tuple[str, ...] = ()
    multiple_supported: bool = False
    is_filter_supported: bool = True
    searchable_supported: bool = False


def _fmt(name: str, attrs: tuple[str, ...], **kw: object) -> FieldFormat:
    display = tuple(kw.pop("display", attrs))  # type: ignore[arg-type]
    return FieldFormat(name=name, display_attributes=display, assignable_attributes=attrs, **kw)  # type: ignore[arg-type]


_TEXTUAL = ("regexp", "min_length", "max_length", "text_formatting", "default_value")
_NUMERIC = ("regexp", "min_length", "max_length", "default_value", "url_pattern", "thousands_delimiter")

BUILTIN_FORMATS: dict[str, FieldFormat] = {
    f.name: f
    for f in (
        _fmt("string", _TEXTUAL + ("url_pattern",), searchable_supported=True),
        _fmt("text", _TEXTUAL, issue_attributes=("full_width_layout",), searchable_supported=True),
        _fmt("link", ("regexp", "min_length", "max_length", "url_pattern", "default_value")),
        _fmt("int", _NUMERIC),
        _fmt("float", _NUMERIC),
        _fmt("date", ("default_value", "url_pattern")),
        _fmt(
            "list",
            ("possible_values", "default_value", "url_pattern", "edit_tag_style"),
            multiple_supported=True,
            searchable_supported=True,
        ),
        _fmt("bool", ("default_value", "url_pattern", "edit_tag_style")),
        _fmt(
            "enumeration",
            ("default_value", "url_pattern", "edit_tag_style"),
            display=("default_value", "url_pattern", "edit_tag_style", "enumerations"),
            multiple_supported=True,
        ),
        _fmt("user", ("user_role", "edit_tag_style"), multiple_supported=True),
        _fmt("version", ("version_status", "edit_tag_style"), multiple_supported=True),
        _fmt("attachment", ("extensions_allowed",), is_filter_supported=False),
        _fmt("progressbar", ("ratio_interval",)),
    )
}

_DEPENDENCY_ATTRS = ("parent_custom_field_id", "value_dependencies", "default_value_dependencies", "hide_when_disabled")

# Formats contributed by the depending custom fields extension. Not installed
# by default; pass to AttributePolicy(extensions=...) where the extension runs.
DEPENDING_CUSTOM_FIELD_FORMATS: dict[str, FieldFormat] = {
    f.name: f
    for f in (
        _fmt(
            "depending_list",
            ("possible_values", "default_value", "url_pattern", "edit_tag_style") + _DEPENDENCY_ATTRS,
            multiple_supported=True,
            searchable_supported=True,
        ),
        _fmt(
            "depending_enumeration",
            ("default_value", "url_pattern", "edit_tag_style") + _DEPENDENCY_ATTRS,
            display=("default_value", "url_pattern", "edit_tag_style", "enumerations") + _DEPENDENCY_ATTRS,
            multiple_supported=True,
        ),
        _fmt(
            "extended_user",
            ("group_ids", "exclude_admins", "show_active", "show_registered", "show_locked", "edit_tag_style"),
            multiple_supported=True,
        ),
    )
}

__all__ = ["CustomFieldType", "FieldFormat", "BUILTIN_FORMATS", "DEPENDING_CUSTOM_FIELD_FORMATS"]

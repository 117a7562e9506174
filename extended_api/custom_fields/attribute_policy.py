"""Which custom field attributes are displayed and assignable.

The answer depends on the custom field type (IssueCustomField,
UserCustomField, ...) and on its format (string, list, depending_list, ...).
The same policy filters incoming create/update payloads and picks what the
API renders, so both directions agree.

Read and write representations of a relation differ: ``roles`` is rendered,
``role_ids`` is assigned.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .formats import BUILTIN_FORMATS, CustomFieldType, FieldFormat

FILTERABLE_TYPES = frozenset({
    CustomFieldType.ISSUE,
    CustomFieldType.USER,
    CustomFieldType.PROJECT,
    CustomFieldType.VERSION,
    CustomFieldType.GROUP,
    CustomFieldType.TIME_ENTRY,
    CustomFieldType.TIME_ENTRY_ACTIVITY,
    CustomFieldType.DOCUMENT_CATEGORY,
})
SEARCHABLE_TYPES = frozenset({CustomFieldType.ISSUE, CustomFieldType.PROJECT})
MULTIPLE_TYPES = frozenset(CustomFieldType)
ROLE_TYPES = frozenset({
    CustomFieldType.ISSUE,
    CustomFieldType.TIME_ENTRY,
    CustomFieldType.PROJECT,
    CustomFieldType.VERSION,
})
TRACKER_TYPES = frozenset({CustomFieldType.ISSUE})
PROJECT_TYPES = frozenset({CustomFieldType.ISSUE})
USER_TYPES = frozenset({CustomFieldType.USER})

BASE_DISPLAY_ATTRIBUTES = ("id", "name", "description", "type", "field_format", "is_required", "position")
BASE_ASSIGNABLE_ATTRIBUTES = ("name", "description", "field_format", "is_required", "position")

BOOLEAN_ATTRIBUTES = frozenset({
    "is_required",
    "is_for_all",
    "is_filter",
    "searchable",
    "visible",
    "editable",
    "multiple",
    "thousands_delimiter",
    "full_width_layout",
    "hide_when_disabled",
    "exclude_admins",
    "show_active",
    "show_registered",
    "show_locked",
})

TRUTHY_STRINGS = frozenset({"true", "1"})


@dataclass(frozen=True)
class FieldPolicy:
    displayable: frozenset[str]
    assignable: frozenset[str]


EMPTY_POLICY = FieldPolicy(frozenset(), frozenset())


class AttributePolicy:
    def __init__(self, extensions: Mapping[str, FieldFormat] | None = None):
        self.extensions: dict[str, FieldFormat] = dict(extensions or {})

    def format_for(self, format_name: str) -> FieldFormat | None:
        return BUILTIN_FORMATS.get(format_name) or self.extensions.get(format_name)

    def known_format(self, format_name: Any) -> bool:
        return isinstance(format_name, str) and self.format_for(format_name) is not None

    def resolve(self, type_name: Any, format_name: Any) -> FieldPolicy:
        if not isinstance(type_name, str) or not isinstance(format_name, str):
            return EMPTY_POLICY
        kind = CustomFieldType.parse(type_name)
        fmt = self.format_for(format_name)

        display = set(BASE_DISPLAY_ATTRIBUTES)
        assignable = set(BASE_ASSIGNABLE_ATTRIBUTES)
        if kind is not None:
            display.add("customized_type")

        if fmt is not None:
            display.update(fmt.display_attributes)
            assignable.update(fmt.assignable_attributes)
            if kind is CustomFieldType.ISSUE:
                display.update(fmt.issue_attributes)
                assignable.update(fmt.issue_attributes)

        for shown, assigned, types in (
            ("roles", "role_ids", ROLE_TYPES),
            ("trackers", "tracker_ids", TRACKER_TYPES),
            ("projects", "project_ids", PROJECT_TYPES),
        ):
            if kind in types:
                display.add(shown)
                assignable.add(assigned)

        extra: set[str] = set()
        if fmt is not None:
            if kind in MULTIPLE_TYPES and fmt.multiple_supported:
                extra.add("multiple")
            if kind in FILTERABLE_TYPES and fmt.is_filter_supported:
                extra.add("is_filter")
            if kind in SEARCHABLE_TYPES and fmt.searchable_supported:
                extra.add("searchable")
        if kind in USER_TYPES:
            extra.update(("visible", "editable"))
        if kind is CustomFieldType.ISSUE:
            extra.add("is_for_all")
        display |= extra
        assignable |= extra

        return FieldPolicy(frozenset(display), frozenset(assignable))

    def filter_assignable(self, type_name: Any, format_name: Any, raw: Any) -> dict[str, Any]:
        """Keep only assignable keys of ``raw``, booleans cast."""
        if not isinstance(raw, Mapping):
            return {}
        allowed = self.resolve(type_name, format_name).assignable
        return {
            str(key): self.cast_boolean(str(key), value)
            for key, value in raw.items()
            if str(key) in allowed
        }

    @staticmethod
    def cast_boolean(field_name: str, raw: Any) -> Any:
        if field_name not in BOOLEAN_ATTRIBUTES:
            return raw
        if raw is True:
            return True
        return str(raw).strip().lower() in TRUTHY_STRINGS


__all__ = [
    "AttributePolicy",
    "FieldPolicy",
    "EMPTY_POLICY",
    "BOOLEAN_ATTRIBUTES",
    "FILTERABLE_TYPES",
    "SEARCHABLE_TYPES",
    "ROLE_TYPES",
    "TRACKER_TYPES",
    "PROJECT_TYPES",
    "USER_TYPES",
]

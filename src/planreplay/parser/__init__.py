"""Showplan XML parsing module."""

from planreplay.parser.showplan import (
    SELECT_MARKER,
    ColumnUse,
    ParameterBinding,
    StatementNode,
    parse_plan_document,
    trim_compiled_value,
    walk_plan_document,
)

__all__ = [
    "SELECT_MARKER",
    "ColumnUse",
    "ParameterBinding",
    "StatementNode",
    "parse_plan_document",
    "trim_compiled_value",
    "walk_plan_document",
]

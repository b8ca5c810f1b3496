"""
Parser for SQL Server Showplan XML as stored in Query Store.

Query Store keeps the compiled plan for every captured plan id. Two parts
of that document matter for replay:

- ``StmtSimple`` elements, whose ``StatementText`` holds the statement and
  whose ``StatementType`` says what kind of statement it is.
- ``ColumnReference`` elements directly under ``ParameterList``, which hold
  the parameter name, declared type and the value the plan was compiled
  with.

``ColumnReference`` is also used for every ordinary column in output lists,
predicates and so on, with the same attributes. Only the parent element
tells the two apart, so the document is walked once with an explicit
container stack and each element is classified from its own tag plus the
tag of its immediate container.

Example:
    >>> parsed = parse_plan_document(xml_text)
    >>> [p.name for p in parsed.parameters]
    ['@CustomerId']
    >>> parsed.statements[0].is_select
    True
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterator, Union

from planreplay.exceptions import MalformedDocument
from planreplay.models import (
    Parameter,
    ParsedPlan,
    StatementKind,
    StatementRecord,
)

logger = logging.getLogger(__name__)

# StatementType value for SELECT statements (compared case-sensitively)
SELECT_MARKER = "SELECT"

_PARAMETER_CONTAINER = "ParameterList"
_COLUMN_NODE = "ColumnReference"
_STATEMENT_NODE = "StmtSimple"


# ── Node classification ──────────────────────────────────────────────


@dataclass(frozen=True)
class ParameterBinding:
    """A ColumnReference whose immediate container is ParameterList."""

    name: str
    declared_type: str
    compiled_value: str | None


@dataclass(frozen=True)
class ColumnUse:
    """Any other ColumnReference (output lists, predicates, ...)."""

    column: str
    container: str


@dataclass(frozen=True)
class StatementNode:
    """A StmtSimple with non-empty StatementText."""

    text: str
    statement_type: str


PlanNode = Union[ParameterBinding, ColumnUse, StatementNode]


def _local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def trim_compiled_value(value: str | None) -> str | None:
    """
    Remove the parentheses SQL Server wraps compiled values in.

    ``(42)`` becomes ``42`` and ``(N'abc')`` becomes ``N'abc'``. Anything
    else is kept verbatim.
    """
    if value is None:
        return None
    return value.lstrip("(").rstrip(")")


def _classify(elem: ET.Element, tag: str, container: str | None) -> PlanNode | None:
    if tag == _COLUMN_NODE:
        column = elem.get("Column", "")
        if container == _PARAMETER_CONTAINER and column:
            return ParameterBinding(
                name=column,
                declared_type=elem.get("ParameterDataType", ""),
                compiled_value=trim_compiled_value(
                    elem.get("ParameterCompiledValue")
                ),
            )
        return ColumnUse(column=column, container=container or "")

    if tag == _STATEMENT_NODE:
        text = elem.get("StatementText", "")
        if text:
            return StatementNode(
                text=text,
                statement_type=elem.get("StatementType", ""),
            )

    return None


def walk_plan_document(root: ET.Element) -> Iterator[PlanNode]:
    """
    Walk a parsed document once, yielding classified nodes in document order.

    The stack holds (local tag, child iterator) pairs; the container of
    the next child is the tag on top of the stack.
    """
    root_tag = _local_name(root.tag)
    node = _classify(root, root_tag, None)
    if node is not None:
        yield node

    stack: list[tuple[str, Iterator[ET.Element]]] = [(root_tag, iter(root))]
    while stack:
        container, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            continue

        tag = _local_name(child.tag)
        node = _classify(child, tag, container)
        if node is not None:
            yield node
        stack.append((tag, iter(child)))


def parse_plan_document(
    document: str,
    plan_id: int | None = None,
) -> ParsedPlan:
    """
    Parse one Showplan XML document into parameters and statements.

    Parameters are de-duplicated by name (first occurrence wins): batch
    plans repeat the same ParameterList under every statement.

    Args:
        document: Raw Showplan XML text.
        plan_id: Owning plan, used only in error context.

    Returns:
        ParsedPlan, possibly with no parameters and no statements.

    Raises:
        MalformedDocument: If the text is empty or not well-formed XML.
    """
    if not document or not document.strip():
        raise MalformedDocument("Empty plan document", plan_id=plan_id)

    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise MalformedDocument(
            "Plan document is not valid Showplan XML",
            plan_id=plan_id,
            detail=str(e),
        ) from e

    parameters: list[Parameter] = []
    seen: set[str] = set()
    statements: list[StatementRecord] = []

    for node in walk_plan_document(root):
        if isinstance(node, ParameterBinding):
            if node.name in seen:
                continue
            seen.add(node.name)
            parameters.append(Parameter(
                name=node.name,
                declared_type=node.declared_type,
                compiled_value=node.compiled_value,
            ))
        elif isinstance(node, StatementNode):
            kind = (
                StatementKind.SELECT
                if node.statement_type == SELECT_MARKER
                else StatementKind.OTHER
            )
            statements.append(StatementRecord(
                text=node.text,
                kind=kind,
                statement_type=node.statement_type,
                length=len(node.text),
            ))

    logger.debug(
        "Parsed plan %s: %d parameter(s), %d statement(s)",
        plan_id, len(parameters), len(statements),
    )
    return ParsedPlan(parameters=tuple(parameters), statements=tuple(statements))

"""
Parser for query execution plans.

This module handles two input shapes:
- Structured documents in the EXPLAIN (FORMAT JSON) shape: nodes keyed by
  "Node Type" with children under "Plans", optionally wrapped in
  ``[{"Plan": {...}}]``
- Indented EXPLAIN text, one operator per line, nesting given by leading
  whitespace

Error handling philosophy: absorb failures at the smallest granularity.
A bad number becomes zero, a child without "Node Type" is dropped, and only
input with no recognizable structure at all comes back as None. Callers
treat None as "show the raw text". Nothing here raises for bad content;
ParseError is reserved for files that cannot be read.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, NamedTuple

from accelsense.exceptions import ParseError
from accelsense.parser.config import DEFAULT_CONFIG, ParserConfig
from accelsense.parser.models import PlanNode

logger = logging.getLogger(__name__)

# Keys read into typed PlanNode fields; everything else lands in ``extra``.
MODELED_KEYS = frozenset({
    "Node Type",
    "Relation Name",
    "Startup Cost",
    "Total Cost",
    "Plan Rows",
    "Plan Width",
    "Actual Rows",
    "Actual Total Time",
    "Plans",
})

COST_MARKER = "(cost="
ACTUAL_MARKER = "(actual "
CHILD_MARKER = "->"


class OperatorLine(NamedTuple):
    """Fields extracted from a single line of EXPLAIN text."""

    operator: str
    relation: str | None = None
    cost_startup: float = 0.0
    cost_total: float = 0.0
    rows: int = 0
    width: int | None = None
    actual_rows: int | None = None
    actual_time_ms: float | None = None


def parse_plan(
    source: str | dict[str, Any] | list[Any],
    config: ParserConfig | None = None,
) -> PlanNode | None:
    """
    Parse a plan in whichever shape it arrives.

    Dispatch order:
    1. Already-decoded JSON (dict or list) goes to the structured parser
    2. A string is first decoded as JSON and tried as a structured document
    3. Otherwise the string is parsed as indented EXPLAIN text

    Args:
        source: Plan text, JSON text, or a decoded JSON document
        config: Parser limits. Defaults to DEFAULT_CONFIG.

    Returns:
        Root PlanNode, or None when nothing parseable was found

    Example:
        >>> root = parse_plan("Seq Scan on orders  (cost=0.00..431.00 rows=10000 width=16)")
        >>> root.relation
        'orders'
    """
    config = config or DEFAULT_CONFIG

    if isinstance(source, (dict, list)):
        return parse_json_plan(source, config)

    if not isinstance(source, str):
        logger.debug("Unsupported plan source type: %s", type(source).__name__)
        return None

    if not source.strip():
        return None

    try:
        document = json.loads(source)
    except ValueError:
        document = None

    if isinstance(document, (dict, list)):
        node = parse_json_plan(document, config)
        if node is not None:
            return node
        logger.debug("JSON input is not a plan document, trying indented text")

    return parse_text_plan(source, config)


# =============================================================================
# Structured documents
# =============================================================================


def parse_json_plan(
    document: dict[str, Any] | list[Any],
    config: ParserConfig | None = None,
) -> PlanNode | None:
    """
    Parse an EXPLAIN (FORMAT JSON) style document.

    Accepts the single-element array PostgreSQL emits, the inner
    ``{"Plan": {...}}`` object, or a bare node.

    Args:
        document: Decoded JSON document
        config: Parser limits. Defaults to DEFAULT_CONFIG.

    Returns:
        Root PlanNode, or None if the root node has no "Node Type"
    """
    config = config or DEFAULT_CONFIG
    root = _unwrap_document(document)
    if root is None:
        return None
    return _node_from_document(root, 1, config)


def _unwrap_document(document: Any) -> dict[str, Any] | None:
    """
    Find the root plan node inside an EXPLAIN JSON document.

    EXPLAIN (FORMAT JSON) returns: [{"Plan": {...}}]
    We want just the object under "Plan".
    """
    if isinstance(document, list):
        if not document:
            return None
        document = document[0]

    if not isinstance(document, dict):
        return None

    plan = document.get("Plan")
    if isinstance(plan, dict):
        return plan
    return document


def _node_from_document(
    data: Any,
    depth: int,
    config: ParserConfig,
) -> PlanNode | None:
    """Build one PlanNode (and its subtree) from a document node."""
    if not isinstance(data, dict):
        return None

    operator = data.get("Node Type")
    if not isinstance(operator, str) or not operator.strip():
        return None

    children: list[PlanNode] = []
    plans = data.get("Plans")
    if isinstance(plans, list):
        if depth >= config.max_depth and plans:
            logger.warning(
                "Plan deeper than %d levels; dropping %d child plan(s) of '%s'",
                config.max_depth, len(plans), operator,
            )
        else:
            for child_data in plans:
                child = _node_from_document(child_data, depth + 1, config)
                if child is None:
                    logger.debug("Dropping child plan of '%s' without 'Node Type'", operator)
                    continue
                children.append(child)

    relation = data.get("Relation Name")

    return PlanNode(
        operator=operator,
        relation=relation if isinstance(relation, str) else None,
        cost_startup=_as_float(data.get("Startup Cost")),
        cost_total=_as_float(data.get("Total Cost")),
        estimated_rows=_as_count(data.get("Plan Rows")),
        width=_as_count(data.get("Plan Width")) if "Plan Width" in data else None,
        actual_rows=_as_count(data.get("Actual Rows")) if "Actual Rows" in data else None,
        actual_time_ms=(
            _as_float(data.get("Actual Total Time")) if "Actual Total Time" in data else None
        ),
        children=tuple(children),
        extra=_extra_pairs(data),
    )


def _extra_pairs(data: dict[str, Any]) -> tuple[tuple[str, str], ...]:
    """Collect unmodeled scalar (or scalar-list) keys as text, in order."""
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        if key in MODELED_KEYS:
            continue
        if isinstance(value, list) and all(_is_scalar(v) for v in value):
            pairs.append((key, ", ".join(_scalar_text(v) for v in value)))
        elif _is_scalar(value):
            pairs.append((key, _scalar_text(value)))
    return tuple(pairs)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _scalar_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _as_float(value: Any, default: float = 0.0) -> float:
    """Coerce a JSON number to float; anything else becomes the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    number = float(value)
    return number if math.isfinite(number) else default


def _as_count(value: Any, default: int = 0) -> int:
    """Coerce a JSON number to a non-negative int; anything else is the default."""
    number = _as_float(value, default=-1.0)
    if number < 0:
        return default
    return int(number)


# =============================================================================
# Indented text
# =============================================================================


def parse_text_plan(text: str, config: ParserConfig | None = None) -> PlanNode | None:
    """
    Parse indented EXPLAIN text into a plan tree.

    Recognizes PostgreSQL/DataFusion style output like::

        Hash Aggregate  (cost=1.00..2.00 rows=10 width=8)
          ->  Seq Scan on orders  (cost=0.00..1.00 rows=100 width=8)

    A line's leading whitespace count is its depth. Every following line
    indented more than line ``i`` belongs to its subtree; the first line
    indented the same or less ends it. The comparison is on raw indentation
    counts, so ragged input nests by those counts and not by intent.

    Every line is an operator node. When any line carries a "->" marker
    (psql output), a nested unmarked "Key: value" line such as
    "Hash Cond: ..." is additionally copied into the ``extra`` of the node
    it is nested under.

    Blank lines are dropped before nesting is computed, so they neither
    become nodes nor end a subtree.

    Only the first root is returned; trailing top-level lines (footers,
    "Planning Time: ..." lines) are ignored.

    Args:
        text: EXPLAIN text
        config: Parser limits. Defaults to DEFAULT_CONFIG.

    Returns:
        Root PlanNode, or None if the text has no non-blank lines
    """
    config = config or DEFAULT_CONFIG
    lines = _plan_lines(text)
    if not lines:
        return None
    marked = any(_is_marked(line) for line in lines)
    node, _ = _parse_lines(lines, 0, 1, config, marked)
    return node


def _plan_lines(text: str) -> list[str]:
    """Split into lines, dropping blanks and a psql 'QUERY PLAN' header."""
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) >= 2 and lines[0].strip() == "QUERY PLAN" and set(lines[1].strip()) == {"-"}:
        lines = lines[2:]
    return lines


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _is_marked(line: str) -> bool:
    return line.lstrip().startswith(CHILD_MARKER)


def _parse_lines(
    lines: list[str],
    start: int,
    depth: int,
    config: ParserConfig,
    marked: bool = False,
) -> tuple[PlanNode, int]:
    """
    Parse the line at ``start`` and every line nested under it.

    Every nested line becomes a child. In psql-style output (``marked``)
    an unmarked "Sort Key: total" style line is also recorded in this
    node's ``extra``.

    Returns:
        The node and the index of the first line after its subtree
    """
    indent = _indent(lines[start])
    parsed = parse_operator_line(_strip_child_marker(lines[start]))

    children: list[PlanNode] = []
    extra: list[tuple[str, str]] = []
    idx = start + 1
    while idx < len(lines) and _indent(lines[idx]) > indent:
        if depth >= config.max_depth:
            logger.warning(
                "Plan deeper than %d levels; dropping lines nested under '%s'",
                config.max_depth, parsed.operator,
            )
            while idx < len(lines) and _indent(lines[idx]) > indent:
                idx += 1
            break
        if marked and not _is_marked(lines[idx]):
            key, sep, value = lines[idx].strip().partition(": ")
            if sep:
                extra.append((key, value))
        child, idx = _parse_lines(lines, idx, depth + 1, config, marked)
        children.append(child)

    node = PlanNode(
        operator=parsed.operator,
        relation=parsed.relation,
        cost_startup=parsed.cost_startup,
        cost_total=parsed.cost_total,
        estimated_rows=parsed.rows,
        width=parsed.width,
        actual_rows=parsed.actual_rows,
        actual_time_ms=parsed.actual_time_ms,
        children=tuple(children),
        extra=tuple(extra),
    )
    return node, idx


def _strip_child_marker(line: str) -> str:
    """Remove the cosmetic "->" branch marker(s), with or without a space after."""
    stripped = line.strip()
    while stripped.startswith(CHILD_MARKER):
        stripped = stripped[len(CHILD_MARKER):].lstrip()
    return stripped


def parse_operator_line(line: str) -> OperatorLine:
    """
    Split one EXPLAIN text line into its fields.

    "Seq Scan on cur_data  (cost=0.00..1234.56 rows=50000 width=120)" gives
    operator "Seq Scan", relation "cur_data", the two costs, rows and width.
    Without a "(cost=" clause the whole line is the operator name. With a
    cost clause but nothing before it, the whole line is kept as the
    operator too. Numbers that do not parse become zero.
    """
    operator = line
    relation: str | None = None
    cost_startup = 0.0
    cost_total = 0.0
    rows = 0
    width: int | None = None

    cost_at = line.find(COST_MARKER)
    if cost_at != -1:
        before = line[:cost_at].strip()
        head, sep, tail = before.partition(" on ")
        if sep:
            operator = head.strip()
            relation = tail.strip()
        elif before:
            operator = before

        fields = _clause_body(line, cost_at + len(COST_MARKER)).split()
        if fields:
            startup_text, dots, total_text = fields[0].partition("..")
            if dots:
                cost_startup = _parse_float(startup_text)
                cost_total = _parse_float(total_text)
        for token in fields[1:]:
            key, _, value = token.partition("=")
            if key == "rows":
                rows = _parse_count(value)
            elif key == "width":
                width = _parse_count(value)

    actual_rows: int | None = None
    actual_time_ms: float | None = None
    actual_at = line.find(ACTUAL_MARKER)
    if actual_at != -1:
        for token in _clause_body(line, actual_at + len(ACTUAL_MARKER)).split():
            key, _, value = token.partition("=")
            if key == "time":
                _, dots, total_text = value.partition("..")
                actual_time_ms = _parse_float(total_text if dots else value)
            elif key == "rows":
                actual_rows = _parse_count(value)

    return OperatorLine(
        operator=operator,
        relation=relation,
        cost_startup=cost_startup,
        cost_total=cost_total,
        rows=rows,
        width=width,
        actual_rows=actual_rows,
        actual_time_ms=actual_time_ms,
    )


def _clause_body(line: str, start: int) -> str:
    """Text from ``start`` up to the closing parenthesis (or end of line)."""
    end = line.find(")", start)
    return line[start:] if end == -1 else line[start:end]


def _parse_float(text: str) -> float:
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _parse_count(text: str) -> int:
    try:
        number = int(text)
    except ValueError:
        return 0
    return max(number, 0)


# =============================================================================
# Files
# =============================================================================


def read_plan_file(path: str | Path) -> str:
    """
    Read plan text from a file.

    Unlike the parse functions this is strict: an unreadable input is a
    caller mistake, not malformed content.

    Args:
        path: Path to a JSON or text EXPLAIN dump

    Returns:
        File content

    Raises:
        ParseError: If the file is missing, unreadable or empty
    """
    filepath = Path(path)

    if not filepath.is_file():
        raise ParseError(
            f"File not found: {filepath}",
            source=str(filepath),
        )

    try:
        content = filepath.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(
            f"Cannot read file: {filepath}",
            source=str(filepath),
            detail=str(e),
        ) from e

    if not content.strip():
        raise ParseError(
            f"File is empty: {filepath}",
            source=str(filepath),
        )

    return content

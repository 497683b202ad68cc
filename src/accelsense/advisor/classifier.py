"""
Operator classification.

Maps plan operator names, or raw query text when no plan is available, onto
the closed set of AccelerableOp kinds. The engine only talks to the
Classifier protocol, so the text heuristics can be replaced by real planner
introspection without touching cost modeling or strategy synthesis.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

import sqlparse
from sqlparse import tokens as T
from sqlparse.exceptions import SQLParseError
from sqlparse.lexer import tokenize

from accelsense.advisor.models import AccelerableOp

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_PAREN = re.compile(r"\s+\(")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@runtime_checkable
class Classifier(Protocol):
    """Capability the engine needs from a classifier."""

    def classify(self, operator_name: str) -> AccelerableOp | None:
        """Classify one plan operator name."""
        ...

    def detect(self, query_text: str) -> list[AccelerableOp]:
        """List the accelerable constructs found in raw query text, in order."""
        ...


def normalize_query(query_text: str) -> str:
    """
    Uppercase query text with comments removed and whitespace collapsed.

    "sum (x)" and "SUM(x)" normalize the same, and keywords inside
    comments are not seen.

    sqlparse refuses to group very long statements (thousands of IN-list
    items, deep parenthesis nesting). Those are uncommented from the raw
    token stream instead.
    """
    try:
        text = sqlparse.format(query_text, strip_comments=True)
    except SQLParseError as e:
        logger.debug("sqlparse could not format query (%s), stripping comments from tokens", e)
        text = _strip_comment_tokens(query_text)
    text = _WHITESPACE.sub(" ", text).strip().upper()
    return _SPACE_BEFORE_PAREN.sub("(", text)


def _strip_comment_tokens(query_text: str) -> str:
    return "".join(
        " " if ttype in T.Comment else value
        for ttype, value in tokenize(query_text)
    )


# Query-text constructs, checked in this order. Matching is substring
# based on normalized text.
QUERY_PATTERNS: tuple[tuple[AccelerableOp, tuple[str, ...]], ...] = (
    (AccelerableOp.HASH_JOIN, (" JOIN ",)),
    (AccelerableOp.HASH_AGGREGATE, ("GROUP BY", "SUM(", "COUNT(")),
    (AccelerableOp.GRAPH_TRAVERSAL, ("GRAPH MATCH",)),
    (AccelerableOp.VECTOR_DISTANCE, ("<->",)),
    (AccelerableOp.COST_ANALYTICS, ("COST_ANOMALY_SCORE", "COST_FORECAST")),
    (AccelerableOp.SORT, ("ORDER BY",)),
)

# Operator-name patterns, searched (as regular expressions) in the lowercased
# name with punctuation and spaces removed. First match wins, so specific
# kinds come before generic ones ("HashAggregate" must not read as a hash
# join). psql names join variants "Hash Left Join", "Hash Anti Join" etc.
OPERATOR_PATTERNS: tuple[tuple[AccelerableOp, tuple[str, ...]], ...] = (
    (AccelerableOp.GRAPH_TRAVERSAL, ("graph", "traversal", "bfs")),
    (AccelerableOp.VECTOR_DISTANCE, ("vector", "distance", "knn", "similarity")),
    (AccelerableOp.COST_ANALYTICS, ("costanalytics", "costanomaly", "costforecast")),
    (AccelerableOp.RULE_ENGINE, ("ruleengine", "ruleeval")),
    (AccelerableOp.HASH_AGGREGATE, ("aggregate", "groupby")),
    (AccelerableOp.HASH_JOIN, (r"hash(left|right|full|semi|anti)*join",)),
    (AccelerableOp.SORT, ("sort",)),
    (AccelerableOp.FILTER, ("filter",)),
    (AccelerableOp.DECOMPRESSION, (
        "parquet", "seqscan", "columnar", "compressed", "filescan", "tablescan", "csvexec",
    )),
)


class HeuristicClassifier:
    """
    Pattern-matching classifier.

    Used for both paths: operator names from a parsed plan, and raw SQL
    when there is no live planner to ask.
    """

    def __init__(
        self,
        query_patterns: tuple[tuple[AccelerableOp, tuple[str, ...]], ...] = QUERY_PATTERNS,
        operator_patterns: tuple[tuple[AccelerableOp, tuple[str, ...]], ...] = OPERATOR_PATTERNS,
    ) -> None:
        self.query_patterns = query_patterns
        self.operator_patterns = operator_patterns

    def classify(self, operator_name: str) -> AccelerableOp | None:
        compact = _NON_ALNUM.sub("", operator_name.lower())
        if not compact:
            return None
        for op, patterns in self.operator_patterns:
            if any(re.search(pattern, compact) for pattern in patterns):
                return op
        return None

    def detect(self, query_text: str) -> list[AccelerableOp]:
        text = f" {normalize_query(query_text)} "
        return [
            op for op, needles in self.query_patterns
            if any(needle in text for needle in needles)
        ]

"""Heuristic extraction of table names from mapper SQL text.

This is a token scan around a handful of anchor keywords, not a SQL grammar. Known
imprecision: a parenthesized subquery right after FROM/JOIN contributes no name at that
anchor (its inner FROM is still scanned), and anything that follows an anchor keyword is
taken for a table name, so odd SQL can yield odd names.
"""
import re
from typing import Iterable, Set

from table_impact.utils import NameUtils

PLACEHOLDER = '?'

SQL_KEYWORDS = frozenset({
    'DUAL', 'SELECT', 'FROM', 'WHERE', 'AND', 'OR', 'ON', 'AS', 'SET', 'JOIN', 'LEFT', 'RIGHT',
    'INNER', 'OUTER', 'CROSS', 'FULL', 'NATURAL', 'VALUES', 'UPDATE', 'INSERT', 'DELETE', 'MERGE',
    'INTO', 'USING', 'GROUP', 'ORDER', 'BY', 'HAVING', 'DISTINCT', 'LIMIT', 'OFFSET', 'CASE', 'WHEN',
    'THEN', 'ELSE', 'END', 'IN', 'EXISTS', 'NOT', 'NULL', 'IS', 'LIKE', 'BETWEEN', 'ASC', 'DESC',
    'WITH', 'PARTITION', 'UNION', 'ALL', 'LATERAL', 'ONLY', 'TABLE',
})

# Bound parameters: MyBatis #{..} / ${..}, iBatis #name# / $name$, named :param
_PARAMETER_PATTERNS = [
    re.compile(r'#\{[^}]*\}'),
    re.compile(r'\$\{[^}]*\}'),
    re.compile(r'#[A-Za-z0-9_.\[\]]+#'),
    re.compile(r'\$[A-Za-z0-9_.\[\]]+\$'),
    re.compile(r'(?<![:\w]):[A-Za-z_][A-Za-z0-9_]*'),
]
_STRAY_SIGILS = re.compile(r'[#$]')

_DYNAMIC_TAGS = (
    'if', 'where', 'set', 'choose', 'when', 'otherwise', 'trim', 'foreach', 'bind', 'include',
    'dynamic', 'iterate', 'isNull', 'isNotNull', 'isEmpty', 'isNotEmpty', 'isEqual', 'isNotEqual',
    'isGreaterThan', 'isGreaterEqual', 'isLessThan', 'isLessEqual', 'isPropertyAvailable',
    'isNotPropertyAvailable', 'isParameterPresent', 'isNotParameterPresent',
)
_TAG_PATTERN = re.compile(r'</?(?:%s)\b[^>]*>' % '|'.join(_DYNAMIC_TAGS), re.IGNORECASE)
_CDATA_MARKERS = re.compile(r'<!\[CDATA\[|\]\]>')
_XML_COMMENT = re.compile(r'<!--.*?-->', re.DOTALL)
_BLOCK_COMMENT = re.compile(r'/\*.*?\*/', re.DOTALL)
_LINE_COMMENT = re.compile(r'--[^\n]*(?=\n)')
_COMMENT_MARKERS = re.compile(r'--|/\*|\*/')
_WHITESPACE = re.compile(r'\s+')

_NAME = r'[^\s,;()]+'
_ALIAS = r'(?:\s+(?:AS\s+)?(?!(?:%s)\b)%s)?' % ('|'.join(sorted(SQL_KEYWORDS)), _NAME)
_ITEM = _NAME + _ALIAS
# Zero-width so that anchors swallowed by a previous capture are still scanned
_ANCHORS = re.compile(
    r'(?=\b(?:FROM|JOIN|UPDATE|INSERT\s+INTO|DELETE\s+FROM|MERGE\s+INTO|USING)\s+(%s(?:\s*,\s*%s)*))'
    % (_ITEM, _ITEM),
    re.IGNORECASE,
)


class TableReferenceExtractor:
    """Derives the set of normalized table names referenced by one statement's text."""

    def __init__(self, keywords: Iterable[str] = SQL_KEYWORDS):
        self.keywords = frozenset(k.upper() for k in keywords)

    def extract(self, sql: str) -> Set[str]:
        """Returns upper-case, schema- and quote-stripped table names (possibly empty)."""
        if not sql or not sql.strip():
            return set()
        cleaned = self.clean(sql)
        tables = set()
        for match in _ANCHORS.finditer(cleaned):
            tables.update(self._split_and_normalize(match.group(1)))
        return tables

    @staticmethod
    def clean(sql: str) -> str:
        """Neutralizes placeholders and strips dynamic-SQL markup, comments and extra whitespace."""
        cleaned = sql
        for pattern in _PARAMETER_PATTERNS:
            cleaned = pattern.sub(PLACEHOLDER, cleaned)
        cleaned = _STRAY_SIGILS.sub(PLACEHOLDER, cleaned)
        cleaned = _XML_COMMENT.sub(' ', cleaned)
        cleaned = _TAG_PATTERN.sub(' ', cleaned)
        cleaned = _CDATA_MARKERS.sub(' ', cleaned)
        cleaned = _BLOCK_COMMENT.sub(' ', cleaned)
        cleaned = _LINE_COMMENT.sub(' ', cleaned)
        cleaned = _COMMENT_MARKERS.sub(' ', cleaned)
        return _WHITESPACE.sub(' ', cleaned).strip()

    def _split_and_normalize(self, section: str) -> Set[str]:
        """Splits a captured run on commas and keeps the first token of each part."""
        tables = set()
        for part in section.split(','):
            tokens = part.split()
            if not tokens:
                continue
            name = NameUtils.normalize_table_name(tokens[0])
            if name and name != PLACEHOLDER and name not in self.keywords:
                tables.add(name)
        return tables


def extract_table_names(sql: str) -> Set[str]:
    return TableReferenceExtractor().extract(sql)

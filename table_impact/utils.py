import re
from typing import Optional, Tuple

UNRESOLVED_PREFIX = "[N/A]-"

_QUOTE_CHARS = re.compile(r"[`'\"\[\]]")


class NameUtils:
    """A collection of static utility methods for table names and method identifiers."""

    @staticmethod
    def normalize_table_name(name: Optional[str]) -> str:
        """Upper-cases a table name and strips its schema prefix and quoting."""
        if not name:
            return ''
        candidate = name.strip()
        if '.' in candidate:
            candidate = candidate.rsplit('.', 1)[1]
        return _QUOTE_CHARS.sub('', candidate).strip().upper()

    @staticmethod
    def split_method_id(method_id: str) -> Tuple[str, str]:
        """Splits 'pkg.Class.method' into ('pkg.Class', 'method')."""
        if not method_id or '.' not in method_id:
            return '', method_id or ''
        class_name, method_name = method_id.rsplit('.', 1)
        return class_name, method_name

    @classmethod
    def class_of(cls, method_id: str) -> str:
        return cls.split_method_id(method_id)[0]

    @staticmethod
    def simple_name(type_name: Optional[str]) -> str:
        """Returns the last segment of a dotted type name."""
        if not type_name:
            return ''
        return type_name.rsplit('.', 1)[-1]

    @classmethod
    def simple_method_id(cls, method_id: str) -> str:
        """Reduces 'pkg.Class.method' to 'Class.method'."""
        class_name, method_name = cls.split_method_id(method_id)
        if not class_name:
            return method_name
        return f"{cls.simple_name(class_name)}.{method_name}"

    @staticmethod
    def is_qualified(type_name: str) -> bool:
        return '.' in type_name

    @staticmethod
    def unresolved(repository_class: str, statement_id: Optional[str] = None) -> str:
        """Builds the sentinel used for a statement without a matching repository method."""
        if statement_id:
            return f"{UNRESOLVED_PREFIX}{repository_class}.{statement_id}"
        return f"{UNRESOLVED_PREFIX}{repository_class}"

    @staticmethod
    def is_unresolved(method_id: str) -> bool:
        return method_id.startswith(UNRESOLVED_PREFIX)

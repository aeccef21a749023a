"""Data model shared by the indexers, the analyzer and the reporters."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from table_impact.utils import NameUtils

STATEMENT_KINDS = ('select', 'insert', 'update', 'delete')


@dataclass(frozen=True)
class Module:
    """A build module of the scanned monolith. Identity is (name, root_path)."""
    name: str
    root_path: Path
    source_path: Optional[Path] = field(default=None, compare=False)
    resource_path: Optional[Path] = field(default=None, compare=False)


@dataclass(frozen=True)
class MapperStatement:
    """One select/insert/update/delete element of a mapper file.

    Identity is (namespace, statement_id, mapper_path); the module name, kind and SQL text
    do not take part in equality.
    """
    module_name: str = field(compare=False)
    mapper_path: str = ''
    namespace: str = ''
    statement_id: str = ''
    kind: str = field(default='select', compare=False)
    raw_sql: str = field(default='', compare=False, repr=False)

    @property
    def fully_qualified_id(self) -> str:
        return f"{self.namespace}.{self.statement_id}"

    def to_dict(self) -> Dict[str, str]:
        return {
            'module_name': self.module_name,
            'mapper_path': self.mapper_path,
            'namespace': self.namespace,
            'statement_id': self.statement_id,
            'kind': self.kind,
            'raw_sql': self.raw_sql,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MapperStatement':
        return cls(
            module_name=data['module_name'],
            mapper_path=data['mapper_path'],
            namespace=data['namespace'],
            statement_id=data['statement_id'],
            kind=data.get('kind', 'select'),
            raw_sql=data.get('raw_sql', ''),
        )


@dataclass
class TableRepositoryMapping:
    """Links a table to its mapper files and to the repository methods running its statements.

    ``repository_methods`` is parallel to the table's statement list: each entry is either
    'Class.method' or an '[N/A]-...' sentinel.
    """
    table_name: str
    mapper_files: List[str] = field(default_factory=list)
    repository_classes: List[str] = field(default_factory=list)
    repository_methods: List[str] = field(default_factory=list)

    @property
    def resolved_methods(self) -> List[str]:
        """Resolved repository methods, de-duplicated in first-seen order."""
        return list(dict.fromkeys(m for m in self.repository_methods if not NameUtils.is_unresolved(m)))

    @property
    def unresolved_methods(self) -> List[str]:
        return list(dict.fromkeys(m for m in self.repository_methods if NameUtils.is_unresolved(m)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table_name': self.table_name,
            'mapper_files': list(self.mapper_files),
            'repository_classes': list(self.repository_classes),
            'repository_methods': list(self.repository_methods),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TableRepositoryMapping':
        return cls(
            table_name=data['table_name'],
            mapper_files=list(data.get('mapper_files', [])),
            repository_classes=list(data.get('repository_classes', [])),
            repository_methods=list(data.get('repository_methods', [])),
        )


@dataclass(frozen=True)
class CallReference:
    """A call site: the calling method, the file it lives in and the line of the call."""
    caller: str
    file_path: str
    line: int

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.caller}"


@dataclass(frozen=True)
class CallSite:
    """A call reference together with the callee it was resolved to."""
    callee: str
    reference: CallReference

    def to_record(self) -> Dict[str, Any]:
        return {
            'callee': self.callee,
            'caller': self.reference.caller,
            'file': self.reference.file_path,
            'line': self.reference.line,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'CallSite':
        return cls(record['callee'], CallReference(record['caller'], record['file'], int(record['line'])))


@dataclass(frozen=True)
class CallChain:
    """Callers from the outermost entry point down to the repository method touching a table."""
    call_path: Tuple[str, ...]
    line_numbers: Tuple[int, ...]
    repository_method: str
    table_name: str

    @property
    def depth(self) -> int:
        return len(self.call_path)

    @property
    def entry_point(self) -> str:
        return self.call_path[0] if self.call_path else self.repository_method

    def to_dict(self) -> Dict[str, Any]:
        return {
            'callPath': list(self.call_path),
            'lineNumbers': list(self.line_numbers),
            'repositoryMethod': self.repository_method,
            'tableName': self.table_name,
        }

    def __str__(self) -> str:
        hops = []
        for i, method in enumerate(self.call_path):
            if i < len(self.line_numbers):
                hops.append(f"{method} [line {self.line_numbers[i]}]")
            else:
                hops.append(method)
        hops.append(f"{self.repository_method} [Table: {self.table_name}]")
        return ' -> '.join(hops)


@dataclass(frozen=True)
class TableImpact:
    """Flat (statement, business method) pair kept for reports that predate call chains."""
    module_name: str
    mapper_file: str
    mapper_namespace: str
    mapper_statement_id: str
    service_class: str
    service_method: str

    @property
    def fully_qualified_mapper_method(self) -> str:
        return f"{self.mapper_namespace}.{self.mapper_statement_id}"

    @property
    def fully_qualified_service_method(self) -> str:
        return f"{self.service_class}.{self.service_method}"

    def to_dict(self) -> Dict[str, str]:
        return {
            'moduleName': self.module_name,
            'mapperXmlFile': self.mapper_file,
            'mapperMethod': self.fully_qualified_mapper_method,
            'serviceMethod': self.fully_qualified_service_method,
        }


@dataclass
class ImpactAnalysisResult:
    table_name: str
    impacts: List[TableImpact] = field(default_factory=list)
    call_chains: List[CallChain] = field(default_factory=list)
    unresolved_repository_references: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tableName': self.table_name,
            'impacts': [impact.to_dict() for impact in self.impacts],
            'callChains': [chain.to_dict() for chain in self.call_chains],
            'unresolvedRepositoryReferences': list(self.unresolved_repository_references),
            'warnings': list(self.warnings),
        }

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from table_impact.cache import SnapshotCache, tree_fingerprint
from table_impact.java_source import declared_method_names_worker
from table_impact.models import MapperStatement, TableRepositoryMapping
from table_impact.parallel import check_cancelled, map_in_order
from table_impact.policy import NamingPolicy
from table_impact.table_index import TableIndex
from table_impact.utils import NameUtils

RepositoryMappings = Dict[str, TableRepositoryMapping]


def repository_file_for(mapper_path: str) -> Path:
    """The source file presumed to run a mapper's statements: <Name>.java two levels above the mapper's directory."""
    path = Path(mapper_path)
    return path.parent.parent / f"{path.stem}.java"


def serialize_mappings(mappings: RepositoryMappings) -> List[Dict[str, Any]]:
    return [mapping.to_dict() for mapping in mappings.values()]


def deserialize_mappings(data: List[Dict[str, Any]]) -> RepositoryMappings:
    mappings = [TableRepositoryMapping.from_dict(item) for item in data]
    return {mapping.table_name: mapping for mapping in mappings}


class RepositoryLinker:
    """Links every mapper statement of a table to the repository method presumed to execute it."""

    KIND = 'repository_mapping'

    def __init__(self, config, policy: Optional[NamingPolicy] = None, cache: Optional[SnapshotCache] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.repository_linker')
        self.policy = policy or NamingPolicy()
        self.cache = cache or SnapshotCache(
            config.repository_mapping_file, self.KIND, config.cache_validation, logger=self.logger
        )
        self._method_names: Dict[str, Optional[Set[str]]] = {}

    def fingerprint(self, table_index: TableIndex, candidates: List[Path]) -> str:
        extra = sorted(
            f"{table}|{s.mapper_path}|{s.namespace}|{s.statement_id}"
            for table, statements in table_index.items() for s in statements
        )
        return tree_fingerprint(candidates, content=False, extra=extra)

    def load_cached(self, fingerprint: Optional[str] = None) -> Optional[RepositoryMappings]:
        data = self.cache.load(fingerprint)
        if data is None:
            return None
        try:
            mappings = deserialize_mappings(data)
        except (KeyError, TypeError, AttributeError) as e:
            self.logger.error(f"Cached repository mapping {self.cache.path} is malformed ({e!r}). Deleting it.")
            self.cache.delete()
            return None
        self.logger.info(f"Loaded {len(mappings)} repository mappings from cache")
        return mappings

    def link(self, table_index: TableIndex, cancel_event: Optional[threading.Event] = None) -> RepositoryMappings:
        self.logger.info("--- Linking mapper statements to repository methods ---")
        candidates = sorted({
            repository_file_for(statement.mapper_path)
            for statements in table_index.values() for statement in statements
        })
        fingerprint = self.fingerprint(table_index, candidates)

        cached = self.load_cached(fingerprint)
        if cached:
            return cached

        self._collect_method_names([path for path in candidates if path.is_file()], cancel_event)

        mappings: RepositoryMappings = {}
        linked_since_flush = 0
        for table_name, statements in table_index.items():
            check_cancelled(cancel_event)
            mappings[table_name] = self.link_table(table_name, statements)
            linked_since_flush += 1
            if linked_since_flush >= self.config.repository_mapping_flush_every:
                self.cache.save(serialize_mappings(mappings), fingerprint, complete=False)
                linked_since_flush = 0

        self.cache.save(serialize_mappings(mappings), fingerprint, complete=True)
        resolved = sum(len(m.resolved_methods) for m in mappings.values())
        self.logger.info(f"Repository linking done. Tables: {len(mappings)}, resolved methods: {resolved}.")
        return mappings

    def _collect_method_names(self, repository_files: List[Path], cancel_event: Optional[threading.Event]):
        pending = [str(path) for path in repository_files if str(path) not in self._method_names]
        items = [(path, self.config.source_encoding) for path in pending]
        results = map_in_order(declared_method_names_worker, items, self.config.workers, self.config.executor, cancel_event)
        for path, names in results:
            if names is None:
                self.logger.warning(f"Could not parse repository file {path}. Its statements stay unresolved.")
            self._method_names[path] = set(names) if names is not None else None

    def link_table(self, table_name: str, statements: List[MapperStatement]) -> TableRepositoryMapping:
        """Resolves each statement to 'Class.method' or an '[N/A]-' sentinel, in statement order."""
        mapping = TableRepositoryMapping(table_name=table_name)
        for statement in statements:
            if statement.mapper_path not in mapping.mapper_files:
                mapping.mapper_files.append(statement.mapper_path)
            mapping.repository_methods.append(self.resolve_statement(statement, mapping))
        return mapping

    def resolve_statement(self, statement: MapperStatement, mapping: TableRepositoryMapping) -> str:
        repository_file = repository_file_for(statement.mapper_path)
        class_name = repository_file.stem
        key = str(repository_file)
        if key not in self._method_names:
            if not repository_file.is_file():
                self.logger.debug(f"No repository file {repository_file} for mapper {statement.mapper_path}")
                return NameUtils.unresolved(class_name)
            self._collect_method_names([repository_file], None)

        if class_name not in mapping.repository_classes:
            mapping.repository_classes.append(class_name)
            if not self.policy.is_data_access(class_name):
                self.logger.debug(f"Repository class {class_name} does not follow the data-access naming convention")

        method_names = self._method_names[key] or set()
        if statement.statement_id in method_names:
            return f"{class_name}.{statement.statement_id}"
        return NameUtils.unresolved(class_name, statement.statement_id)

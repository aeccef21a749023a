import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from table_impact.cache import SnapshotCache, tree_fingerprint
from table_impact.mapper_parser import MapperStatementParser
from table_impact.models import MapperStatement, Module
from table_impact.parallel import map_in_order
from table_impact.scanner import MapperLocator
from table_impact.sql_extractor import TableReferenceExtractor

TableIndex = Dict[str, List[MapperStatement]]


def serialize_table_index(index: TableIndex) -> Dict[str, List[Dict[str, str]]]:
    return {table: [statement.to_dict() for statement in statements] for table, statements in index.items()}


def deserialize_table_index(data: Dict[str, Any]) -> TableIndex:
    """Raises KeyError/TypeError/AttributeError on data that is not a serialized table index."""
    return {
        str(table): [MapperStatement.from_dict(item) for item in statements]
        for table, statements in data.items()
    }


def parse_mapper_tables(item: Tuple[str, str, bool]) -> List[Tuple[MapperStatement, List[str]]]:
    """Pool entry point: (mapper path, module name, resolve includes) -> [(statement, tables)]."""
    mapper_path, module_name, resolve_includes = item
    statements = MapperStatementParser(resolve_includes).parse(Path(mapper_path), module_name)
    extractor = TableReferenceExtractor()
    return [(statement, sorted(extractor.extract(statement.raw_sql))) for statement in statements]


class TableIndexer:
    """Builds the table -> mapper statements index over all modules, backed by a snapshot cache."""

    KIND = 'table_index'

    def __init__(self, config, cache: Optional[SnapshotCache] = None, locator: Optional[MapperLocator] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.table_index')
        self.cache = cache or SnapshotCache(
            config.table_index_file, self.KIND, config.cache_validation, logger=self.logger
        )
        self.locator = locator or MapperLocator(config, logger=self.logger)

    def locate_mappers(self, modules: Sequence[Module]) -> List[Tuple[Path, Module]]:
        mapper_files = []
        for module in modules:
            for path in self.locator.locate(module, modules):
                mapper_files.append((path, module))
        self.logger.info(f"Found {len(mapper_files)} mapper XML files in {len(modules)} modules")
        return mapper_files

    def fingerprint(self, mapper_files: Sequence[Tuple[Path, Module]]) -> str:
        extra = [f"resolve_includes={self.config.resolve_sql_includes}"]
        extra.extend(f"{path}={module.name}" for path, module in mapper_files)
        return tree_fingerprint((path for path, _ in mapper_files), content=True, extra=extra)

    def load_cached(self, fingerprint: Optional[str] = None) -> Optional[TableIndex]:
        data = self.cache.load(fingerprint)
        if data is None:
            return None
        try:
            index = deserialize_table_index(data)
        except (KeyError, TypeError, AttributeError) as e:
            self.logger.error(f"Cached table index {self.cache.path} is malformed ({e!r}). Deleting it.")
            self.cache.delete()
            return None
        self.logger.info(f"Loaded {len(index)} tables from the table index cache")
        return index

    def build(self, modules: Sequence[Module], cancel_event: Optional[threading.Event] = None) -> TableIndex:
        """Returns the cached index when it is usable, otherwise indexes every mapper file."""
        self.logger.info("--- Building table index ---")
        mapper_files = self.locate_mappers(modules)
        fingerprint = self.fingerprint(mapper_files)

        cached = self.load_cached(fingerprint)
        if cached:
            return cached

        index: TableIndex = {}
        seen: Dict[str, Set[MapperStatement]] = {}
        flushed_size = 0
        statement_count = 0
        items = [(str(path), module.name, self.config.resolve_sql_includes) for path, module in mapper_files]

        results = map_in_order(parse_mapper_tables, items, self.config.workers, self.config.executor, cancel_event)
        for parsed in results:
            for statement, tables in parsed:
                statement_count += 1
                if not tables:
                    self.logger.debug(f"No tables found in {statement.fully_qualified_id}")
                for table in tables:
                    if statement in seen.setdefault(table, set()):
                        continue
                    seen[table].add(statement)
                    index.setdefault(table, []).append(statement)

            if len(index) - flushed_size >= self.config.table_index_flush_every:
                self.cache.save(serialize_table_index(index), fingerprint, complete=False)
                flushed_size = len(index)

        self.cache.save(serialize_table_index(index), fingerprint, complete=True)
        self.logger.info(f"Table index built. Tables: {len(index)}, statements: {statement_count}.")
        return index

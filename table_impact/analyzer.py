import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Deque, Dict, FrozenSet, List, Optional, Sequence, Tuple

from table_impact.call_index import CallSiteIndex, CallSiteIndexer
from table_impact.errors import AnalyzerNotInitializedError, IndexingCancelledError
from table_impact.models import CallChain, ImpactAnalysisResult, Module, TableImpact
from table_impact.policy import NamingPolicy
from table_impact.repository_linker import RepositoryLinker, RepositoryMappings
from table_impact.scanner import ModuleScanner, find_source_files
from table_impact.table_index import TableIndex, TableIndexer
from table_impact.utils import NameUtils

# (current method, callers outermost first, one line per caller, methods already on the path)
SearchState = Tuple[str, Tuple[str, ...], Tuple[int, ...], FrozenSet[str]]


class ImpactAnalyzer:
    """
    Answers "which business methods are affected if this table changes?".
    ``initialize`` builds the table index, the repository links and the call-site index;
    queries then walk the reverse call graph from each repository method of the table.
    """

    def __init__(self, config, policy: Optional[NamingPolicy] = None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.analyzer')
        self.policy = policy or config.naming_policy(self.logger)

        self.module_scanner = ModuleScanner(config, logger=self.logger.getChild('scanner'))
        self.table_indexer = TableIndexer(config, logger=self.logger.getChild('table_index'))
        self.repository_linker = RepositoryLinker(
            config, self.policy, logger=self.logger.getChild('repository_linker')
        )
        self.call_site_indexer = CallSiteIndexer(config, logger=self.logger.getChild('call_index'))

        self.modules: List[Module] = []
        self.table_index: TableIndex = {}
        self.repository_mappings: RepositoryMappings = {}
        self.call_site_index = CallSiteIndex()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @classmethod
    def from_indices(cls, config, table_index: TableIndex, repository_mappings: RepositoryMappings,
                     call_site_index: CallSiteIndex, policy: Optional[NamingPolicy] = None,
                     logger: Optional[logging.Logger] = None) -> 'ImpactAnalyzer':
        """Opens a query session over indices that were built elsewhere."""
        analyzer = cls(config, policy=policy, logger=logger)
        analyzer.table_index = table_index
        analyzer.repository_mappings = repository_mappings
        analyzer.call_site_index = call_site_index
        analyzer._initialized = True
        return analyzer

    def initialize(self, root_path: Path, cancel_event: Optional[threading.Event] = None):
        """Scans the monolith under ``root_path`` and builds every index.

        The call-site index is built on a background thread while the table index and the
        repository links are built here. Setting ``cancel_event`` stops the scan with
        IndexingCancelledError and leaves the analyzer uninitialized.
        """
        self._initialized = False
        root_path = Path(root_path)
        cancel_event = cancel_event or threading.Event()
        self.logger.info("=" * 50)
        self.logger.info(f"Initializing impact analyzer for {root_path}")
        self.logger.info(f"Cache directory: {self.config.cache_dir} (validation: {self.config.cache_validation})")
        self.logger.info("=" * 50)

        modules = self.module_scanner.scan(root_path)
        source_files = find_source_files(modules, self.config.excluded_dirs, logger=self.logger)

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix='call-site-index') as background:
            call_index_future = background.submit(self.call_site_indexer.build, source_files, cancel_event)
            try:
                table_index = self.table_indexer.build(modules, cancel_event)
                repository_mappings = self.repository_linker.link(table_index, cancel_event)
                call_site_index = call_index_future.result()
            except IndexingCancelledError:
                self.logger.warning("Initialization cancelled. Waiting for the call-site indexer to stop.")
                raise
            except BaseException:
                # Stop the background scan before the executor waits for it
                cancel_event.set()
                raise

        self.modules = modules
        self.table_index = table_index
        self.repository_mappings = repository_mappings
        self.call_site_index = call_site_index
        self._initialized = True
        self.logger.info("Impact analyzer initialized.")

    def analyze_table_impact(self, table_name: str) -> ImpactAnalysisResult:
        """Finds the call chains from the business layer down to every repository method of a table."""
        if not self._initialized:
            raise AnalyzerNotInitializedError('analyze_table_impact')

        normalized = NameUtils.normalize_table_name(table_name)
        result = ImpactAnalysisResult(table_name=normalized)
        statements = self.table_index.get(normalized, [])
        mapping = self.repository_mappings.get(normalized)
        if not statements or mapping is None:
            result.warnings.append(f"No mapper methods found for table: {normalized}")
            self.logger.warning(result.warnings[-1])
            return result

        result.unresolved_repository_references = mapping.unresolved_methods
        resolved_methods = mapping.resolved_methods
        if not resolved_methods:
            result.warnings.append(f"No resolved repository methods for table: {normalized}")
            return result

        for class_name in dict.fromkeys(NameUtils.class_of(m) for m in resolved_methods):
            if not self.policy.is_data_access(class_name):
                result.warnings.append(
                    f"Repository class does not follow the data-access naming convention: {class_name}"
                )

        for repository_method in resolved_methods:
            chains = self.find_call_chains(repository_method, normalized)
            if len(chains) == 1 and not chains[0].call_path:
                result.warnings.append(f"No callers found for repository method: {repository_method}")
            result.call_chains.extend(chains)

        result.impacts = self._business_impacts(normalized, result.call_chains)
        self.logger.info(
            f"Table {normalized}: {len(resolved_methods)} repository methods, "
            f"{len(result.call_chains)} call chains, {len(result.impacts)} business impacts."
        )
        return result

    def find_call_chains(self, repository_method: str, table_name: str) -> List[CallChain]:
        """
        Breadth-first search over the reverse call graph starting at a repository method.
        Each state carries its own visited set, so one method may appear in several chains
        reached by different routes but never twice in the same chain. A chain stops at the
        first caller that belongs to the business layer, or at a method without callers. A path
        whose callers are all already on it ends there without a chain.
        """
        if not self._initialized:
            raise AnalyzerNotInitializedError('find_call_chains')

        # An unqualified seed stands for every callee key it matches
        seed_ids = frozenset(self.call_site_index.callee_keys(repository_method)) | {repository_method}
        chains: List[CallChain] = []
        queue: Deque[SearchState] = deque([(repository_method, (), (), frozenset())])
        while queue:
            current, path, lines, visited = queue.popleft()
            callers = self.call_site_index.callers_of(current)

            if not callers and path:
                chains.append(CallChain(path, lines, repository_method, table_name))
                continue

            for reference in callers:
                caller = reference.caller
                if caller in visited or caller in seed_ids:
                    continue
                new_path = (caller,) + path
                new_lines = (reference.line,) + lines
                if self.policy.is_business_method(caller):
                    chains.append(CallChain(new_path, new_lines, repository_method, table_name))
                else:
                    queue.append((caller, new_path, new_lines, visited | {caller}))

        if not chains:
            chains.append(CallChain((), (), repository_method, table_name))
        return chains

    def _business_impacts(self, table_name: str, chains: Sequence[CallChain]) -> List[TableImpact]:
        """One impact per (mapper statement, business-layer entry method) pair."""
        statements = self.table_index.get(table_name, [])
        mapping = self.repository_mappings[table_name]
        impacts: Dict[TableImpact, None] = {}
        for chain in chains:
            if not chain.call_path or not self.policy.is_business_method(chain.entry_point):
                continue
            service_class, service_method = NameUtils.split_method_id(chain.entry_point)
            for statement, method in zip(statements, mapping.repository_methods):
                if method != chain.repository_method:
                    continue
                impacts[TableImpact(
                    module_name=statement.module_name,
                    mapper_file=statement.mapper_path,
                    mapper_namespace=statement.namespace,
                    mapper_statement_id=statement.statement_id,
                    service_class=service_class,
                    service_method=service_method,
                )] = None
        return list(impacts)

    def analyze_tables(self, table_names: Sequence[str], workers: Optional[int] = None) -> Dict[str, ImpactAnalysisResult]:
        """Runs several queries concurrently; the indices are read-only once initialized."""
        if not self._initialized:
            raise AnalyzerNotInitializedError('analyze_tables')
        workers = workers or min(len(table_names), self.config.workers) or 1
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='impact-query') as pool:
            results = list(pool.map(self.analyze_table_impact, table_names))
        return {name: result for name, result in zip(table_names, results)}

    def get_statistics(self) -> Dict[str, int]:
        mappings = self.repository_mappings.values()
        return {
            'tables_indexed': len(self.table_index),
            'repository_mappings': len(self.repository_mappings),
            'repository_methods': sum(len(m.repository_methods) for m in mappings),
            'resolved_repository_methods': sum(len(m.resolved_methods) for m in mappings),
            'distinct_callees': len(self.call_site_index),
            'total_call_references': self.call_site_index.total_references,
            'source_files_indexed': self.call_site_index.source_files_indexed,
            'source_files_failed': self.call_site_index.source_files_failed,
        }

import logging
import threading
from collections import namedtuple
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import javalang

from table_impact.cache import CallSiteLog
from table_impact.java_source import JavaSourceParser, body_declarations, type_spelling
from table_impact.models import CallReference, CallSite
from table_impact.parallel import map_in_order
from table_impact.resolver import BestEffortResolver, FileContext, Scope
from table_impact.utils import NameUtils

# Universal object methods: plenty of call sites, no analytical signal
IGNORED_METHODS = frozenset({'toString', 'equals', 'hashCode', 'wait', 'notify', 'notifyAll', 'getClass'})

FileCallSites = namedtuple('FileCallSites', ['file_path', 'call_sites', 'unresolved', 'parsed'])


class CallSiteExtractor:
    """Turns one Java source file into the list of call sites found in its methods."""

    def __init__(self, parser: Optional[JavaSourceParser] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('table_impact.call_index')
        self.parser = parser or JavaSourceParser(logger=self.logger)

    def extract(self, file_path: Path) -> FileCallSites:
        tree = self.parser.parse(file_path)
        if tree is None:
            return FileCallSites(str(file_path), [], 0, False)

        context = FileContext.from_compilation_unit(tree)
        for type_decl in tree.types:
            self._register_types(type_decl, None, context)

        call_sites: List[CallSite] = []
        unresolved = 0
        for type_decl in tree.types:
            unresolved += self._visit_type(type_decl, None, {}, context, str(file_path), call_sites)
        return FileCallSites(str(file_path), call_sites, unresolved, True)

    def _register_types(self, type_decl, outer: Optional[str], context: FileContext):
        qualified = context.qualified_type_name(type_decl.name, outer)
        context.declared_types.setdefault(type_decl.name, qualified)
        for member in body_declarations(type_decl):
            if isinstance(member, javalang.tree.TypeDeclaration):
                self._register_types(member, qualified, context)

    def _visit_type(self, type_decl, outer: Optional[str], outer_fields: Dict[str, str],
                    context: FileContext, file_path: str, call_sites: List[CallSite]) -> int:
        qualified = context.qualified_type_name(type_decl.name, outer)
        members = body_declarations(type_decl)

        fields = dict(outer_fields)
        for member in members:
            if isinstance(member, javalang.tree.FieldDeclaration):
                spelling = type_spelling(member.type)
                for declarator in member.declarators:
                    fields[declarator.name] = spelling

        superclass = None
        if isinstance(type_decl, javalang.tree.ClassDeclaration) and type_decl.extends is not None:
            superclass = type_spelling(type_decl.extends)

        unresolved = 0
        for member in members:
            if isinstance(member, javalang.tree.MethodDeclaration):
                unresolved += self._visit_method(member, qualified, superclass, fields, context, file_path, call_sites)
            elif isinstance(member, javalang.tree.TypeDeclaration):
                unresolved += self._visit_type(member, qualified, fields, context, file_path, call_sites)
        return unresolved

    def _visit_method(self, method, enclosing_type: str, superclass: Optional[str], fields: Dict[str, str],
                      context: FileContext, file_path: str, call_sites: List[CallSite]) -> int:
        if method.body is None:
            return 0

        scope = Scope(
            fields=fields,
            parameters={p.name: type_spelling(p.type) for p in method.parameters},
            locals=self._local_declarations(method),
        )
        resolver = BestEffortResolver(context)
        caller = f"{enclosing_type}.{method.name}"
        unresolved = 0

        for path, node in method:
            if isinstance(node, javalang.tree.SuperMethodInvocation):
                callee_class = resolver.resolve_type(superclass) if superclass else enclosing_type
            elif isinstance(node, javalang.tree.MethodInvocation):
                callee_class = self._callee_class(path, node, scope, enclosing_type, resolver)
            else:
                continue

            if node.member in IGNORED_METHODS:
                continue
            if not callee_class:
                unresolved += 1
                self.logger.debug(f"Unresolved receiver for '{node.member}' in {caller} ({file_path})")
                continue

            call_sites.append(CallSite(
                callee=f"{callee_class}.{node.member}",
                reference=CallReference(caller, file_path, self._line_of(path, node, method)),
            ))
        return unresolved

    @staticmethod
    def _local_declarations(method) -> Dict[str, str]:
        """Local variables, resources and catch parameters of a method (first declaration wins)."""
        declared: Dict[str, str] = {}
        for _, node in method.filter(javalang.tree.VariableDeclaration):
            spelling = type_spelling(node.type)
            for declarator in node.declarators:
                declared_type = spelling
                if spelling == 'var' and isinstance(declarator.initializer, javalang.tree.ClassCreator):
                    declared_type = type_spelling(declarator.initializer.type)
                declared.setdefault(declarator.name, declared_type)
        for _, node in method.filter(javalang.tree.TryResource):
            declared.setdefault(node.name, type_spelling(node.type))
        for _, node in method.filter(javalang.tree.CatchClauseParameter):
            if node.types:
                declared.setdefault(node.name, type_spelling(node.types[0]))
        return declared

    @staticmethod
    def _callee_class(path: Tuple, node, scope: Scope, enclosing_type: str,
                      resolver: BestEffortResolver) -> Optional[str]:
        owner = path[-2] if len(path) >= 2 else None
        container = path[-1] if path else None
        if owner is not None and container is getattr(owner, 'selectors', None):
            # A selector: the receiver is the primary expression plus the selectors before it
            preceding = container[:next(i for i, s in enumerate(container) if s is node)]
            if isinstance(owner, javalang.tree.This):
                if not preceding:
                    return enclosing_type
                if all(isinstance(s, javalang.tree.MemberReference) for s in preceding):
                    return resolver.resolve_member_chain((s.member for s in preceding), scope)
                return None
            if isinstance(owner, javalang.tree.ClassCreator) and not preceding:
                return resolver.resolve_type(type_spelling(owner.type))
            return None
        return resolver.resolve_receiver(node.qualifier, scope, enclosing_type)

    @staticmethod
    def _line_of(path: Tuple, node, method) -> int:
        for candidate in (node,) + tuple(reversed(path)) + (method,):
            position = getattr(candidate, 'position', None)
            if position:
                return position[0]
        return 0


def extract_call_sites(item: Tuple[str, str]) -> FileCallSites:
    """Pool entry point: (path, encoding) -> FileCallSites."""
    path, encoding = item
    return CallSiteExtractor(JavaSourceParser(encoding)).extract(Path(path))


class CallSiteIndex:
    """Reverse call graph: callee method identifier -> every call reference invoking it."""

    def __init__(self):
        self._callers: Dict[str, List[CallReference]] = {}
        self._by_simple_id: Optional[Dict[str, List[str]]] = None
        self.source_files_indexed = 0
        self.source_files_failed = 0
        self.unresolved_calls = 0

    def add(self, call_site: CallSite):
        self._callers.setdefault(call_site.callee, []).append(call_site.reference)
        self._by_simple_id = None

    def callers_of(self, method_id: str) -> List[CallReference]:
        """Call references of ``method_id``.

        An identifier whose class part is unqualified ('OrderDao.findById') falls back to every
        callee whose last two segments match it when there is no exact entry.
        """
        references = []
        for callee in self.callee_keys(method_id):
            references.extend(self._callers[callee])
        return references

    def callee_keys(self, method_id: str) -> List[str]:
        """The indexed callee identifiers ``method_id`` stands for: itself, or its simple-name matches."""
        if method_id in self._callers:
            return [method_id]
        class_name, _ = NameUtils.split_method_id(method_id)
        if not class_name or NameUtils.is_qualified(class_name):
            return []
        return list(self._simple_id_index().get(method_id, []))

    def _simple_id_index(self) -> Dict[str, List[str]]:
        by_simple_id = self._by_simple_id
        if by_simple_id is None:
            # Published only once complete; concurrent queries may build it twice
            by_simple_id = {}
            for callee in self._callers:
                by_simple_id.setdefault(NameUtils.simple_method_id(callee), []).append(callee)
            self._by_simple_id = by_simple_id
        return by_simple_id

    def callees(self) -> List[str]:
        return list(self._callers)

    @property
    def total_references(self) -> int:
        return sum(len(refs) for refs in self._callers.values())

    def __len__(self) -> int:
        return len(self._callers)

    def __contains__(self, method_id: str) -> bool:
        return method_id in self._callers

    @classmethod
    def from_call_sites(cls, call_sites: Iterable[CallSite]) -> 'CallSiteIndex':
        index = cls()
        for call_site in call_sites:
            index.add(call_site)
        return index

    @classmethod
    def from_log(cls, call_site_log: CallSiteLog) -> 'CallSiteIndex':
        """Rebuilds an index from a call-site log written by a previous run."""
        return cls.from_call_sites(CallSite.from_record(record) for record in call_site_log.replay())


class CallSiteIndexer:
    """Scans every source file once and builds the in-memory CallSiteIndex, logging each call site."""

    def __init__(self, config, call_site_log: Optional[CallSiteLog] = None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.call_index')
        self.call_site_log = call_site_log or CallSiteLog(
            config.call_site_log_file, config.call_site_log_batch_size, logger=self.logger
        )

    def build(self, source_files: Sequence[Path], cancel_event: Optional[threading.Event] = None) -> CallSiteIndex:
        self.logger.info(f"Building call-site index over {len(source_files)} source files...")
        self.call_site_log.reset()
        index = CallSiteIndex()
        items = [(str(path), self.config.source_encoding) for path in source_files]

        try:
            results = map_in_order(
                extract_call_sites, items, self.config.workers, self.config.executor, cancel_event
            )
            for result in results:
                if not result.parsed:
                    index.source_files_failed += 1
                    continue
                index.source_files_indexed += 1
                index.unresolved_calls += result.unresolved
                for call_site in result.call_sites:
                    index.add(call_site)
                    self.call_site_log.append(call_site.to_record())
        finally:
            self.call_site_log.flush()

        self.logger.info(
            f"Call-site index built. Callees: {len(index)}, call references: {index.total_references}, "
            f"unparsable files: {index.source_files_failed}, unresolved receivers: {index.unresolved_calls}."
        )
        return index

"""Best-effort, syntax-only resolution of call receivers to type names.

There is no type checking: no inheritance, generics or interface-to-implementation binding.
A field declared as an interface resolves to that interface.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from table_impact.utils import NameUtils


@dataclass
class FileContext:
    """What a compilation unit declares about names: its package, its imports and its own types."""
    package: str = ''
    imports: List[str] = field(default_factory=list)
    declared_types: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_compilation_unit(cls, tree) -> 'FileContext':
        package = tree.package.name if tree.package else ''
        imports = [imp.path for imp in (tree.imports or []) if not imp.static and not imp.wildcard]
        return cls(package=package, imports=imports)

    def qualified_type_name(self, simple_name: str, outer: Optional[str] = None) -> str:
        if outer:
            return f"{outer}.{simple_name}"
        return f"{self.package}.{simple_name}" if self.package else simple_name

    def qualify(self, type_name: str) -> str:
        """Promotes a type spelling to a fully qualified name.

        Lookup order: types declared in this file, imports matched by suffix, then the file's
        package. A dotted name qualifies its first segment; a dotted name starting in lower
        case is taken as already qualified.
        """
        if not type_name:
            return ''
        if '.' in type_name:
            head, rest = type_name.split('.', 1)
            if head[:1].islower():
                return type_name
            return f"{self.qualify(head)}.{rest}"
        if type_name in self.declared_types:
            return self.declared_types[type_name]
        for imported in self.imports:
            if imported == type_name or imported.endswith('.' + type_name):
                return imported
        return f"{self.package}.{type_name}" if self.package else type_name


@dataclass
class Scope:
    """Declared names visible inside one method, by declaration site."""
    fields: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, str] = field(default_factory=dict)
    locals: Dict[str, str] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[str]:
        """Declared type spelling of ``name``: fields first, then parameters, then locals."""
        for declarations in (self.fields, self.parameters, self.locals):
            if name in declarations:
                return declarations[name]
        return None


class BestEffortResolver:
    """Resolves a receiver expression to the fully qualified name of its (presumed) type.

    Fallback chain: field -> parameter -> local -> the receiver's own spelling taken as a
    class reference, with dotted chains reduced to their rightmost segment.
    """

    SELF_REFERENCES = frozenset({'', 'this'})

    def __init__(self, context: FileContext):
        self.context = context

    def resolve_receiver(self, receiver: Optional[str], scope: Scope, enclosing_type: str) -> Optional[str]:
        if receiver is None:
            return None
        if receiver in self.SELF_REFERENCES:
            return enclosing_type
        if receiver.startswith('this.'):
            receiver = receiver[len('this.'):]

        declared = scope.lookup(receiver)
        if declared:
            return self.context.qualify(declared)
        return self.context.qualify(NameUtils.simple_name(receiver))

    def resolve_type(self, type_name: str) -> str:
        return self.context.qualify(type_name)

    def resolve_member_chain(self, members: Iterable[str], scope: Scope) -> Optional[str]:
        """Resolves 'this.a.b' style receivers given as the member names after 'this'."""
        members = list(members)
        if not members:
            return None
        return self.resolve_receiver('.'.join(members), scope, '')

"""Solution-wide symbol index: declared types, members and the type hierarchy.

The index is built once per scan from every parsed document and is read-only
afterwards. It answers the questions the semantic model and the reference
tracker ask: what does a type name resolve to in a given scope, which members
does a type (or any of its bases) declare, and which members form a family
across overrides and interface implementations.
"""
import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

import networkx as nx
from tree_sitter import Node, Tree

from .parser import LanguageParser
from .semantic_model import SemanticModel
from .symbols import CONSTANT, FIELD, METHOD, PROPERTY, MemberMatch, MemberSymbol, TypeRef, TypeSymbol
from .syntax import (
    TYPE_DECLARATIONS,
    ancestors,
    children_of_type,
    declaration_name,
    declarator_initializer,
    enclosing_type_nodes,
    first_child_of_type,
    has_modifier,
    namespace_of,
    namespace_prefixes,
    node_text,
    traverse,
    type_full_name,
    type_parameter_names,
    type_ref_from_node,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCALIZER_TYPES = ('IStringLocalizer', 'StringLocalizer', 'ResourceManagerStringLocalizer')

# Declarations that introduce their own type parameters
_GENERIC_SCOPES = TYPE_DECLARATIONS | {'method_declaration', 'local_function_statement', 'delegate_declaration'}


@dataclass
class UsingDirective:
    """One `using` directive of a compilation unit."""
    target: Optional[TypeRef]
    alias: Optional[str] = None
    is_static: bool = False
    is_global: bool = False


@dataclass
class SourceDocument:
    """A parsed C# file together with its import context."""
    path: str
    source: bytes
    tree: Tree
    project: str = ''
    usings: List[str] = field(default_factory=list)
    aliases: Dict[str, TypeRef] = field(default_factory=dict)
    static_usings: List[str] = field(default_factory=list)


def read_using(node: Node) -> UsingDirective:
    """Decode a using_directive node (alias, static and global forms)."""
    alias = None
    name_equals = first_child_of_type(node, 'name_equals')
    if name_equals is not None:
        alias = node_text(first_child_of_type(name_equals, 'identifier'))
    elif any(child.type == '=' for child in node.children):
        alias = node_text(node.child_by_field_name('name') or first_child_of_type(node, 'identifier'))

    targets = [child for child in node.named_children if child.type not in ('name_equals', 'comment')]
    target = type_ref_from_node(targets[-1]) if targets else None

    return UsingDirective(
        target=target,
        alias=alias,
        is_static=any(child.type == 'static' for child in node.children),
        is_global=any(child.type == 'global' for child in node.children),
    )


def _parameter_shape(parameter_list: Optional[Node]) -> Tuple[int, int, bool]:
    """Count (parameters, required parameters, has params array)."""
    count = required = 0
    params_array = False
    for parameter in children_of_type(parameter_list, 'parameter', 'parameter_array'):
        if parameter.type == 'parameter_array' or any(node_text(child) == 'params' for child in parameter.children
                                                         if child.type in ('modifier', 'params')):
            params_array = True
            continue
        count += 1
        if not any(child.type in ('=', 'equals_value_clause') for child in parameter.children):
            required += 1
    return count, required, params_array


def _same_shape(left: MemberSymbol, right: MemberSymbol) -> bool:
    if left.kind != METHOD:
        return True
    return (left.parameter_count, left.required_parameters, left.has_params_array) == \
        (right.parameter_count, right.required_parameters, right.has_params_array)


class SymbolIndex:
    """Index of every type and member declared in the analysed documents.

    The type hierarchy is a networkx DiGraph with an edge from each type to
    each of its direct bases (classes and interfaces). Edges carry the base as
    written in the derived type, bound in the derived type's scope, under the
    `ref` attribute so generic arguments can be substituted during lookup.
    Bases declared outside the solution appear as nodes named as written.
    """

    def __init__(self, documents: Iterable[SourceDocument],
                 localizer_types: Iterable[str] = DEFAULT_LOCALIZER_TYPES):
        self.documents: Dict[str, SourceDocument] = {doc.path: doc for doc in documents}
        self.localizer_types = frozenset(localizer_types)

        self.types: Dict[str, TypeSymbol] = {}
        self.type_declarations: Dict[str, List[Tuple[str, Node]]] = {}
        self.members: Dict[str, List[MemberSymbol]] = {}
        self.primary_parameters: Dict[str, Dict[str, Optional[TypeRef]]] = {}
        self.hierarchy = nx.DiGraph()

        self._declarations: Dict[MemberSymbol, Node] = {}
        self._member_by_position: Dict[Tuple[str, int], MemberSymbol] = {}
        self._global_usings: Dict[str, List[UsingDirective]] = {}
        self._models: Dict[str, SemanticModel] = {}
        self._families: Dict[MemberSymbol, FrozenSet[MemberSymbol]] = {}
        self._constants: Dict[MemberSymbol, Optional[str]] = {}
        self._evaluating: Set[MemberSymbol] = set()

        # PASS 1: names only, so pass 2 can resolve any reference
        for document in self.documents.values():
            self._collect_usings(document)
            for node in traverse(document.tree.root_node):
                if node.type in TYPE_DECLARATIONS:
                    self._register_type(document, node)
        self._apply_global_usings()

        # PASS 2: hierarchy and members
        for full_name, declarations in self.type_declarations.items():
            for path, node in declarations:
                self._index_bases(full_name, path, node)
                self._index_members(full_name, path, node)

        logger.debug("Indexed %d types and %d members across %d documents",
                     len(self.types), sum(len(m) for m in self.members.values()), len(self.documents))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_sources(cls, sources: Dict[str, str], project: str = '',
                     localizer_types: Iterable[str] = DEFAULT_LOCALIZER_TYPES) -> 'SymbolIndex':
        """Build an index from in-memory sources keyed by path."""
        parser = LanguageParser()
        documents = []
        for path, source in sources.items():
            data = source.encode('utf-8')
            documents.append(SourceDocument(path=path, source=data, tree=parser.parse_source(data), project=project))
        return cls(documents, localizer_types)

    @classmethod
    async def build(cls, sources: Iterable[Tuple[str, str]],
                    localizer_types: Iterable[str] = DEFAULT_LOCALIZER_TYPES,
                    max_concurrency: int = 8) -> 'SymbolIndex':
        """Read and parse every (path, project name) pair, then index them.

        Files are read on worker threads; parsing stays on the event loop
        thread. Unreadable files are logged and skipped.
        """
        semaphore = asyncio.Semaphore(max_concurrency)

        async def read(path: str) -> Optional[bytes]:
            async with semaphore:
                try:
                    return await asyncio.to_thread(Path(path).read_bytes)
                except OSError as e:
                    logger.warning("Skipping unreadable source file %s: %s", path, e)
                    return None

        sources = list(sources)
        contents = await asyncio.gather(*(read(path) for path, _ in sources))

        parser = LanguageParser()
        documents = []
        for (path, project), data in zip(sources, contents):
            if data is None:
                continue
            documents.append(SourceDocument(path=path, source=data, tree=parser.parse_source(data), project=project))
            await asyncio.sleep(0)

        return cls(documents, localizer_types)

    def _collect_usings(self, document: SourceDocument):
        for node in traverse(document.tree.root_node):
            if node.type != 'using_directive':
                continue
            directive = read_using(node)
            if directive.target is None:
                continue
            if directive.is_global:
                self._global_usings.setdefault(document.project, []).append(directive)
            self._add_using(document, directive)

    @staticmethod
    def _add_using(document: SourceDocument, directive: UsingDirective):
        if directive.alias:
            document.aliases.setdefault(directive.alias, directive.target)
        elif directive.is_static:
            if directive.target.name not in document.static_usings:
                document.static_usings.append(directive.target.name)
        elif directive.target.name not in document.usings:
            document.usings.append(directive.target.name)

    def _apply_global_usings(self):
        for document in self.documents.values():
            for directive in self._global_usings.get(document.project, ()):
                self._add_using(document, directive)

    def _register_type(self, document: SourceDocument, node: Node):
        full_name = type_full_name(node)
        kind = node.type[:-len('_declaration')]
        self.types.setdefault(full_name, TypeSymbol(full_name, kind, tuple(type_parameter_names(node))))
        self.type_declarations.setdefault(full_name, []).append((document.path, node))
        self.hierarchy.add_node(full_name)

    def _index_bases(self, full_name: str, path: str, node: Node):
        base_list = first_child_of_type(node, 'base_list')
        if base_list is None:
            return
        for child in base_list.named_children:
            if child.type == 'primary_constructor_base_type':
                child = child.named_children[0] if child.named_children else None
            if child is None or child.type in ('comment', 'argument_list'):
                continue
            base = self.bind_type(type_ref_from_node(child), path, node)
            if base is None or base.name == full_name:
                continue
            self.hierarchy.add_edge(full_name, base.name, ref=base)

    def _index_members(self, owner: str, path: str, node: Node):
        parameters = node.child_by_field_name('parameters') or first_child_of_type(node, 'parameter_list')
        if parameters is not None:
            self._index_primary_parameters(owner, path, node, parameters)

        body = node.child_by_field_name('body') or first_child_of_type(node, 'declaration_list')
        for child in (body.named_children if body is not None else []):
            if child.type == 'method_declaration':
                returns = child.child_by_field_name('returns') or child.child_by_field_name('type')
                count, required, params_array = _parameter_shape(
                    child.child_by_field_name('parameters') or first_child_of_type(child, 'parameter_list'))
                self._add_member(owner, declaration_name(child), METHOD, path, child,
                                 self.bind_type(type_ref_from_node(returns), path, child),
                                 parameter_count=count, required_parameters=required,
                                 has_params_array=params_array,
                                 is_static=has_modifier(child, 'static'),
                                 is_extern=has_modifier(child, 'extern'))
            elif child.type == 'property_declaration':
                self._add_member(owner, declaration_name(child), PROPERTY, path, child,
                                 self.bind_type(type_ref_from_node(child.child_by_field_name('type')), path, child),
                                 is_static=has_modifier(child, 'static'))
            elif child.type == 'field_declaration':
                declaration = first_child_of_type(child, 'variable_declaration')
                if declaration is None:
                    continue
                kind = CONSTANT if has_modifier(child, 'const') else FIELD
                field_type = self.bind_type(type_ref_from_node(declaration.child_by_field_name('type')), path, child)
                for declarator in children_of_type(declaration, 'variable_declarator'):
                    self._add_member(owner, declaration_name(declarator), kind, path, declarator, field_type,
                                     is_static=kind == CONSTANT or has_modifier(child, 'static'))

    def _index_primary_parameters(self, owner: str, path: str, node: Node, parameters: Node):
        is_record = node.type.startswith('record')
        for parameter in children_of_type(parameters, 'parameter'):
            parameter_type = self.bind_type(type_ref_from_node(parameter.child_by_field_name('type')), path, node)
            name = declaration_name(parameter)
            if is_record:
                # Positional records expose each parameter as a property
                self._add_member(owner, name, PROPERTY, path, parameter, parameter_type)
            else:
                self.primary_parameters.setdefault(owner, {})[name] = parameter_type

    def _add_member(self, owner: str, name: str, kind: str, path: str, node: Node,
                    member_type: Optional[TypeRef], **details):
        if not name:
            return
        symbol = MemberSymbol(owner, name, kind, path, node.start_byte,
                              type=member_type, line=node.start_point[0] + 1, **details)
        self.members.setdefault(owner, []).append(symbol)
        self._member_by_position[(path, node.start_byte)] = symbol
        self._declarations[symbol] = node

    # ------------------------------------------------------------------
    # Type resolution
    # ------------------------------------------------------------------

    def static_usings_for(self, path: str) -> List[str]:
        document = self.documents.get(path)
        return document.static_usings if document is not None else []

    def resolve_type_name(self, name: str, path: str, node: Optional[Node] = None) -> Optional[str]:
        """Resolve a type name as written at `node` to a declared full name.

        Lookup order: nested types of the enclosing types (and their bases),
        the enclosing namespaces innermost first, the global namespace,
        using aliases, then using directives.

        Args:
            name: Simple or dotted type name without type arguments
            path: Document the name appears in
            node: Syntax node giving the lexical scope

        Returns:
            Fully-qualified type name, or None when the type is not declared
            in the solution
        """
        if name.startswith('global::'):
            name = name[len('global::'):]
        if '.' in name:
            return self._resolve_dotted(name, path, node)

        if node is not None:
            for type_node in enclosing_type_nodes(node):
                owner = type_full_name(type_node)
                for scope in itertools.chain([owner], self._base_names(owner)):
                    candidate = f"{scope}.{name}"
                    if candidate in self.types:
                        return candidate
            for prefix in namespace_prefixes(namespace_of(node)):
                candidate = f"{prefix}.{name}"
                if candidate in self.types:
                    return candidate

        if name in self.types:
            return name

        document = self.documents.get(path)
        if document is None:
            return None
        alias = document.aliases.get(name)
        if alias is not None and alias.name in self.types:
            return alias.name
        for namespace in document.usings:
            candidate = f"{namespace}.{name}"
            if candidate in self.types:
                return candidate
        return None

    def _resolve_dotted(self, name: str, path: str, node: Optional[Node]) -> Optional[str]:
        if name in self.types:
            return name

        head, _, rest = name.partition('.')
        document = self.documents.get(path)
        if document is not None and head in document.aliases:
            candidate = f"{document.aliases[head].name}.{rest}"
            if candidate in self.types:
                return candidate

        # Outer.Inner where Outer is itself resolvable
        outer = self.resolve_type_name(head, path, node)
        if outer is not None and f"{outer}.{rest}" in self.types:
            return f"{outer}.{rest}"

        prefixes = namespace_prefixes(namespace_of(node)) if node is not None else []
        if document is not None:
            prefixes = prefixes + document.usings
        for prefix in prefixes:
            candidate = f"{prefix}.{name}"
            if candidate in self.types:
                return candidate
        return None

    def _base_names(self, full_name: str) -> List[str]:
        if full_name not in self.hierarchy:
            return []
        return list(nx.descendants(self.hierarchy, full_name))

    @staticmethod
    def type_parameters_in_scope(node: Node) -> Set[str]:
        names = set()
        for scope in itertools.chain([node], ancestors(node)):
            if scope.type in _GENERIC_SCOPES:
                names.update(type_parameter_names(scope))
        return names

    def bind_type(self, type_ref: Optional[TypeRef], path: str, node: Optional[Node]) -> Optional[TypeRef]:
        """Resolve a written TypeRef (and its arguments) in the scope of `node`."""
        if type_ref is None or type_ref.resolved:
            return type_ref

        args = tuple(self.bind_type(arg, path, node) or arg for arg in type_ref.args)
        if not args and node is not None and type_ref.name in self.type_parameters_in_scope(node):
            return TypeRef(type_ref.name)

        full_name = self.resolve_type_name(type_ref.name, path, node)
        if full_name is not None:
            return TypeRef(full_name, args, resolved=True)
        return TypeRef(type_ref.name, args)

    def self_type(self, full_name: str) -> TypeRef:
        """The TypeRef of a declared type as seen from inside its own body."""
        symbol = self.types.get(full_name)
        parameters = symbol.type_parameters if symbol is not None else ()
        return TypeRef(full_name, tuple(TypeRef(p) for p in parameters), resolved=True)

    def base_types(self, full_name: str) -> List[TypeRef]:
        """Direct bases of a type in declaration order."""
        if full_name not in self.hierarchy:
            return []
        return [data['ref'] for _, _, data in self.hierarchy.out_edges(full_name, data=True)]

    def is_localizer(self, type_ref: Optional[TypeRef]) -> bool:
        """Check whether a type is, or transitively derives from, a localizer type."""
        if type_ref is None:
            return False
        if type_ref.simple_name in self.localizer_types:
            return True
        if type_ref.name not in self.hierarchy:
            return False
        return any(base.rsplit('.', 1)[-1] in self.localizer_types
                   for base in nx.descendants(self.hierarchy, type_ref.name))

    # ------------------------------------------------------------------
    # Member lookup
    # ------------------------------------------------------------------

    def lookup_members(self, type_ref: Optional[TypeRef], name: str,
                       kinds: Optional[Iterable[str]] = None) -> List[MemberMatch]:
        """Find members named `name` on a type or, failing that, its bases.

        The search is breadth-first from the type itself and stops at the
        first type that declares a match. Member types are specialised by
        substituting the receiver's generic arguments, including arguments
        passed along base type lists.

        Args:
            type_ref: Receiver type
            name: Member name
            kinds: Restrict to these member kinds (None for any)

        Returns:
            Matches in declaration order, empty if nothing is found
        """
        if type_ref is None:
            return []
        kinds = frozenset(kinds) if kinds is not None else None

        queue = deque([type_ref])
        seen = set()
        while queue:
            current = queue.popleft()
            if current.name in seen or not current.resolved:
                continue
            seen.add(current.name)

            symbol = self.types.get(current.name)
            mapping = dict(zip(symbol.type_parameters, current.args)) if symbol is not None else {}

            matches = [
                MemberMatch(member, member.type.substitute(mapping) if member.type is not None else None)
                for member in self.members.get(current.name, ())
                if member.name == name and (kinds is None or member.kind in kinds)
            ]
            if matches:
                return matches

            for base in self.base_types(current.name):
                queue.append(base.substitute(mapping))
        return []

    def member_family(self, symbol: MemberSymbol) -> FrozenSet[MemberSymbol]:
        """Members that a reference to `symbol` may bind through.

        Same-named methods or properties declared on the symbol's bases
        (overridden or implemented members) and on types deriving from its
        owner (overrides and implementations). Methods must also share the
        parameter shape, so other overloads of the name stay out.
        """
        if symbol in self._families:
            return self._families[symbol]

        family = {symbol}
        if symbol.kind in (METHOD, PROPERTY) and symbol.owner in self.hierarchy:
            owners = nx.descendants(self.hierarchy, symbol.owner) | nx.ancestors(self.hierarchy, symbol.owner)
            for owner in owners:
                for member in self.members.get(owner, ()):
                    if member.name == symbol.name and member.kind == symbol.kind \
                            and _same_shape(member, symbol):
                        family.add(member)

        result = frozenset(family)
        self._families[symbol] = result
        return result

    def member_at(self, path: str, node: Node) -> Optional[MemberSymbol]:
        """The member declared by a declaration node, if indexed."""
        return self._member_by_position.get((path, node.start_byte))

    def constant_of(self, symbol: MemberSymbol) -> Optional[str]:
        """Value of a `const` string member, or None."""
        if symbol.kind != CONSTANT:
            return None
        if symbol in self._constants:
            return self._constants[symbol]
        if symbol in self._evaluating:
            # const A = B; const B = A;
            return None

        node = self._declarations.get(symbol)
        initializer = declarator_initializer(node) if node is not None else None
        if initializer is None:
            return None

        self._evaluating.add(symbol)
        try:
            value = self.semantic_model(symbol.file_path).constant_value(initializer)
        finally:
            self._evaluating.discard(symbol)
        self._constants[symbol] = value
        return value

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def semantic_model(self, path: str) -> SemanticModel:
        model = self._models.get(path)
        if model is None:
            model = SemanticModel(self, self.documents[path])
            self._models[path] = model
        return model

    def iter_documents(self) -> Iterator[SourceDocument]:
        """Documents in path order."""
        for path in sorted(self.documents):
            yield self.documents[path]


"""Per-document semantic queries: expression types, constants and member binding.

A deliberately small model of C# name binding. It understands locals,
parameters, fields, properties, method return types, `this`/`base`, casts,
object creation and member chains, which covers how localizers are passed
around in practice. Anything it cannot type is reported as unknown (None)
and the caller discards the expression.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from tree_sitter import Node

from .symbols import CONSTANT, METHOD, VALUE_KINDS, MemberMatch, MemberSymbol, TypeRef
from .syntax import (
    BASE_NODES,
    CONTAINER_DECLARATIONS,
    LOCAL_SCOPES,
    MEMBER_DECLARATIONS,
    STRING_LITERALS,
    THIS_NODES,
    TYPE_DECLARATIONS,
    ancestors,
    argument_count,
    contains,
    declarator_initializer,
    decode_string_literal,
    enclosing_type_nodes,
    first_argument_expression,
    first_child_of_type,
    has_modifier,
    is_declaration_name,
    name_node,
    node_text,
    same_node,
    simple_name,
    traverse,
    type_display_name,
    type_full_name,
    type_ref_from_node,
)

if TYPE_CHECKING:
    from .symbol_index import SourceDocument, SymbolIndex

_STRING = TypeRef('string')
_EMPTY_STRINGS = frozenset({'string.Empty', 'String.Empty', 'System.String.Empty'})
_TASK_TYPES = frozenset({'Task', 'ValueTask'})

# Nodes that own the parameters declared in their parameter list
_FUNCTION_SCOPES = frozenset({
    'method_declaration',
    'constructor_declaration',
    'destructor_declaration',
    'operator_declaration',
    'conversion_operator_declaration',
    'indexer_declaration',
    'local_function_statement',
    'lambda_expression',
    'anonymous_method_expression',
})

_FIELD_LIKE = frozenset({'field_declaration', 'event_field_declaration'})


@dataclass(eq=False)
class Binding:
    """A local variable, parameter or pattern variable visible inside `scope`."""
    name: str
    node: Node
    type_node: Optional[Node]
    initializer: Optional[Node]
    scope: Node
    is_const: bool = False
    element_of: Optional[Node] = None  # foreach source expression for `foreach (var x in ...)`


def _nearest(node: Node, types) -> Optional[Node]:
    for ancestor in ancestors(node):
        if ancestor.type in types:
            return ancestor
    return None


def _binding_name(binding: Node) -> str:
    name = binding.child_by_field_name('name')
    if name is None and binding.named_children:
        name = binding.named_children[-1]
    return simple_name(name)


def enclosing_member_node(node: Node) -> Optional[Node]:
    """Nearest member-level declaration around `node` (method, property, field...)."""
    for ancestor in ancestors(node):
        if ancestor.type in MEMBER_DECLARATIONS:
            return ancestor
        if ancestor.type in TYPE_DECLARATIONS:
            return None
    return None


class SemanticModel:
    """Semantic view of one document, backed by the solution-wide index."""

    def __init__(self, index: 'SymbolIndex', document: 'SourceDocument'):
        self.index = index
        self.document = document
        self.path = document.path
        self._bindings: Dict[Tuple[int, int], Dict[str, List[Binding]]] = {}
        self._binding_types: Dict[int, Optional[TypeRef]] = {}
        self._typing: set = set()

    # ------------------------------------------------------------------
    # Locals
    # ------------------------------------------------------------------

    def _binding_root(self, node: Node) -> Optional[Node]:
        """Member declaration owning the locals visible at `node`.

        Top-level statements use the compilation unit; nodes inside a type
        but outside any member have no locals at all.
        """
        for ancestor in ancestors(node):
            if ancestor.type in MEMBER_DECLARATIONS:
                return ancestor
            if ancestor.type in TYPE_DECLARATIONS:
                return None
        return self.document.tree.root_node

    def _collect_bindings(self, root: Node) -> Dict[str, List[Binding]]:
        key = (root.start_byte, root.end_byte)
        if key in self._bindings:
            return self._bindings[key]

        if root.type == 'compilation_unit':
            # Only top-level statements declare locals at file level
            nodes = [n for child in root.children if child.type == 'global_statement' for n in traverse(child)]
        else:
            nodes = traverse(root)

        bindings: Dict[str, List[Binding]] = {}
        for node in nodes:
            binding = self._binding_for(node, root)
            if binding is not None and binding.name:
                bindings.setdefault(binding.name, []).append(binding)

        self._bindings[key] = bindings
        return bindings

    def _binding_for(self, node: Node, root: Node) -> Optional[Binding]:
        kind = node.type

        if kind in ('parameter', 'parameter_array'):
            scope = _nearest(node, _FUNCTION_SCOPES)
            if scope is None:
                return None
            return Binding(node_text(name_node(node)), name_node(node), node.child_by_field_name('type'), None, scope)

        if kind == 'lambda_expression':
            parameters = node.child_by_field_name('parameters')
            if parameters is not None and parameters.type == 'identifier':
                return Binding(node_text(parameters), parameters, None, None, node)
            return None

        if kind == 'variable_declarator':
            declaration = node.parent
            if declaration is None or declaration.type != 'variable_declaration':
                return None
            if declaration.parent is not None and declaration.parent.type in _FIELD_LIKE:
                return None
            scope = _nearest(node, LOCAL_SCOPES)
            statement = declaration.parent
            is_const = statement is not None and statement.type == 'local_declaration_statement' \
                and has_modifier(statement, 'const')
            return Binding(node_text(name_node(node)), name_node(node), declaration.child_by_field_name('type'),
                           declarator_initializer(node), scope or root, is_const)

        if kind == 'foreach_statement':
            left = node.child_by_field_name('left')
            if left is None or left.type != 'identifier':
                return None
            return Binding(node_text(left), left, node.child_by_field_name('type'), None, node,
                           element_of=node.child_by_field_name('right'))

        if kind == 'catch_declaration':
            name = node.child_by_field_name('name')
            if name is None:
                return None
            return Binding(node_text(name), name, node.child_by_field_name('type'), None,
                           _nearest(node, {'catch_clause'}) or root)

        if kind in ('declaration_pattern', 'declaration_expression'):
            name = node.child_by_field_name('name') or node.child_by_field_name('designation')
            if name is not None and name.type != 'identifier':
                name = first_child_of_type(name, 'identifier')
            if name is None:
                return None
            return Binding(node_text(name), name, node.child_by_field_name('type'), None,
                           _nearest(node, LOCAL_SCOPES) or root)

        return None

    def find_local(self, identifier: Node) -> Optional[Binding]:
        """Innermost local or parameter named like `identifier` that is visible at it."""
        root = self._binding_root(identifier)
        if root is None:
            return None
        name = node_text(identifier)
        candidates = [
            binding for binding in self._collect_bindings(root).get(name, ())
            if contains(binding.scope, identifier)
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda b: b.scope.end_byte - b.scope.start_byte)

    def binding_type(self, binding: Binding) -> Optional[TypeRef]:
        key = id(binding)
        if key in self._binding_types:
            return self._binding_types[key]

        self._binding_types[key] = None  # guards `var x = x.Foo();`
        written = type_ref_from_node(binding.type_node)
        if written is not None:
            result = self.index.bind_type(written, self.path, binding.node)
        elif binding.element_of is not None:
            source = self.expression_type(binding.element_of)
            result = source.args[0] if source is not None and len(source.args) == 1 else None
        elif binding.initializer is not None:
            result = self.expression_type(binding.initializer)
        else:
            result = None

        self._binding_types[key] = result
        return result

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def enclosing_type_name(self, node: Node) -> Optional[str]:
        types = enclosing_type_nodes(node)
        return type_full_name(types[0]) if types else None

    def enclosing_type_display(self, node: Node) -> Optional[str]:
        types = enclosing_type_nodes(node)
        return type_display_name(types[0]) if types else None

    def _scope_types(self, node: Node) -> List[TypeRef]:
        """Enclosing types innermost first, then statically imported types."""
        scopes = [self.index.self_type(type_full_name(t)) for t in enclosing_type_nodes(node)]
        for name in self.index.static_usings_for(self.path):
            full_name = self.index.resolve_type_name(name, self.path, None)
            if full_name is not None:
                scopes.append(self.index.self_type(full_name))
        return scopes

    def _lookup_in_scope(self, node: Node, name: str, kinds) -> List[MemberMatch]:
        for scope in self._scope_types(node):
            matches = self.index.lookup_members(scope, name, kinds)
            if matches:
                return matches
        return []

    def _receiver_type(self, receiver: Optional[Node]) -> Optional[TypeRef]:
        """Type of a member access receiver, which may also name a type (`Keys.Title`)."""
        if receiver is None:
            return None
        return self.expression_type(receiver) or self._type_named(receiver)

    def _conditional_receiver(self, binding: Node) -> Optional[Node]:
        """The `x` of the `x?.` that a `.Name` member binding continues."""
        for ancestor in ancestors(binding):
            if ancestor.type != 'conditional_access_expression':
                continue
            condition = ancestor.child_by_field_name('condition') \
                or (ancestor.named_children[0] if ancestor.named_children else None)
            if condition is not None and not contains(condition, binding):
                return condition
        return None

    def _type_named(self, node: Node) -> Optional[TypeRef]:
        """Interpret an expression such as `Ns.Type` or `Type<Arg>` as a type name."""
        if node.type not in ('identifier', 'generic_name', 'qualified_name', 'member_access_expression',
                             'alias_qualified_name'):
            return None
        if node.type == 'member_access_expression':
            written = TypeRef(node_text(node).replace(' ', ''))
        else:
            written = type_ref_from_node(node)
        bound = self.index.bind_type(written, self.path, node)
        if bound is None or not bound.resolved:
            return None
        return bound

    def expression_type(self, node: Optional[Node]) -> Optional[TypeRef]:
        """Static type of an expression, or None when it cannot be determined."""
        if node is None:
            return None
        key = (node.start_byte, node.end_byte, node.type)
        if key in self._typing:
            return None
        self._typing.add(key)
        try:
            return self._expression_type(node)
        finally:
            self._typing.discard(key)

    def _expression_type(self, node: Node) -> Optional[TypeRef]:
        kind = node.type

        if kind == 'identifier':
            return self._identifier_type(node)

        if kind in THIS_NODES:
            types = enclosing_type_nodes(node)
            return self.index.self_type(type_full_name(types[0])) if types else None

        if kind in BASE_NODES:
            types = enclosing_type_nodes(node)
            bases = self.index.base_types(type_full_name(types[0])) if types else []
            return bases[0] if bases else None

        if kind == 'member_access_expression':
            receiver = node.child_by_field_name('expression')
            name = simple_name(node.child_by_field_name('name'))
            receiver_type = self._receiver_type(receiver)
            matches = self.index.lookup_members(receiver_type, name, VALUE_KINDS)
            if matches:
                return matches[0].type
            return self._type_named(node)

        if kind == 'member_binding_expression':
            receiver_type = self._receiver_type(self._conditional_receiver(node))
            matches = self.index.lookup_members(receiver_type, _binding_name(node), VALUE_KINDS)
            return matches[0].type if matches else None

        if kind == 'conditional_access_expression':
            # x?.A.B has the type of its last link
            return self.expression_type(node.named_children[-1]) if len(node.named_children) > 1 else None

        if kind == 'invocation_expression':
            function = node.child_by_field_name('function')
            if function is not None and node_text(function) == 'nameof':
                return _STRING
            matches = self._invocation_targets(node, function)
            picked = self._pick(matches, argument_count(node))
            return picked.type if picked is not None else None

        if kind in ('object_creation_expression', 'cast_expression'):
            return self.index.bind_type(type_ref_from_node(node.child_by_field_name('type')), self.path, node)

        if kind == 'as_expression':
            target = node.child_by_field_name('right') or (node.named_children[-1] if node.named_children else None)
            return self.index.bind_type(type_ref_from_node(target), self.path, node)

        if kind in ('parenthesized_expression', 'postfix_unary_expression'):
            # (expr) and the null-forgiving expr!
            return self.expression_type(node.named_children[0]) if node.named_children else None

        if kind == 'await_expression':
            awaited = self.expression_type(node.named_children[-1]) if node.named_children else None
            if awaited is not None and awaited.simple_name in _TASK_TYPES and len(awaited.args) == 1:
                return awaited.args[0]
            return None

        if kind == 'conditional_expression':
            return self.expression_type(node.child_by_field_name('consequence'))

        if kind == 'predefined_type':
            return TypeRef(node_text(node))

        if kind in STRING_LITERALS:
            return _STRING

        if kind == 'generic_name':
            return self._type_named(node)

        return None

    def _identifier_type(self, node: Node) -> Optional[TypeRef]:
        name = node_text(node)

        binding = self.find_local(node)
        if binding is not None:
            return self.binding_type(binding)

        matches = self._lookup_in_scope(node, name, VALUE_KINDS)
        if matches:
            return matches[0].type

        for type_node in enclosing_type_nodes(node):
            parameters = self.index.primary_parameters.get(type_full_name(type_node), {})
            if name in parameters:
                return parameters[name]

        return self._type_named(node)

    def _invocation_targets(self, invocation: Node, function: Optional[Node]) -> List[MemberMatch]:
        if function is None:
            return []
        if function.type == 'conditional_access_expression' and function.named_children:
            function = function.named_children[-1]
        if function.type == 'member_binding_expression':
            return self.index.lookup_members(self._receiver_type(self._conditional_receiver(function)),
                                             _binding_name(function), {METHOD})
        if function.type == 'member_access_expression':
            receiver = function.child_by_field_name('expression')
            receiver_type = self._receiver_type(receiver)
            return self.index.lookup_members(receiver_type, simple_name(function.child_by_field_name('name')),
                                             {METHOD})
        if function.type in ('identifier', 'generic_name'):
            return self._lookup_in_scope(invocation, simple_name(function), {METHOD})
        return []

    @staticmethod
    def _pick(matches: List[MemberMatch], arguments: Optional[int] = None) -> Optional[MemberMatch]:
        """First candidate, preferring overloads that accept the argument count."""
        if not matches:
            return None
        if arguments is not None:
            compatible = [m for m in matches if m.symbol.kind != METHOD or m.symbol.accepts(arguments)]
            if compatible:
                return compatible[0]
        return matches[0]

    def is_localizer(self, node: Optional[Node]) -> bool:
        return self.index.is_localizer(self.expression_type(node))

    # ------------------------------------------------------------------
    # Constants
    # ------------------------------------------------------------------

    def constant_value(self, node: Optional[Node]) -> Optional[str]:
        """Evaluate a compile-time constant string expression.

        Supports string literals (regular, verbatim, raw, interpolated without
        holes), `+` concatenation, parentheses, `nameof(...)`, `string.Empty`
        and references to `const` locals and fields, including those of other
        types.

        Returns:
            The string value, or None when the expression is not a constant
        """
        if node is None:
            return None
        kind = node.type

        if kind in STRING_LITERALS:
            return decode_string_literal(node)

        if kind == 'parenthesized_expression':
            return self.constant_value(node.named_children[0]) if node.named_children else None

        if kind == 'binary_expression':
            operator = node.child_by_field_name('operator')
            if node_text(operator) != '+':
                return None
            left = self.constant_value(node.child_by_field_name('left'))
            right = self.constant_value(node.child_by_field_name('right'))
            if left is None or right is None:
                return None
            return left + right

        if kind == 'invocation_expression':
            function = node.child_by_field_name('function')
            if node_text(function) != 'nameof':
                return None
            argument = first_argument_expression(node)
            if argument is None:
                return None
            if argument.type == 'member_access_expression':
                return simple_name(argument.child_by_field_name('name'))
            return simple_name(argument)

        if kind == 'identifier':
            binding = self.find_local(node)
            if binding is not None:
                return self.constant_value(binding.initializer) if binding.is_const else None
            matches = self._lookup_in_scope(node, node_text(node), {CONSTANT})
            return self.index.constant_of(matches[0].symbol) if matches else None

        if kind == 'member_access_expression':
            if node_text(node).replace(' ', '') in _EMPTY_STRINGS:
                return ''
            receiver = node.child_by_field_name('expression')
            receiver_type = self._receiver_type(receiver)
            matches = self.index.lookup_members(receiver_type, simple_name(node.child_by_field_name('name')),
                                                {CONSTANT})
            return self.index.constant_of(matches[0].symbol) if matches else None

        return None

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def declared_member(self, node: Node) -> Optional[MemberSymbol]:
        """The method or property whose declaration contains `node`.

        Returns None inside constructors, field initializers, indexers and
        any other member kind.
        """
        member = enclosing_member_node(node)
        if member is None or member.type not in CONTAINER_DECLARATIONS:
            return None
        return self.index.member_at(self.path, member)

    def resolve_member_reference(self, identifier: Node) -> Optional[MemberSymbol]:
        """Bind an identifier to the member it refers to.

        Locals and parameters shadow members. `x.Name` binds through the
        static type of `x`; a bare name binds through the enclosing types
        and their bases; `Name = ...` inside an object initializer binds
        through the created type.

        Returns:
            The referenced member, or None for declarations, locals and
            anything that cannot be bound
        """
        if is_declaration_name(identifier):
            return None

        target = identifier
        if target.parent is not None and target.parent.type == 'generic_name':
            target = target.parent
        parent = target.parent
        if parent is None:
            return None
        name = node_text(identifier)
        arguments = self._invocation_arguments(target)

        if parent.type == 'member_access_expression':
            if not same_node(parent.child_by_field_name('name'), target):
                # Receiver position: a plain identifier, resolved below
                return self._resolve_bare(identifier, name, arguments)
            receiver = parent.child_by_field_name('expression')
            receiver_type = self._receiver_type(receiver)
            arguments = self._invocation_arguments(parent)
            kinds = {METHOD} if arguments is not None else None
            picked = self._pick(self.index.lookup_members(receiver_type, name, kinds), arguments)
            return picked.symbol if picked is not None else None

        if parent.type == 'assignment_expression' and same_node(parent.child_by_field_name('left'), target):
            initializer = parent.parent
            creation = initializer.parent if initializer is not None else None
            if initializer is not None and initializer.type == 'initializer_expression' \
                    and creation is not None and creation.type == 'object_creation_expression':
                created = self.expression_type(creation)
                picked = self._pick(self.index.lookup_members(created, name, VALUE_KINDS))
                return picked.symbol if picked is not None else None

        if parent.type == 'member_binding_expression':
            # x?.Name or x?.Name(...): bind through the type of x
            receiver_type = self._receiver_type(self._conditional_receiver(parent))
            arguments = self._invocation_arguments(parent)
            if arguments is None and parent.parent is not None \
                    and parent.parent.type == 'conditional_access_expression':
                arguments = self._invocation_arguments(parent.parent)
            kinds = {METHOD} if arguments is not None else None
            picked = self._pick(self.index.lookup_members(receiver_type, name, kinds), arguments)
            return picked.symbol if picked is not None else None

        if parent.type == 'qualified_name':
            return None

        return self._resolve_bare(identifier, name, arguments)

    def _resolve_bare(self, identifier: Node, name: str, arguments: Optional[int]) -> Optional[MemberSymbol]:
        if self.find_local(identifier) is not None:
            return None
        kinds = {METHOD} if arguments is not None else None
        picked = self._pick(self._lookup_in_scope(identifier, name, kinds), arguments)
        return picked.symbol if picked is not None else None

    @staticmethod
    def _invocation_arguments(node: Node) -> Optional[int]:
        """Argument count when `node` is the function of an invocation, else None."""
        parent = node.parent
        if parent is not None and parent.type == 'invocation_expression' \
                and same_node(parent.child_by_field_name('function'), node):
            return argument_count(parent)
        return None

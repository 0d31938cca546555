"""Navigation helpers for tree-sitter C# syntax trees.

Node type names follow the tree-sitter-c-sharp grammar. Where the grammar
changed between releases (file-scoped namespaces, `this`, declarator
initializers) both shapes are accepted.
"""
import re
from typing import Iterator, List, Optional

from tree_sitter import Node

from .symbols import TypeRef


TYPE_DECLARATIONS = frozenset({
    'class_declaration',
    'struct_declaration',
    'record_declaration',
    'record_struct_declaration',
    'interface_declaration',
})

NAMESPACE_DECLARATIONS = frozenset({
    'namespace_declaration',
    'file_scoped_namespace_declaration',
})

# Members that can contain a key usage and be searched for references
CONTAINER_DECLARATIONS = frozenset({
    'method_declaration',
    'property_declaration',
})

# Member-level declarations: the outermost scope a local variable can live in
MEMBER_DECLARATIONS = frozenset({
    'method_declaration',
    'property_declaration',
    'constructor_declaration',
    'destructor_declaration',
    'operator_declaration',
    'conversion_operator_declaration',
    'indexer_declaration',
    'event_declaration',
    'field_declaration',
    'event_field_declaration',
})

# Nodes whose `name` field declares something rather than referencing it
NAMED_DECLARATIONS = frozenset(TYPE_DECLARATIONS | NAMESPACE_DECLARATIONS | MEMBER_DECLARATIONS | {
    'enum_declaration',
    'enum_member_declaration',
    'delegate_declaration',
    'local_function_statement',
    'variable_declarator',
    'parameter',
    'type_parameter',
    'catch_declaration',
})

# Nodes that bound the visibility of a local declared inside them
LOCAL_SCOPES = frozenset({
    'block',
    'switch_section',
    'for_statement',
    'foreach_statement',
    'using_statement',
    'fixed_statement',
    'catch_clause',
    'lambda_expression',
    'anonymous_method_expression',
    'arrow_expression_clause',
    'compilation_unit',
})

THIS_NODES = frozenset({'this', 'this_expression'})
BASE_NODES = frozenset({'base', 'base_expression'})

STRING_LITERALS = frozenset({
    'string_literal',
    'verbatim_string_literal',
    'raw_string_literal',
    'interpolated_string_expression',
})

_SIMPLE_ESCAPES = {
    "'": "'", '"': '"', '\\': '\\', '0': '\0', 'a': '\a', 'b': '\b',
    'e': '\x1b', 'f': '\f', 'n': '\n', 'r': '\r', 't': '\t', 'v': '\v',
}
_ESCAPE_RE = re.compile(r'\\(u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|x[0-9a-fA-F]{1,4}|.)', re.DOTALL)


def node_text(node: Optional[Node]) -> str:
    """Decode a node's source text (empty string for None)."""
    if node is None:
        return ''
    return node.text.decode('utf-8', errors='ignore')


def traverse(node: Node) -> Iterator[Node]:
    """Iteratively walk a subtree in source order using a stack.

    Args:
        node: Root node to start traversal

    Yields:
        All nodes in the subtree, parents before children
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def ancestors(node: Node) -> Iterator[Node]:
    """Yield parents from the innermost outwards."""
    parent = node.parent
    while parent is not None:
        yield parent
        parent = parent.parent


def same_node(left: Optional[Node], right: Optional[Node]) -> bool:
    if left is None or right is None:
        return False
    return (left.start_byte, left.end_byte, left.type) == (right.start_byte, right.end_byte, right.type)


def contains(outer: Node, inner: Node) -> bool:
    return outer.start_byte <= inner.start_byte and inner.end_byte <= outer.end_byte


def first_child_of_type(node: Optional[Node], *types: str) -> Optional[Node]:
    if node is None:
        return None
    for child in node.children:
        if child.type in types:
            return child
    return None


def children_of_type(node: Optional[Node], *types: str) -> List[Node]:
    if node is None:
        return []
    return [child for child in node.children if child.type in types]


def has_modifier(node: Node, modifier: str) -> bool:
    return any(child.type == 'modifier' and node_text(child) == modifier for child in node.children)


def name_node(node: Node) -> Optional[Node]:
    """The `name` field of a declaration, falling back to its first identifier."""
    name = node.child_by_field_name('name')
    if name is not None:
        return name
    return first_child_of_type(node, 'identifier')


def declaration_name(node: Node) -> str:
    return node_text(name_node(node))


def simple_name(node: Optional[Node]) -> str:
    """Name of an identifier or generic name, without type arguments."""
    if node is None:
        return ''
    if node.type == 'generic_name':
        return node_text(first_child_of_type(node, 'identifier'))
    return node_text(node)


def namespace_of(node: Node) -> str:
    """Compute the namespace a node is declared in."""
    parts = []
    root = node
    for ancestor in ancestors(node):
        root = ancestor
        if ancestor.type in NAMESPACE_DECLARATIONS:
            parts.append(declaration_name(ancestor))
    parts.reverse()

    # Newer grammars make `namespace X;` a sibling of the declarations it scopes
    if root.type == 'compilation_unit' and not any(
            ancestor.type == 'file_scoped_namespace_declaration' for ancestor in ancestors(node)):
        for child in root.children:
            if child.type == 'file_scoped_namespace_declaration' and child.start_byte < node.start_byte:
                parts.insert(0, declaration_name(child))
                break

    return '.'.join(part for part in parts if part)


def namespace_prefixes(namespace: str) -> List[str]:
    """'A.B.C' -> ['A.B.C', 'A.B', 'A']"""
    if not namespace:
        return []
    parts = namespace.split('.')
    return ['.'.join(parts[:i]) for i in range(len(parts), 0, -1)]


def enclosing_type_nodes(node: Node) -> List[Node]:
    """Type declarations around `node`, innermost first."""
    return [ancestor for ancestor in ancestors(node) if ancestor.type in TYPE_DECLARATIONS]


def type_parameter_names(type_node: Node) -> List[str]:
    parameters = first_child_of_type(type_node, 'type_parameter_list')
    return [declaration_name(parameter) for parameter in children_of_type(parameters, 'type_parameter')]


def type_full_name(type_node: Node) -> str:
    """Fully-qualified name of a type declaration: 'Ns.Outer.Inner'."""
    names = [declaration_name(outer) for outer in reversed(enclosing_type_nodes(type_node))]
    names.append(declaration_name(type_node))
    namespace = namespace_of(type_node)
    if namespace:
        names.insert(0, namespace)
    return '.'.join(names)


def type_display_name(type_node: Node) -> str:
    """Full name plus type parameters: 'Ns.Repository<T>'."""
    parameters = type_parameter_names(type_node)
    full_name = type_full_name(type_node)
    if parameters:
        return f"{full_name}<{', '.join(parameters)}>"
    return full_name


def type_ref_from_node(node: Optional[Node]) -> Optional[TypeRef]:
    """Build an unbound TypeRef from a type syntax node.

    Returns None for `var`, which must be inferred from the initializer.
    """
    if node is None:
        return None

    kind = node.type
    if kind == 'implicit_type' or (kind == 'identifier' and node_text(node) == 'var'):
        return None
    if kind in ('identifier', 'predefined_type'):
        return TypeRef(node_text(node))
    if kind in ('nullable_type', 'ref_type', 'scoped_type'):
        inner = node.child_by_field_name('type')
        if inner is None and node.named_children:
            inner = node.named_children[0]
        return type_ref_from_node(inner)
    if kind == 'generic_name':
        identifier = first_child_of_type(node, 'identifier')
        argument_list = first_child_of_type(node, 'type_argument_list')
        args = []
        for argument in (argument_list.named_children if argument_list is not None else []):
            args.append(type_ref_from_node(argument) or TypeRef(node_text(argument)))
        return TypeRef(node_text(identifier), tuple(args))
    if kind == 'qualified_name':
        qualifier = node.child_by_field_name('qualifier')
        name = node.child_by_field_name('name')
        if (qualifier is None or name is None) and len(node.named_children) >= 2:
            qualifier, name = node.named_children[0], node.named_children[-1]
        inner = type_ref_from_node(name)
        if inner is None:
            return TypeRef(node_text(node))
        return TypeRef(f"{node_text(qualifier)}.{inner.name}", inner.args)
    if kind == 'alias_qualified_name':
        # global::Ns.Type
        name = node.child_by_field_name('name')
        if name is None and node.named_children:
            name = node.named_children[-1]
        return type_ref_from_node(name)

    # Arrays, tuples, pointers and function pointers are opaque
    return TypeRef(node_text(node))


def declarator_initializer(declarator: Node) -> Optional[Node]:
    """Initializer expression of a variable declarator, if any."""
    seen_equals = False
    for child in declarator.children:
        if child.type == 'equals_value_clause':
            return child.named_children[0] if child.named_children else None
        if seen_equals and child.is_named:
            return child
        if child.type == '=':
            seen_equals = True
    return None


def first_argument_expression(node: Node) -> Optional[Node]:
    """Expression of the first argument of an element access or invocation."""
    arguments = node.child_by_field_name('subscript') or node.child_by_field_name('arguments')
    if arguments is None:
        arguments = first_child_of_type(node, 'bracketed_argument_list', 'argument_list')
    argument = first_child_of_type(arguments, 'argument')
    if argument is None or not argument.named_children:
        return None
    # Skip an optional `name:` label
    return argument.named_children[-1]


def argument_count(invocation: Node) -> int:
    arguments = invocation.child_by_field_name('arguments') or first_child_of_type(invocation, 'argument_list')
    return len(children_of_type(arguments, 'argument'))


def is_declaration_name(node: Node) -> bool:
    """True when `node` is the name being declared, not a reference."""
    parent = node.parent
    if parent is None:
        return False
    if parent.type == 'name_colon':
        return True
    if parent.type in ('argument', 'declaration_expression', 'using_directive'):
        # These carry an optional `name` field; never fall back to the first identifier
        return same_node(parent.child_by_field_name('name'), node)
    if parent.type not in NAMED_DECLARATIONS:
        return False
    return same_node(name_node(parent), node)


def _unescape(body: str) -> str:
    def replace_escape(match):
        sequence = match.group(1)
        if sequence[0] in 'uUx' and len(sequence) > 1:
            return chr(int(sequence[1:], 16))
        return _SIMPLE_ESCAPES.get(sequence, sequence)

    return _ESCAPE_RE.sub(replace_escape, body)


def _raw_string_body(text: str) -> str:
    quotes = len(text) - len(text.lstrip('"'))
    content = text[quotes:len(text) - quotes]
    if '\n' not in content:
        return content

    lines = content.split('\n')
    indentation = lines[-1]
    body = []
    for line in lines[1:-1]:
        line = line.rstrip('\r')
        body.append(line[len(indentation):] if line.startswith(indentation) else line.lstrip())
    return '\n'.join(body)


def decode_string_literal(node: Node) -> Optional[str]:
    """Value of a string literal node, or None when it is not a constant.

    Interpolated strings are constant only when they contain no holes.
    """
    text = node_text(node)

    if node.type == 'verbatim_string_literal':
        return text[2:-1].replace('""', '"')

    if node.type == 'raw_string_literal':
        return _raw_string_body(text)

    if node.type == 'interpolated_string_expression':
        if any(child.type == 'interpolation' for child in node.children):
            return None
        prefix = text[:len(text) - len(text.lstrip('$@'))]
        if prefix.count('$') != 1:
            return None
        body = text[len(prefix) + 1:-1]
        if '@' in prefix:
            body = body.replace('""', '"')
        else:
            body = _unescape(body)
        return body.replace('{{', '{').replace('}}', '}')

    if node.type == 'string_literal':
        if text[-2:] in ('u8', 'U8'):
            text = text[:-2]
        if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
            return _unescape(text[1:-1])

    return None

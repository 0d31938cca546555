"""Symbol value objects shared by the index, the semantic model and the extractors."""
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple


# Member kinds
METHOD = 'method'
PROPERTY = 'property'
FIELD = 'field'
CONSTANT = 'constant'

# Kinds whose declared type is the type of a bare reference expression
VALUE_KINDS = frozenset({PROPERTY, FIELD, CONSTANT})


@dataclass(frozen=True)
class TypeRef:
    """A type as seen by the analyzer.

    `name` is the fully-qualified name when `resolved` is True (the type is
    declared somewhere in the solution), otherwise the name as written in
    source, e.g. 'IStringLocalizer' or a type parameter such as 'T'.
    """
    name: str
    args: Tuple['TypeRef', ...] = ()
    resolved: bool = False

    @property
    def simple_name(self) -> str:
        return self.name.rsplit('.', 1)[-1]

    def display(self) -> str:
        """Render as C# would display it: 'Ns.Type<Ns.Arg, string>'."""
        if not self.args:
            return self.name
        return f"{self.name}<{', '.join(arg.display() for arg in self.args)}>"

    def substitute(self, mapping: Dict[str, 'TypeRef']) -> 'TypeRef':
        """Replace type parameters by the arguments bound in `mapping`."""
        if not mapping:
            return self
        if not self.resolved and not self.args and self.name in mapping:
            return mapping[self.name]
        if not self.args:
            return self
        return replace(self, args=tuple(arg.substitute(mapping) for arg in self.args))


@dataclass(frozen=True)
class TypeSymbol:
    """A class, struct, record or interface declared in the solution."""
    full_name: str
    kind: str  # class, struct, record, interface
    type_parameters: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.full_name.rsplit('.', 1)[-1]

    @property
    def display_name(self) -> str:
        if not self.type_parameters:
            return self.full_name
        return f"{self.full_name}<{', '.join(self.type_parameters)}>"


@dataclass(frozen=True)
class MemberSymbol:
    """A declared method, property, field or constant.

    Identity is the declaration site: owner, name, kind, file and byte offset.
    Everything else is descriptive and excluded from equality and hashing.
    """
    owner: str
    name: str
    kind: str
    file_path: str
    start_byte: int
    type: Optional[TypeRef] = field(default=None, compare=False)
    parameter_count: int = field(default=0, compare=False)
    required_parameters: int = field(default=0, compare=False)
    has_params_array: bool = field(default=False, compare=False)
    is_static: bool = field(default=False, compare=False)
    is_extern: bool = field(default=False, compare=False)
    line: int = field(default=0, compare=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}.{self.name}"

    def accepts(self, argument_count: int) -> bool:
        """Check whether an invocation with `argument_count` arguments can bind here."""
        if argument_count < self.required_parameters:
            return False
        return self.has_params_array or argument_count <= self.parameter_count


@dataclass(frozen=True)
class MemberMatch:
    """A member found by lookup, with its type specialised for the receiver."""
    symbol: MemberSymbol
    type: Optional[TypeRef]

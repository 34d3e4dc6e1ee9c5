"""Small TypeScript declaration IR and its printer.

Only the constructs the client generator emits are modelled. Every node is a
frozen dataclass; ``print_declarations`` turns a list of declarations into
source text.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

INDENT = "    "
IDENTIFIER_REGEX = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


# ============================================================
# Type expressions
# ============================================================

@dataclass(frozen=True)
class KeywordType:
    """string, number, boolean, null, undefined, any, unknown, never."""
    name: str


@dataclass(frozen=True)
class LiteralType:
    value: str | int | float | bool


@dataclass(frozen=True)
class TypeReference:
    name: str
    arguments: tuple["TypeExpression", ...] = ()


@dataclass(frozen=True)
class ArrayType:
    element: "TypeExpression"


@dataclass(frozen=True)
class PropertySignature:
    name: str
    type: "TypeExpression"
    optional: bool = False
    readonly: bool = False
    comment: tuple[str, ...] = ()


@dataclass(frozen=True)
class ObjectType:
    members: tuple[PropertySignature, ...] = ()


@dataclass(frozen=True)
class UnionType:
    members: tuple["TypeExpression", ...]


@dataclass(frozen=True)
class IntersectionType:
    members: tuple["TypeExpression", ...]


@dataclass(frozen=True)
class TemplateLiteralType:
    """`${M} ${P}`: strings are emitted verbatim, expressions inside ${}."""
    parts: tuple[Union[str, "TypeExpression"], ...]


@dataclass(frozen=True)
class IndexedAccessType:
    object: "TypeExpression"
    index: "TypeExpression"


@dataclass(frozen=True)
class TypeParameter:
    name: str
    constraint: "TypeExpression | None" = None


@dataclass(frozen=True)
class Parameter:
    name: str
    type: "TypeExpression | None" = None
    modifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class FunctionType:
    parameters: tuple[Parameter, ...]
    returns: "TypeExpression"
    type_parameters: tuple[TypeParameter, ...] = ()


TypeExpression = Union[
    KeywordType,
    LiteralType,
    TypeReference,
    ArrayType,
    ObjectType,
    UnionType,
    IntersectionType,
    TemplateLiteralType,
    IndexedAccessType,
    FunctionType,
]

STRING = KeywordType("string")
NUMBER = KeywordType("number")
BOOLEAN = KeywordType("boolean")
NULL = KeywordType("null")
UNDEFINED = KeywordType("undefined")
ANY = KeywordType("any")
NEVER = KeywordType("never")


def _member_key(member: TypeExpression) -> Any:
    # 1 == True and 0 == False in Python, not in TypeScript.
    if isinstance(member, LiteralType):
        return (LiteralType, type(member.value), member.value)
    return member


def union_of(members: Sequence[TypeExpression]) -> TypeExpression:
    """Flattened union; a single member is returned as is, none is ``never``."""
    flattened: list[TypeExpression] = []
    seen: list[Any] = []
    for member in members:
        candidates = member.members if isinstance(member, UnionType) else (member,)
        for candidate in candidates:
            key = _member_key(candidate)
            if key not in seen:
                seen.append(key)
                flattened.append(candidate)
    if not flattened:
        return NEVER
    if len(flattened) == 1:
        return flattened[0]
    return UnionType(tuple(flattened))


# ============================================================
# Declarations
# ============================================================

@dataclass(frozen=True)
class TypeAliasDeclaration:
    name: str
    type: TypeExpression
    type_parameters: tuple[TypeParameter, ...] = ()
    exported: bool = True
    comment: tuple[str, ...] = ()


@dataclass(frozen=True)
class InterfaceDeclaration:
    name: str
    members: tuple[PropertySignature, ...]
    extends: tuple[TypeExpression, ...] = ()
    exported: bool = True
    comment: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConstDeclaration:
    """``export const name = { key: literal, ... };``"""
    name: str
    entries: tuple[tuple[str, Any], ...]
    exported: bool = True


@dataclass(frozen=True)
class ClassProperty:
    name: str
    initializer: str
    modifiers: tuple[str, ...] = ("public", "readonly")


@dataclass(frozen=True)
class ClassDeclaration:
    name: str
    constructor_parameters: tuple[Parameter, ...] = ()
    properties: tuple[ClassProperty, ...] = ()
    exported: bool = True
    comment: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommentBlock:
    lines: tuple[str, ...] = field(default_factory=tuple)


Declaration = Union[
    TypeAliasDeclaration,
    InterfaceDeclaration,
    ConstDeclaration,
    ClassDeclaration,
    CommentBlock,
]


# ============================================================
# Printer
# ============================================================

def quote_property_name(name: str) -> str:
    return name if IDENTIFIER_REGEX.match(name) else json.dumps(name)


def _print_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(value, ensure_ascii=False)


def print_jsdoc(lines: Sequence[str], indent: str = "") -> list[str]:
    if not lines:
        return []
    if len(lines) == 1 and "\n" not in lines[0]:
        return [f"{indent}/** {lines[0]} */"]
    rendered = [f"{indent}/**"]
    for line in lines:
        for part in line.splitlines() or [""]:
            rendered.append(f"{indent} * {part}".rstrip())
    rendered.append(f"{indent} */")
    return rendered


def _needs_parentheses(expression: TypeExpression) -> bool:
    return isinstance(expression, (UnionType, IntersectionType, FunctionType))


def _print_member(member: PropertySignature, level: int) -> list[str]:
    indent = INDENT * level
    lines = print_jsdoc(member.comment, indent)
    prefix = "readonly " if member.readonly else ""
    marker = "?" if member.optional else ""
    lines.append(f"{indent}{prefix}{quote_property_name(member.name)}{marker}: {print_type(member.type, level)};")
    return lines


def _print_members(members: Sequence[PropertySignature], level: int) -> str:
    if not members:
        return "{}"
    lines = ["{"]
    for member in members:
        lines.extend(_print_member(member, level + 1))
    lines.append(f"{INDENT * level}}}")
    return "\n".join(lines)


def _print_type_parameters(type_parameters: Sequence[TypeParameter], level: int) -> str:
    if not type_parameters:
        return ""
    rendered = []
    for parameter in type_parameters:
        if parameter.constraint is None:
            rendered.append(parameter.name)
        else:
            rendered.append(f"{parameter.name} extends {print_type(parameter.constraint, level)}")
    return "<" + ", ".join(rendered) + ">"


def _print_parameter(parameter: Parameter, level: int) -> str:
    modifiers = " ".join(parameter.modifiers)
    text = f"{modifiers} {parameter.name}" if modifiers else parameter.name
    if parameter.type is not None:
        text += f": {print_type(parameter.type, level)}"
    return text


def print_type(expression: TypeExpression, level: int = 0) -> str:
    """Print one type expression; ``level`` is the indentation of the enclosing line."""
    if isinstance(expression, KeywordType):
        return expression.name
    if isinstance(expression, LiteralType):
        return _print_literal(expression.value)
    if isinstance(expression, TypeReference):
        if not expression.arguments:
            return expression.name
        return f"{expression.name}<{', '.join(print_type(argument, level) for argument in expression.arguments)}>"
    if isinstance(expression, ArrayType):
        element = print_type(expression.element, level)
        if _needs_parentheses(expression.element):
            element = f"({element})"
        return f"{element}[]"
    if isinstance(expression, ObjectType):
        return _print_members(expression.members, level)
    if isinstance(expression, UnionType):
        return " | ".join(
            f"({print_type(member, level)})" if isinstance(member, FunctionType) else print_type(member, level)
            for member in expression.members
        )
    if isinstance(expression, IntersectionType):
        return " & ".join(
            f"({print_type(member, level)})" if _needs_parentheses(member) else print_type(member, level)
            for member in expression.members
        )
    if isinstance(expression, TemplateLiteralType):
        text = "".join(
            part.replace("`", "\\`") if isinstance(part, str) else "${" + print_type(part, level) + "}"
            for part in expression.parts
        )
        return f"`{text}`"
    if isinstance(expression, IndexedAccessType):
        target = print_type(expression.object, level)
        if _needs_parentheses(expression.object):
            target = f"({target})"
        return f"{target}[{print_type(expression.index, level)}]"
    if isinstance(expression, FunctionType):
        type_parameters = _print_type_parameters(expression.type_parameters, level)
        parameters = ", ".join(_print_parameter(parameter, level) for parameter in expression.parameters)
        return f"{type_parameters}({parameters}) => {print_type(expression.returns, level)}"
    raise TypeError(f"Cannot print {type(expression).__name__} as a TypeScript type")


def print_declaration(declaration: Declaration) -> str:
    if isinstance(declaration, CommentBlock):
        lines = ["/*"]
        lines.extend(f"{line}".rstrip() for line in declaration.lines)
        lines.append("*/")
        return "\n".join(lines)

    export = "export " if getattr(declaration, "exported", False) else ""
    comment = print_jsdoc(getattr(declaration, "comment", ()))
    header = "\n".join(comment) + "\n" if comment else ""

    if isinstance(declaration, TypeAliasDeclaration):
        type_parameters = _print_type_parameters(declaration.type_parameters, 0)
        return f"{header}{export}type {declaration.name}{type_parameters} = {print_type(declaration.type)};"

    if isinstance(declaration, InterfaceDeclaration):
        extends = ""
        if declaration.extends:
            extends = " extends " + ", ".join(print_type(parent) for parent in declaration.extends)
        return f"{header}{export}interface {declaration.name}{extends} {_print_members(declaration.members, 0)}"

    if isinstance(declaration, ConstDeclaration):
        if not declaration.entries:
            return f"{export}const {declaration.name} = {{}};"
        lines = [f"{export}const {declaration.name} = {{"]
        for key, value in declaration.entries:
            lines.append(f"{INDENT}{quote_property_name(key)}: {_print_literal(value)},")
        lines.append("};")
        return "\n".join(lines)

    if isinstance(declaration, ClassDeclaration):
        lines = [f"{header}{export}class {declaration.name} {{"]
        if declaration.constructor_parameters:
            parameters = ", ".join(_print_parameter(parameter, 1) for parameter in declaration.constructor_parameters)
            lines.append(f"{INDENT}public constructor({parameters}) {{}}")
        for class_property in declaration.properties:
            modifiers = " ".join(class_property.modifiers)
            lines.append(f"{INDENT}{modifiers} {class_property.name} = {class_property.initializer};")
        lines.append("}")
        return "\n".join(lines)

    raise TypeError(f"Cannot print {type(declaration).__name__} as a TypeScript declaration")


def print_declarations(declarations: Sequence[Declaration]) -> str:
    """Source text with one blank line between declarations and a trailing newline."""
    return "\n\n".join(print_declaration(declaration) for declaration in declarations) + "\n"

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Legacy interface-definition parser.

`parse_udl(text, crate_name)` turns one legacy interface file into a
`MetadataGroup` for the owning library. Parsing happens in two steps: the lark
grammar produces a tree, then the builder below resolves type names against the
file's own declarations and emits metadata items.

Types declared with `[External="lib"] typedef extern Name;` are emitted as
`ExternalType` with an empty namespace; the external-type resolver fills it in
once every library of the artifact is known.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedEOF, UnexpectedInput

from ubind.meta.errors import LegacyParseError
from ubind.meta.group import MetadataGroup
from ubind.meta.items import (
	CallbackInterfaceMetadata,
	ConstructorMetadata,
	CustomTypeMetadata,
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	Metadata,
	MethodMetadata,
	NamespaceMetadata,
	ObjectMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	VariantMetadata,
)
from ubind.meta.types import (
	CallbackInterfaceType,
	CustomType,
	EnumType,
	ExternalKind,
	ExternalType,
	MapType,
	ObjectType,
	OptionalType,
	PrimitiveKind,
	PrimitiveType,
	RecordType,
	SequenceType,
	Type,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text(encoding="utf-8")

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	start="start",
	propagate_positions=True,
	maybe_placeholders=False,
)

_PRIMITIVES: Dict[str, PrimitiveKind] = {k.value: k for k in PrimitiveKind}


@dataclass(frozen=True)
class _Attr:
	name: str
	value: Optional[str]


@dataclass
class _Builder:
	"""Per-file state: declared type names and the items emitted so far."""

	crate_name: str
	declared: Dict[str, Type] = field(default_factory=dict)
	items: List[Metadata] = field(default_factory=list)
	namespace: Optional[str] = None


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	return node.type


def _decode_string_token(b: _Builder, tok: Token) -> str:
	"""Decode a STRING token (Python-style escapes, UTF-8 bytes)."""
	content = tok.value[1:-1]
	try:
		unescaped = codecs.decode(content, "unicode_escape")
		return unescaped.encode("latin-1").decode("utf-8")
	except UnicodeError as err:
		raise _error(b, f"invalid string escape: {err}", tok) from err


def _error(b: _Builder, message: str, node: Tree | Token | None) -> LegacyParseError:
	line = column = None
	if isinstance(node, Token):
		line, column = node.line, node.column
	elif isinstance(node, Tree) and not node.meta.empty:
		line, column = node.meta.line, node.meta.column
	return LegacyParseError(message=message, library_id=b.crate_name, line=line, column=column)


def _children(tree: Tree, kind: str) -> List[Tree]:
	return [c for c in tree.children if isinstance(c, Tree) and _name(c) == kind]


def _first_token(tree: Tree, kind: str) -> Token:
	return next(c for c in tree.children if isinstance(c, Token) and c.type == kind)


def _attributes(b: _Builder, tree: Tree) -> Dict[str, _Attr]:
	out: Dict[str, _Attr] = {}
	for attrs in _children(tree, "attributes"):
		for attr in _children(attrs, "attribute"):
			toks = [c for c in attr.children if isinstance(c, Token)]
			value: Optional[str] = None
			if len(toks) > 1:
				value = _decode_string_token(b, toks[1]) if toks[1].type == "STRING" else toks[1].value
			out[toks[0].value] = _Attr(name=toks[0].value, value=value)
	return out


# ---------------------------------------------------------------------------
# Pass 1: declarations
# ---------------------------------------------------------------------------


def _declare(b: _Builder, name_tok: Token, ty: Type) -> None:
	if name_tok.value in b.declared or name_tok.value in _PRIMITIVES:
		raise _error(b, f"duplicate definition of '{name_tok.value}'", name_tok)
	b.declared[name_tok.value] = ty


def _collect_declarations(b: _Builder, tree: Tree) -> None:
	for node in tree.children:
		if not isinstance(node, Tree):
			continue
		kind = _name(node)
		if kind == "namespace_def":
			if b.namespace is not None:
				raise _error(b, "more than one namespace declared", node)
			b.namespace = _first_token(node, "NAME").value
			continue
		name_tok = _first_token(node, "NAME")
		attrs = _attributes(b, node)
		if kind == "dictionary_def":
			_declare(b, name_tok, RecordType(b.crate_name, name_tok.value))
		elif kind == "enum_def":
			_declare(b, name_tok, EnumType(b.crate_name, name_tok.value))
		elif kind == "interface_def":
			if "Enum" in attrs or "Error" in attrs:
				_declare(b, name_tok, EnumType(b.crate_name, name_tok.value))
			else:
				_declare(b, name_tok, ObjectType(b.crate_name, name_tok.value))
		elif kind == "callback_def":
			_declare(b, name_tok, CallbackInterfaceType(b.crate_name, name_tok.value))
		elif kind == "typedef_def":
			# Custom typedefs need their builtin resolved; handled in pass 2.
			if "External" in attrs or "ExternalInterface" in attrs:
				_declare(b, name_tok, _external_typedef(b, node, name_tok, attrs))
	if b.namespace is None:
		raise LegacyParseError(message="missing namespace declaration", library_id=b.crate_name)


def _external_typedef(b: _Builder, node: Tree, name_tok: Token, attrs: Dict[str, _Attr]) -> ExternalType:
	target = _first_child(node, "typedef_target")
	if not any(isinstance(c, Token) and c.type == "EXTERN" for c in target.children):
		raise _error(b, f"external typedef '{name_tok.value}' must use 'extern'", name_tok)
	attr = attrs.get("External") or attrs["ExternalInterface"]
	if not attr.value:
		raise _error(b, f"external typedef '{name_tok.value}' must name its library", name_tok)
	return ExternalType(
		namespace="",
		module_path=attr.value,
		name=name_tok.value,
		kind=ExternalKind.INTERFACE if attr.name == "ExternalInterface" else ExternalKind.DATA_CLASS,
		tagged=False,
		contains_object_references=True,
	)


def _first_child(tree: Tree, kind: str) -> Tree:
	return _children(tree, kind)[0]


# ---------------------------------------------------------------------------
# Pass 2: items
# ---------------------------------------------------------------------------


def _build_type(b: _Builder, node: Tree) -> Type:
	kind = _name(node)
	if kind == "optional_type":
		return OptionalType(_build_type(b, node.children[0]))
	if kind == "sequence_type":
		return SequenceType(_build_type(b, node.children[0]))
	if kind == "map_type":
		key, value = [c for c in node.children if isinstance(c, Tree)]
		return MapType(_build_type(b, key), _build_type(b, value))
	if kind == "named_type":
		tok = node.children[0]
		prim = _PRIMITIVES.get(tok.value)
		if prim is not None:
			return PrimitiveType(prim)
		ty = b.declared.get(tok.value)
		if ty is None:
			raise _error(b, f"unknown type '{tok.value}'", tok)
		return ty
	raise _error(b, f"unexpected type node '{kind}'", node)


def _build_params(b: _Builder, tree: Tree) -> tuple[FnParamMetadata, ...]:
	out: List[FnParamMetadata] = []
	for params in _children(tree, "params"):
		for param in _children(params, "param"):
			ty_node = next(c for c in param.children if isinstance(c, Tree))
			out.append(FnParamMetadata(name=_first_token(param, "NAME").value, ty=_build_type(b, ty_node)))
	return tuple(out)


def _build_return(b: _Builder, tree: Tree) -> Optional[Type]:
	ret = _first_child(tree, "return_type")
	child = ret.children[0]
	if isinstance(child, Token) and child.type == "VOID":
		return None
	return _build_type(b, child)


def _build_throws(b: _Builder, tree: Tree) -> Optional[Type]:
	attr = _attributes(b, tree).get("Throws")
	if attr is None:
		return None
	if not attr.value:
		raise _error(b, "[Throws] needs an error type", tree)
	ty = b.declared.get(attr.value)
	if ty is None:
		raise _error(b, f"unknown error type '{attr.value}'", tree)
	return ty


def _build_fields(b: _Builder, tree: Tree, kind: str = "field_decl") -> tuple[FieldMetadata, ...]:
	out: List[FieldMetadata] = []
	for decl in _children(tree, kind):
		ty_node = next(c for c in decl.children if isinstance(c, Tree) and _name(c) not in {"attributes", "field_default"})
		default: Optional[str] = None
		for d in _children(decl, "field_default"):
			tok = d.children[0]
			default = _decode_string_token(b, tok) if tok.type == "STRING" else tok.value
		out.append(FieldMetadata(name=_first_token(decl, "NAME").value, ty=_build_type(b, ty_node), default=default))
	return tuple(out)


def _func_name(tree: Tree) -> str:
	return _first_token(tree, "NAME").value


def _build_namespace(b: _Builder, node: Tree) -> None:
	for fn in _children(node, "func_decl"):
		b.items.append(
			FnMetadata(
				module_path=b.crate_name,
				name=_func_name(fn),
				inputs=_build_params(b, fn),
				return_type=_build_return(b, fn),
				throws=_build_throws(b, fn),
				is_async="Async" in _attributes(b, fn),
			)
		)


def _build_enum(b: _Builder, node: Tree, attrs: Dict[str, _Attr]) -> None:
	variants: List[VariantMetadata] = []
	for values in _children(node, "enum_values"):
		for tok in values.children:
			if isinstance(tok, Token) and tok.type == "STRING":
				variants.append(VariantMetadata(name=_decode_string_token(b, tok)))
	b.items.append(
		EnumMetadata(
			module_path=b.crate_name,
			name=_first_token(node, "NAME").value,
			variants=tuple(variants),
			is_error="Error" in attrs,
		)
	)


def _build_trait_methods(b: _Builder, node: Tree, trait_name: str) -> None:
	for index, fn in enumerate(_children(node, "func_decl")):
		b.items.append(
			TraitMethodMetadata(
				module_path=b.crate_name,
				trait_name=trait_name,
				index=index,
				name=_func_name(fn),
				inputs=_build_params(b, fn),
				return_type=_build_return(b, fn),
				throws=_build_throws(b, fn),
				is_async="Async" in _attributes(b, fn),
			)
		)


def _build_interface(b: _Builder, node: Tree, attrs: Dict[str, _Attr]) -> None:
	name = _first_token(node, "NAME").value
	if "Enum" in attrs or "Error" in attrs:
		variants = tuple(
			VariantMetadata(
				name=_first_token(v, "NAME").value,
				fields=tuple(FieldMetadata(name=p.name, ty=p.ty) for p in _build_params(b, v)),
			)
			for v in _children(node, "variant_decl")
		)
		b.items.append(EnumMetadata(module_path=b.crate_name, name=name, variants=variants, is_error="Error" in attrs))
		return
	if _children(node, "variant_decl"):
		raise _error(b, f"interface '{name}' declares variants but is not an [Enum]", node)
	is_trait = "Trait" in attrs
	b.items.append(ObjectMetadata(module_path=b.crate_name, name=name, is_trait=is_trait))
	for ctor in _children(node, "constructor_decl"):
		ctor_attrs = _attributes(b, ctor)
		ctor_name = ctor_attrs["Name"].value if "Name" in ctor_attrs and ctor_attrs["Name"].value else "new"
		b.items.append(
			ConstructorMetadata(
				module_path=b.crate_name,
				self_name=name,
				name=ctor_name,
				inputs=_build_params(b, ctor),
				throws=_build_throws(b, ctor),
			)
		)
	if is_trait:
		_build_trait_methods(b, node, name)
		return
	for fn in _children(node, "func_decl"):
		b.items.append(
			MethodMetadata(
				module_path=b.crate_name,
				self_name=name,
				name=_func_name(fn),
				inputs=_build_params(b, fn),
				return_type=_build_return(b, fn),
				throws=_build_throws(b, fn),
				is_async="Async" in _attributes(b, fn),
			)
		)


def _build_custom_typedef(b: _Builder, node: Tree, attrs: Dict[str, _Attr]) -> None:
	name_tok = _first_token(node, "NAME")
	if "Custom" not in attrs:
		raise _error(b, f"typedef '{name_tok.value}' needs [Custom], [External] or [ExternalInterface]", name_tok)
	target = _first_child(node, "typedef_target")
	builtin_node = next((c for c in target.children if isinstance(c, Tree)), None)
	if builtin_node is None:
		raise _error(b, f"custom typedef '{name_tok.value}' must name a builtin type", name_tok)
	builtin = _build_type(b, builtin_node)
	_declare(b, name_tok, CustomType(module_path=b.crate_name, name=name_tok.value, builtin=builtin))
	b.items.append(CustomTypeMetadata(module_path=b.crate_name, name=name_tok.value, builtin=builtin))


def _build_items(b: _Builder, tree: Tree) -> None:
	# Custom typedefs first: later definitions may use them.
	for node in _children(tree, "typedef_def"):
		attrs = _attributes(b, node)
		if "External" not in attrs and "ExternalInterface" not in attrs:
			_build_custom_typedef(b, node, attrs)

	for node in tree.children:
		if not isinstance(node, Tree):
			continue
		kind = _name(node)
		attrs = _attributes(b, node)
		if kind == "namespace_def":
			_build_namespace(b, node)
		elif kind == "dictionary_def":
			b.items.append(
				RecordMetadata(module_path=b.crate_name, name=_first_token(node, "NAME").value, fields=_build_fields(b, node))
			)
		elif kind == "enum_def":
			_build_enum(b, node, attrs)
		elif kind == "interface_def":
			_build_interface(b, node, attrs)
		elif kind == "callback_def":
			name = _first_token(node, "NAME").value
			b.items.append(CallbackInterfaceMetadata(module_path=b.crate_name, name=name))
			_build_trait_methods(b, node, name)


def parse_udl(text: str, crate_name: str) -> MetadataGroup:
	"""Parse a legacy interface file owned by library `crate_name`."""
	b = _Builder(crate_name=crate_name)
	try:
		tree = _PARSER.parse(text)
	except UnexpectedEOF as err:
		raise LegacyParseError(message="unexpected end of input", library_id=crate_name) from err
	except UnexpectedInput as err:
		raise LegacyParseError(
			message=f"syntax error: {str(err).splitlines()[0]}",
			library_id=crate_name,
			line=err.line,
			column=err.column,
		) from err

	_collect_declarations(b, tree)
	_build_items(b, tree)

	group = MetadataGroup(namespace=NamespaceMetadata(crate_name=crate_name, name=b.namespace))
	for item in b.items:
		group.add_item(item)
	return group


__all__ = ["parse_udl"]

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Metadata items: one fact about a library's public interface.

Items are emitted (unordered) by every library packaged into a shared library
and are grouped per library by `ubind.meta.group`. They are frozen and hold
tuples only, so equality and hashing are structural and items can live in a
duplicate-rejecting set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ubind.meta.types import Type

MODULE_PATH_SEP = "::"


@dataclass(frozen=True)
class NamespaceMetadata:
	"""Maps a library's internal identifier to its public namespace name."""

	crate_name: str
	name: str


@dataclass(frozen=True)
class UdlFileMetadata:
	"""Marker: the library also ships a legacy interface-definition file."""

	module_path: str
	namespace: str
	file_stub: str


@dataclass(frozen=True)
class FnParamMetadata:
	name: str
	ty: Type


@dataclass(frozen=True)
class FieldMetadata:
	name: str
	ty: Type
	default: Optional[str] = None
	docstring: Optional[str] = None


@dataclass(frozen=True)
class FnMetadata:
	module_path: str
	name: str
	inputs: Tuple[FnParamMetadata, ...] = ()
	return_type: Optional[Type] = None
	throws: Optional[Type] = None
	is_async: bool = False
	docstring: Optional[str] = None


@dataclass(frozen=True)
class ConstructorMetadata:
	module_path: str
	self_name: str
	name: str
	inputs: Tuple[FnParamMetadata, ...] = ()
	return_type: Optional[Type] = None
	throws: Optional[Type] = None
	docstring: Optional[str] = None


@dataclass(frozen=True)
class MethodMetadata:
	module_path: str
	self_name: str
	name: str
	inputs: Tuple[FnParamMetadata, ...] = ()
	return_type: Optional[Type] = None
	throws: Optional[Type] = None
	is_async: bool = False
	docstring: Optional[str] = None


@dataclass(frozen=True)
class TraitMethodMetadata:
	module_path: str
	trait_name: str
	index: int
	name: str
	inputs: Tuple[FnParamMetadata, ...] = ()
	return_type: Optional[Type] = None
	throws: Optional[Type] = None
	is_async: bool = False
	docstring: Optional[str] = None


@dataclass(frozen=True)
class RecordMetadata:
	module_path: str
	name: str
	fields: Tuple[FieldMetadata, ...] = ()
	docstring: Optional[str] = None


@dataclass(frozen=True)
class VariantMetadata:
	name: str
	fields: Tuple[FieldMetadata, ...] = ()
	docstring: Optional[str] = None


@dataclass(frozen=True)
class EnumMetadata:
	module_path: str
	name: str
	variants: Tuple[VariantMetadata, ...] = ()
	is_error: bool = False
	docstring: Optional[str] = None


@dataclass(frozen=True)
class ObjectMetadata:
	module_path: str
	name: str
	is_trait: bool = False
	docstring: Optional[str] = None


@dataclass(frozen=True)
class CallbackInterfaceMetadata:
	module_path: str
	name: str
	docstring: Optional[str] = None


@dataclass(frozen=True)
class CustomTypeMetadata:
	module_path: str
	name: str
	builtin: Type
	docstring: Optional[str] = None


Metadata = Union[
	NamespaceMetadata,
	UdlFileMetadata,
	FnMetadata,
	ConstructorMetadata,
	MethodMetadata,
	TraitMethodMetadata,
	RecordMetadata,
	EnumMetadata,
	ObjectMetadata,
	CallbackInterfaceMetadata,
	CustomTypeMetadata,
]

# Canonical ordering between item kinds: namespace facts first, then type
# declarations, then callables.
_KIND_ORDER: dict[type, int] = {
	NamespaceMetadata: 0,
	UdlFileMetadata: 1,
	CustomTypeMetadata: 2,
	RecordMetadata: 3,
	EnumMetadata: 4,
	ObjectMetadata: 5,
	CallbackInterfaceMetadata: 6,
	ConstructorMetadata: 7,
	MethodMetadata: 8,
	TraitMethodMetadata: 9,
	FnMetadata: 10,
}


@dataclass(frozen=True)
class ItemIdentifier:
	"""Stable key of a user-defined record/enum across all libraries."""

	module_path: str
	name: str


def calc_crate_name(module_path: str) -> str:
	"""Return the library identifier (leading segment) of a module path."""
	return module_path.split(MODULE_PATH_SEP, 1)[0]


def item_module_path(item: Metadata) -> str:
	if isinstance(item, NamespaceMetadata):
		return item.crate_name
	return item.module_path


def item_kind(item: Metadata) -> str:
	"""Wire tag of an item (`Record`, `Func`, ...)."""
	return _ITEM_KIND_NAMES[type(item)]


def item_name(item: Metadata) -> str:
	"""Best-effort display name, qualified by owner for methods."""
	if isinstance(item, NamespaceMetadata):
		return item.name
	if isinstance(item, UdlFileMetadata):
		return item.file_stub
	if isinstance(item, (ConstructorMetadata, MethodMetadata)):
		return f"{item.self_name}.{item.name}"
	if isinstance(item, TraitMethodMetadata):
		return f"{item.trait_name}.{item.name}"
	return item.name


def item_sort_key(item: Metadata) -> tuple[int, str, str, str]:
	"""
	Canonical total order over items.

	`repr` of a frozen dataclass is fully structural, so it breaks ties between
	distinct items of the same kind and name deterministically.
	"""
	return (_KIND_ORDER[type(item)], item_module_path(item), item_name(item), repr(item))


def describe_item(item: Metadata) -> str:
	return f"{item_kind(item)} {item_module_path(item)}::{item_name(item)}"


_ITEM_KIND_NAMES: dict[type, str] = {
	NamespaceMetadata: "Namespace",
	UdlFileMetadata: "UdlFile",
	FnMetadata: "Func",
	ConstructorMetadata: "Constructor",
	MethodMetadata: "Method",
	TraitMethodMetadata: "TraitMethod",
	RecordMetadata: "Record",
	EnumMetadata: "Enum",
	ObjectMetadata: "Object",
	CallbackInterfaceMetadata: "CallbackInterface",
	CustomTypeMetadata: "CustomType",
}


__all__ = [
	"MODULE_PATH_SEP",
	"NamespaceMetadata",
	"UdlFileMetadata",
	"FnParamMetadata",
	"FieldMetadata",
	"FnMetadata",
	"ConstructorMetadata",
	"MethodMetadata",
	"TraitMethodMetadata",
	"RecordMetadata",
	"VariantMetadata",
	"EnumMetadata",
	"ObjectMetadata",
	"CallbackInterfaceMetadata",
	"CustomTypeMetadata",
	"Metadata",
	"ItemIdentifier",
	"calc_crate_name",
	"item_module_path",
	"item_kind",
	"item_name",
	"item_sort_key",
	"describe_item",
]

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Type vocabulary for interface metadata.

Types are immutable, structurally compared values. User-defined types are
referenced by `(module_path, name)`; the leading `::` segment of a module path
names the library that owns the type.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Union


class PrimitiveKind(Enum):
	"""Builtin scalar and buffer types understood by every binding writer."""

	UINT8 = "u8"
	INT8 = "i8"
	UINT16 = "u16"
	INT16 = "i16"
	UINT32 = "u32"
	INT32 = "i32"
	UINT64 = "u64"
	INT64 = "i64"
	FLOAT32 = "f32"
	FLOAT64 = "f64"
	BOOLEAN = "boolean"
	STRING = "string"
	BYTES = "bytes"
	TIMESTAMP = "timestamp"
	DURATION = "duration"


class ExternalKind(Enum):
	"""How an external type crosses the binding boundary."""

	DATA_CLASS = "DataClass"
	INTERFACE = "Interface"


@dataclass(frozen=True)
class PrimitiveType:
	kind: PrimitiveKind


@dataclass(frozen=True)
class ObjectType:
	"""A reference-counted handle type."""

	module_path: str
	name: str


@dataclass(frozen=True)
class RecordType:
	module_path: str
	name: str


@dataclass(frozen=True)
class EnumType:
	module_path: str
	name: str


@dataclass(frozen=True)
class CallbackInterfaceType:
	module_path: str
	name: str


@dataclass(frozen=True)
class CustomType:
	"""User-defined wrapper whose wire representation is `builtin`."""

	module_path: str
	name: str
	builtin: "Type"


@dataclass(frozen=True)
class OptionalType:
	inner: "Type"


@dataclass(frozen=True)
class SequenceType:
	inner: "Type"


@dataclass(frozen=True)
class MapType:
	key: "Type"
	value: "Type"


@dataclass(frozen=True)
class ExternalType:
	"""
	Reference to a type owned by a different library.

	`namespace` is the public namespace of the owning library. It may be empty
	while the type is still unresolved (e.g. declared by a legacy IDL file) and is
	never empty once the external-type resolver has run.
	"""

	namespace: str
	module_path: str
	name: str
	kind: ExternalKind
	tagged: bool = False
	contains_object_references: bool = True


Type = Union[
	PrimitiveType,
	ObjectType,
	RecordType,
	EnumType,
	CallbackInterfaceType,
	CustomType,
	OptionalType,
	SequenceType,
	MapType,
	ExternalType,
]

NamedType = Union[ObjectType, RecordType, EnumType, CallbackInterfaceType, CustomType, ExternalType]

_NAMED_TYPES = (ObjectType, RecordType, EnumType, CallbackInterfaceType, CustomType, ExternalType)


def primitive(name: str) -> PrimitiveType:
	"""Build a primitive type from its IDL spelling (`u32`, `string`, ...)."""
	return PrimitiveType(PrimitiveKind(name))


def is_named(ty: Type) -> bool:
	"""True for types that point at a user-defined declaration."""
	return isinstance(ty, _NAMED_TYPES)


def iter_types(ty: Type) -> Iterator[Type]:
	"""
	Yield `ty` followed by every type nested inside it (depth-first).

	Custom types yield their builtin representation as a nested type.
	"""
	yield ty
	if isinstance(ty, (OptionalType, SequenceType)):
		yield from iter_types(ty.inner)
	elif isinstance(ty, MapType):
		yield from iter_types(ty.key)
		yield from iter_types(ty.value)
	elif isinstance(ty, CustomType):
		yield from iter_types(ty.builtin)


def type_label(ty: Type) -> str:
	"""Short human-readable rendering used in error messages."""
	if isinstance(ty, PrimitiveType):
		return ty.kind.value
	if isinstance(ty, OptionalType):
		return f"{type_label(ty.inner)}?"
	if isinstance(ty, SequenceType):
		return f"sequence<{type_label(ty.inner)}>"
	if isinstance(ty, MapType):
		return f"record<{type_label(ty.key)}, {type_label(ty.value)}>"
	return f"{ty.module_path}::{ty.name}"


__all__ = [
	"PrimitiveKind",
	"ExternalKind",
	"PrimitiveType",
	"ObjectType",
	"RecordType",
	"EnumType",
	"CallbackInterfaceType",
	"CustomType",
	"OptionalType",
	"SequenceType",
	"MapType",
	"ExternalType",
	"Type",
	"NamedType",
	"primitive",
	"is_named",
	"iter_types",
	"type_label",
]

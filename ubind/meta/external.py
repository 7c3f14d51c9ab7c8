# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
External-type resolution.

Every type occurrence reachable from an item that points at a different library
than the item's own is rewritten into an `ExternalType` carrying the target
library's public namespace and its object-reference flag. Resolution runs once
per item at grouping time; every binding writer consumes the same result.

Pinned rules:
- Record/Enum -> External(DataClass), object-reference flag from the
  precomputed reference-free set.
- Custom -> External(DataClass, contains_object_references=True); custom type
  representations are never analyzed.
- Object -> External(Interface, contains_object_references=True).
- CallbackInterface across libraries is unsupported (structured error).
- An existing External is stamped with its library's namespace. A namespace that
  is already set must agree with the resolved one, which keeps resolution
  idempotent.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, AbstractSet, Mapping, Optional, Tuple

from ubind.meta.errors import NamespaceResolutionError, UnsupportedCrossLibraryTypeError
from ubind.meta.items import (
	ConstructorMetadata,
	CustomTypeMetadata,
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	ItemIdentifier,
	Metadata,
	MethodMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	calc_crate_name,
	item_module_path,
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
	RecordType,
	SequenceType,
	Type,
)

if TYPE_CHECKING:
	from ubind.meta.group import MetadataGroup


class ExternalTypeConverter:
	"""Rewrites the types of items owned by `crate_name`."""

	def __init__(
		self,
		crate_name: str,
		crate_to_namespace: Mapping[str, "MetadataGroup"],
		items_without_obj_refs: AbstractSet[ItemIdentifier],
	) -> None:
		self.crate_name = crate_name
		self.crate_to_namespace = crate_to_namespace
		self.items_without_obj_refs = items_without_obj_refs

	def namespace_for(self, module_path: str, type_name: str) -> str:
		target = calc_crate_name(module_path)
		group = self.crate_to_namespace.get(target)
		if group is None:
			raise NamespaceResolutionError(
				message=f"can't find namespace for library '{target}' referenced from '{self.crate_name}'",
				library_id=target,
				type_name=type_name,
			)
		return group.namespace.name

	def is_module_path_external(self, module_path: str) -> bool:
		return calc_crate_name(module_path) != self.crate_name

	def convert_item(self, item: Metadata) -> Metadata:
		if isinstance(item, (FnMetadata, MethodMetadata, TraitMethodMetadata, ConstructorMetadata)):
			return replace(
				item,
				inputs=self.convert_params(item.inputs),
				return_type=self.convert_optional(item.return_type),
				throws=self.convert_optional(item.throws),
			)
		if isinstance(item, RecordMetadata):
			return replace(item, fields=self.convert_fields(item.fields))
		if isinstance(item, EnumMetadata):
			return replace(
				item,
				variants=tuple(replace(v, fields=self.convert_fields(v.fields)) for v in item.variants),
			)
		if isinstance(item, CustomTypeMetadata):
			return replace(item, builtin=self.convert_type(item.builtin))
		return item

	def convert_params(self, params: Tuple[FnParamMetadata, ...]) -> Tuple[FnParamMetadata, ...]:
		return tuple(replace(p, ty=self.convert_type(p.ty)) for p in params)

	def convert_fields(self, fields: Tuple[FieldMetadata, ...]) -> Tuple[FieldMetadata, ...]:
		return tuple(replace(f, ty=self.convert_type(f.ty)) for f in fields)

	def convert_optional(self, ty: Optional[Type]) -> Optional[Type]:
		return None if ty is None else self.convert_type(ty)

	def convert_type(self, ty: Type) -> Type:
		if isinstance(ty, (RecordType, EnumType)) and self.is_module_path_external(ty.module_path):
			item_id = ItemIdentifier(module_path=ty.module_path, name=ty.name)
			return ExternalType(
				namespace=self.namespace_for(ty.module_path, ty.name),
				module_path=ty.module_path,
				name=ty.name,
				kind=ExternalKind.DATA_CLASS,
				tagged=False,
				contains_object_references=item_id not in self.items_without_obj_refs,
			)
		if isinstance(ty, CustomType) and self.is_module_path_external(ty.module_path):
			return ExternalType(
				namespace=self.namespace_for(ty.module_path, ty.name),
				module_path=ty.module_path,
				name=ty.name,
				kind=ExternalKind.DATA_CLASS,
				tagged=False,
				contains_object_references=True,
			)
		if isinstance(ty, ObjectType) and self.is_module_path_external(ty.module_path):
			return ExternalType(
				namespace=self.namespace_for(ty.module_path, ty.name),
				module_path=ty.module_path,
				name=ty.name,
				kind=ExternalKind.INTERFACE,
				tagged=False,
				contains_object_references=True,
			)
		if isinstance(ty, CallbackInterfaceType) and self.is_module_path_external(ty.module_path):
			raise UnsupportedCrossLibraryTypeError(
				message=f"external callback interfaces are not supported ({ty.name})",
				library_id=self.crate_name,
				type_name=f"{ty.module_path}::{ty.name}",
			)
		# Child types.
		if isinstance(ty, CustomType):
			return replace(ty, builtin=self.convert_type(ty.builtin))
		if isinstance(ty, OptionalType):
			return OptionalType(self.convert_type(ty.inner))
		if isinstance(ty, SequenceType):
			return SequenceType(self.convert_type(ty.inner))
		if isinstance(ty, MapType):
			return MapType(self.convert_type(ty.key), self.convert_type(ty.value))
		if isinstance(ty, ExternalType):
			namespace = self.namespace_for(ty.module_path, ty.name)
			if ty.namespace and ty.namespace != namespace:
				raise AssertionError(
					f"external type {ty.module_path}::{ty.name} already resolved to namespace "
					f"'{ty.namespace}', expected '{namespace}'"
				)
			return replace(ty, namespace=namespace)
		return ty


def fixup_external_type(
	item: Metadata,
	group_map: Mapping[str, "MetadataGroup"],
	items_without_obj_refs: AbstractSet[ItemIdentifier],
) -> Metadata:
	"""Resolve every cross-library type reference reachable from `item`."""
	crate_name = calc_crate_name(item_module_path(item))
	converter = ExternalTypeConverter(crate_name, group_map, items_without_obj_refs)
	return converter.convert_item(item)


__all__ = ["ExternalTypeConverter", "fixup_external_type"]

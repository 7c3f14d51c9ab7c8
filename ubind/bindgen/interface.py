# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Component interface: the catalog of one library's public surface.

A component interface is seeded from the library's metadata group and, when the
library ships a legacy interface file, from the group parsed out of that file.
Adding the same definition twice is a no-op; two different definitions under one
name are a conflict.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from ubind.meta.errors import InterfaceError
from ubind.meta.group import MetadataGroup
from ubind.meta.items import (
	CallbackInterfaceMetadata,
	ConstructorMetadata,
	CustomTypeMetadata,
	EnumMetadata,
	FnMetadata,
	ItemIdentifier,
	Metadata,
	MethodMetadata,
	NamespaceMetadata,
	ObjectMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	UdlFileMetadata,
	describe_item,
	item_sort_key,
)
from ubind.meta.obj_refs import compute_types_without_obj_refs
from ubind.meta.types import EnumType, ExternalType, ObjectType, RecordType, Type, iter_types


class ComponentInterface:
	def __init__(self, crate_name: str) -> None:
		self.crate_name = crate_name
		self.namespace: Optional[str] = None
		self.namespace_docstring: Optional[str] = None
		self.functions: Dict[str, FnMetadata] = {}
		self.records: Dict[str, RecordMetadata] = {}
		self.enums: Dict[str, EnumMetadata] = {}
		self.objects: Dict[str, ObjectMetadata] = {}
		self.callback_interfaces: Dict[str, CallbackInterfaceMetadata] = {}
		self.custom_types: Dict[str, CustomTypeMetadata] = {}
		self.constructors: Dict[Tuple[str, str], ConstructorMetadata] = {}
		self.methods: Dict[Tuple[str, str], MethodMetadata] = {}
		self.trait_methods: Dict[Tuple[str, str], TraitMethodMetadata] = {}
		self._type_kinds: Dict[str, str] = {}
		self._without_refs: Optional[set[ItemIdentifier]] = None

	def __repr__(self) -> str:
		return f"ComponentInterface(crate_name={self.crate_name!r}, namespace={self.namespace!r})"

	def _error(self, message: str, type_name: str | None = None) -> InterfaceError:
		return InterfaceError(message=message, library_id=self.crate_name, type_name=type_name)

	# -- building ---------------------------------------------------------

	def add_metadata(self, group: MetadataGroup) -> None:
		"""Add every item of `group` (which must belong to this library)."""
		if group.crate_name != self.crate_name:
			raise self._error(f"metadata group for library '{group.crate_name}' added to '{self.crate_name}'")
		self._set_namespace(group.namespace)
		if group.namespace_docstring and not self.namespace_docstring:
			self.namespace_docstring = group.namespace_docstring
		# Canonical order puts type declarations before constructors/methods.
		for item in group.sorted_items():
			self.add_item(item)

	def _set_namespace(self, namespace: NamespaceMetadata) -> None:
		if self.namespace is None:
			self.namespace = namespace.name
		elif self.namespace != namespace.name:
			raise self._error(f"namespace mismatch: '{self.namespace}' vs '{namespace.name}'")

	def _add_type_decl(self, table: Dict[str, Metadata], kind: str, item: Metadata) -> None:
		name = item.name
		seen_kind = self._type_kinds.get(name)
		if seen_kind is not None and seen_kind != kind:
			raise self._error(f"'{name}' declared both as {seen_kind} and {kind}", type_name=name)
		existing = table.get(name)
		if existing is not None and existing != item:
			raise self._error(f"conflicting definitions of {kind} '{name}'", type_name=name)
		self._type_kinds[name] = kind
		table[name] = item
		self._without_refs = None

	def _add_member(self, table: Dict[Tuple[str, str], Metadata], key: Tuple[str, str], item: Metadata) -> None:
		existing = table.get(key)
		if existing is not None and existing != item:
			raise self._error(f"conflicting definitions of {describe_item(item)}", type_name=key[0])
		table[key] = item

	def add_item(self, item: Metadata) -> None:
		if isinstance(item, (NamespaceMetadata, UdlFileMetadata)):
			return
		if isinstance(item, RecordMetadata):
			self._add_type_decl(self.records, "record", item)
		elif isinstance(item, EnumMetadata):
			self._add_type_decl(self.enums, "enum", item)
		elif isinstance(item, ObjectMetadata):
			self._add_type_decl(self.objects, "object", item)
		elif isinstance(item, CallbackInterfaceMetadata):
			self._add_type_decl(self.callback_interfaces, "callback interface", item)
		elif isinstance(item, CustomTypeMetadata):
			self._add_type_decl(self.custom_types, "custom type", item)
		elif isinstance(item, FnMetadata):
			existing = self.functions.get(item.name)
			if existing is not None and existing != item:
				raise self._error(f"conflicting definitions of function '{item.name}'")
			self.functions[item.name] = item
		elif isinstance(item, ConstructorMetadata):
			if item.self_name not in self.objects:
				raise self._error(f"constructor for unknown object '{item.self_name}'", type_name=item.self_name)
			self._add_member(self.constructors, (item.self_name, item.name), item)
		elif isinstance(item, MethodMetadata):
			if item.self_name not in self.objects:
				raise self._error(f"method for unknown object '{item.self_name}'", type_name=item.self_name)
			self._add_member(self.methods, (item.self_name, item.name), item)
		elif isinstance(item, TraitMethodMetadata):
			if item.trait_name not in self.objects and item.trait_name not in self.callback_interfaces:
				raise self._error(f"trait method for unknown trait '{item.trait_name}'", type_name=item.trait_name)
			self._add_member(self.trait_methods, (item.trait_name, item.name), item)
		else:
			raise self._error(f"unsupported metadata item {item!r}")

	# -- queries ----------------------------------------------------------

	def namespace_name(self) -> str:
		if self.namespace is None:
			raise self._error("component interface has no namespace")
		return self.namespace

	def iter_items(self) -> Iterator[Metadata]:
		"""Every definition, in canonical order."""
		items: List[Metadata] = [
			*self.functions.values(),
			*self.records.values(),
			*self.enums.values(),
			*self.objects.values(),
			*self.callback_interfaces.values(),
			*self.custom_types.values(),
			*self.constructors.values(),
			*self.methods.values(),
			*self.trait_methods.values(),
		]
		yield from sorted(items, key=item_sort_key)

	def constructors_for(self, object_name: str) -> List[ConstructorMetadata]:
		return [c for (owner, _), c in sorted(self.constructors.items()) if owner == object_name]

	def methods_for(self, object_name: str) -> List[MethodMetadata]:
		return [m for (owner, _), m in sorted(self.methods.items()) if owner == object_name]

	def trait_methods_for(self, trait_name: str) -> List[TraitMethodMetadata]:
		found = [m for (owner, _), m in self.trait_methods.items() if owner == trait_name]
		return sorted(found, key=lambda m: (m.index, m.name))

	def iter_types(self) -> Iterator[Type]:
		"""Every type occurring in a field or signature (nested types included)."""
		for item in self.iter_items():
			for ty in _item_types(item):
				yield from iter_types(ty)

	def external_types(self) -> List[ExternalType]:
		found = {ty for ty in self.iter_types() if isinstance(ty, ExternalType)}
		return sorted(found, key=lambda t: (t.namespace, t.module_path, t.name))

	def external_namespaces(self) -> List[str]:
		return sorted({ty.namespace for ty in self.external_types()})

	def contains_object_references(self, ty: Type) -> bool:
		"""Whether a value of `ty` can hold an object handle."""
		if self._without_refs is None:
			# Externals here were stamped from the whole artifact.
			self._without_refs = compute_types_without_obj_refs(self.iter_items(), trust_external_flags=True)
		for t in iter_types(ty):
			if isinstance(t, ObjectType):
				return True
			if isinstance(t, ExternalType) and t.contains_object_references:
				return True
			if isinstance(t, (RecordType, EnumType)):
				if ItemIdentifier(module_path=t.module_path, name=t.name) not in self._without_refs:
					return True
		return False

	def item_contains_object_references(self, item: RecordMetadata | EnumMetadata) -> bool:
		if isinstance(item, RecordMetadata):
			return self.contains_object_references(RecordType(item.module_path, item.name))
		return self.contains_object_references(EnumType(item.module_path, item.name))


def _item_types(item: Metadata) -> Iterator[Type]:
	if isinstance(item, (FnMetadata, MethodMetadata, TraitMethodMetadata, ConstructorMetadata)):
		for p in item.inputs:
			yield p.ty
		if item.return_type is not None:
			yield item.return_type
		if item.throws is not None:
			yield item.throws
	elif isinstance(item, RecordMetadata):
		for f in item.fields:
			yield f.ty
	elif isinstance(item, EnumMetadata):
		for v in item.variants:
			for f in v.fields:
				yield f.ty
	elif isinstance(item, CustomTypeMetadata):
		yield item.builtin


__all__ = ["ComponentInterface"]

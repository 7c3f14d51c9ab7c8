# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Object-reference reachability over records and enums.

Binding writers must know, before emitting a record/enum, whether its value
transitively contains a reference-counted object handle. The field graph spans
every library in the artifact and may be cyclic (record A holds B, B holds A).

Rules:
- only the negative answer ("reference-free") is memoized, and the memo is
  shared by every query of one `compute_types_without_obj_refs` call;
- identifiers that are not records/enums of the known universe answer
  "contains a reference"; only a caller passing `trust_external_flags=True`
  takes the stamped flag of an external type outside the universe instead;
- an identifier reached again while its own evaluation is still in progress
  answers "contains a reference", so every type on a cycle is reported as
  containing a reference and the walk always terminates.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from ubind.meta.items import EnumMetadata, ItemIdentifier, Metadata, RecordMetadata
from ubind.meta.types import EnumType, ExternalType, ObjectType, RecordType, Type, iter_types


def extract_item_identifier(item: Metadata) -> ItemIdentifier | None:
	"""Identifier of a record/enum item; `None` for every other item kind."""
	if isinstance(item, (RecordMetadata, EnumMetadata)):
		return ItemIdentifier(module_path=item.module_path, name=item.name)
	return None


def _field_types(item: Metadata) -> Iterable[Type]:
	if isinstance(item, RecordMetadata):
		for f in item.fields:
			yield from iter_types(f.ty)
	elif isinstance(item, EnumMetadata):
		for variant in item.variants:
			for f in variant.fields:
				yield from iter_types(f.ty)


def item_contains_references(
	items_map: Mapping[ItemIdentifier, Metadata],
	items_without_references: set[ItemIdentifier],
	item_id: ItemIdentifier,
	in_progress: set[ItemIdentifier] | None = None,
	*,
	trust_external_flags: bool = False,
) -> bool:
	"""Return whether `item_id` transitively contains an object handle."""
	if item_id in items_without_references:
		return False
	item = items_map.get(item_id)
	if item is None:
		return True
	if in_progress is None:
		in_progress = set()
	if item_id in in_progress:
		return True

	in_progress.add(item_id)
	try:
		contains = False
		for ty in _field_types(item):
			if isinstance(ty, ObjectType):
				contains = True
			elif isinstance(ty, (RecordType, EnumType, ExternalType)):
				ref_id = ItemIdentifier(module_path=ty.module_path, name=ty.name)
				if trust_external_flags and isinstance(ty, ExternalType) and ref_id not in items_map:
					contains = ty.contains_object_references
				else:
					contains = item_contains_references(
						items_map,
						items_without_references,
						ref_id,
						in_progress,
						trust_external_flags=trust_external_flags,
					)
			if contains:
				break
	finally:
		in_progress.discard(item_id)

	if not contains:
		items_without_references.add(item_id)
	return contains


def compute_types_without_obj_refs(
	items: Iterable[Metadata],
	*,
	trust_external_flags: bool = False,
) -> set[ItemIdentifier]:
	"""
	Compute the set of records/enums proven to contain no object reference.

	Absence from the result means "contains a reference or unknown". With
	`trust_external_flags`, an external type whose target is not among `items`
	answers with its own `contains_object_references` flag.
	"""
	items_map: dict[ItemIdentifier, Metadata] = {}
	for item in items:
		item_id = extract_item_identifier(item)
		if item_id is not None:
			items_map[item_id] = item

	result: set[ItemIdentifier] = set()
	for item_id in items_map:
		item_contains_references(items_map, result, item_id, trust_external_flags=trust_external_flags)
	return result


__all__ = [
	"extract_item_identifier",
	"item_contains_references",
	"compute_types_without_obj_refs",
]

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Grouping engine: partition a flat metadata item list into per-library groups.

Pipeline (driven by `group_items` or by the library-mode orchestrator):

1) `create_metadata_groups` materializes one empty group per library for every
   `Namespace` item or legacy-file marker, keyed by the *internal* library id.
2) `compute_types_without_obj_refs` runs once over the whole item list.
3) `group_metadata` rewrites cross-library type references and assigns each
   item to its group.

Assignment is all-or-nothing: every item is resolved and checked before the
first one is inserted, so a failing call leaves all groups untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Iterable

from ubind.meta.errors import DuplicateItemError, NamespaceResolutionError
from ubind.meta.external import fixup_external_type
from ubind.meta.items import (
	ItemIdentifier,
	Metadata,
	NamespaceMetadata,
	UdlFileMetadata,
	calc_crate_name,
	describe_item,
	item_module_path,
	item_sort_key,
)
from ubind.meta.obj_refs import compute_types_without_obj_refs

logger = logging.getLogger(__name__)


@dataclass
class MetadataGroup:
	"""All metadata items belonging to one library."""

	namespace: NamespaceMetadata
	namespace_docstring: str | None = None
	items: set[Metadata] = field(default_factory=set)

	@property
	def crate_name(self) -> str:
		return self.namespace.crate_name

	def add_item(self, item: Metadata) -> None:
		"""Insert `item`; an identical item already present is a hard error."""
		if item in self.items:
			raise DuplicateItemError(
				message=f"duplicate metadata item: {describe_item(item)}",
				library_id=self.crate_name,
			)
		self.items.add(item)

	def sorted_items(self) -> list[Metadata]:
		"""Items in canonical order."""
		return sorted(self.items, key=item_sort_key)

	def udl_files(self) -> list[UdlFileMetadata]:
		return [i for i in self.sorted_items() if isinstance(i, UdlFileMetadata)]


MetadataGroupMap = dict[str, MetadataGroup]


def _register_group(groups: MetadataGroupMap, namespace: NamespaceMetadata) -> None:
	existing = groups.get(namespace.crate_name)
	if existing is None:
		groups[namespace.crate_name] = MetadataGroup(namespace=namespace)
		return
	if existing.namespace.name != namespace.name:
		raise NamespaceResolutionError(
			message=(
				f"conflicting namespace names '{existing.namespace.name}' and '{namespace.name}' "
				f"declared for library '{namespace.crate_name}'"
			),
			library_id=namespace.crate_name,
		)


def create_metadata_groups(items: Iterable[Metadata]) -> MetadataGroupMap:
	"""Create one empty group per library that declares a namespace or legacy file."""
	groups: MetadataGroupMap = {}
	for item in items:
		if isinstance(item, NamespaceMetadata):
			_register_group(groups, item)
		elif isinstance(item, UdlFileMetadata):
			_register_group(groups, NamespaceMetadata(crate_name=item.module_path, name=item.namespace))
	return groups


def group_metadata(
	group_map: MetadataGroupMap,
	items: Iterable[Metadata],
	items_without_obj_refs: AbstractSet[ItemIdentifier],
) -> None:
	"""
	Consume `items` into the previously created groups.

	`Namespace` items are skipped (already consumed by `create_metadata_groups`).
	Every other item has its external types resolved, then lands in the group of
	its owning library.
	"""
	staged: list[tuple[MetadataGroup, Metadata]] = []
	staged_ids: set[tuple[str, Metadata]] = set()
	for item in items:
		if isinstance(item, NamespaceMetadata):
			continue
		crate_name = calc_crate_name(item_module_path(item))
		group = group_map.get(crate_name)
		if group is None:
			raise NamespaceResolutionError(
				message=f"unknown namespace for {describe_item(item)}",
				library_id=crate_name,
			)
		resolved = fixup_external_type(item, group_map, items_without_obj_refs)
		key = (crate_name, resolved)
		if resolved in group.items or key in staged_ids:
			raise DuplicateItemError(
				message=f"duplicate metadata item: {describe_item(resolved)}",
				library_id=crate_name,
			)
		staged_ids.add(key)
		staged.append((group, resolved))

	for group, item in staged:
		group.add_item(item)
	logger.debug("assigned %d metadata item(s) to %d group(s)", len(staged), len(group_map))


def group_items(items: list[Metadata]) -> MetadataGroupMap:
	"""Run the full grouping pipeline over a flat item list."""
	groups = create_metadata_groups(items)
	without_refs = compute_types_without_obj_refs(items)
	group_metadata(groups, items, without_refs)
	return groups


__all__ = [
	"MetadataGroup",
	"MetadataGroupMap",
	"create_metadata_groups",
	"group_metadata",
	"group_items",
]

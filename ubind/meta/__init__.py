# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Interface metadata: item/type vocabulary, per-library grouping, object-reference
analysis, external-type resolution and extraction from shared libraries.
"""

from __future__ import annotations

from ubind.meta.external import ExternalTypeConverter, fixup_external_type
from ubind.meta.group import (
	MetadataGroup,
	MetadataGroupMap,
	create_metadata_groups,
	group_items,
	group_metadata,
)
from ubind.meta.items import ItemIdentifier, Metadata, calc_crate_name
from ubind.meta.obj_refs import compute_types_without_obj_refs

__all__ = [
	"ExternalTypeConverter",
	"fixup_external_type",
	"MetadataGroup",
	"MetadataGroupMap",
	"create_metadata_groups",
	"group_items",
	"group_metadata",
	"ItemIdentifier",
	"Metadata",
	"calc_crate_name",
	"compute_types_without_obj_refs",
]

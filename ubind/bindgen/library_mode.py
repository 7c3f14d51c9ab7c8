# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Library mode: generate bindings for every library packaged into one shared
library at once.

Instead of one interface file per library, the caller passes the built shared
library. Its embedded metadata names every packaged library, their public
namespaces, and the types they exchange, so cross-library references resolve
without any per-library package maps.

Pipeline:
1) extract the flat item list from the artifact,
2) group it per library (resolving external types on the way),
3) build one component interface + configuration ("Source") per library,
   merging the library's legacy interface file when it ships one,
4) hand every Source to the binding generator.

Any failure aborts the run; nothing is written unless every Source was built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import AbstractSet, Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from ubind.bindgen.config import Config, load_initial_config
from ubind.bindgen.interface import ComponentInterface
from ubind.bindgen.writers import writer_for
from ubind.idl.parser import parse_udl
from ubind.meta.errors import (
	AmbiguousLegacySourceError,
	BindgenError,
	ConfigError,
	LegacySourceError,
	WriteError,
)
from ubind.meta.external import fixup_external_type
from ubind.meta.extract import extract_from_library
from ubind.meta.group import MetadataGroup, MetadataGroupMap, create_metadata_groups, group_metadata
from ubind.meta.items import ItemIdentifier
from ubind.meta.obj_refs import compute_types_without_obj_refs

logger = logging.getLogger(__name__)

CDYLIB_EXTENSIONS = (".so", ".dll", ".dylib")


@dataclass
class Source:
	"""A single library we generate bindings for."""

	crate_name: str
	ci: ComponentInterface
	config: Config


def calc_cdylib_name(library_path: Path) -> Optional[str]:
	"""
	Return the library name of a shared-library path, or None.

	The `lib` prefix is stripped unconditionally, also for `.dll` files.
	"""
	filename = Path(library_path).name
	if not filename:
		return None
	if filename.startswith("lib"):
		filename = filename[len("lib") :]
	for ext in CDYLIB_EXTENSIONS:
		if filename.endswith(ext):
			return filename[: -len(ext)]
	return None


def load_legacy_metadata(
	group: MetadataGroup,
	crate_root: Optional[Path],
	crate_name: str,
	group_map: Optional[MetadataGroupMap] = None,
	items_without_obj_refs: AbstractSet[ItemIdentifier] = frozenset(),
) -> Optional[MetadataGroup]:
	"""
	Parse the legacy interface file declared by `group`, if any.

	The file is `<crate_root>/src/<file_stub>.udl`. When `group_map` is given the
	parsed items get their external types resolved against it.
	"""
	markers = group.udl_files()
	if not markers:
		return None
	if len(markers) > 1:
		raise AmbiguousLegacySourceError(
			message=f"{len(markers)} legacy interface files declared",
			library_id=crate_name,
			artifact_path=str(crate_root) if crate_root is not None else None,
		)
	marker = markers[0]
	if marker.module_path != crate_name:
		raise LegacySourceError(
			message=f"legacy interface file is for library '{marker.module_path}' but this library is '{crate_name}'",
			library_id=crate_name,
		)
	if crate_root is None:
		raise LegacySourceError(
			message=f"no crate root known for legacy interface file '{marker.file_stub}.udl'",
			library_id=crate_name,
		)
	path = crate_root / "src" / f"{marker.file_stub}.udl"
	if not path.is_file():
		raise LegacySourceError(message=f"{path} not found", library_id=crate_name, artifact_path=str(path))
	try:
		text = path.read_text(encoding="utf-8")
	except OSError as err:
		raise LegacySourceError(message=f"cannot read {path}: {err}", library_id=crate_name, artifact_path=str(path)) from err
	parsed = parse_udl(text, crate_name)
	logger.debug("parsed legacy interface file %s (%d item(s))", path, len(parsed.items))
	if group_map is None:
		return parsed
	resolved = MetadataGroup(namespace=parsed.namespace, namespace_docstring=parsed.namespace_docstring)
	for item in parsed.sorted_items():
		resolved.add_item(fixup_external_type(item, group_map, items_without_obj_refs))
	return resolved


def find_sources(
	library_path: Path,
	cdylib_name: Optional[str],
	config_file_override: Optional[Path],
	crate_roots: Optional[Mapping[str, Path]] = None,
	target_languages: Iterable[str] = (),
) -> List[Source]:
	"""Build one Source per library found in `library_path`, ordered by library id."""
	crate_roots = crate_roots or {}
	languages = list(target_languages)
	items = extract_from_library(library_path)
	groups = create_metadata_groups(items)
	without_refs = compute_types_without_obj_refs(items)
	group_metadata(groups, items, without_refs)

	sources: List[Source] = []
	for crate_name in sorted(groups):
		group = groups[crate_name]
		crate_root = crate_roots.get(crate_name)
		ci = ComponentInterface(crate_name)
		legacy = load_legacy_metadata(group, crate_root, crate_name, groups, without_refs)
		if legacy is not None:
			ci.add_metadata(legacy)
		ci.add_metadata(group)
		try:
			config = load_initial_config(languages, config_file_override, crate_root)
		except ConfigError as err:
			raise replace(err, library_id=crate_name) from err
		if cdylib_name is not None:
			config.update_from_cdylib_name(cdylib_name)
		config.update_from_ci(ci)
		sources.append(Source(crate_name=crate_name, ci=ci, config=config))
	logger.info("found %d library source(s) in %s", len(sources), library_path)
	return sources


class BindingGeneratorDefault:
	"""Drives the built-in writers for a list of target languages."""

	def __init__(self, target_languages: Sequence[str]) -> None:
		if not target_languages:
			raise ConfigError(message="no target language given")
		self.target_languages = list(dict.fromkeys(target_languages))
		self.writers = [writer_for(lang) for lang in self.target_languages]

	def check_library_path(self, library_path: Path, cdylib_name: Optional[str]) -> None:
		# Python bindings load the shared library by name at import time.
		if "python" in self.target_languages and cdylib_name is None:
			raise ConfigError(
				message="generating python bindings requires a shared library (.so/.dll/.dylib)",
				artifact_path=str(library_path),
				language="python",
			)

	def output_filenames(self, ci: ComponentInterface, config: Config) -> List[Tuple[str, str]]:
		return [(w.language, w.output_filename(ci, config.for_language(w.language))) for w in self.writers]

	def write_bindings(self, ci: ComponentInterface, config: Config, out_dir: Path) -> None:
		for writer in self.writers:
			writer.write(ci, config.for_language(writer.language), out_dir)


def _check_output_collisions(generator: Any, sources: Sequence[Source]) -> None:
	output_filenames = getattr(generator, "output_filenames", None)
	if output_filenames is None:
		return
	owners: dict[str, str] = {}
	for source in sources:
		for language, filename in output_filenames(source.ci, source.config):
			other = owners.get(filename)
			if other is not None and other != source.crate_name:
				raise ConfigError(
					message=f"libraries '{other}' and '{source.crate_name}' both write '{filename}'",
					library_id=source.crate_name,
					language=language,
				)
			owners[filename] = source.crate_name


def generate_external_bindings(
	generator: Any,
	library_path: Path,
	crate_name: Optional[str],
	config_file_override: Optional[Path],
	out_dir: Path,
	crate_roots: Optional[Mapping[str, Path]] = None,
) -> List[Source]:
	"""
	Generate bindings with a caller-supplied generator.

	`generator` needs `write_bindings(ci, config, out_dir)`; `check_library_path`
	and `output_filenames` are used when present. Returns the Sources written.
	"""
	library_path = Path(library_path)
	cdylib_name = calc_cdylib_name(library_path)
	check = getattr(generator, "check_library_path", None)
	if check is not None:
		check(library_path, cdylib_name)

	languages = getattr(generator, "target_languages", ())
	sources = find_sources(library_path, cdylib_name, config_file_override, crate_roots, languages)
	if crate_name is not None:
		sources = [s for s in sources if s.crate_name == crate_name]
		if not sources:
			raise ConfigError(
				message=f"library '{crate_name}' not found in artifact",
				library_id=crate_name,
				artifact_path=str(library_path),
			)
	_check_output_collisions(generator, sources)

	try:
		out_dir.mkdir(parents=True, exist_ok=True)
	except OSError as err:
		raise WriteError(message=f"cannot create output directory: {err}", artifact_path=str(out_dir)) from err

	for source in sources:
		try:
			generator.write_bindings(source.ci, source.config, out_dir)
		except BindgenError:
			raise
		except OSError as err:
			raise WriteError(
				message=f"cannot write bindings: {err}",
				library_id=source.crate_name,
				artifact_path=str(out_dir),
			) from err
	return sources


def generate_bindings(
	library_path: Path,
	crate_name: Optional[str],
	target_languages: Sequence[str],
	config_file_override: Optional[Path],
	out_dir: Path,
	crate_roots: Optional[Mapping[str, Path]] = None,
) -> List[Source]:
	"""Generate bindings for the built-in target languages."""
	return generate_external_bindings(
		BindingGeneratorDefault(target_languages),
		library_path,
		crate_name,
		config_file_override,
		out_dir,
		crate_roots,
	)


__all__ = [
	"Source",
	"BindingGeneratorDefault",
	"calc_cdylib_name",
	"find_sources",
	"generate_bindings",
	"generate_external_bindings",
	"load_legacy_metadata",
]

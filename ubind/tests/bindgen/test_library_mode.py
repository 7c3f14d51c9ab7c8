# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from ubind.bindgen.library_mode import (
	find_sources,
	generate_bindings,
	generate_external_bindings,
	load_legacy_metadata,
)
from ubind.meta.errors import (
	AmbiguousLegacySourceError,
	ConfigError,
	ExtractionError,
	LegacySourceError,
)
from ubind.meta.group import MetadataGroup, group_items
from ubind.meta.items import (
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	NamespaceMetadata,
	ObjectMetadata,
	RecordMetadata,
	UdlFileMetadata,
)
from ubind.meta.types import ExternalKind, ExternalType, ObjectType, RecordType, primitive


def _two_libraries() -> list:
	return [
		NamespaceMetadata(crate_name="crate_b", name="beta"),
		FnMetadata(
			module_path="crate_b",
			name="length",
			inputs=(FnParamMetadata("p", RecordType("crate_a", "Point")),),
			return_type=primitive("f64"),
		),
		ObjectMetadata(module_path="crate_b::canvas", name="Canvas"),
		RecordMetadata(module_path="crate_a", name="Point", fields=(FieldMetadata("x", primitive("f64")),)),
		NamespaceMetadata(crate_name="crate_a", name="alpha"),
	]


def _write_udl(root: Path, stub: str, text: str) -> None:
	(root / "src").mkdir(parents=True, exist_ok=True)
	(root / "src" / f"{stub}.udl").write_text(text, encoding="utf-8")


def test_one_source_per_library(make_library, tmp_path: Path) -> None:
	lib = make_library(_two_libraries())
	out_dir = tmp_path / "out"
	sources = generate_bindings(lib, None, ["json", "python"], None, out_dir)

	assert [s.crate_name for s in sources] == ["crate_a", "crate_b"]
	assert sorted(p.name for p in out_dir.iterdir()) == ["alpha.json", "alpha.py", "beta.json", "beta.py"]

	beta = sources[1]
	assert beta.ci.namespace_name() == "beta"
	assert beta.ci.functions["length"].inputs[0].ty == ExternalType(
		namespace="alpha",
		module_path="crate_a",
		name="Point",
		kind=ExternalKind.DATA_CLASS,
		tagged=False,
		contains_object_references=False,
	)
	python_cfg = beta.config.for_language("python")
	assert python_cfg.cdylib_name == "artifact"
	assert python_cfg.module_name == "beta"
	assert python_cfg.external_packages == {"alpha": "alpha"}
	assert "from alpha import Point" in (out_dir / "beta.py").read_text(encoding="utf-8")


def test_library_selector_restricts_output(make_library, tmp_path: Path) -> None:
	out_dir = tmp_path / "out"
	sources = generate_bindings(make_library(_two_libraries()), "crate_a", ["json"], None, out_dir)
	assert [s.crate_name for s in sources] == ["crate_a"]
	assert [p.name for p in out_dir.iterdir()] == ["alpha.json"]


def test_unknown_library_selector_writes_nothing(make_library, tmp_path: Path) -> None:
	out_dir = tmp_path / "out"
	with pytest.raises(ConfigError, match="'crate_zzz' not found"):
		generate_bindings(make_library(_two_libraries()), "crate_zzz", ["json"], None, out_dir)
	assert not out_dir.exists()


def test_output_collision_is_detected_before_writing(make_library, tmp_path: Path) -> None:
	items = [
		NamespaceMetadata(crate_name="crate_a", name="shared"),
		NamespaceMetadata(crate_name="crate_b", name="shared"),
	]
	out_dir = tmp_path / "out"
	with pytest.raises(ConfigError, match="both write 'shared.json'"):
		generate_bindings(make_library(items), None, ["json"], None, out_dir)
	assert not out_dir.exists()


def test_python_needs_a_shared_library_name(make_library, tmp_path: Path) -> None:
	lib = make_library(_two_libraries(), name="artifact.bin")
	with pytest.raises(ConfigError, match="requires a shared library"):
		generate_bindings(lib, None, ["python"], None, tmp_path / "out")
	sources = generate_bindings(lib, None, ["json"], None, tmp_path / "out")
	assert sources[0].config.for_language("json").cdylib_name is None


def test_extraction_failure_propagates(tmp_path: Path) -> None:
	lib = tmp_path / "libbroken.so"
	lib.write_bytes(b"not a library")
	with pytest.raises(ExtractionError):
		generate_bindings(lib, None, ["json"], None, tmp_path / "out")


def test_config_is_read_from_crate_root(make_library, tmp_path: Path) -> None:
	root = tmp_path / "crates" / "a"
	root.mkdir(parents=True)
	(root / "ubind.json").write_text(
		json.dumps({"format": "ubind-config", "version": 0, "bindings": {"json": {"module_name": "alpha_api"}}}),
		encoding="utf-8",
	)
	out_dir = tmp_path / "out"
	generate_bindings(make_library(_two_libraries()), None, ["json"], None, out_dir, {"crate_a": root})
	assert sorted(p.name for p in out_dir.iterdir()) == ["alpha_api.json", "beta.json"]


def test_config_override_applies_to_every_library(make_library, tmp_path: Path) -> None:
	override = tmp_path / "override.json"
	override.write_text(
		json.dumps({"format": "ubind-config", "version": 0, "bindings": {"json": {"package_name": "pkg"}}}),
		encoding="utf-8",
	)
	sources = find_sources(make_library(_two_libraries()), "artifact", override, None, ["json"])
	assert {s.config.for_language("json").package_name for s in sources} == {"pkg"}


def test_custom_generator_drives_library_mode(make_library, tmp_path: Path) -> None:
	class Recorder:
		def __init__(self) -> None:
			self.calls: list[tuple[str, Path]] = []

		def write_bindings(self, ci, config, out_dir: Path) -> None:
			self.calls.append((ci.crate_name, out_dir))

	recorder = Recorder()
	out_dir = tmp_path / "custom"
	sources = generate_external_bindings(recorder, make_library(_two_libraries()), None, None, out_dir)
	assert recorder.calls == [("crate_a", out_dir), ("crate_b", out_dir)]
	assert [s.crate_name for s in sources] == ["crate_a", "crate_b"]
	assert out_dir.is_dir()


LEGACY_UDL = """
namespace alpha {
	Event latest();
	Session open(Point at);
};

dictionary Point {
	f64 x;
};

[External="crate_b"]
typedef extern Event;

[ExternalInterface="crate_b"]
typedef extern Session;
"""


def _legacy_items() -> list:
	return [
		UdlFileMetadata(module_path="crate_a", namespace="alpha", file_stub="alpha"),
		RecordMetadata(module_path="crate_a", name="Point", fields=(FieldMetadata("x", primitive("f64")),)),
		NamespaceMetadata(crate_name="crate_b", name="beta"),
		RecordMetadata(module_path="crate_b", name="Event", fields=(FieldMetadata("id", primitive("u64")),)),
		ObjectMetadata(module_path="crate_b", name="Session"),
	]


def test_legacy_file_is_merged_and_externals_resolved(make_library, tmp_path: Path) -> None:
	root = tmp_path / "crates" / "a"
	_write_udl(root, "alpha", LEGACY_UDL)
	sources = find_sources(make_library(_legacy_items()), "artifact", None, {"crate_a": root}, ["json"])
	alpha = sources[0].ci
	assert alpha.crate_name == "crate_a"
	assert alpha.namespace_name() == "alpha"
	# Identical definitions from the artifact and the legacy file merge.
	assert list(alpha.records) == ["Point"]
	latest = alpha.functions["latest"].return_type
	assert (latest.namespace, latest.kind) == ("beta", ExternalKind.DATA_CLASS)
	session = alpha.functions["open"].return_type
	assert (session.namespace, session.kind) == ("beta", ExternalKind.INTERFACE)
	assert alpha.external_namespaces() == ["beta"]


def test_legacy_marker_without_crate_root_fails(make_library) -> None:
	with pytest.raises(LegacySourceError, match="no crate root known"):
		find_sources(make_library(_legacy_items()), "artifact", None, None, ["json"])


def test_missing_legacy_file_fails(make_library, tmp_path: Path) -> None:
	root = tmp_path / "crates" / "a"
	root.mkdir(parents=True)
	with pytest.raises(LegacySourceError, match="alpha.udl not found"):
		find_sources(make_library(_legacy_items()), "artifact", None, {"crate_a": root}, ["json"])


def test_no_marker_means_no_legacy_metadata(tmp_path: Path) -> None:
	group = MetadataGroup(namespace=NamespaceMetadata(crate_name="crate_a", name="alpha"))
	assert load_legacy_metadata(group, tmp_path, "crate_a") is None


def test_two_markers_are_ambiguous(tmp_path: Path) -> None:
	groups = group_items(
		[
			UdlFileMetadata(module_path="crate_a", namespace="alpha", file_stub="one"),
			UdlFileMetadata(module_path="crate_a", namespace="alpha", file_stub="two"),
		]
	)
	with pytest.raises(AmbiguousLegacySourceError, match="2 legacy interface files"):
		load_legacy_metadata(groups["crate_a"], tmp_path, "crate_a")


def test_marker_for_a_submodule_is_rejected(tmp_path: Path) -> None:
	group = MetadataGroup(namespace=NamespaceMetadata(crate_name="crate_a", name="alpha"))
	group.add_item(UdlFileMetadata(module_path="crate_a::inner", namespace="alpha", file_stub="alpha"))
	with pytest.raises(LegacySourceError, match="is for library 'crate_a::inner'"):
		load_legacy_metadata(group, tmp_path, "crate_a")


def test_legacy_group_without_resolution_keeps_pending_externals(tmp_path: Path) -> None:
	_write_udl(tmp_path, "alpha", LEGACY_UDL)
	groups = group_items([UdlFileMetadata(module_path="crate_a", namespace="alpha", file_stub="alpha")])
	parsed = load_legacy_metadata(groups["crate_a"], tmp_path, "crate_a")
	assert parsed is not None
	latest = next(i for i in parsed.items if isinstance(i, FnMetadata) and i.name == "latest")
	assert latest.return_type.namespace == ""


def test_object_fields_across_libraries_mark_records(make_library, tmp_path: Path) -> None:
	items = [
		NamespaceMetadata(crate_name="crate_a", name="alpha"),
		NamespaceMetadata(crate_name="crate_b", name="beta"),
		ObjectMetadata(module_path="crate_a", name="Handle"),
		RecordMetadata(module_path="crate_a", name="Owner", fields=(FieldMetadata("h", ObjectType("crate_a", "Handle")),)),
		RecordMetadata(module_path="crate_b", name="Wrapper", fields=(FieldMetadata("o", RecordType("crate_a", "Owner")),)),
	]
	sources = find_sources(make_library(items), "artifact", None, None, ["python"])
	beta = sources[1].ci
	assert beta.records["Wrapper"].fields[0].ty.contains_object_references is True
	assert beta.item_contains_object_references(beta.records["Wrapper"]) is True


def test_invalid_config_names_the_library(make_library, tmp_path: Path) -> None:
	override = tmp_path / "override.json"
	override.write_text(json.dumps({"format": "other", "version": 0}), encoding="utf-8")
	with pytest.raises(ConfigError, match="unsupported config format") as excinfo:
		find_sources(make_library(_two_libraries()), "artifact", override, None, ["json"])
	assert excinfo.value.library_id == "crate_a"
	assert excinfo.value.artifact_path == str(override)

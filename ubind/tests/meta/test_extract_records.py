# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from ubind.meta.errors import ExtractionError
from ubind.meta.extract import (
	MACHO_MAGIC,
	MAGIC,
	PE_MAGIC,
	decode_item,
	encode_item,
	extract_from_library,
	scan_metadata_records,
)
from ubind.meta.items import (
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	NamespaceMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	UdlFileMetadata,
	VariantMetadata,
)
from ubind.meta.types import (
	ExternalKind,
	ExternalType,
	MapType,
	ObjectType,
	OptionalType,
	RecordType,
	SequenceType,
	primitive,
)


def _sample_items() -> list:
	return [
		NamespaceMetadata(crate_name="crate_a", name="alpha"),
		UdlFileMetadata(module_path="crate_a", namespace="alpha", file_stub="alpha"),
		RecordMetadata(
			module_path="crate_a",
			name="Point",
			fields=(
				FieldMetadata("x", primitive("f64"), default="0.0"),
				FieldMetadata("tags", MapType(primitive("string"), SequenceType(primitive("u8")))),
			),
			docstring="A point.",
		),
		EnumMetadata(
			module_path="crate_a",
			name="Shape",
			variants=(VariantMetadata("Dot"), VariantMetadata("Ref", fields=(FieldMetadata("at", RecordType("crate_a", "Point")),))),
			is_error=True,
		),
		FnMetadata(
			module_path="crate_a",
			name="open",
			inputs=(FnParamMetadata("path", OptionalType(primitive("string"))),),
			return_type=ObjectType("crate_a", "File"),
			is_async=True,
		),
		TraitMethodMetadata(
			module_path="crate_a",
			trait_name="Listener",
			index=2,
			name="on_event",
			inputs=(FnParamMetadata("ev", ExternalType("beta", "crate_b", "Event", ExternalKind.DATA_CLASS, False, False)),),
		),
	]


def test_items_survive_a_library_image(make_library) -> None:
	items = _sample_items()
	path = make_library(items)
	assert sorted(map(repr, extract_from_library(path))) == sorted(map(repr, items))


@pytest.mark.parametrize("magic", [PE_MAGIC, MACHO_MAGIC])
def test_other_image_formats_are_accepted(make_library, magic: bytes) -> None:
	items = [NamespaceMetadata(crate_name="crate_a", name="alpha")]
	assert extract_from_library(make_library(items, name="artifact.dll", image_magic=magic)) == items


def test_item_encoding_is_plain_json() -> None:
	obj = encode_item(_sample_items()[2])
	assert obj["kind"] == "Record"
	assert obj["fields"][0] == {
		"name": "x",
		"ty": {"kind": "Primitive", "name": "f64"},
		"default": "0.0",
		"docstring": None,
	}
	assert decode_item(json.loads(json.dumps(obj))) == _sample_items()[2]


def test_missing_file_is_an_extraction_error(tmp_path: Path) -> None:
	with pytest.raises(ExtractionError, match="cannot read library") as excinfo:
		extract_from_library(tmp_path / "libnope.so")
	assert excinfo.value.artifact_path == str(tmp_path / "libnope.so")


def test_non_library_file_is_rejected(tmp_path: Path) -> None:
	path = tmp_path / "notes.so"
	path.write_bytes(b"just some text " + MAGIC)
	with pytest.raises(ExtractionError, match="not a shared library"):
		extract_from_library(path)


def test_library_without_metadata_is_rejected(tmp_path: Path) -> None:
	path = tmp_path / "libempty.so"
	path.write_bytes(b"\x7fELF" + b"\0" * 64)
	with pytest.raises(ExtractionError, match="no embedded interface metadata"):
		extract_from_library(path)


def test_corrupt_payload_fails_hash_check(make_library) -> None:
	path = make_library([FnMetadata(module_path="crate_a", name="hello")])
	data = bytearray(path.read_bytes())
	pos = data.index(b'"hello"')
	data[pos + 1] = ord("j")
	path.write_bytes(bytes(data))
	with pytest.raises(ExtractionError, match="sha256 mismatch"):
		extract_from_library(path)


def test_truncated_record_is_rejected() -> None:
	with pytest.raises(ValueError, match="truncated"):
		scan_metadata_records(b"\x7fELF" + MAGIC + b"\0\0")


def test_unknown_item_kind_is_rejected() -> None:
	with pytest.raises(ValueError, match="unknown metadata item kind"):
		decode_item({"kind": "Macro", "name": "x"})


def test_incomplete_item_is_rejected() -> None:
	with pytest.raises(ValueError, match="incomplete Func"):
		decode_item({"kind": "Func", "module_path": "crate_a"})

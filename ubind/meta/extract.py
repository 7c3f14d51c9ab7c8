# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Metadata extraction from compiled shared libraries.

Each library packaged into a shared library embeds its interface metadata as a
sequence of self-delimiting records in a data section. The extractor does not
parse the object format; it verifies the image magic and then scans the bytes
for records.

Record layout (v0, little-endian):
  magic(8) "UBINDMD\\0", version(u16), flags(u16), payload_len(u32),
  payload_sha256(32), payload(payload_len)

The payload is the canonical JSON encoding of exactly one metadata item.
Records are trusted only after the length and sha256 checks pass.
"""

from __future__ import annotations

import hashlib
import json
import logging
import struct
from dataclasses import fields as dc_fields
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from ubind.meta.errors import ExtractionError
from ubind.meta.items import (
	CallbackInterfaceMetadata,
	ConstructorMetadata,
	CustomTypeMetadata,
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	Metadata,
	MethodMetadata,
	NamespaceMetadata,
	ObjectMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	UdlFileMetadata,
	VariantMetadata,
	item_kind,
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
	PrimitiveKind,
	PrimitiveType,
	RecordType,
	SequenceType,
	Type,
)

logger = logging.getLogger(__name__)

MAGIC = b"UBINDMD\0"
VERSION = 0
_RECORD_HEADER = struct.Struct("<8sHHI32s")
RECORD_HEADER_SIZE = _RECORD_HEADER.size

ELF_MAGIC = b"\x7fELF"
PE_MAGIC = b"MZ"
_MACHO_MAGICS = (
	b"\xfe\xed\xfa\xce",
	b"\xfe\xed\xfa\xcf",
	b"\xce\xfa\xed\xfe",
	b"\xcf\xfa\xed\xfe",
	b"\xca\xfe\xba\xbe",
)
MACHO_MAGIC = _MACHO_MAGICS[3]


def canonical_json_bytes(obj: Any) -> bytes:
	"""
	Render JSON deterministically.

Rules:
	- UTF-8
	- no insignificant whitespace
	- stable key ordering
	"""
	return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


# ---------------------------------------------------------------------------
# Type codec
# ---------------------------------------------------------------------------

_NAMED_TYPE_CLASSES: dict[str, type] = {
	"Object": ObjectType,
	"Record": RecordType,
	"Enum": EnumType,
	"CallbackInterface": CallbackInterfaceType,
}


def encode_type(ty: Type) -> dict[str, Any]:
	if isinstance(ty, PrimitiveType):
		return {"kind": "Primitive", "name": ty.kind.value}
	if isinstance(ty, OptionalType):
		return {"kind": "Optional", "inner": encode_type(ty.inner)}
	if isinstance(ty, SequenceType):
		return {"kind": "Sequence", "inner": encode_type(ty.inner)}
	if isinstance(ty, MapType):
		return {"kind": "Map", "key": encode_type(ty.key), "value": encode_type(ty.value)}
	if isinstance(ty, CustomType):
		return {"kind": "Custom", "module_path": ty.module_path, "name": ty.name, "builtin": encode_type(ty.builtin)}
	if isinstance(ty, ExternalType):
		return {
			"kind": "External",
			"namespace": ty.namespace,
			"module_path": ty.module_path,
			"name": ty.name,
			"external_kind": ty.kind.value,
			"tagged": ty.tagged,
			"contains_object_references": ty.contains_object_references,
		}
	for kind, cls in _NAMED_TYPE_CLASSES.items():
		if type(ty) is cls:
			return {"kind": kind, "module_path": ty.module_path, "name": ty.name}
	raise ValueError(f"cannot encode type {ty!r}")


def _req_str(obj: Mapping[str, Any], key: str, what: str) -> str:
	value = obj.get(key)
	if not isinstance(value, str):
		raise ValueError(f"invalid {what}.{key}")
	return value


def _req_bool(obj: Mapping[str, Any], key: str, what: str, default: bool | None = None) -> bool:
	value = obj.get(key, default)
	if not isinstance(value, bool):
		raise ValueError(f"invalid {what}.{key}")
	return value


def decode_type(obj: Any) -> Type:
	"""Decode a type encoded by `encode_type`."""
	if not isinstance(obj, dict):
		raise ValueError("invalid type encoding")
	kind = obj.get("kind")
	if kind == "Primitive":
		name = _req_str(obj, "name", "Primitive")
		try:
			return PrimitiveType(PrimitiveKind(name))
		except ValueError as err:
			raise ValueError(f"unknown primitive type '{name}'") from err
	if kind == "Optional":
		return OptionalType(decode_type(obj.get("inner")))
	if kind == "Sequence":
		return SequenceType(decode_type(obj.get("inner")))
	if kind == "Map":
		return MapType(decode_type(obj.get("key")), decode_type(obj.get("value")))
	if kind == "Custom":
		return CustomType(
			module_path=_req_str(obj, "module_path", "Custom"),
			name=_req_str(obj, "name", "Custom"),
			builtin=decode_type(obj.get("builtin")),
		)
	if kind == "External":
		ext_kind = _req_str(obj, "external_kind", "External")
		try:
			decoded_kind = ExternalKind(ext_kind)
		except ValueError as err:
			raise ValueError(f"unknown external kind '{ext_kind}'") from err
		return ExternalType(
			namespace=_req_str(obj, "namespace", "External"),
			module_path=_req_str(obj, "module_path", "External"),
			name=_req_str(obj, "name", "External"),
			kind=decoded_kind,
			tagged=_req_bool(obj, "tagged", "External", default=False),
			contains_object_references=_req_bool(obj, "contains_object_references", "External", default=True),
		)
	cls = _NAMED_TYPE_CLASSES.get(kind) if isinstance(kind, str) else None
	if cls is None:
		raise ValueError(f"unknown type kind '{kind}'")
	return cls(module_path=_req_str(obj, "module_path", kind), name=_req_str(obj, "name", kind))


# ---------------------------------------------------------------------------
# Item codec
# ---------------------------------------------------------------------------

_ITEM_CLASSES: dict[str, type] = {
	"Namespace": NamespaceMetadata,
	"UdlFile": UdlFileMetadata,
	"Func": FnMetadata,
	"Constructor": ConstructorMetadata,
	"Method": MethodMetadata,
	"TraitMethod": TraitMethodMetadata,
	"Record": RecordMetadata,
	"Enum": EnumMetadata,
	"Object": ObjectMetadata,
	"CallbackInterface": CallbackInterfaceMetadata,
	"CustomType": CustomTypeMetadata,
}


def _encode_value(value: Any) -> Any:
	if isinstance(value, (FnParamMetadata, FieldMetadata, VariantMetadata)):
		return {f.name: _encode_value(getattr(value, f.name)) for f in dc_fields(value)}
	if isinstance(value, tuple):
		return [_encode_value(v) for v in value]
	if value is None or isinstance(value, (str, bool, int)):
		return value
	return encode_type(value)


def encode_item(item: Metadata) -> dict[str, Any]:
	"""Encode an item as a JSON-ready object (`kind` + dataclass fields)."""
	out: dict[str, Any] = {"kind": item_kind(item)}
	for f in dc_fields(item):
		out[f.name] = _encode_value(getattr(item, f.name))
	return out


def _opt_str(value: Any, what: str) -> str | None:
	if value is not None and not isinstance(value, str):
		raise ValueError(f"invalid {what}")
	return value


def _opt_type(value: Any) -> Type | None:
	return None if value is None else decode_type(value)


def _decode_list(value: Any, what: str, decode: Callable[[Any], Any]) -> tuple:
	if value is None:
		return ()
	if not isinstance(value, list):
		raise ValueError(f"invalid {what} list")
	return tuple(decode(v) for v in value)


def _decode_param(obj: Any) -> FnParamMetadata:
	if not isinstance(obj, dict):
		raise ValueError("invalid param entry")
	return FnParamMetadata(name=_req_str(obj, "name", "param"), ty=decode_type(obj.get("ty")))


def _decode_field(obj: Any) -> FieldMetadata:
	if not isinstance(obj, dict):
		raise ValueError("invalid field entry")
	return FieldMetadata(
		name=_req_str(obj, "name", "field"),
		ty=decode_type(obj.get("ty")),
		default=_opt_str(obj.get("default"), "field.default"),
		docstring=_opt_str(obj.get("docstring"), "field.docstring"),
	)


def _decode_variant(obj: Any) -> VariantMetadata:
	if not isinstance(obj, dict):
		raise ValueError("invalid variant entry")
	return VariantMetadata(
		name=_req_str(obj, "name", "variant"),
		fields=_decode_list(obj.get("fields"), "variant.fields", _decode_field),
		docstring=_opt_str(obj.get("docstring"), "variant.docstring"),
	)


_FIELD_DECODERS: dict[str, Callable[[Any, str], Any]] = {
	"inputs": lambda v, what: _decode_list(v, f"{what}.inputs", _decode_param),
	"fields": lambda v, what: _decode_list(v, f"{what}.fields", _decode_field),
	"variants": lambda v, what: _decode_list(v, f"{what}.variants", _decode_variant),
	"return_type": lambda v, what: _opt_type(v),
	"throws": lambda v, what: _opt_type(v),
	"builtin": lambda v, what: decode_type(v),
	"docstring": lambda v, what: _opt_str(v, f"{what}.docstring"),
}


def decode_item(obj: Any) -> Metadata:
	"""Decode an item encoded by `encode_item`."""
	if not isinstance(obj, dict):
		raise ValueError("metadata item must be a JSON object")
	kind = obj.get("kind")
	cls = _ITEM_CLASSES.get(kind) if isinstance(kind, str) else None
	if cls is None:
		raise ValueError(f"unknown metadata item kind '{kind}'")
	kwargs: dict[str, Any] = {}
	for f in dc_fields(cls):
		if f.name not in obj:
			continue
		value = obj[f.name]
		decoder = _FIELD_DECODERS.get(f.name)
		if decoder is not None:
			kwargs[f.name] = decoder(value, kind)
		elif f.name in ("is_async", "is_trait", "is_error"):
			if not isinstance(value, bool):
				raise ValueError(f"invalid {kind}.{f.name}")
			kwargs[f.name] = value
		elif f.name == "index":
			if not isinstance(value, int) or isinstance(value, bool):
				raise ValueError(f"invalid {kind}.index")
			kwargs[f.name] = value
		else:
			kwargs[f.name] = _req_str(obj, f.name, kind)
	try:
		return cls(**kwargs)
	except TypeError as err:
		raise ValueError(f"incomplete {kind} metadata item: {err}") from err


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def encode_metadata_record(item: Metadata) -> bytes:
	"""Encode one item as an embeddable metadata record."""
	payload = canonical_json_bytes(encode_item(item))
	return _RECORD_HEADER.pack(MAGIC, VERSION, 0, len(payload), hashlib.sha256(payload).digest()) + payload


def is_shared_library_image(data: bytes) -> bool:
	if data.startswith(ELF_MAGIC) or data.startswith(PE_MAGIC):
		return True
	return any(data.startswith(m) for m in _MACHO_MAGICS)


def scan_metadata_records(data: bytes) -> list[Metadata]:
	"""Find and decode every metadata record in `data` (raises ValueError on corruption)."""
	items: list[Metadata] = []
	pos = data.find(MAGIC)
	while pos != -1:
		header = data[pos : pos + RECORD_HEADER_SIZE]
		if len(header) != RECORD_HEADER_SIZE:
			raise ValueError(f"truncated metadata record header at offset {pos}")
		_magic, version, flags, length, digest = _RECORD_HEADER.unpack(header)
		if version != VERSION:
			raise ValueError(f"unsupported metadata record version {version} at offset {pos}")
		if flags != 0:
			raise ValueError(f"unsupported metadata record flags at offset {pos}")
		start = pos + RECORD_HEADER_SIZE
		payload = data[start : start + length]
		if len(payload) != length:
			raise ValueError(f"truncated metadata record at offset {pos}")
		if hashlib.sha256(payload).digest() != digest:
			raise ValueError(f"metadata record sha256 mismatch at offset {pos}")
		try:
			obj = json.loads(payload.decode("utf-8"))
		except (UnicodeDecodeError, json.JSONDecodeError) as err:
			raise ValueError(f"metadata record at offset {pos} is not valid JSON") from err
		items.append(decode_item(obj))
		pos = data.find(MAGIC, start + length)
	return items


def extract_from_library(library_path: Path) -> list[Metadata]:
	"""
	Return every metadata item embedded in the shared library at `library_path`.

	The result is unordered and spans every library packaged into the artifact.
	"""
	try:
		data = library_path.read_bytes()
	except OSError as err:
		raise ExtractionError(message=f"cannot read library: {err}", artifact_path=str(library_path)) from err
	if not is_shared_library_image(data):
		raise ExtractionError(message="not a shared library image", artifact_path=str(library_path))
	try:
		items = scan_metadata_records(data)
	except ValueError as err:
		raise ExtractionError(message=f"corrupt metadata: {err}", artifact_path=str(library_path)) from err
	if not items:
		raise ExtractionError(message="no embedded interface metadata found", artifact_path=str(library_path))
	logger.debug("extracted %d metadata item(s) from %s", len(items), library_path)
	return items


def write_library_image(path: Path, items: Iterable[Metadata], *, image_magic: bytes = ELF_MAGIC) -> None:
	"""
	Write a minimal library image embedding `items`.

	Used by build tooling that post-processes link outputs, and by tests.
	"""
	chunks: list[bytes] = [image_magic, b"\0" * 60]
	for item in items:
		chunks.append(encode_metadata_record(item))
		chunks.append(b"\0" * 8)
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_bytes(b"".join(chunks))


__all__ = [
	"MAGIC",
	"ELF_MAGIC",
	"PE_MAGIC",
	"MACHO_MAGIC",
	"canonical_json_bytes",
	"encode_type",
	"decode_type",
	"encode_item",
	"decode_item",
	"encode_metadata_record",
	"is_shared_library_image",
	"scan_metadata_records",
	"extract_from_library",
	"write_library_image",
]

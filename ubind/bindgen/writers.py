# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Built-in binding writers.

A writer turns one component interface plus its configuration into one output
file. Rendering is pure and deterministic; `write` only touches the file system
when the rendered text differs from what is already on disk.
"""

from __future__ import annotations

import keyword
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ubind.bindgen.config import BindingsConfig
from ubind.bindgen.interface import ComponentInterface
from ubind.meta.errors import ConfigError, WriteError
from ubind.meta.extract import canonical_json_bytes, encode_item
from ubind.meta.items import (
	ConstructorMetadata,
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	MethodMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	VariantMetadata,
)
from ubind.meta.types import (
	CallbackInterfaceType,
	CustomType,
	EnumType,
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

INTERFACE_FORMAT = "ubind-interface"
INTERFACE_VERSION = 0


def write_if_changed(path: Path, content: str) -> bool:
	"""Write `content` to `path` unless identical; return True when written."""
	existing = path.read_text(encoding="utf-8") if path.exists() else None
	if existing == content:
		return False
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(content, encoding="utf-8")
	return True


class BindingWriter:
	"""Base class of per-language writers."""

	language: str = ""
	extension: str = ""

	def output_filename(self, ci: ComponentInterface, config: BindingsConfig) -> str:
		return f"{config.module_name or ci.namespace_name()}.{self.extension}"

	def render(self, ci: ComponentInterface, config: BindingsConfig) -> str:
		raise NotImplementedError

	def write(self, ci: ComponentInterface, config: BindingsConfig, out_dir: Path) -> Path:
		path = out_dir / self.output_filename(ci, config)
		text = self.render(ci, config)
		try:
			changed = write_if_changed(path, text)
		except OSError as err:
			raise WriteError(
				message=f"cannot write bindings: {err}",
				library_id=ci.crate_name,
				artifact_path=str(path),
				language=self.language,
			) from err
		logger.info("%s %s bindings for %s -> %s", "wrote" if changed else "unchanged", self.language, ci.crate_name, path)
		return path


class JsonWriter(BindingWriter):
	"""Canonical JSON description of the interface (for external tooling)."""

	language = "json"
	extension = "json"

	def render(self, ci: ComponentInterface, config: BindingsConfig) -> str:
		doc = {
			"format": INTERFACE_FORMAT,
			"version": INTERFACE_VERSION,
			"crate_name": ci.crate_name,
			"namespace": ci.namespace_name(),
			"namespace_docstring": ci.namespace_docstring,
			"config": config.to_dict(),
			"external_namespaces": ci.external_namespaces(),
			"items": [encode_item(item) for item in ci.iter_items()],
		}
		return canonical_json_bytes(doc).decode("utf-8") + "\n"


# ---------------------------------------------------------------------------
# Python stubs
# ---------------------------------------------------------------------------

_PY_PRIMITIVES: Dict[PrimitiveKind, str] = {
	PrimitiveKind.UINT8: "int",
	PrimitiveKind.INT8: "int",
	PrimitiveKind.UINT16: "int",
	PrimitiveKind.INT16: "int",
	PrimitiveKind.UINT32: "int",
	PrimitiveKind.INT32: "int",
	PrimitiveKind.UINT64: "int",
	PrimitiveKind.INT64: "int",
	PrimitiveKind.FLOAT32: "float",
	PrimitiveKind.FLOAT64: "float",
	PrimitiveKind.BOOLEAN: "bool",
	PrimitiveKind.STRING: "str",
	PrimitiveKind.BYTES: "bytes",
	PrimitiveKind.TIMESTAMP: "datetime.datetime",
	PrimitiveKind.DURATION: "datetime.timedelta",
}


def py_ident(name: str) -> str:
	if keyword.iskeyword(name):
		return name + "_"
	return name


class _Emitter:
	def __init__(self) -> None:
		self.lines: List[str] = []

	def line(self, text: str = "", depth: int = 0) -> None:
		self.lines.append(("\t" * depth + text) if text else "")

	def docstring(self, text: Optional[str], depth: int) -> bool:
		if not text:
			return False
		body = text.replace('"""', '\\"\\"\\"')
		if "\n" in body:
			self.line('"""', depth)
			for part in body.splitlines():
				self.line(part, depth)
			self.line('"""', depth)
		else:
			self.line(f'"""{body}"""', depth)
		return True

	def text(self) -> str:
		return "\n".join(self.lines).rstrip("\n") + "\n"


class PythonWriter(BindingWriter):
	"""
	Python stub module.

	Records and enum variants that can never hold an object handle are emitted as
	frozen (hashable) dataclasses; the rest compare by value but are unhashable.
	"""

	language = "python"
	extension = "py"

	def render(self, ci: ComponentInterface, config: BindingsConfig) -> str:
		out = _Emitter()
		out.line(f"# Generated by ubind for library '{ci.crate_name}'. Do not edit.")
		out.docstring(ci.namespace_docstring, 0)
		out.line("from __future__ import annotations")
		out.line()
		out.line("import datetime")
		out.line("import enum")
		out.line("import typing")
		out.line("from dataclasses import dataclass")
		self._emit_external_imports(out, ci, config)
		out.line()
		out.line(f"NAMESPACE = {ci.namespace_name()!r}")
		out.line(f"CDYLIB_NAME = {config.cdylib_name!r}")

		for custom in ci.custom_types.values():
			out.line()
			out.line(f"{config.renamed(custom.name)} = {self.type_expr(custom.builtin, config)}")
		# Flat enums come first: field defaults may name their members.
		enums = sorted(ci.enums.values(), key=lambda e: not _is_flat_enum(e))
		for enum_item in enums:
			if _is_flat_enum(enum_item):
				self._emit_enum(out, ci, config, enum_item)
		for record in ci.records.values():
			self._emit_record(out, ci, config, record)
		for enum_item in enums:
			if not _is_flat_enum(enum_item):
				self._emit_enum(out, ci, config, enum_item)
		for obj in ci.objects.values():
			self._emit_object(out, ci, config, obj.name, obj.docstring)
		for cbi in ci.callback_interfaces.values():
			self._emit_callback_interface(out, ci, config, cbi.name, cbi.docstring)
		for fn in ci.functions.values():
			out.line()
			out.line()
			self._emit_callable(out, config, fn, 0)
		return out.text()

	# -- types ------------------------------------------------------------

	def type_expr(self, ty: Type, config: BindingsConfig) -> str:
		if isinstance(ty, PrimitiveType):
			return _PY_PRIMITIVES[ty.kind]
		if isinstance(ty, OptionalType):
			return f"typing.Optional[{self.type_expr(ty.inner, config)}]"
		if isinstance(ty, SequenceType):
			return f"typing.List[{self.type_expr(ty.inner, config)}]"
		if isinstance(ty, MapType):
			return f"typing.Dict[{self.type_expr(ty.key, config)}, {self.type_expr(ty.value, config)}]"
		if isinstance(ty, (ObjectType, RecordType, EnumType, CallbackInterfaceType, CustomType, ExternalType)):
			return config.renamed(ty.name)
		raise AssertionError(f"unhandled type {ty!r}")

	def _emit_external_imports(self, out: _Emitter, ci: ComponentInterface, config: BindingsConfig) -> None:
		by_package: Dict[str, List[str]] = {}
		for ext in ci.external_types():
			by_package.setdefault(config.external_package(ext.namespace), []).append(config.renamed(ext.name))
		if not by_package:
			return
		out.line()
		for package in sorted(by_package):
			names = ", ".join(sorted(set(by_package[package])))
			out.line(f"from {package} import {names}")

	# -- declarations -----------------------------------------------------

	def _dataclass_decorator(self, hashable: bool) -> str:
		return "@dataclass(frozen=True)" if hashable else "@dataclass"

	def _emit_fields(self, out: _Emitter, config: BindingsConfig, fields: tuple[FieldMetadata, ...], depth: int) -> None:
		# Python requires defaulted fields to follow the required ones.
		ordered = [f for f in fields if f.default is None] + [f for f in fields if f.default is not None]
		for f in ordered:
			suffix = f" = {_py_default(f)}" if f.default is not None else ""
			out.line(f"{py_ident(f.name)}: {self.type_expr(f.ty, config)}{suffix}", depth)

	def _emit_record(self, out: _Emitter, ci: ComponentInterface, config: BindingsConfig, record: RecordMetadata) -> None:
		out.line()
		out.line()
		out.line(self._dataclass_decorator(not ci.item_contains_object_references(record)))
		out.line(f"class {config.renamed(record.name)}:")
		has_doc = out.docstring(record.docstring, 1)
		if record.fields:
			self._emit_fields(out, config, record.fields, 1)
		elif not has_doc:
			out.line("pass", 1)

	def _emit_enum(self, out: _Emitter, ci: ComponentInterface, config: BindingsConfig, item: EnumMetadata) -> None:
		name = config.renamed(item.name)
		out.line()
		out.line()
		if _is_flat_enum(item):
			out.line(f"class {name}(enum.Enum):")
			has_doc = out.docstring(item.docstring, 1)
			for variant in item.variants:
				out.line(f"{py_ident(variant.name)} = {variant.name!r}", 1)
			if not item.variants and not has_doc:
				out.line("pass", 1)
			return

		base = "Exception" if item.is_error else ""
		out.line(f"class {name}({base}):" if base else f"class {name}:")
		if not out.docstring(item.docstring, 1):
			out.line("pass", 1)
		hashable = not ci.item_contains_object_references(item)
		for variant in item.variants:
			self._emit_variant(out, config, name, variant, hashable and not item.is_error)

	def _emit_variant(self, out: _Emitter, config: BindingsConfig, enum_name: str, variant: VariantMetadata, hashable: bool) -> None:
		cls = f"{enum_name}{variant.name}"
		out.line()
		out.line()
		out.line(self._dataclass_decorator(hashable))
		out.line(f"class {cls}({enum_name}):")
		has_doc = out.docstring(variant.docstring, 1)
		if variant.fields:
			self._emit_fields(out, config, variant.fields, 1)
		elif not has_doc:
			out.line("pass", 1)
		out.line()
		out.line()
		out.line(f"{enum_name}.{py_ident(variant.name)} = {cls}")

	def _emit_object(self, out: _Emitter, ci: ComponentInterface, config: BindingsConfig, name: str, docstring: Optional[str]) -> None:
		out.line()
		out.line()
		out.line(f"class {config.renamed(name)}:")
		members: List = [*ci.constructors_for(name), *ci.methods_for(name), *ci.trait_methods_for(name)]
		has_doc = out.docstring(docstring, 1)
		if not members and not has_doc:
			out.line("pass", 1)
		for i, member in enumerate(members):
			if i or has_doc:
				out.line()
			self._emit_callable(out, config, member, 1)

	def _emit_callback_interface(self, out: _Emitter, ci: ComponentInterface, config: BindingsConfig, name: str, docstring: Optional[str]) -> None:
		out.line()
		out.line()
		out.line(f"class {config.renamed(name)}(typing.Protocol):")
		methods = ci.trait_methods_for(name)
		has_doc = out.docstring(docstring, 1)
		if not methods and not has_doc:
			out.line("pass", 1)
		for i, method in enumerate(methods):
			if i or has_doc:
				out.line()
			self._emit_callable(out, config, method, 1)

	def _emit_callable(
		self,
		out: _Emitter,
		config: BindingsConfig,
		item: FnMetadata | ConstructorMetadata | MethodMetadata | TraitMethodMetadata,
		depth: int,
	) -> None:
		params = self._params(config, item.inputs)
		ret = self.type_expr(item.return_type, config) if item.return_type is not None else "None"
		is_async = getattr(item, "is_async", False)
		prefix = "async def" if is_async else "def"
		if isinstance(item, ConstructorMetadata):
			if item.name == "new":
				out.line(f"def __init__({', '.join(['self', *params])}) -> None:", depth)
			else:
				if item.return_type is None:
					ret = config.renamed(item.self_name)
				out.line("@classmethod", depth)
				out.line(f"def {py_ident(item.name)}({', '.join(['cls', *params])}) -> {ret}:", depth)
		elif isinstance(item, FnMetadata):
			out.line(f"{prefix} {py_ident(item.name)}({', '.join(params)}) -> {ret}:", depth)
		else:
			out.line(f"{prefix} {py_ident(item.name)}({', '.join(['self', *params])}) -> {ret}:", depth)
		doc = item.docstring
		if item.throws is not None:
			raises = f"Raises: {self.type_expr(item.throws, config)}"
			doc = f"{doc}\n\n{raises}" if doc else raises
		out.docstring(doc, depth + 1)
		out.line("...", depth + 1)

	def _params(self, config: BindingsConfig, inputs: tuple[FnParamMetadata, ...]) -> List[str]:
		return [f"{py_ident(p.name)}: {self.type_expr(p.ty, config)}" for p in inputs]


def _is_flat_enum(item: EnumMetadata) -> bool:
	return not item.is_error and all(not v.fields for v in item.variants)


def _py_default(f: FieldMetadata) -> str:
	value = f.default or ""
	ty = f.ty.inner if isinstance(f.ty, OptionalType) else f.ty
	if value == "null":
		return "None"
	if isinstance(ty, PrimitiveType):
		if ty.kind is PrimitiveKind.BOOLEAN and value in ("true", "false"):
			return "True" if value == "true" else "False"
		if ty.kind is PrimitiveKind.STRING:
			return repr(value)
		if ty.kind is PrimitiveKind.BYTES:
			return repr(value.encode("utf-8"))
		return value
	# Bare identifiers name a variant of the field's enum type.
	if isinstance(ty, EnumType):
		return f"{ty.name}.{py_ident(value)}"
	return repr(value)


_WRITERS: Dict[str, type[BindingWriter]] = {
	JsonWriter.language: JsonWriter,
	PythonWriter.language: PythonWriter,
}


def available_languages() -> List[str]:
	return sorted(_WRITERS)


def writer_for(language: str) -> BindingWriter:
	cls = _WRITERS.get(language)
	if cls is None:
		raise ConfigError(
			message=f"unsupported target language (available: {', '.join(available_languages())})",
			language=language,
		)
	return cls()


__all__ = [
	"BindingWriter",
	"JsonWriter",
	"PythonWriter",
	"available_languages",
	"write_if_changed",
	"writer_for",
]

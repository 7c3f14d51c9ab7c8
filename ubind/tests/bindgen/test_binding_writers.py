# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

import pytest

from ubind.bindgen.config import BindingsConfig
from ubind.bindgen.interface import ComponentInterface
from ubind.bindgen.writers import JsonWriter, PythonWriter, write_if_changed, writer_for
from ubind.meta.errors import ConfigError
from ubind.meta.group import MetadataGroup
from ubind.meta.items import (
	CallbackInterfaceMetadata,
	ConstructorMetadata,
	CustomTypeMetadata,
	EnumMetadata,
	FieldMetadata,
	FnMetadata,
	FnParamMetadata,
	MethodMetadata,
	NamespaceMetadata,
	ObjectMetadata,
	RecordMetadata,
	TraitMethodMetadata,
	VariantMetadata,
)
from ubind.meta.types import (
	EnumType,
	ExternalKind,
	ExternalType,
	ObjectType,
	OptionalType,
	SequenceType,
	primitive,
)

_M = "crate_a"


def _interface(*extra) -> ComponentInterface:
	group = MetadataGroup(
		namespace=NamespaceMetadata(crate_name=_M, name="alpha"),
		namespace_docstring="Geometry helpers.",
	)
	items = [
		CustomTypeMetadata(module_path=_M, name="Url", builtin=primitive("string")),
		EnumMetadata(module_path=_M, name="Color", variants=(VariantMetadata("Red"), VariantMetadata("Green"))),
		RecordMetadata(
			module_path=_M,
			name="Point",
			fields=(
				FieldMetadata("x", primitive("f64")),
				FieldMetadata("color", EnumType(_M, "Color"), default="Red"),
				FieldMetadata("y", primitive("f64"), default="0.0"),
				FieldMetadata("label", OptionalType(primitive("string")), default="null"),
			),
			docstring="A point.",
		),
		RecordMetadata(module_path=_M, name="Holder", fields=(FieldMetadata("counter", ObjectType(_M, "Counter")),)),
		EnumMetadata(module_path=_M, name="MathError", variants=(VariantMetadata("DivByZero"),), is_error=True),
		EnumMetadata(
			module_path=_M,
			name="Shape",
			variants=(VariantMetadata("Circle", fields=(FieldMetadata("radius", primitive("f64")),)), VariantMetadata("Dot")),
		),
		ObjectMetadata(module_path=_M, name="Counter", docstring="Counts."),
		ConstructorMetadata(module_path=_M, self_name="Counter", name="new", inputs=(FnParamMetadata("start", primitive("u32")),)),
		ConstructorMetadata(
			module_path=_M,
			self_name="Counter",
			name="with_step",
			inputs=(FnParamMetadata("start", primitive("u32")), FnParamMetadata("step", primitive("u32"))),
		),
		MethodMetadata(module_path=_M, self_name="Counter", name="next", return_type=primitive("u32")),
		MethodMetadata(module_path=_M, self_name="Counter", name="reset", is_async=True),
		CallbackInterfaceMetadata(module_path=_M, name="Listener"),
		TraitMethodMetadata(
			module_path=_M,
			trait_name="Listener",
			index=0,
			name="on_event",
			inputs=(FnParamMetadata("name", primitive("string")),),
		),
		FnMetadata(
			module_path=_M,
			name="divide",
			inputs=(FnParamMetadata("a", primitive("f64")), FnParamMetadata("b", primitive("f64"))),
			return_type=primitive("f64"),
			throws=EnumType(_M, "MathError"),
		),
		FnMetadata(module_path=_M, name="points", return_type=SequenceType(EnumType(_M, "Color"))),
		*extra,
	]
	for item in items:
		group.add_item(item)
	ci = ComponentInterface(_M)
	ci.add_metadata(group)
	return ci


def _config(ci: ComponentInterface, language: str, **kwargs) -> BindingsConfig:
	cfg = BindingsConfig(language=language, **kwargs)
	cfg.update_from_cdylib_name("artifact")
	cfg.update_from_ci(ci)
	return cfg


def test_python_output_filename_follows_module_name() -> None:
	ci = _interface()
	assert PythonWriter().output_filename(ci, _config(ci, "python")) == "alpha.py"
	assert PythonWriter().output_filename(ci, _config(ci, "python", module_name="geo")) == "geo.py"


def test_python_stub_shapes() -> None:
	ci = _interface()
	text = PythonWriter().render(ci, _config(ci, "python"))
	assert "CDYLIB_NAME = 'artifact'" in text
	assert "class Color(enum.Enum):\n\tRed = 'Red'\n\tGreen = 'Green'\n" in text
	assert "@dataclass(frozen=True)\nclass Point:\n\t\"\"\"A point.\"\"\"\n\tx: float\n" in text
	assert "\tcolor: Color = Color.Red\n" in text
	assert "\tlabel: typing.Optional[str] = None\n" in text
	# A record holding an object handle is not hashable.
	assert "@dataclass\nclass Holder:\n\tcounter: Counter\n" in text
	assert "class MathError(Exception):" in text
	assert "MathError.DivByZero = MathErrorDivByZero" in text
	assert "class Listener(typing.Protocol):" in text
	assert "\tdef __init__(self, start: int) -> None:" in text
	assert "\t@classmethod\n\tdef with_step(cls, start: int, step: int) -> Counter:" in text
	assert "\tasync def reset(self) -> None:" in text
	assert 'def divide(a: float, b: float) -> float:\n\t"""Raises: MathError"""' in text
	assert "def points() -> typing.List[Color]:" in text
	assert "Url = str" in text


def test_python_stub_is_importable(tmp_path: Path, monkeypatch) -> None:
	ci = _interface()
	path = PythonWriter().write(ci, _config(ci, "python", module_name="generated_alpha"), tmp_path)
	spec = importlib.util.spec_from_file_location("generated_alpha", path)
	assert spec is not None and spec.loader is not None
	module = importlib.util.module_from_spec(spec)
	# dataclasses resolves annotations through sys.modules.
	monkeypatch.setitem(sys.modules, "generated_alpha", module)
	spec.loader.exec_module(module)
	ns = vars(module)

	point = ns["Point"](x=1.0)
	assert point.y == 0.0
	assert point.color is ns["Color"].Red
	assert hash(point) == hash(ns["Point"](x=1.0))
	with pytest.raises(TypeError):
		hash(ns["Holder"](counter=None))
	assert isinstance(ns["Shape"].Circle(radius=2.0), ns["Shape"])
	assert issubclass(ns["MathError"].DivByZero, Exception)


def test_python_renames_and_external_imports() -> None:
	ext = ExternalType("beta", "crate_b", "Session", ExternalKind.INTERFACE)
	ci = _interface(FnMetadata(module_path=_M, name="connect", return_type=ext))
	cfg = _config(ci, "python", external_packages={"beta": "pkg.beta"}, rename={"Point": "Pt", "Session": "Sess"})
	text = PythonWriter().render(ci, cfg)
	assert "from pkg.beta import Sess\n" in text
	assert "class Pt:" in text
	assert "def connect() -> Sess:" in text


def test_json_description_is_canonical() -> None:
	ci = _interface()
	text = JsonWriter().render(ci, _config(ci, "json"))
	doc = json.loads(text)
	assert doc["format"] == "ubind-interface"
	assert doc["namespace"] == "alpha"
	assert doc["namespace_docstring"] == "Geometry helpers."
	assert doc["config"]["cdylib_name"] == "artifact"
	assert [i["kind"] for i in doc["items"]][0] == "CustomType"
	assert text == JsonWriter().render(_interface(), _config(ci, "json"))


def test_write_only_touches_changed_files(tmp_path: Path) -> None:
	path = tmp_path / "out" / "a.txt"
	assert write_if_changed(path, "one\n") is True
	assert write_if_changed(path, "one\n") is False
	assert write_if_changed(path, "two\n") is True
	assert path.read_text(encoding="utf-8") == "two\n"


def test_writer_writes_into_out_dir(tmp_path: Path) -> None:
	ci = _interface()
	path = JsonWriter().write(ci, _config(ci, "json"), tmp_path)
	assert path == tmp_path / "alpha.json"
	assert json.loads(path.read_text(encoding="utf-8"))["crate_name"] == _M


def test_unknown_language_is_a_config_error() -> None:
	with pytest.raises(ConfigError, match="unsupported target language"):
		writer_for("cobol")

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Binding configuration, per library and target language.

Configuration lives in an optional `ubind.json` next to each library's sources.

Format (pinned for v0, JSON):
{
  "format": "ubind-config",
  "version": 0,
  "bindings": {
    "<language>": {
      "module_name": "...",                 // optional
      "cdylib_name": "...",                 // optional
      "package_name": "...",                // optional
      "external_packages": { "<namespace>": "<import path>" },
      "rename": { "<type name>": "<generated name>" }
    }
  }
}

Values set explicitly in the file always win over values derived later from the
library file name or from the component interface.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ubind.meta.errors import ConfigError

if TYPE_CHECKING:
	from ubind.bindgen.interface import ComponentInterface

CONFIG_FILENAME = "ubind.json"
CONFIG_FORMAT = "ubind-config"
CONFIG_VERSION = 0

_TOP_LEVEL_KEYS = {"format", "version", "bindings"}
_LANGUAGE_KEYS = {"module_name", "cdylib_name", "package_name", "external_packages", "rename"}


@dataclass
class BindingsConfig:
	language: str
	module_name: str | None = None
	cdylib_name: str | None = None
	package_name: str | None = None
	external_packages: dict[str, str] = field(default_factory=dict)
	rename: dict[str, str] = field(default_factory=dict)

	def update_from_cdylib_name(self, cdylib_name: str) -> None:
		if self.cdylib_name is None:
			self.cdylib_name = cdylib_name

	def update_from_ci(self, ci: "ComponentInterface") -> None:
		if self.module_name is None:
			self.module_name = ci.namespace_name()
		# Without an explicit mapping, an external namespace is imported by name.
		for namespace in ci.external_namespaces():
			self.external_packages.setdefault(namespace, namespace)

	def renamed(self, name: str) -> str:
		return self.rename.get(name, name)

	def external_package(self, namespace: str) -> str:
		return self.external_packages.get(namespace, namespace)

	def to_dict(self) -> dict[str, Any]:
		return {
			"language": self.language,
			"module_name": self.module_name,
			"cdylib_name": self.cdylib_name,
			"package_name": self.package_name,
			"external_packages": dict(sorted(self.external_packages.items())),
			"rename": dict(sorted(self.rename.items())),
		}


def _opt_str(obj: Mapping[str, Any], key: str, where: str) -> str | None:
	value = obj.get(key)
	if value is None:
		return None
	if not isinstance(value, str) or not value:
		raise ValueError(f"{where}.{key} must be a non-empty string")
	return value


def _str_map(obj: Mapping[str, Any], key: str, where: str) -> dict[str, str]:
	value = obj.get(key) or {}
	if not isinstance(value, dict):
		raise ValueError(f"{where}.{key} must be a JSON object")
	out: dict[str, str] = {}
	for k, v in value.items():
		if not isinstance(v, str) or not v:
			raise ValueError(f"{where}.{key}.{k} must be a non-empty string")
		out[k] = v
	return out


def _parse_language_section(section: Any, language: str) -> BindingsConfig:
	where = f"bindings.{language}"
	if not isinstance(section, dict):
		raise ValueError(f"{where} must be a JSON object")
	unknown = sorted(set(section) - _LANGUAGE_KEYS)
	if unknown:
		raise ValueError(f"unknown key(s) in {where}: {', '.join(unknown)}")
	return BindingsConfig(
		language=language,
		module_name=_opt_str(section, "module_name", where),
		cdylib_name=_opt_str(section, "cdylib_name", where),
		package_name=_opt_str(section, "package_name", where),
		external_packages=_str_map(section, "external_packages", where),
		rename=_str_map(section, "rename", where),
	)


@dataclass
class Config:
	"""Settings of one library for every target language."""

	bindings: dict[str, BindingsConfig] = field(default_factory=dict)

	def for_language(self, language: str) -> BindingsConfig:
		cfg = self.bindings.get(language)
		if cfg is None:
			cfg = self.bindings[language] = BindingsConfig(language=language)
		return cfg

	def update_from_cdylib_name(self, cdylib_name: str) -> None:
		for cfg in self.bindings.values():
			cfg.update_from_cdylib_name(cdylib_name)

	def update_from_ci(self, ci: "ComponentInterface") -> None:
		for cfg in self.bindings.values():
			cfg.update_from_ci(ci)

	def to_dict(self) -> dict[str, Any]:
		return {lang: cfg.to_dict() for lang, cfg in sorted(self.bindings.items())}


def parse_config_obj(obj: Any, languages: Iterable[str] = ()) -> Config:
	"""
	Decode a parsed config document.

	Every language section in the document is validated; `languages` that have
	no section get defaults.
	"""
	if not isinstance(obj, dict):
		raise ValueError("config must be a JSON object")
	if obj.get("format") != CONFIG_FORMAT or obj.get("version") != CONFIG_VERSION:
		raise ValueError("unsupported config format/version")
	unknown = sorted(set(obj) - _TOP_LEVEL_KEYS)
	if unknown:
		raise ValueError(f"unknown config key(s): {', '.join(unknown)}")
	bindings = obj.get("bindings") or {}
	if not isinstance(bindings, dict):
		raise ValueError("config bindings must be a JSON object")
	config = Config(bindings={lang: _parse_language_section(section, lang) for lang, section in bindings.items()})
	for language in languages:
		config.for_language(language)
	return config


def load_config_json(path: Path, languages: Iterable[str] = ()) -> Config:
	obj = json.loads(path.read_text(encoding="utf-8"))
	return parse_config_obj(obj, languages)


def load_initial_config(
	languages: Iterable[str] = (),
	config_file_override: Path | None = None,
	crate_root: Path | None = None,
) -> Config:
	"""
	Resolve the starting configuration for one library.

	An explicit override must exist. Otherwise `<crate_root>/ubind.json` is used
	when present, else defaults.
	"""
	languages = list(languages)
	path: Path | None = None
	if config_file_override is not None:
		if not config_file_override.is_file():
			raise ConfigError(message="config file not found", artifact_path=str(config_file_override))
		path = config_file_override
	elif crate_root is not None and (crate_root / CONFIG_FILENAME).is_file():
		path = crate_root / CONFIG_FILENAME
	if path is None:
		return parse_config_obj({"format": CONFIG_FORMAT, "version": CONFIG_VERSION}, languages)
	try:
		return load_config_json(path, languages)
	except (OSError, ValueError) as err:
		raise ConfigError(message=f"invalid config: {err}", artifact_path=str(path)) from err


__all__ = [
	"CONFIG_FILENAME",
	"BindingsConfig",
	"Config",
	"parse_config_obj",
	"load_config_json",
	"load_initial_config",
]

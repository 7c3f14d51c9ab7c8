# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Library-mode binding generation: component interfaces, config, writers, CLI."""

from __future__ import annotations

from ubind.bindgen.config import BindingsConfig, Config, load_initial_config
from ubind.bindgen.interface import ComponentInterface
from ubind.bindgen.library_mode import (
	BindingGeneratorDefault,
	Source,
	calc_cdylib_name,
	find_sources,
	generate_bindings,
	generate_external_bindings,
	load_legacy_metadata,
)

__all__ = [
	"BindingsConfig",
	"Config",
	"load_initial_config",
	"ComponentInterface",
	"BindingGeneratorDefault",
	"Source",
	"calc_cdylib_name",
	"find_sources",
	"generate_bindings",
	"generate_external_bindings",
	"load_legacy_metadata",
]

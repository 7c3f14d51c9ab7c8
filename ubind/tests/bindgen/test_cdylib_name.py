# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from pathlib import Path

import pytest

from ubind.bindgen.library_mode import calc_cdylib_name


@pytest.mark.parametrize(
	"path",
	["/path/to/libubind.so", "/path/to/libubind.dylib", "/path/to/ubind.dll"],
)
def test_cdylib_name_strips_prefix_and_extension(path: str) -> None:
	assert calc_cdylib_name(Path(path)) == "ubind"


def test_non_library_path_has_no_cdylib_name() -> None:
	assert calc_cdylib_name(Path("/path/to/libubind.a")) is None
	assert calc_cdylib_name(Path("/path/to/ubind")) is None


def test_only_one_lib_prefix_is_stripped() -> None:
	assert calc_cdylib_name(Path("liblibfoo.so")) == "libfoo"


@pytest.mark.xfail(reason="the lib prefix is stripped unconditionally, also for Windows DLLs", strict=True)
def test_cdylib_name_keeps_lib_prefix_on_windows() -> None:
	assert calc_cdylib_name(Path("/path/to/libubind.dll")) == "libubind"

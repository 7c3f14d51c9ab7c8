# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import pytest

from ubind.meta.extract import ELF_MAGIC, write_library_image
from ubind.meta.items import Metadata


@pytest.fixture
def make_library(tmp_path: Path) -> Callable[..., Path]:
	"""
	Write a fake shared library embedding `items` and return its path.

	The file name defaults to `libartifact.so`, so the library name is `artifact`.
	"""

	def _make(items: Iterable[Metadata], name: str = "libartifact.so", image_magic: bytes = ELF_MAGIC) -> Path:
		path = tmp_path / "build" / name
		write_library_image(path, list(items), image_magic=image_magic)
		return path

	return _make

# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Structured errors for the metadata pipeline and library mode.

Every failure is fatal for the whole run (no partial output, no retries), so
the goal here is reporting: each error carries a stable reason code plus the
library / type / artifact it concerns whenever that is known.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class BindgenError(Exception):
	"""A structured, serializable error for ubind tooling."""

	message: str
	library_id: str | None = None
	type_name: str | None = None
	artifact_path: str | None = None
	language: str | None = None

	reason_code: ClassVar[str] = "BINDGEN_ERROR"

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"library_id": self.library_id,
			"type_name": self.type_name,
			"artifact_path": self.artifact_path,
			"language": self.language,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.library_id:
			parts.append(f"library={self.library_id}")
		if self.type_name:
			parts.append(f"type={self.type_name}")
		if self.language:
			parts.append(f"language={self.language}")
		if self.artifact_path:
			parts.append(f"artifact_path={self.artifact_path}")
		return " ".join(parts)


class ExtractionError(BindgenError):
	"""Artifact unreadable, not a shared library, or missing/corrupt metadata."""

	reason_code = "EXTRACTION_FAILED"


class NamespaceResolutionError(BindgenError):
	"""An item's owning library has no registered namespace."""

	reason_code = "NAMESPACE_UNKNOWN"


class DuplicateItemError(BindgenError):
	"""An identical metadata item was observed twice within one library."""

	reason_code = "DUPLICATE_ITEM"


class UnsupportedCrossLibraryTypeError(BindgenError):
	"""A type kind that cannot be referenced across libraries (callback interfaces)."""

	reason_code = "UNSUPPORTED_EXTERNAL_TYPE"


class AmbiguousLegacySourceError(BindgenError):
	"""More than one legacy interface file declared for one library."""

	reason_code = "LEGACY_SOURCE_AMBIGUOUS"


class LegacySourceError(BindgenError):
	"""Legacy interface file missing or declared for a different library."""

	reason_code = "LEGACY_SOURCE_INVALID"


@dataclass(frozen=True)
class LegacyParseError(BindgenError):
	"""Syntax or name-resolution error in a legacy interface file."""

	line: int | None = None
	column: int | None = None

	reason_code: ClassVar[str] = "LEGACY_PARSE_ERROR"

	def to_dict(self) -> dict[str, Any]:
		out = super().to_dict()
		out["line"] = self.line
		out["column"] = self.column
		return out

	def format_human(self) -> str:
		text = super().format_human()
		if self.line is not None:
			text += f" at={self.line}:{self.column}"
		return text


class InterfaceError(BindgenError):
	"""Conflicting definitions while assembling a component interface."""

	reason_code = "INTERFACE_CONFLICT"


class ConfigError(BindgenError):
	reason_code = "CONFIG_ERROR"


class WriteError(BindgenError):
	reason_code = "WRITE_FAILED"


__all__ = [
	"BindgenError",
	"ExtractionError",
	"NamespaceResolutionError",
	"DuplicateItemError",
	"UnsupportedCrossLibraryTypeError",
	"AmbiguousLegacySourceError",
	"LegacySourceError",
	"LegacyParseError",
	"InterfaceError",
	"ConfigError",
	"WriteError",
]

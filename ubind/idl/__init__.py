# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Legacy interface-definition files (parsed with lark)."""

from __future__ import annotations

from ubind.idl.parser import parse_udl

__all__ = ["parse_udl"]

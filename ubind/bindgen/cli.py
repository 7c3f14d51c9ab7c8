# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from ubind.bindgen.library_mode import generate_bindings
from ubind.bindgen.writers import available_languages
from ubind.meta.errors import BindgenError
from ubind.meta.extract import encode_item, extract_from_library
from ubind.meta.group import group_items


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="ubind", description="Generate foreign-language bindings from a shared library")
	p.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (repeat for debug output)")
	sub = p.add_subparsers(dest="cmd", required=True)

	gen = sub.add_parser("generate", help="Generate bindings for every library packaged into a shared library")
	gen.add_argument("library", type=Path, help="Path to the built shared library (.so/.dll/.dylib)")
	gen.add_argument(
		"--language",
		dest="languages",
		action="append",
		required=True,
		choices=available_languages(),
		help="Target language (repeatable)",
	)
	gen.add_argument("--out-dir", type=Path, required=True, help="Directory receiving the generated files")
	gen.add_argument("--crate", dest="crate_name", default=None, help="Only generate bindings for this library")
	gen.add_argument("--config", type=Path, default=None, help="Config file used for every library (overrides ubind.json)")
	gen.add_argument(
		"--crate-root",
		dest="crate_roots",
		action="append",
		default=[],
		metavar="NAME=PATH",
		help="Source root of a library; locates its ubind.json and legacy interface file (repeatable)",
	)
	gen.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")

	meta = sub.add_parser("print-metadata", help="Print the grouped interface metadata embedded in a shared library")
	meta.add_argument("library", type=Path, help="Path to the built shared library")
	meta.add_argument("--json", action="store_true", help="Emit compact JSON")
	return p


def _parse_crate_roots(p: argparse.ArgumentParser, values: list[str]) -> dict[str, Path]:
	roots: dict[str, Path] = {}
	for value in values:
		name, sep, path = value.partition("=")
		if not sep or not name or not path:
			p.error(f"--crate-root expects NAME=PATH, got '{value}'")
		roots[name] = Path(path)
	return roots


def _report_error(err: BindgenError, as_json: bool) -> int:
	if as_json:
		print(json.dumps({"exit_code": 2, "diagnostics": [err.to_dict()], "sources": []}, sort_keys=True, separators=(",", ":")))
	else:
		print(err.format_human(), file=sys.stderr)
	return 2


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
		format="%(levelname)s %(name)s: %(message)s",
		stream=sys.stderr,
	)

	if args.cmd == "generate":
		crate_roots = _parse_crate_roots(p, args.crate_roots)
		try:
			sources = generate_bindings(
				args.library,
				args.crate_name,
				args.languages,
				args.config,
				args.out_dir,
				crate_roots,
			)
		except BindgenError as err:
			return _report_error(err, args.json)
		if args.json:
			report = {
				"exit_code": 0,
				"diagnostics": [],
				"sources": [
					{"crate_name": s.crate_name, "namespace": s.ci.namespace_name(), "config": s.config.to_dict()}
					for s in sources
				],
			}
			print(json.dumps(report, sort_keys=True, separators=(",", ":")))
			return 0
		for s in sources:
			print(f"{s.crate_name} -> {s.ci.namespace_name()}")
		return 0

	if args.cmd == "print-metadata":
		try:
			groups = group_items(extract_from_library(args.library))
		except BindgenError as err:
			return _report_error(err, args.json)
		obj = {
			crate: {
				"namespace": group.namespace.name,
				"items": [encode_item(item) for item in group.sorted_items()],
			}
			for crate, group in sorted(groups.items())
		}
		if args.json:
			print(json.dumps(obj, sort_keys=True, separators=(",", ":")))
		else:
			print(json.dumps(obj, indent=2, sort_keys=True))
		return 0

	raise AssertionError("unreachable")

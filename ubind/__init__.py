# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
ubind: multi-library binding generator ("library mode").

Subpackages:
  meta:    metadata item model, grouping, object-reference analysis,
           external-type resolution and artifact extraction
  idl:     legacy interface-definition parser (lark)
  bindgen: component interface, config, binding writers, orchestration, CLI
"""

__all__ = ["meta", "idl", "bindgen"]

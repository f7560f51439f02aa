"""Patches applied before garminconnect is imported.

garth's ``HRVData`` declares a ``list`` classmethod next to fields annotated
``list[...]``. Recent pydantic releases evaluate those annotations against the
class namespace, find the classmethod, and fail with ``'classmethod' object is
not subscriptable`` while garminconnect is being imported. The patched
evaluator retries with the builtin collection types put back.
"""
from __future__ import annotations

import builtins
import logging
from typing import Any, Mapping

from pydantic._internal import _typing_extra


logger = logging.getLogger(__name__)

SHADOWABLE_BUILTINS = ("list", "dict", "set", "tuple")

_installed = False


def _restore_builtins(localns: Mapping[str, Any] | None) -> dict[str, Any] | None:
    namespace = dict(localns or {})
    replaced = False
    for name in SHADOWABLE_BUILTINS:
        value = namespace.get(name)
        builtin = getattr(builtins, name)
        if value is not None and value is not builtin and (
            isinstance(value, (classmethod, staticmethod)) or callable(value)
        ):
            namespace[name] = builtin
            replaced = True
    return namespace if replaced else None


def install_garth_annotation_patch() -> None:
    """Wrap pydantic's annotation evaluator once per process."""

    global _installed
    if _installed:
        return

    evaluate = getattr(_typing_extra, "eval_type_backport", None)
    if evaluate is None:
        # helper renamed upstream; nothing to wrap
        logger.debug("pydantic eval_type_backport not found; annotation patch skipped")
        _installed = True
        return

    def eval_with_builtins(value: Any, globalns: Mapping[str, Any] | None = None, localns: Mapping[str, Any] | None = None) -> Any:
        try:
            return evaluate(value, globalns, localns)
        except TypeError:
            restored = _restore_builtins(localns)
            if restored is None:
                raise
            return evaluate(value, globalns, restored)

    _typing_extra.eval_type_backport = eval_with_builtins
    _installed = True


install_garth_annotation_patch()

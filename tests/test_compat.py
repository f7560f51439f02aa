"""Tests for the garth annotation workaround."""
from pydantic._internal import _typing_extra

from app.compat import _restore_builtins, install_garth_annotation_patch


def test_restores_shadowed_builtins():
    namespace = {"list": classmethod(lambda cls: []), "HRVReading": object}

    restored = _restore_builtins(namespace)

    assert restored["list"] is list
    assert restored["HRVReading"] is object
    assert namespace["list"] is not list


def test_untouched_namespace_is_left_alone():
    assert _restore_builtins({"list": list}) is None
    assert _restore_builtins(None) is None


def test_install_is_idempotent():
    before = getattr(_typing_extra, "eval_type_backport", None)
    install_garth_annotation_patch()

    assert getattr(_typing_extra, "eval_type_backport", None) is before

"""The documented error-code table matches the exception classes."""

import re

import replenishment_kernel.exceptions as exceptions_module
from replenishment_kernel.exceptions import ReplenishmentError

_ROW = re.compile(r"^([A-Z_]+)\s+\|\s+(\w+)\s+\|", re.MULTILINE)


def _leaf_classes(cls):
    subclasses = cls.__subclasses__()
    if not subclasses:
        return [cls]
    return [leaf for sub in subclasses for leaf in _leaf_classes(sub)]


def test_every_documented_code_is_raised_by_a_class():
    documented = dict(_ROW.findall(exceptions_module.__doc__))
    documented.pop("Code", None)
    defined = {cls.code: cls.category.value for cls in _leaf_classes(ReplenishmentError)}
    assert documented == defined


def test_to_dict_carries_code_and_category():
    error = exceptions_module.InvalidRequestError("must be a list of items", field="items")
    data = error.to_dict()
    assert data["code"] == "INVALID_REQUEST"
    assert data["category"] == "invalid"
    assert data["field"] == "items"

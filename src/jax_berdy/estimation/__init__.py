"""Sparse BERDY estimation problem: options, layouts and matrix assembly."""

from .berdy_helper import BerdyHelper, BerdyMatrices
from .options import BerdyOptions, BerdyVariants
from .ordering import get_dynamic_variables_ordering, get_sensors_ordering
from .variables import (
    BerdyDynamicVariable,
    BerdyDynamicVariablesTypes,
    BerdySensor,
    BerdySensorTypes,
    IndexRange,
)

__all__ = [
    "BerdyHelper",
    "BerdyMatrices",
    "BerdyOptions",
    "BerdyVariants",
    "get_dynamic_variables_ordering",
    "get_sensors_ordering",
    "BerdyDynamicVariable",
    "BerdyDynamicVariablesTypes",
    "BerdySensor",
    "BerdySensorTypes",
    "IndexRange",
]

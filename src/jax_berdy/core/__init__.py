"""Core robot model data structures.

This module provides the link/joint arena, its traversal from a base link
and the sensor descriptions attached to it.
"""

from .robot_model import JOINT_TYPES, RobotModel, zero_dofs
from .sensors import LinkSensor, SensorsList, SensorType, SixAxisForceTorqueSensor
from .traversal import Traversal, compute_traversal

__all__ = [
    "JOINT_TYPES",
    "RobotModel",
    "zero_dofs",
    "Traversal",
    "compute_traversal",
    "SensorType",
    "SixAxisForceTorqueSensor",
    "LinkSensor",
    "SensorsList",
]

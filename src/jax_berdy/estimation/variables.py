"""Types describing the layout of the BERDY vectors ``d`` and ``y``."""

import enum
from typing import NamedTuple


class BerdyDynamicVariablesTypes(enum.Enum):
    """Kinds of blocks of the dynamic variables vector ``d``."""
    LINK_BODY_PROPER_ACCELERATION = enum.auto()
    LINK_BODY_PROPER_CLASSICAL_ACCELERATION = enum.auto()
    NET_INT_AND_EXT_WRENCHES_ON_LINK_WITHOUT_GRAV = enum.auto()
    JOINT_WRENCH = enum.auto()
    DOF_TORQUE = enum.auto()
    NET_EXT_WRENCH = enum.auto()
    DOF_ACCELERATION = enum.auto()


class BerdySensorTypes(enum.Enum):
    """Kinds of blocks of the measurement vector ``y``, in row order."""
    SIX_AXIS_FORCE_TORQUE_SENSOR = enum.auto()
    ACCELEROMETER_SENSOR = enum.auto()
    GYROSCOPE_SENSOR = enum.auto()
    THREE_AXIS_ANGULAR_ACCELEROMETER_SENSOR = enum.auto()
    THREE_AXIS_FORCE_TORQUE_CONTACT_SENSOR = enum.auto()
    DOF_ACCELERATION_SENSOR = enum.auto()
    DOF_TORQUE_SENSOR = enum.auto()
    NET_EXT_WRENCH_SENSOR = enum.auto()
    JOINT_WRENCH_SENSOR = enum.auto()


class IndexRange(NamedTuple):
    offset: int
    size: int

    @property
    def slice(self) -> slice:
        return slice(self.offset, self.offset + self.size)


class BerdyDynamicVariable(NamedTuple):
    """A block of ``d``: its type, the link or joint name it refers to, its range."""
    type: BerdyDynamicVariablesTypes
    id: str
    range: IndexRange


class BerdySensor(NamedTuple):
    """A block of ``y``: its type, the sensor, joint or link name, its range."""
    type: BerdySensorTypes
    id: str
    range: IndexRange

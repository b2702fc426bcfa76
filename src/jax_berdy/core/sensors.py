"""Sensor descriptions attached to the links and joints of a RobotModel.

Six-axis force/torque sensors sit on a joint and measure the wrench one of
the two links exerts on the other. All the other sensors are rigidly
attached to a link through the transform ``link_H_sensor``.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import ClassVar, Iterator, Tuple, Union

import jax.numpy as jnp
from jax import Array

from jax_berdy.exceptions import InconsistentSensorModelError
from .robot_model import RobotModel

logger = logging.getLogger(__name__)


class SensorType(enum.Enum):
    """Physical sensor types, in the order their rows appear in BERDY."""
    SIX_AXIS_FORCE_TORQUE = "force_torque"
    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"
    THREE_AXIS_ANGULAR_ACCELEROMETER = "angular_accelerometer"
    THREE_AXIS_FORCE_TORQUE_CONTACT = "contact_force_torque"

    @property
    def size(self) -> int:
        return 6 if self is SensorType.SIX_AXIS_FORCE_TORQUE else 3


@dataclass(frozen=True, eq=False)
class SixAxisForceTorqueSensor:
    """Force/torque sensor mounted on a joint.

    The measurement is the wrench exerted on ``applied_wrench_link`` by the
    other link of ``joint``, expressed in the sensor frame. The sensor frame is
    given with respect to ``frame_link``, which is also one of the two links of
    the joint.
    """
    name: str
    joint: str
    frame_link: str
    applied_wrench_link: str
    link_H_sensor: Array = field(default_factory=lambda: jnp.eye(4))
    type: ClassVar[SensorType] = SensorType.SIX_AXIS_FORCE_TORQUE


@dataclass(frozen=True, eq=False)
class LinkSensor:
    """Accelerometer, gyroscope, angular accelerometer or contact sensor on a link."""
    name: str
    type: SensorType
    link: str
    link_H_sensor: Array = field(default_factory=lambda: jnp.eye(4))

    def __post_init__(self):
        if self.type is SensorType.SIX_AXIS_FORCE_TORQUE:
            raise ValueError("Force/torque sensors must be described by SixAxisForceTorqueSensor")


Sensor = Union[SixAxisForceTorqueSensor, LinkSensor]


@dataclass(frozen=True)
class SensorsList:
    """Ordered, read-only collection of sensors."""
    sensors: Tuple[Sensor, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "sensors", tuple(self.sensors))

    def __iter__(self) -> Iterator[Sensor]:
        return iter(self.sensors)

    def __len__(self) -> int:
        return len(self.sensors)

    def of_type(self, sensor_type: SensorType) -> Tuple[Sensor, ...]:
        return tuple(s for s in self.sensors if s.type is sensor_type)

    def nr_of_measurements(self) -> int:
        return sum(s.type.size for s in self.sensors)

    def check_consistency(self, model: RobotModel) -> None:
        """Check that every sensor references existing links and joints.

        Raises:
            InconsistentSensorModelError: on the first invalid sensor.
        """
        names = [s.name for s in self.sensors]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise InconsistentSensorModelError(f"Duplicated sensor names: {duplicates}")

        for sensor in self.sensors:
            if isinstance(sensor, SixAxisForceTorqueSensor):
                if sensor.joint not in model.joint_names:
                    raise InconsistentSensorModelError(
                        f"Sensor '{sensor.name}' is mounted on unknown joint '{sensor.joint}'"
                    )
                joint = model.joint_index(sensor.joint)
                joint_links = {
                    model.link_names[model.joint_parents[joint]],
                    model.link_names[model.joint_children[joint]],
                }
                for link in (sensor.frame_link, sensor.applied_wrench_link):
                    if link not in joint_links:
                        raise InconsistentSensorModelError(
                            f"Sensor '{sensor.name}' references link '{link}', "
                            f"which is not attached to joint '{sensor.joint}'"
                        )
            elif sensor.link not in model.link_names:
                raise InconsistentSensorModelError(
                    f"Sensor '{sensor.name}' is attached to unknown link '{sensor.link}'"
                )

    def is_consistent(self, model: RobotModel) -> bool:
        try:
            self.check_consistency(model)
        except InconsistentSensorModelError as e:
            logger.error("Sensors not consistent with the model: %s", e)
            return False
        return True

"""Layout of the dynamic variables vector ``d`` and the measurements vector ``y``."""

from typing import List

from jax_berdy.core import RobotModel, SensorsList, SensorType, Traversal
from jax_berdy.exceptions import InvalidOptionsError
from .options import BerdyOptions
from .variables import BerdyDynamicVariable, BerdySensor, BerdySensorTypes, IndexRange
from .variants import variant_strategy

_PHYSICAL_SENSOR_TYPES = {
    SensorType.SIX_AXIS_FORCE_TORQUE: BerdySensorTypes.SIX_AXIS_FORCE_TORQUE_SENSOR,
    SensorType.ACCELEROMETER: BerdySensorTypes.ACCELEROMETER_SENSOR,
    SensorType.GYROSCOPE: BerdySensorTypes.GYROSCOPE_SENSOR,
    SensorType.THREE_AXIS_ANGULAR_ACCELEROMETER: BerdySensorTypes.THREE_AXIS_ANGULAR_ACCELEROMETER_SENSOR,
    SensorType.THREE_AXIS_FORCE_TORQUE_CONTACT: BerdySensorTypes.THREE_AXIS_FORCE_TORQUE_CONTACT_SENSOR,
}


def get_dynamic_variables_ordering(
    model: RobotModel, traversal: Traversal, options: BerdyOptions
) -> List[BerdyDynamicVariable]:
    """Blocks of ``d`` in order, with offsets assigned by cumulative size.

    Raises:
        InvalidOptionsError: if the options are not consistent.
    """
    errors = options.consistency_errors()
    if errors:
        raise InvalidOptionsError("; ".join(errors))

    ordering = []
    offset = 0
    for var_type, element, size in variant_strategy(options.berdy_variant).dynamic_variables(
        model, traversal, options
    ):
        ordering.append(BerdyDynamicVariable(var_type, element, IndexRange(offset, size)))
        offset += size
    return ordering


def get_sensors_ordering(
    model: RobotModel, sensors: SensorsList, options: BerdyOptions
) -> List[BerdySensor]:
    """Blocks of ``y`` in order: physical sensors by type, then virtual sensors."""
    entries = []
    for sensor_type, berdy_type in _PHYSICAL_SENSOR_TYPES.items():
        for sensor in sensors.of_type(sensor_type):
            entries.append((berdy_type, sensor.name, sensor_type.size))

    dof_joints = [j for j in range(model.nr_of_joints) if model.joint_nr_of_dofs(j) > 0]
    if options.include_all_joint_accelerations_as_sensors:
        for joint in dof_joints:
            entries.append((BerdySensorTypes.DOF_ACCELERATION_SENSOR, model.joint_names[joint], 1))
    if options.include_all_joint_torques_as_sensors:
        for joint in dof_joints:
            entries.append((BerdySensorTypes.DOF_TORQUE_SENSOR, model.joint_names[joint], 1))
    if options.include_all_net_external_wrenches_as_sensors:
        for link_name in model.link_names:
            entries.append((BerdySensorTypes.NET_EXT_WRENCH_SENSOR, link_name, 6))
    for joint_name in options.joint_on_which_the_internal_wrench_is_measured:
        entries.append((BerdySensorTypes.JOINT_WRENCH_SENSOR, joint_name, 6))

    ordering = []
    offset = 0
    for sensor_type, element, size in entries:
        ordering.append(BerdySensor(sensor_type, element, IndexRange(offset, size)))
        offset += size
    return ordering

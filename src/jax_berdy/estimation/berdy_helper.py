"""BerdyHelper: builds the sparse BERDY estimation problem of a robot.

Given a model, a sensor set and options, the helper assembles

    D d + bD = 0        (rigid-body dynamics as linear constraints on d)
    Y d + bY = y        (sensor measurements as linear functions of d)

from the known kinematic state (joint positions, joint velocities, base
angular velocity or fixed base gravity) cached by the last
``update_kinematics_from_*`` call, and packs concrete dynamic variables and
sensor readings into ``d`` and ``y`` with the same layout.

The helper is ``Uninitialized`` until :meth:`BerdyHelper.init` succeeds; the
other operations raise :class:`~jax_berdy.exceptions.NotInitializedError`
before that. An instance must not be updated from one thread while another
reads from it.
"""

import logging
from typing import Dict, List, Mapping, NamedTuple, Optional, Union

import numpy as np
import scipy.sparse as sp

from jax_berdy.core import RobotModel, SensorsList, SensorType, Traversal, compute_traversal
from jax_berdy.core.sensors import Sensor
from jax_berdy.exceptions import (
    InconsistentSensorModelError,
    InvalidOptionsError,
    NotInitializedError,
    SizeMismatchError,
)
from jax_berdy.transforms import se3, so3, spatial
from .options import BerdyOptions, BerdyVariants
from .ordering import get_dynamic_variables_ordering, get_sensors_ordering
from .triplets import Triplets
from .variables import BerdyDynamicVariable, BerdySensor, BerdySensorTypes
from .variables import BerdyDynamicVariablesTypes as VarType
from .variants import (
    AffineExpression,
    AssemblyContext,
    BerdyVariantStrategy,
    KinematicState,
    variant_strategy,
)

logger = logging.getLogger(__name__)

LinkSpec = Union[int, str]

_LINK_VARIABLES = (
    VarType.LINK_BODY_PROPER_ACCELERATION,
    VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION,
    VarType.NET_INT_AND_EXT_WRENCHES_ON_LINK_WITHOUT_GRAV,
    VarType.NET_EXT_WRENCH,
)


class BerdyMatrices(NamedTuple):
    D: sp.csc_matrix
    bD: np.ndarray
    Y: sp.csc_matrix
    bY: np.ndarray


class BerdyHelper:
    """Builds the BERDY matrices and vectors for one model and sensor set."""

    def __init__(self):
        self._initialized = False
        self._model: Optional[RobotModel] = None
        self._sensors: Optional[SensorsList] = None
        self._options: Optional[BerdyOptions] = None
        self._traversal: Optional[Traversal] = None
        self._strategy: Optional[BerdyVariantStrategy] = None
        self._variables: List[BerdyDynamicVariable] = []
        self._variable_ranges = {}
        self._sensors_ordering: List[BerdySensor] = []
        self._sensors_by_name: Dict[str, Sensor] = {}
        self._nr_of_equations = 0
        self._kinematics: Optional[KinematicState] = None

    def init(self, model: RobotModel, sensors: SensorsList, options: BerdyOptions) -> None:
        """Validate the inputs, compute the variable and sensor layouts.

        Raises:
            InvalidOptionsError: if the options are inconsistent or the base
                link does not exist.
            InconsistentSensorModelError: if a sensor, or a joint whose wrench
                is measured, references elements the model does not have, or
                a contact sensor's link has no external wrench variable.
        """
        self._initialized = False

        errors = options.consistency_errors()
        if not options.check_consistency():
            raise InvalidOptionsError("; ".join(errors))

        if options.base_link:
            if options.base_link not in model.link_names:
                raise InvalidOptionsError(f"Base link '{options.base_link}' not found in robot model")
            base = model.link_index(options.base_link)
        else:
            base = model.default_base_link

        sensors.check_consistency(model)
        for joint_name in options.joint_on_which_the_internal_wrench_is_measured:
            if joint_name not in model.joint_names:
                raise InconsistentSensorModelError(
                    f"Joint '{joint_name}' with a measured internal wrench not found in robot model"
                )

        traversal = compute_traversal(model, base)
        strategy = variant_strategy(options.berdy_variant)
        if strategy.experimental:
            logger.warning(
                "%s is experimental, its matrices are not validated against a reference",
                options.berdy_variant.name,
            )

        variables = get_dynamic_variables_ordering(model, traversal, options)
        variable_ranges = {(v.type, v.id): v.range for v in variables}
        for sensor in sensors.of_type(SensorType.THREE_AXIS_FORCE_TORQUE_CONTACT):
            if (VarType.NET_EXT_WRENCH, sensor.link) not in variable_ranges:
                raise InconsistentSensorModelError(
                    f"Contact sensor '{sensor.name}' measures the external wrench of link "
                    f"'{sensor.link}', which is not a dynamic variable of {options.berdy_variant.name}"
                )

        self._model = model
        self._sensors = sensors
        self._options = options
        self._traversal = traversal
        self._strategy = strategy
        self._variables = variables
        self._variable_ranges = variable_ranges
        self._sensors_ordering = get_sensors_ordering(model, sensors, options)
        self._sensors_by_name = {sensor.name: sensor for sensor in sensors}
        self._nr_of_equations = strategy.nr_of_dynamic_equations(model, traversal, options)
        self._kinematics = KinematicState(
            joint_positions=np.zeros(model.nr_of_dofs),
            joint_velocities=np.zeros(model.nr_of_dofs),
            link_velocities=np.zeros((model.nr_of_links, 6)),
            base_proper_acceleration=np.zeros(6),
        )
        self._initialized = True

        logger.debug(
            "Initialized %s with base '%s': %d dynamic variables, %d equations, %d measurements",
            options.berdy_variant.name,
            model.link_names[base],
            self.get_nr_of_dynamic_variables(),
            self._nr_of_equations,
            self.get_nr_of_sensors_measurements(),
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _require_init(self) -> None:
        if not self._initialized:
            raise NotInitializedError("BerdyHelper.init must succeed before using the helper")

    @property
    def model(self) -> RobotModel:
        self._require_init()
        return self._model

    @property
    def sensors(self) -> SensorsList:
        self._require_init()
        return self._sensors

    @property
    def options(self) -> BerdyOptions:
        self._require_init()
        return self._options

    @property
    def dynamic_traversal(self) -> Traversal:
        self._require_init()
        return self._traversal

    def get_nr_of_dynamic_variables(self) -> int:
        self._require_init()
        return sum(v.range.size for v in self._variables)

    def get_nr_of_dynamic_equations(self) -> int:
        self._require_init()
        return self._nr_of_equations

    def get_nr_of_sensors_measurements(self) -> int:
        self._require_init()
        return sum(s.range.size for s in self._sensors_ordering)

    def get_dynamic_variables_ordering(self) -> List[BerdyDynamicVariable]:
        self._require_init()
        return list(self._variables)

    def get_sensors_ordering(self) -> List[BerdySensor]:
        self._require_init()
        return list(self._sensors_ordering)

    # Kinematics

    def update_kinematics_from_fixed_base(
        self, joint_positions, joint_velocities, fixed_base: LinkSpec, gravity
    ) -> None:
        """Cache the kinematics of a robot whose ``fixed_base`` link does not move.

        Args:
            joint_positions, joint_velocities: (num_dofs,) arrays
            fixed_base: Index or name of the fixed link. In the fixed base
                variant it must be the base link of the helper.
            gravity: (3,) gravity acceleration expressed in the base frame
        """
        self._require_init()
        q, dq = self._joint_state(joint_positions, joint_velocities)
        gravity = _as_array("gravity", gravity, (3,))
        base = self._resolve_link(fixed_base)
        if self._strategy.experimental and base != self._traversal.base:
            raise ValueError(
                f"The fixed base '{self._model.link_names[base]}' differs from the base "
                f"link '{self._model.link_names[self._traversal.base]}' of the helper"
            )

        self._kinematics = KinematicState(
            joint_positions=q,
            joint_velocities=dq,
            link_velocities=self._propagate_velocities(base, q, dq, np.zeros(6)),
            base_proper_acceleration=np.concatenate([-gravity, np.zeros(3)]),
        )

    def update_kinematics_from_floating_base(
        self, joint_positions, joint_velocities, floating_frame: LinkSpec, base_angular_velocity
    ) -> None:
        """Cache the kinematics of a free-floating robot.

        The linear velocity of ``floating_frame`` is taken as zero: the
        floating base formulation does not depend on it.

        Args:
            joint_positions, joint_velocities: (num_dofs,) arrays
            floating_frame: Index or name of the link whose angular velocity is given
            base_angular_velocity: (3,) angular velocity of that link, in its frame

        Raises:
            ValueError: in the fixed base variant, whose base never floats.
        """
        self._require_init()
        if self._options.berdy_variant is BerdyVariants.ORIGINAL_BERDY_FIXED_BASE:
            raise ValueError(
                f"{self._options.berdy_variant.name} has a fixed base, "
                "use update_kinematics_from_fixed_base"
            )
        q, dq = self._joint_state(joint_positions, joint_velocities)
        omega = _as_array("base_angular_velocity", base_angular_velocity, (3,))
        base = self._resolve_link(floating_frame)

        self._kinematics = KinematicState(
            joint_positions=q,
            joint_velocities=dq,
            link_velocities=self._propagate_velocities(base, q, dq, np.concatenate([np.zeros(3), omega])),
            base_proper_acceleration=np.zeros(6),
        )

    def _joint_state(self, joint_positions, joint_velocities):
        num_dofs = self._model.nr_of_dofs
        return (
            _as_array("joint_positions", joint_positions, (num_dofs,)),
            _as_array("joint_velocities", joint_velocities, (num_dofs,)),
        )

    def _resolve_link(self, link: LinkSpec) -> int:
        if isinstance(link, str):
            return self._model.link_index(link)
        if not 0 <= link < self._model.nr_of_links:
            raise ValueError(f"Link index {link} out of range for {self._model.nr_of_links} links")
        return int(link)

    def _propagate_velocities(self, base: int, q, dq, base_velocity) -> np.ndarray:
        model = self._model
        traversal = self._traversal if base == self._traversal.base else compute_traversal(model, base)

        velocities = np.zeros((model.nr_of_links, 6))
        velocities[base] = base_velocity
        for link in traversal.order[1:]:
            parent = traversal.parent_links[link]
            joint = traversal.parent_joints[link]
            X = np.asarray(se3.adjoint(model.link_H_neighbor(joint, link, parent, q)))
            S = np.asarray(model.motion_subspace(joint, link, q))
            velocities[link] = X @ velocities[parent] + S * np.sum(dq[model.joint_dof_range(joint)])
        return velocities

    # Matrices

    def resize_and_zero_berdy_matrices(self) -> BerdyMatrices:
        """All-zero D, bD, Y, bY with the sizes of the current problem."""
        self._require_init()
        num_variables = self.get_nr_of_dynamic_variables()
        num_measurements = self.get_nr_of_sensors_measurements()
        return BerdyMatrices(
            D=sp.csc_matrix((self._nr_of_equations, num_variables), dtype=float),
            bD=np.zeros(self._nr_of_equations),
            Y=sp.csc_matrix((num_measurements, num_variables), dtype=float),
            bY=np.zeros(num_measurements),
        )

    def get_berdy_matrices(self) -> BerdyMatrices:
        """Assemble D, bD, Y, bY from the cached kinematic state."""
        self._require_init()
        ctx = self._context()
        num_variables = self.get_nr_of_dynamic_variables()
        num_measurements = self.get_nr_of_sensors_measurements()

        D = Triplets()
        bD = np.zeros(self._nr_of_equations)
        self._strategy.append_dynamics_rows(ctx, D, bD)

        Y = Triplets()
        bY = np.zeros(num_measurements)
        self._append_sensor_rows(ctx, Y, bY)

        return BerdyMatrices(
            D=D.to_csc((self._nr_of_equations, num_variables)),
            bD=bD,
            Y=Y.to_csc((num_measurements, num_variables)),
            bY=bY,
        )

    def _context(self) -> AssemblyContext:
        return AssemblyContext(
            model=self._model,
            traversal=self._traversal,
            options=self._options,
            variable_ranges=self._variable_ranges,
            kinematics=self._kinematics,
        )

    def _append_sensor_rows(self, ctx: AssemblyContext, Y: Triplets, bY: np.ndarray) -> None:
        model = self._model
        velocities = self._kinematics.link_velocities

        for entry in self._sensors_ordering:
            row = entry.range.offset
            sensor_type = entry.type

            if sensor_type is BerdySensorTypes.SIX_AXIS_FORCE_TORQUE_SENSOR:
                self._append_force_torque_rows(ctx, Y, row, self._sensors_by_name[entry.id])

            elif sensor_type in (
                BerdySensorTypes.ACCELEROMETER_SENSOR,
                BerdySensorTypes.GYROSCOPE_SENSOR,
                BerdySensorTypes.THREE_AXIS_ANGULAR_ACCELEROMETER_SENSOR,
                BerdySensorTypes.THREE_AXIS_FORCE_TORQUE_CONTACT_SENSOR,
            ):
                sensor = self._sensors_by_name[entry.id]
                link = model.link_index(sensor.link)
                link_H_sensor = np.asarray(sensor.link_H_sensor)
                R, p = link_H_sensor[:3, :3], link_H_sensor[:3, 3]
                omega = velocities[link][3:]

                if sensor_type is BerdySensorTypes.ACCELEROMETER_SENSOR:
                    # R^T ([I, -p^] a_classical + w x (w x p))
                    M = R.T @ np.hstack([np.eye(3), -np.asarray(so3.skew_symmetric(p))])
                    _add_expression(Y, bY, row, self._strategy.link_classical_acceleration(ctx, link), M)
                    bY[row:row + 3] += R.T @ np.cross(omega, np.cross(omega, p))
                elif sensor_type is BerdySensorTypes.GYROSCOPE_SENSOR:
                    bY[row:row + 3] = R.T @ omega
                elif sensor_type is BerdySensorTypes.THREE_AXIS_ANGULAR_ACCELEROMETER_SENSOR:
                    M = R.T @ np.hstack([np.zeros((3, 3)), np.eye(3)])
                    _add_expression(Y, bY, row, self._strategy.link_classical_acceleration(ctx, link), M)
                else:
                    # [tx, ty, fz] of the external wrench in the sensor frame
                    sensor_X_link = np.asarray(se3.adjoint_dual(se3.inverse(link_H_sensor)))
                    Y.add_block(row, ctx.offset(VarType.NET_EXT_WRENCH, sensor.link), sensor_X_link[[3, 4, 2]])

            elif sensor_type is BerdySensorTypes.DOF_ACCELERATION_SENSOR:
                joint = model.joint_index(entry.id)
                _add_expression(Y, bY, row, self._strategy.dof_acceleration(ctx, joint), np.eye(1))

            elif sensor_type is BerdySensorTypes.DOF_TORQUE_SENSOR:
                joint = model.joint_index(entry.id)
                _add_expression(Y, bY, row, self._strategy.dof_torque(ctx, joint), np.eye(1))

            elif sensor_type is BerdySensorTypes.NET_EXT_WRENCH_SENSOR:
                Y.add_identity(row, ctx.offset(VarType.NET_EXT_WRENCH, entry.id), 6)

            elif sensor_type is BerdySensorTypes.JOINT_WRENCH_SENSOR:
                Y.add_identity(row, ctx.offset(VarType.JOINT_WRENCH, entry.id), 6)

    def _append_force_torque_rows(self, ctx: AssemblyContext, Y: Triplets, row: int, sensor) -> None:
        model = self._model
        joint = model.joint_index(sensor.joint)
        child = ctx.joint_child(joint)
        parent = self._traversal.parent_links[child]
        applied = model.link_index(sensor.applied_wrench_link)
        frame = model.link_index(sensor.frame_link)

        # The joint wrench acts on the traversal child, its opposite on the parent
        sign = 1.0 if applied == child else -1.0
        if frame == child:
            frame_X_child = np.eye(6)
        else:
            frame_X_child = np.asarray(se3.adjoint_dual(ctx.link_H_neighbor(joint, parent, child)))
        sensor_X_frame = np.asarray(se3.adjoint_dual(se3.inverse(sensor.link_H_sensor)))

        Y.add_block(row, ctx.offset(VarType.JOINT_WRENCH, sensor.joint), sign * sensor_X_frame @ frame_X_child)

    # Serialization

    def serialize_dynamic_variables(
        self,
        link_proper_accelerations,
        link_net_wrenches_without_gravity,
        link_external_wrenches,
        joint_wrenches,
        joint_torques,
        joint_accelerations,
    ) -> np.ndarray:
        """Pack a numeric instance of the dynamic variables into ``d``.

        Args:
            link_proper_accelerations: (num_links, 6) body proper accelerations
            link_net_wrenches_without_gravity: (num_links, 6)
            link_external_wrenches: (num_links, 6)
            joint_wrenches: (num_joints, 6)
            joint_torques: (num_dofs,)
            joint_accelerations: (num_dofs,)

        Raises:
            SizeMismatchError: if an array does not match the model sizes.
        """
        self._require_init()
        model = self._model
        accelerations = _as_array("link_proper_accelerations", link_proper_accelerations, (model.nr_of_links, 6))
        net_wrenches = _as_array(
            "link_net_wrenches_without_gravity", link_net_wrenches_without_gravity, (model.nr_of_links, 6)
        )
        external_wrenches = _as_array("link_external_wrenches", link_external_wrenches, (model.nr_of_links, 6))
        joint_wrenches = _as_array("joint_wrenches", joint_wrenches, (model.nr_of_joints, 6))
        torques = _as_array("joint_torques", joint_torques, (model.nr_of_dofs,))
        joint_accelerations = _as_array("joint_accelerations", joint_accelerations, (model.nr_of_dofs,))

        d = np.zeros(self.get_nr_of_dynamic_variables())
        for variable in self._variables:
            if variable.type in _LINK_VARIABLES:
                index = model.link_index(variable.id)
            else:
                index = model.joint_index(variable.id)

            if variable.type is VarType.LINK_BODY_PROPER_ACCELERATION:
                value = accelerations[index]
            elif variable.type is VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION:
                velocity = self._kinematics.link_velocities[index]
                value = accelerations[index] + np.asarray(spatial.classical_acceleration_bias(velocity))
            elif variable.type is VarType.NET_INT_AND_EXT_WRENCHES_ON_LINK_WITHOUT_GRAV:
                value = net_wrenches[index]
            elif variable.type is VarType.NET_EXT_WRENCH:
                value = external_wrenches[index]
            elif variable.type is VarType.JOINT_WRENCH:
                value = joint_wrenches[index]
            elif variable.type is VarType.DOF_TORQUE:
                value = torques[model.joint_dof_range(index)]
            else:
                value = joint_accelerations[model.joint_dof_range(index)]
            d[variable.range.slice] = value
        return d

    def serialize_sensor_variables(
        self,
        sensor_measurements: Mapping[str, np.ndarray],
        link_external_wrenches,
        joint_torques,
        joint_accelerations,
        joint_wrenches,
    ) -> np.ndarray:
        """Pack sensor readings and virtual sensor values into ``y``.

        Args:
            sensor_measurements: Reading of every physical sensor, by name
            link_external_wrenches: (num_links, 6)
            joint_torques: (num_dofs,)
            joint_accelerations: (num_dofs,)
            joint_wrenches: (num_joints, 6)

        Raises:
            InconsistentSensorModelError: if a physical sensor has no reading.
            SizeMismatchError: if an array or a reading has the wrong size.
        """
        self._require_init()
        model = self._model
        external_wrenches = _as_array("link_external_wrenches", link_external_wrenches, (model.nr_of_links, 6))
        torques = _as_array("joint_torques", joint_torques, (model.nr_of_dofs,))
        joint_accelerations = _as_array("joint_accelerations", joint_accelerations, (model.nr_of_dofs,))
        joint_wrenches = _as_array("joint_wrenches", joint_wrenches, (model.nr_of_joints, 6))

        y = np.zeros(self.get_nr_of_sensors_measurements())
        for entry in self._sensors_ordering:
            if entry.type is BerdySensorTypes.DOF_ACCELERATION_SENSOR:
                value = joint_accelerations[model.joint_dof_range(model.joint_index(entry.id))]
            elif entry.type is BerdySensorTypes.DOF_TORQUE_SENSOR:
                value = torques[model.joint_dof_range(model.joint_index(entry.id))]
            elif entry.type is BerdySensorTypes.NET_EXT_WRENCH_SENSOR:
                value = external_wrenches[model.link_index(entry.id)]
            elif entry.type is BerdySensorTypes.JOINT_WRENCH_SENSOR:
                value = joint_wrenches[model.joint_index(entry.id)]
            else:
                if entry.id not in sensor_measurements:
                    raise InconsistentSensorModelError(f"No measurement given for sensor '{entry.id}'")
                value = _as_array(f"measurement of '{entry.id}'", sensor_measurements[entry.id], (entry.range.size,))
            y[entry.range.slice] = value
        return y


def _add_expression(Y: Triplets, bY: np.ndarray, row: int, expression: AffineExpression, M: np.ndarray) -> None:
    for offset, block in expression.terms:
        Y.add_block(row, offset, M @ block)
    bY[row:row + M.shape[0]] += M @ expression.bias


def _as_array(name: str, value, shape) -> np.ndarray:
    array = np.asarray(value, dtype=float)
    if array.shape != tuple(shape):
        raise SizeMismatchError(f"{name} has shape {array.shape}, expected {tuple(shape)}")
    return array

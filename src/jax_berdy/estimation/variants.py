"""Assembly strategies, one per BERDY variant.

Each strategy decides which dynamic variables a variant carries, emits the
rows of the dynamics constraint ``D d + bD = 0`` and expresses the
variant-dependent quantities the sensor rows need (link classical
accelerations, joint accelerations, joint torques) as affine functions of
``d``. The strategy is selected once, by :func:`variant_strategy`.
"""

import abc
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterator, List, NamedTuple, Tuple

import numpy as np

from jax_berdy.core import RobotModel, Traversal
from jax_berdy.transforms import se3, spatial
from .options import BerdyOptions, BerdyVariants
from .triplets import Triplets
from .variables import BerdyDynamicVariablesTypes as VarType
from .variables import IndexRange


class KinematicState(NamedTuple):
    """Kinematic quantities BERDY treats as known, all numpy arrays."""
    joint_positions: np.ndarray       # (num_dofs,)
    joint_velocities: np.ndarray      # (num_dofs,)
    link_velocities: np.ndarray       # (num_links, 6)
    base_proper_acceleration: np.ndarray  # (6,)


class AffineExpression(NamedTuple):
    """``sum(block @ d[offset:offset + block.shape[1]]) + bias``."""
    terms: List[Tuple[int, np.ndarray]]
    bias: np.ndarray


@dataclass(frozen=True)
class AssemblyContext:
    """Everything a strategy reads while assembling the BERDY matrices."""
    model: RobotModel
    traversal: Traversal
    options: BerdyOptions
    variable_ranges: Dict[Tuple[VarType, str], IndexRange]
    kinematics: KinematicState

    def offset(self, var_type: VarType, element: str) -> int:
        return self.variable_ranges[(var_type, element)].offset

    def link_name(self, link: int) -> str:
        return self.model.link_names[link]

    def joint_name(self, joint: int) -> str:
        return self.model.joint_names[joint]

    def joint_child(self, joint: int) -> int:
        """Child link of ``joint`` in the traversal."""
        child = self.model.joint_children[joint]
        if self.traversal.parent_joints[child] == joint:
            return child
        return self.model.joint_parents[joint]

    def link_H_neighbor(self, joint: int, link: int, neighbor: int) -> np.ndarray:
        return np.asarray(
            self.model.link_H_neighbor(joint, link, neighbor, self.kinematics.joint_positions)
        )

    def motion_subspace(self, joint: int, child: int) -> np.ndarray:
        return np.asarray(
            self.model.motion_subspace(joint, child, self.kinematics.joint_positions)
        )

    def spatial_inertia(self, link: int) -> np.ndarray:
        return np.asarray(self.model.spatial_inertia(link))

    def joint_velocity(self, joint: int) -> float:
        return float(np.sum(self.kinematics.joint_velocities[self.model.joint_dof_range(joint)]))


class BerdyVariantStrategy(abc.ABC):
    """Variable layout and dynamics rows of one BERDY variant."""

    variant: ClassVar[BerdyVariants]
    experimental: ClassVar[bool] = False

    @abc.abstractmethod
    def dynamic_variables(
        self, model: RobotModel, traversal: Traversal, options: BerdyOptions
    ) -> Iterator[Tuple[VarType, str, int]]:
        """Yield ``(type, element name, size)`` of every block of ``d``, in order."""

    @abc.abstractmethod
    def nr_of_dynamic_equations(
        self, model: RobotModel, traversal: Traversal, options: BerdyOptions
    ) -> int:
        ...

    @abc.abstractmethod
    def append_dynamics_rows(self, ctx: AssemblyContext, D: Triplets, bD: np.ndarray) -> None:
        """Fill ``D`` and ``bD`` so that ``D d + bD = 0`` for consistent ``d``."""

    @abc.abstractmethod
    def link_classical_acceleration(self, ctx: AssemblyContext, link: int) -> AffineExpression:
        """Proper classical acceleration of ``link`` as a function of ``d``."""

    @abc.abstractmethod
    def dof_acceleration(self, ctx: AssemblyContext, joint: int) -> AffineExpression:
        ...

    @abc.abstractmethod
    def dof_torque(self, ctx: AssemblyContext, joint: int) -> AffineExpression:
        ...


class FloatingBaseStrategy(BerdyVariantStrategy):
    """BERDY_FLOATING_BASE.

    Per link: proper classical acceleration and external wrench; per joint:
    the transmitted wrench. One Newton-Euler block per link, base included.
    Written with classical accelerations the equations only depend on the
    angular velocities, so the base linear velocity is never needed.
    """

    variant = BerdyVariants.BERDY_FLOATING_BASE

    def dynamic_variables(self, model, traversal, options):
        for link in traversal.order:
            name = model.link_names[link]
            yield VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION, name, 6
            yield VarType.NET_EXT_WRENCH, name, 6
            if not traversal.is_base(link):
                yield VarType.JOINT_WRENCH, model.joint_names[traversal.parent_joints[link]], 6

    def nr_of_dynamic_equations(self, model, traversal, options):
        return 6 * model.nr_of_links

    def append_dynamics_rows(self, ctx, D, bD):
        traversal = ctx.traversal
        row = 0
        for link in traversal.order:
            name = ctx.link_name(link)
            I = ctx.spatial_inertia(link)

            # I a + [m w x (w x c); w x (I_o w)] = f_ext + f_parent - sum_children X* f_child
            D.add_block(row, ctx.offset(VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION, name), I)
            D.add_identity(row, ctx.offset(VarType.NET_EXT_WRENCH, name), 6, -1.0)
            if not traversal.is_base(link):
                joint = traversal.parent_joints[link]
                D.add_identity(row, ctx.offset(VarType.JOINT_WRENCH, ctx.joint_name(joint)), 6, -1.0)
            for child in traversal.child_links[link]:
                child_joint = traversal.parent_joints[child]
                D.add_block(
                    row,
                    ctx.offset(VarType.JOINT_WRENCH, ctx.joint_name(child_joint)),
                    np.asarray(se3.adjoint_dual(ctx.link_H_neighbor(child_joint, link, child))),
                )

            omega_only = np.zeros(6)
            omega_only[3:] = ctx.kinematics.link_velocities[link][3:]
            bD[row:row + 6] = np.asarray(spatial.cross_force(omega_only)) @ I @ omega_only
            row += 6

    def link_classical_acceleration(self, ctx, link):
        offset = ctx.offset(VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION, ctx.link_name(link))
        return AffineExpression([(offset, np.eye(6))], np.zeros(6))

    def dof_acceleration(self, ctx, joint):
        # ddq = k (a_child - X a_parent - v_child x S dq), k = S^T / (S^T S),
        # with body accelerations equal to classical ones minus [w x u; 0]
        child = ctx.joint_child(joint)
        parent = ctx.traversal.parent_links[child]
        S = ctx.motion_subspace(joint, child)
        k = S / (S @ S)
        X = np.asarray(se3.adjoint(ctx.link_H_neighbor(joint, child, parent)))

        velocities = ctx.kinematics.link_velocities
        child_bias = np.asarray(spatial.classical_acceleration_bias(velocities[child]))
        parent_bias = np.asarray(spatial.classical_acceleration_bias(velocities[parent]))
        velocity_product = np.asarray(spatial.cross_motion(velocities[child])) @ S * ctx.joint_velocity(joint)

        acc = VarType.LINK_BODY_PROPER_CLASSICAL_ACCELERATION
        return AffineExpression(
            [
                (ctx.offset(acc, ctx.link_name(child)), k[None, :]),
                (ctx.offset(acc, ctx.link_name(parent)), -(k @ X)[None, :]),
            ],
            np.atleast_1d(k @ (X @ parent_bias - child_bias - velocity_product)),
        )

    def dof_torque(self, ctx, joint):
        S = ctx.motion_subspace(joint, ctx.joint_child(joint))
        offset = ctx.offset(VarType.JOINT_WRENCH, ctx.joint_name(joint))
        return AffineExpression([(offset, S[None, :])], np.zeros(1))


class OriginalFixedBaseStrategy(BerdyVariantStrategy):
    """ORIGINAL_BERDY_FIXED_BASE (experimental).

    The base link has a known proper acceleration and no free variables,
    except its external wrench when requested. Every other link carries its
    body proper acceleration, its net wrench, the wrench, torque and
    acceleration of the joint to its parent and, optionally, its external
    wrench. Each link contributes acceleration propagation, net wrench,
    wrench balance and torque projection rows.
    """

    variant = BerdyVariants.ORIGINAL_BERDY_FIXED_BASE
    experimental = True

    @staticmethod
    def base_external_wrench_is_variable(options: BerdyOptions) -> bool:
        return (
            options.include_all_net_external_wrenches_as_dynamic_variables
            or options.include_fixed_base_external_wrench
        )

    def dynamic_variables(self, model, traversal, options):
        for link in traversal.order:
            name = model.link_names[link]
            if traversal.is_base(link):
                if self.base_external_wrench_is_variable(options):
                    yield VarType.NET_EXT_WRENCH, name, 6
                continue

            joint = traversal.parent_joints[link]
            joint_name = model.joint_names[joint]
            dofs = model.joint_nr_of_dofs(joint)
            yield VarType.LINK_BODY_PROPER_ACCELERATION, name, 6
            yield VarType.NET_INT_AND_EXT_WRENCHES_ON_LINK_WITHOUT_GRAV, name, 6
            yield VarType.JOINT_WRENCH, joint_name, 6
            if dofs:
                yield VarType.DOF_TORQUE, joint_name, dofs
            if options.include_all_net_external_wrenches_as_dynamic_variables:
                yield VarType.NET_EXT_WRENCH, name, 6
            if dofs:
                yield VarType.DOF_ACCELERATION, joint_name, dofs

    def nr_of_dynamic_equations(self, model, traversal, options):
        equations = 6 if self.base_external_wrench_is_variable(options) else 0
        for link in traversal.order:
            if not traversal.is_base(link):
                equations += 18 + model.joint_nr_of_dofs(traversal.parent_joints[link])
        return equations

    def _known_base_net_wrench(self, ctx: AssemblyContext) -> np.ndarray:
        base = ctx.traversal.base
        I = ctx.spatial_inertia(base)
        v = ctx.kinematics.link_velocities[base]
        cross = np.asarray(spatial.cross_force(v))
        return I @ ctx.kinematics.base_proper_acceleration + cross @ I @ v

    def _append_children_wrenches(self, ctx, D, row, link) -> None:
        for child in ctx.traversal.child_links[link]:
            child_joint = ctx.traversal.parent_joints[child]
            D.add_block(
                row,
                ctx.offset(VarType.JOINT_WRENCH, ctx.joint_name(child_joint)),
                -np.asarray(se3.adjoint_dual(ctx.link_H_neighbor(child_joint, link, child))),
            )

    def append_dynamics_rows(self, ctx, D, bD):
        traversal = ctx.traversal
        include_ext = ctx.options.include_all_net_external_wrenches_as_dynamic_variables
        row = 0
        for link in traversal.order:
            name = ctx.link_name(link)

            if traversal.is_base(link):
                if not self.base_external_wrench_is_variable(ctx.options):
                    continue
                # f_ext - sum_children X* f_child = known net wrench of the base
                D.add_identity(row, ctx.offset(VarType.NET_EXT_WRENCH, name), 6)
                self._append_children_wrenches(ctx, D, row, link)
                bD[row:row + 6] = -self._known_base_net_wrench(ctx)
                row += 6
                continue

            parent = traversal.parent_links[link]
            joint = traversal.parent_joints[link]
            joint_name = ctx.joint_name(joint)
            dofs = ctx.model.joint_nr_of_dofs(joint)
            X = np.asarray(se3.adjoint(ctx.link_H_neighbor(joint, link, parent)))
            S = ctx.motion_subspace(joint, link)
            v = ctx.kinematics.link_velocities[link]
            I = ctx.spatial_inertia(link)
            acc_offset = ctx.offset(VarType.LINK_BODY_PROPER_ACCELERATION, name)
            net_offset = ctx.offset(VarType.NET_INT_AND_EXT_WRENCHES_ON_LINK_WITHOUT_GRAV, name)
            wrench_offset = ctx.offset(VarType.JOINT_WRENCH, joint_name)

            # a - X a_parent - S ddq - v x S dq = 0
            D.add_identity(row, acc_offset, 6)
            if traversal.is_base(parent):
                bD[row:row + 6] -= X @ ctx.kinematics.base_proper_acceleration
            else:
                D.add_block(row, ctx.offset(VarType.LINK_BODY_PROPER_ACCELERATION, ctx.link_name(parent)), -X)
            if dofs:
                D.add_block(row, ctx.offset(VarType.DOF_ACCELERATION, joint_name), -S[:, None])
                bD[row:row + 6] -= np.asarray(spatial.cross_motion(v)) @ S * ctx.joint_velocity(joint)
            row += 6

            # net - I a - v x* I v = 0
            D.add_identity(row, net_offset, 6)
            D.add_block(row, acc_offset, -I)
            bD[row:row + 6] = -np.asarray(spatial.cross_force(v)) @ I @ v
            row += 6

            # f_joint + f_ext - sum_children X* f_child - net = 0
            D.add_identity(row, wrench_offset, 6)
            if include_ext:
                D.add_identity(row, ctx.offset(VarType.NET_EXT_WRENCH, name), 6)
            self._append_children_wrenches(ctx, D, row, link)
            D.add_identity(row, net_offset, 6, -1.0)
            row += 6

            # tau - S^T f_joint = 0
            if dofs:
                D.add_identity(row, ctx.offset(VarType.DOF_TORQUE, joint_name), dofs)
                D.add_block(row, wrench_offset, -S[None, :])
                row += dofs

    def link_classical_acceleration(self, ctx, link):
        bias = np.asarray(spatial.classical_acceleration_bias(ctx.kinematics.link_velocities[link]))
        if ctx.traversal.is_base(link):
            return AffineExpression([], ctx.kinematics.base_proper_acceleration + bias)
        offset = ctx.offset(VarType.LINK_BODY_PROPER_ACCELERATION, ctx.link_name(link))
        return AffineExpression([(offset, np.eye(6))], bias)

    def dof_acceleration(self, ctx, joint):
        offset = ctx.offset(VarType.DOF_ACCELERATION, ctx.joint_name(joint))
        return AffineExpression([(offset, np.eye(1))], np.zeros(1))

    def dof_torque(self, ctx, joint):
        offset = ctx.offset(VarType.DOF_TORQUE, ctx.joint_name(joint))
        return AffineExpression([(offset, np.eye(1))], np.zeros(1))


_STRATEGIES = {
    strategy.variant: strategy
    for strategy in (FloatingBaseStrategy(), OriginalFixedBaseStrategy())
}


def variant_strategy(variant: BerdyVariants) -> BerdyVariantStrategy:
    return _STRATEGIES[variant]

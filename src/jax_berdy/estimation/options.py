"""Configuration of a BERDY problem."""

import enum
import logging
from typing import List, Tuple

from flax import struct

logger = logging.getLogger(__name__)


class BerdyVariants(enum.Enum):
    """Formulations of the BERDY problem.

    ``ORIGINAL_BERDY_FIXED_BASE`` is experimental: its base link is pinned to
    a known, gravity-compensating acceleration and it carries link net
    wrenches, joint torques and joint accelerations as dynamic variables.
    ``BERDY_FLOATING_BASE`` only carries link accelerations, external wrenches
    and joint wrenches, and needs no base linear velocity.
    """
    ORIGINAL_BERDY_FIXED_BASE = "original_berdy_fixed_base"
    BERDY_FLOATING_BASE = "berdy_floating_base"


@struct.dataclass
class BerdyOptions:
    """Options of a BERDY problem. Immutable, derive variants with ``replace``.

    Attributes:
        berdy_variant: Formulation to build.
        base_link: Name of the base link, the model default base if empty.
        include_all_net_external_wrenches_as_sensors: Add a 6D measurement of
            the external wrench of every link.
        include_all_net_external_wrenches_as_dynamic_variables: Carry the
            external wrench of every link in ``d``.
        include_all_joint_accelerations_as_sensors: Add a measurement of every
            joint acceleration.
        include_all_joint_torques_as_sensors: Add a measurement of every joint
            torque.
        include_fixed_base_external_wrench: In the fixed base variant, carry the
            external wrench of the base link in ``d`` even if the other external
            wrenches are not.
        joint_on_which_the_internal_wrench_is_measured: Joints whose transmitted
            wrench is measured directly.
    """
    berdy_variant: BerdyVariants = struct.field(
        pytree_node=False, default=BerdyVariants.BERDY_FLOATING_BASE
    )
    base_link: str = struct.field(pytree_node=False, default="")
    include_all_net_external_wrenches_as_sensors: bool = struct.field(pytree_node=False, default=True)
    include_all_net_external_wrenches_as_dynamic_variables: bool = struct.field(
        pytree_node=False, default=True
    )
    include_all_joint_accelerations_as_sensors: bool = struct.field(pytree_node=False, default=True)
    include_all_joint_torques_as_sensors: bool = struct.field(pytree_node=False, default=False)
    include_fixed_base_external_wrench: bool = struct.field(pytree_node=False, default=False)
    joint_on_which_the_internal_wrench_is_measured: Tuple[str, ...] = struct.field(
        pytree_node=False, default=()
    )

    def consistency_errors(self) -> List[str]:
        """Descriptions of the rules these options violate, empty if consistent."""
        errors = []
        if (
            self.berdy_variant is BerdyVariants.BERDY_FLOATING_BASE
            and not self.include_all_net_external_wrenches_as_dynamic_variables
        ):
            errors.append(
                "BERDY_FLOATING_BASE requires include_all_net_external_wrenches_as_dynamic_variables"
            )
        if (
            self.include_all_net_external_wrenches_as_sensors
            and not self.include_all_net_external_wrenches_as_dynamic_variables
        ):
            errors.append(
                "include_all_net_external_wrenches_as_sensors requires "
                "include_all_net_external_wrenches_as_dynamic_variables"
            )
        if (
            self.berdy_variant is not BerdyVariants.ORIGINAL_BERDY_FIXED_BASE
            and self.include_fixed_base_external_wrench
        ):
            errors.append("include_fixed_base_external_wrench is only valid for ORIGINAL_BERDY_FIXED_BASE")
        return errors

    def check_consistency(self) -> bool:
        """Check the options, logging every violated rule."""
        errors = self.consistency_errors()
        for error in errors:
            logger.error("Inconsistent BERDY options: %s", error)
        return not errors

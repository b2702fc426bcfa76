"""Tests for BERDY options and their consistency rules."""

import logging

import pytest

from jax_berdy.estimation import BerdyOptions, BerdyVariants


def test_defaults_are_consistent():
    options = BerdyOptions()

    assert options.berdy_variant is BerdyVariants.BERDY_FLOATING_BASE
    assert options.base_link == ""
    assert options.include_all_net_external_wrenches_as_sensors
    assert options.include_all_net_external_wrenches_as_dynamic_variables
    assert options.include_all_joint_accelerations_as_sensors
    assert not options.include_all_joint_torques_as_sensors
    assert not options.include_fixed_base_external_wrench
    assert options.joint_on_which_the_internal_wrench_is_measured == ()
    assert options.consistency_errors() == []
    assert options.check_consistency()


def test_replace_returns_a_new_instance():
    options = BerdyOptions()
    changed = options.replace(include_all_joint_torques_as_sensors=True, base_link="torso")

    assert changed.include_all_joint_torques_as_sensors
    assert changed.base_link == "torso"
    assert not options.include_all_joint_torques_as_sensors
    with pytest.raises(Exception):
        options.base_link = "torso"


@pytest.mark.parametrize(
    "changes, message",
    [
        (
            dict(
                include_all_net_external_wrenches_as_dynamic_variables=False,
                include_all_net_external_wrenches_as_sensors=False,
            ),
            "BERDY_FLOATING_BASE requires",
        ),
        (
            dict(
                berdy_variant=BerdyVariants.ORIGINAL_BERDY_FIXED_BASE,
                include_all_net_external_wrenches_as_dynamic_variables=False,
            ),
            "include_all_net_external_wrenches_as_sensors requires",
        ),
        (
            dict(include_fixed_base_external_wrench=True),
            "only valid for ORIGINAL_BERDY_FIXED_BASE",
        ),
    ],
)
def test_inconsistent_options(changes, message, caplog):
    options = BerdyOptions().replace(**changes)

    errors = options.consistency_errors()
    assert len(errors) == 1
    assert message in errors[0]

    with caplog.at_level(logging.ERROR, logger="jax_berdy.estimation.options"):
        assert not options.check_consistency()
    assert message in caplog.text


def test_fixed_base_options():
    options = BerdyOptions(
        berdy_variant=BerdyVariants.ORIGINAL_BERDY_FIXED_BASE,
        include_all_net_external_wrenches_as_sensors=False,
        include_all_net_external_wrenches_as_dynamic_variables=False,
        include_fixed_base_external_wrench=True,
    )
    assert options.check_consistency()


def test_every_violated_rule_is_reported():
    options = BerdyOptions(
        include_all_net_external_wrenches_as_dynamic_variables=False,
        include_fixed_base_external_wrench=True,
    )
    assert len(options.consistency_errors()) == 3

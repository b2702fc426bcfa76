"""I/O utilities for loading robot models and sensors.

This module provides functions for parsing URDF files, with the ``<sensor>``
extension, into jax_berdy data structures.
"""

from .urdf_parser import load_sensors, load_sensors_string, load_urdf, load_urdf_string

__all__ = ["load_urdf", "load_urdf_string", "load_sensors", "load_sensors_string"]

"""Geometric camera models for visual calibration and odometry."""

__version__ = "0.1.0"

from . import cameras
from . import calibration
from . import utils

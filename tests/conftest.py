from __future__ import annotations

import numpy as np
import pytest

from curvestereo.api.stereo_rig import StereoRig
from curvestereo.config import StereoParameters
from curvestereo.core.geometry import Pose

# 160x120 images, scale 3: working cell (26, 19) is image pixel (79, 58), the projection center.
EUCM = np.array([0.5, 1.0, 100.0, 100.0, 79.0, 58.0])


@pytest.fixture
def lateral_rig() -> StereoRig:
    """Identical cameras, the second one 0.5 to the right of the first."""
    return StereoRig(160, 120, EUCM, EUCM, Pose(np.eye(3), np.array([0.5, 0.0, 0.0])))


@pytest.fixture
def oblique_rig() -> StereoRig:
    """Different cameras with a small rotation and a non-axial baseline."""
    return StereoRig(
        160,
        120,
        np.array([0.6, 1.1, 110.0, 105.0, 79.5, 59.5]),
        np.array([0.55, 0.9, 100.0, 102.0, 80.0, 61.0]),
        Pose.from_vector(0.4, 0.05, 0.03, 0.02, -0.05, 0.01),
    )


@pytest.fixture
def stereo_params() -> StereoParameters:
    return StereoParameters(image_width=160, image_height=120, scale=3, disp_max=24).resolved()

"""
Dense stereo matching along epipolar curves.

Non-rectified pairs from wide field-of-view cameras are matched directly:
the search for each pixel follows the conic its epipolar plane projects to
in the second image, so no rectification (and no resampling loss) is needed.
"""

from curvestereo.stereo.depth_map import DepthMap
from curvestereo.stereo.matcher import EnhancedStereo

__all__ = ["DepthMap", "EnhancedStereo"]

from curvestereo import config
from curvestereo.api import StereoRig, load_stereo_rig, save_stereo_rig
from curvestereo.stereo import DepthMap, EnhancedStereo

__all__ = [
    "config",
    "DepthMap",
    "EnhancedStereo",
    "StereoRig",
    "load_stereo_rig",
    "save_stereo_rig",
]

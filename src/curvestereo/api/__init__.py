from curvestereo.api.rig_io import load_stereo_rig, save_stereo_rig
from curvestereo.api.stereo_rig import StereoRig

__all__ = [
    "StereoRig",
    "load_stereo_rig",
    "save_stereo_rig",
]

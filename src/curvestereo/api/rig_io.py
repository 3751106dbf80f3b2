from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from curvestereo.api.stereo_rig import StereoRig
from curvestereo.config import ConfigValidationError
from curvestereo.core.geometry import Pose

RIG_SCHEMA_VERSION = "curvestereo.rig.v0"


def _to_float_array(x: Any, shape: tuple[int, ...], name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=np.float64).reshape(shape)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"{name}: expected shape {shape}") from e
    if not np.all(np.isfinite(arr)):
        raise ConfigValidationError(f"{name}: non-finite values")
    return arr


def stereo_rig_to_dict(rig: StereoRig) -> dict[str, Any]:
    return {
        "schema_version": RIG_SCHEMA_VERSION,
        "image": {"width_px": int(rig.image_width_px), "height_px": int(rig.image_height_px)},
        "camera1": {"model": "eucm", "params": rig.params1.tolist()},
        "camera2": {"model": "eucm", "params": rig.params2.tolist()},
        "pose12": {
            "R": rig.pose.rot_mat.tolist(),
            "t": rig.pose.trans.tolist(),
            "rotvec": rig.pose.to_vector()[3:].tolist(),
        },
    }


def stereo_rig_from_dict(data: dict[str, Any]) -> StereoRig:
    if str(data.get("schema_version")) != RIG_SCHEMA_VERSION:
        raise ConfigValidationError("unsupported rig schema")
    try:
        image = data["image"]
        cams = [data["camera1"], data["camera2"]]
        pose = data["pose12"]
        for i, cam in enumerate(cams, start=1):
            if str(cam.get("model", "eucm")) != "eucm":
                raise ConfigValidationError(f"camera{i}: only the eucm model is supported")
        # R wins over rotvec when both are present
        if "R" in pose:
            R = _to_float_array(pose["R"], (3, 3), "pose12.R")
            t = _to_float_array(pose["t"], (3,), "pose12.t")
            pose12 = Pose(R, t)
        else:
            x, y, z = _to_float_array(pose["t"], (3,), "pose12.t")
            rx, ry, rz = _to_float_array(pose["rotvec"], (3,), "pose12.rotvec")
            pose12 = Pose.from_vector(x, y, z, rx, ry, rz)
        return StereoRig(
            image_width_px=int(image["width_px"]),
            image_height_px=int(image["height_px"]),
            params1=_to_float_array(cams[0]["params"], (6,), "camera1.params"),
            params2=_to_float_array(cams[1]["params"], (6,), "camera2.params"),
            pose=pose12,
        )
    except KeyError as e:
        raise ConfigValidationError(f"missing rig field: {e}") from e


def save_stereo_rig(path: Path, rig: StereoRig) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(stereo_rig_to_dict(rig), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_stereo_rig(path: Path) -> StereoRig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return stereo_rig_from_dict(data)

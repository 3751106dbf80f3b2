from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

SCHEMA_VERSION = "curvestereo.stereo.v0"

# Empirical thresholds, overridable per StereoParameters instance.
TRIANGULATION_EPS = 1e-10
INDEX_EPS = 1e-4
LINE_RATIO = 0.5

CostMode = Literal["curve", "box"]


class ConfigValidationError(ValueError):
    pass


@dataclass(frozen=True)
class StereoParameters:
    """
    Matching configuration.

    The working grid samples the image every `scale` pixels starting at
    (u0, v0); cell (u, v) maps to image pixel (u_img(u), v_img(v)).
    """

    image_width: int
    image_height: int
    u0: int = 0
    v0: int = 0
    scale: int = 3
    disp_width: int = -1
    disp_height: int = -1
    disp_max: int = 48
    lambda_step: int = 5
    lambda_jump: int = 32
    max_bias: int = 10
    max_distance: float = 100.0
    verbosity: int = 0
    epipolar_steps: int = 2000
    cost_mode: CostMode = "box"
    triangulation_eps: float = TRIANGULATION_EPS
    index_eps: float = INDEX_EPS
    line_ratio: float = LINE_RATIO
    logger: logging.Logger | None = field(default=None, compare=False, repr=False)

    def u_img(self, u):
        return self.u0 + self.scale * u + self.scale // 2

    def v_img(self, v):
        return self.v0 + self.scale * v + self.scale // 2

    def resolved(self) -> "StereoParameters":
        """Copy with the working grid size derived from the image size where unset."""
        w = self.disp_width if self.disp_width > 0 else (self.image_width - self.u0) // self.scale
        h = self.disp_height if self.disp_height > 0 else (self.image_height - self.v0) // self.scale
        return replace(self, disp_width=int(w), disp_height=int(h))

    def get_logger(self) -> logging.Logger:
        return self.logger if self.logger is not None else logging.getLogger("curvestereo")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def validate_stereo_parameters(p: StereoParameters) -> StereoParameters:
    _require(p.image_width > 0 and p.image_height > 0, "image_width and image_height must be > 0")
    _require(p.scale >= 1, "scale must be >= 1")
    _require(p.u0 >= 0 and p.v0 >= 0, "u0 and v0 must be >= 0")
    _require(0 < p.disp_max <= 256, "disp_max must be in 1..256 (disparities are stored as uint8)")
    _require(p.lambda_step >= 0 and p.lambda_jump >= 0, "lambda_step and lambda_jump must be >= 0")
    _require(p.max_bias >= 0, "max_bias must be >= 0")
    _require(p.max_distance > 0, "max_distance must be > 0")
    _require(p.epipolar_steps > 0 and p.epipolar_steps % 2 == 0, "epipolar_steps must be a positive even number")
    _require(p.cost_mode in ("curve", "box"), "cost_mode must be curve|box")
    r = p.resolved()
    _require(r.disp_width > 0 and r.disp_height > 0, "working grid is empty for this image size and scale")
    _require(
        r.u_img(r.disp_width - 1) + r.scale - r.scale // 2 <= r.image_width
        and r.v_img(r.disp_height - 1) + r.scale - r.scale // 2 <= r.image_height,
        "working grid exceeds the image bounds",
    )
    return r


def parse_stereo_parameters(data: dict[str, Any], logger: logging.Logger | None = None) -> StereoParameters:
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    image = data.get("image", {})
    w_raw = image.get("width_px")
    h_raw = image.get("height_px")
    _require(w_raw is not None and h_raw is not None, "image.width_px and image.height_px are required")

    grid = data.get("grid", {})
    matching = data.get("matching", {})
    thresholds = data.get("thresholds", {})

    try:
        params = StereoParameters(
            image_width=int(w_raw),
            image_height=int(h_raw),
            u0=int(grid.get("u0", 0)),
            v0=int(grid.get("v0", 0)),
            scale=int(grid.get("scale", 3)),
            disp_width=int(grid.get("width", -1)),
            disp_height=int(grid.get("height", -1)),
            disp_max=int(matching.get("disp_max", 48)),
            lambda_step=int(matching.get("lambda_step", 5)),
            lambda_jump=int(matching.get("lambda_jump", 32)),
            max_bias=int(matching.get("max_bias", 10)),
            max_distance=float(matching.get("max_distance", 100.0)),
            epipolar_steps=int(matching.get("epipolar_steps", 2000)),
            cost_mode=str(matching.get("cost_mode", "box")),  # type: ignore[arg-type]
            verbosity=int(data.get("verbosity", 0)),
            triangulation_eps=float(thresholds.get("triangulation_eps", TRIANGULATION_EPS)),
            index_eps=float(thresholds.get("index_eps", INDEX_EPS)),
            line_ratio=float(thresholds.get("line_ratio", LINE_RATIO)),
            logger=logger,
        )
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"invalid stereo parameter value: {e}") from e
    return validate_stereo_parameters(params)


def load_stereo_parameters(path: Path, logger: logging.Logger | None = None) -> StereoParameters:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_stereo_parameters(data, logger=logger)


def stereo_parameters_to_dict(p: StereoParameters) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "image": {"width_px": p.image_width, "height_px": p.image_height},
        "grid": {"u0": p.u0, "v0": p.v0, "scale": p.scale, "width": p.disp_width, "height": p.disp_height},
        "matching": {
            "disp_max": p.disp_max,
            "lambda_step": p.lambda_step,
            "lambda_jump": p.lambda_jump,
            "max_bias": p.max_bias,
            "max_distance": p.max_distance,
            "epipolar_steps": p.epipolar_steps,
            "cost_mode": p.cost_mode,
        },
        "thresholds": {
            "triangulation_eps": p.triangulation_eps,
            "index_eps": p.index_eps,
            "line_ratio": p.line_ratio,
        },
        "verbosity": p.verbosity,
    }

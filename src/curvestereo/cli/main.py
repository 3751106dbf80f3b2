from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path

import numpy as np

from curvestereo.api.rig_io import load_stereo_rig, save_stereo_rig
from curvestereo.api.stereo_rig import StereoRig
from curvestereo.config import load_stereo_parameters, stereo_parameters_to_dict, validate_stereo_parameters
from curvestereo.core.geometry import Pose
from curvestereo.core.image_io import load_gray_u8, save_gray_u8
from curvestereo.sim.plane_scene import PlaneTexture, render_stereo_pair

LOGGER = logging.getLogger(__name__)

DEFAULT_EUCM = (0.5, 1.0, 100.0, 100.0, 79.0, 58.0)


def _parse_floats(text: str, n: int, name: str) -> tuple[float, ...]:
    vals = tuple(float(s) for s in text.split(",") if s.strip())
    if len(vals) != n:
        raise SystemExit(f"--{name} expects {n} comma-separated values")
    return vals


def run_render_plane(args: argparse.Namespace) -> Path:
    params = _parse_floats(args.eucm, 6, "eucm")
    rig = StereoRig(
        image_width_px=args.width,
        image_height_px=args.height,
        params1=np.asarray(params),
        params2=np.asarray(params),
        pose=Pose.from_vector(args.baseline, 0.0, 0.0, 0.0, 0.0, 0.0),
    )
    rng = np.random.default_rng(args.seed)
    texture = PlaneTexture.random(args.plane_size, args.plane_size, sigma_px=args.texture_sigma, rng=rng)
    pose_plane = Pose(np.eye(3), np.array([0.0, 0.0, args.distance]))
    img1, img2 = render_stereo_pair(rig, pose_plane, texture)

    out = Path(args.out)
    save_gray_u8(out / "left.png", img1)
    save_gray_u8(out / "right.png", img2)
    rig_path = save_stereo_rig(out / "rig.json", rig)

    stereo = validate_stereo_parameters(rig.default_parameters(scale=args.scale, disp_max=args.disp_max))
    (out / "stereo.json").write_text(json.dumps(stereo_parameters_to_dict(stereo), indent=2), encoding="utf-8")

    truth = rig.build_stereo(stereo).generate_plane_distance(pose_plane, texture.polygon())
    np.save(out / "distance_truth.npy", truth)
    LOGGER.info("wrote synthetic pair to %s", out)
    return rig_path


def _build_stereo(args: argparse.Namespace):
    rig = load_stereo_rig(args.rig)
    log = logging.getLogger("curvestereo")
    if args.params is not None:
        params = load_stereo_parameters(args.params, logger=log)
    else:
        params = rig.default_parameters(logger=log)
    overrides = {}
    if args.scale is not None:
        overrides["scale"] = args.scale
        overrides["disp_width"] = -1
        overrides["disp_height"] = -1
    if getattr(args, "disp_max", None) is not None:
        overrides["disp_max"] = args.disp_max
    if getattr(args, "cost_mode", None) is not None:
        overrides["cost_mode"] = args.cost_mode
    if args.verbose:
        overrides["verbosity"] = args.verbose
    params = validate_stereo_parameters(replace(params, **overrides))
    return rig.build_stereo(params)


def run_match(args: argparse.Namespace) -> None:
    stereo = _build_stereo(args)
    img1 = load_gray_u8(args.left)
    img2 = load_gray_u8(args.right)
    disparity = stereo.compute_disparity(img1, img2)
    if args.out_disparity is not None:
        # stretch to the full 8-bit range for viewing
        vis = disparity.astype(np.float64) * (255.0 / max(stereo.params.disp_max - 1, 1))
        save_gray_u8(args.out_disparity, vis)
        print(f"Wrote {args.out_disparity}")
    if args.out_distance is not None:
        dist = stereo.compute_distance()
        Path(args.out_distance).parent.mkdir(parents=True, exist_ok=True)
        np.save(args.out_distance, dist)
        print(f"Wrote {args.out_distance}")


def run_trace_epipolar(args: argparse.Namespace) -> None:
    stereo = _build_stereo(args)
    img = load_gray_u8(args.image).copy()
    stereo.trace_epipolar_curve(args.u, args.v, img)
    save_gray_u8(args.out, img)
    print(f"Wrote {args.out}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="curvestereo")
    parser.add_argument("--log", type=str, default="info", help="Logging level (debug, info, warning).")
    sub = parser.add_subparsers(dest="cmd", required=True)

    render = sub.add_parser("render-plane", help="Render a synthetic stereo pair of a textured fronto-parallel plane.")
    render.add_argument("--out", type=Path, required=True)
    render.add_argument("--width", type=int, default=160)
    render.add_argument("--height", type=int, default=120)
    render.add_argument("--eucm", type=str, default=",".join(str(v) for v in DEFAULT_EUCM), help="alpha,beta,fu,fv,u0,v0")
    render.add_argument("--baseline", type=float, default=0.5, help="Second camera offset along x.")
    render.add_argument("--distance", type=float, default=5.0, help="Plane distance along the optical axis.")
    render.add_argument("--plane-size", type=float, default=40.0)
    render.add_argument("--texture-sigma", type=float, default=2.0, help="Texture smoothing (texels).")
    render.add_argument("--scale", type=int, default=3)
    render.add_argument("--disp-max", type=int, default=32)
    render.add_argument("--seed", type=int, default=0)

    def add_stereo_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--rig", type=Path, required=True, help="Rig JSON (curvestereo.rig.v0).")
        p.add_argument("--params", type=Path, default=None, help="Stereo parameters JSON (curvestereo.stereo.v0).")
        p.add_argument("--scale", type=int, default=None)
        p.add_argument("-v", "--verbose", action="count", default=0)

    match = sub.add_parser("match", help="Compute the disparity and/or distance grid of an image pair.")
    add_stereo_args(match)
    match.add_argument("left", type=Path)
    match.add_argument("right", type=Path)
    match.add_argument("--disp-max", type=int, default=None)
    match.add_argument("--cost-mode", type=str, default=None, choices=["curve", "box"])
    match.add_argument("--out-disparity", type=Path, default=None)
    match.add_argument("--out-distance", type=Path, default=None, help="Distance grid as .npy (float32).")

    trace = sub.add_parser("trace-epipolar", help="Draw the epipolar curve of a working-grid cell on the second image.")
    add_stereo_args(trace)
    trace.add_argument("image", type=Path)
    trace.add_argument("--u", type=int, required=True)
    trace.add_argument("--v", type=int, required=True)
    trace.add_argument("--out", type=Path, required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log).upper(), logging.INFO), format="%(levelname)s: %(message)s")

    if args.cmd == "render-plane":
        rig_path = run_render_plane(args)
        print(f"Wrote {rig_path}")
        return 0

    if args.cmd == "match":
        if args.out_disparity is None and args.out_distance is None:
            parser.error("match needs --out-disparity and/or --out-distance")
        run_match(args)
        return 0

    if args.cmd == "trace-epipolar":
        run_trace_epipolar(args)
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")

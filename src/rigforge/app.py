"""RigForge application entry point.

Loads a rig config, drags one IK handle and writes the deformed mesh::

    rigforge assets/rigs/bar/rig.json --handle 0 --offset 0 1 0 --frames 20 -o posed.obj
"""

import argparse
import logging
import sys
from pathlib import Path

from rigforge.constants import DEFAULT_FRAMES
from rigforge.coordination.session import PoseSession
from rigforge.core.config_loader import load_rig_config
from rigforge.core.errors import ConfigError, SkeletonLoadError, SkinningLoadError
from rigforge.export.obj_exporter import export_obj

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rigforge",
        description="Pose a skinned mesh with IK handles and export the result",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("config", type=Path, help="Rig config JSON file")
    parser.add_argument(
        "--frames", type=int, default=DEFAULT_FRAMES,
        help=f"Number of IK frames to run (default: {DEFAULT_FRAMES})",
    )
    parser.add_argument(
        "--handle", type=int, default=0,
        help="Index of the IK handle to move (default: 0)",
    )

    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--target", type=float, nargs=3, metavar=("X", "Y", "Z"),
        help="Absolute world-space target for the handle",
    )
    target.add_argument(
        "--offset", type=float, nargs=3, metavar=("DX", "DY", "DZ"),
        help="Move the handle target relative to its rest position",
    )

    parser.add_argument(
        "-o", "--output", type=Path, default=None, metavar="FILE",
        help="Write the deformed mesh to this OBJ file",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(name)s: %(message)s")

    if args.frames < 0:
        parser.error("--frames must be non-negative")

    try:
        config = load_rig_config(args.config)
        session = PoseSession.from_config(config)
    except (ConfigError, SkeletonLoadError, SkinningLoadError, OSError) as e:
        logger.error("Failed to load rig: %s", e)
        return 1

    if not 0 <= args.handle < session.num_handles:
        parser.error(f"--handle must be in [0, {session.num_handles})")

    if args.target is not None:
        session.set_handle_target(args.handle, args.target)
    elif args.offset is not None:
        session.move_handle(args.handle, args.offset)

    residuals = session.run(args.frames)
    if residuals:
        logger.info("Ran %d frames, final handle residual %.6g", len(residuals), residuals[-1])

    if args.output is not None:
        export_obj(session.mesh.geometry, args.output, name=session.mesh.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())

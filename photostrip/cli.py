"""
Photostrip command line.

Usage:
    photostrip compose a.jpg b.jpg c.jpg d.jpg          # 2x2 grid -> photostrip.png
    photostrip compose *.jpg --layout 1x3 --color black --filter sepia
    photostrip video clip1/ clip2/ clip3/ clip4/ --duration 3
    photostrip containers                               # show negotiated codec

``compose`` runs every image through the same capture path the live booth
uses (4:3 crop, filter, mirror, optional mask), then lays them out.
``video`` treats each directory as one clip, frames sorted by filename.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .capture import StaticFrameSource, capture_frame
from .config import CONFIG
from .errors import PhotoBoothError
from .layout import compose
from .models import EffectConfig, Filter, FrameColor, LayoutKind, LayoutSpec, MaskKind, StillRaster
from .video import assemble, negotiate_container

IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png")


def _filter_expression(value):
    """Accept a preset name ("sepia") or a raw expression ("sepia(30%)")."""
    try:
        return Filter[value.upper()].value
    except KeyError:
        return value


def _load_badge(path):
    if path is None:
        return None
    return StillRaster.from_bytes(Path(path).read_bytes())


def _layout_spec(args):
    return LayoutSpec(kind=LayoutKind.parse(args.layout), frame_color=args.color,
                      title=args.title, qr_badge=_load_badge(args.qr), date_text=args.date)


def cmd_compose(args):
    print("=== Capturing stills ===")
    config = EffectConfig.for_photo(_filter_expression(args.filter), MaskKind(args.mask))
    stills = []
    for p in args.images:
        still = capture_frame(StaticFrameSource.from_path(p), config)
        print(f"  {Path(p).name}: {still.width}x{still.height}")
        stills.append(still)

    print("=== Composing ===")
    composite = compose(stills, _layout_spec(args))
    if composite is None:
        print("ERROR: nothing to compose")
        return 1
    out = Path(args.output or "photostrip.png")
    out.write_bytes(composite.data)
    print(f"  {composite.kind.value}: {composite.width}x{composite.height} -> {out}")
    return 0


def cmd_video(args):
    print("=== Loading clips ===")
    clips = []
    for d in args.clips:
        frames = sorted(f for f in Path(d).iterdir()
                        if f.is_file() and f.suffix.lower() in IMAGE_SUFFIXES)
        clips.append([StillRaster.from_bytes(f.read_bytes()) for f in frames])
        print(f"  {Path(d).name}: {len(frames)} frames")

    result = asyncio.run(assemble(clips, _layout_spec(args), args.duration * 1000))
    if result is None:
        print("ERROR: no frames to assemble")
        return 1
    out = Path(args.output or f"photostrip.{result.extension}")
    if out.suffix.lstrip(".") != result.extension:
        out = out.with_suffix(f".{result.extension}")
    out.write_bytes(result.data)
    print(f"  {result.container}/{result.codec} {result.width}x{result.height}, "
          f"{result.frame_count} frames, {result.duration_ms / 1000:.1f}s -> {out}")
    return 0


def cmd_containers(args):
    container, codec = negotiate_container()
    print(f"  Preferences: {', '.join(f'{c}/{k}' for c, k in CONFIG['container_preferences'])}")
    print(f"  Selected:    {container}/{codec}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="photostrip", description="Photo booth strip compositor")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_layout_args(p):
        p.add_argument("--layout", default=LayoutKind.GRID2X2.value,
                       help="1x1, 1x3, 1x4 or 2x2 (default 2x2)")
        p.add_argument("--color", default="white",
                       help=f"frame color: {', '.join(c.name.lower() for c in FrameColor)} or #RRGGBB")
        p.add_argument("--title", default=CONFIG["title"])
        p.add_argument("--date", default=None, help="footer date text (default: today)")
        p.add_argument("--qr", default=None, help="QR badge image for the footer")
        p.add_argument("-o", "--output", default=None)

    p = sub.add_parser("compose", help="compose still images into a strip")
    p.add_argument("images", nargs="+")
    p.add_argument("--filter", default="normal", help="preset name or filter expression")
    p.add_argument("--mask", default="none", choices=[m.value for m in MaskKind])
    add_layout_args(p)
    p.set_defaults(func=cmd_compose)

    p = sub.add_parser("video", help="assemble clip directories into a moving strip")
    p.add_argument("clips", nargs="+", help="one directory of frames per cell")
    p.add_argument("--duration", type=float, default=CONFIG["timer_duration_s"],
                   help="video length in seconds (default: timer duration)")
    add_layout_args(p)
    p.set_defaults(func=cmd_video)

    p = sub.add_parser("containers", help="show which container/codec will be used")
    p.set_defaults(func=cmd_containers)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(message)s")

    print("Photostrip - Photo Booth Compositor")
    print("=" * 40)
    try:
        return args.func(args)
    except (PhotoBoothError, ValueError, OSError) as exc:
        print(f"ERROR: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Tunable parameters for the photo-booth pipeline.

All tunable parameters live in ``CONFIG``. Every stage reads from this dict so
you can adjust any value without hunting through the code. Parameters are
grouped by the stage they affect.

If you're adapting this for your own booth, the most likely things to change
are:
  - The footer title and fonts
  - The capture aspect ratio (target_ratio)
  - Video frame width (lower = faster assembly, blurrier video)
  - The container preference list for your ffmpeg build
"""

from pathlib import Path

ROOT = Path(__file__).parent

CONFIG = {
    # --- Capture ---
    "target_ratio": 4 / 3,          # Every still is cover-cropped to 4:3
    "photo_format": "PNG",          # Full-resolution shutter stills
    "photo_quality": 0.92,          # Ignored for PNG
    "video_frame_width": 480,       # Sampled clip frames: balance quality vs. speed
    "video_frame_format": "JPEG",
    "video_frame_quality": 0.85,

    # --- Countdown & sampling ---
    "timer_duration_s": 3,          # Booth offers 3, 5 or 10 seconds
    "timer_choices": (3, 5, 10),
    "sampling_interval_ms": 100,    # 10 fps clip sampling
    "freeze_frames": 5,             # Shutter still repeated at clip end (~0.5s)
    "next_shot_delay_ms": 1500,     # Pause between shots before the next countdown

    # --- Overlay masks ---
    # 0.35 is a "typical" normalized face width; a face that wide draws the
    # decoration at 1.0x. 640px is the reference canvas width for item sizes.
    "reference_face_width": 0.35,
    "reference_canvas_width": 640,
    "halo_lift": 0.6,               # Anchor sits this many face-heights above center
    "default_anchor": (0.5, 0.3),   # No face: centered, 30% down
    "arc_radius": (0.20, 0.10),     # Elliptical arc, fraction of width / height
    "live_overlay_box": 240,        # Live decoration container size (px)
    "live_opacity_fallback": 0.8,
    "live_opacity_tracked": 1.0,

    # --- Composite layout ---
    # Padding, gap and footer shrink by small_source_scale when the source
    # is narrower than small_source_width, so low-res video composites keep
    # the same proportions as the full-res photo strip.
    "padding": 70,
    "gap": 70,
    "footer_height": 160,
    "small_source_width": 500,
    "small_source_scale": 0.5,
    "title": "let's take a pic",
    "title_font_size": 40,
    "date_font_size": 24,
    "footer_text_offset": 10,       # Title sits this far above the footer's middle
    "date_line_offset": 40,         # Date sits this far below the title
    "date_alpha": 0.7,
    "text_color_dark": (26, 26, 26),
    "text_color_light": (255, 255, 255),
    "qr_size": 100,
    "font_paths": [
        ROOT / "fonts" / "DMSans-Bold.ttf",
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
        Path("/System/Library/Fonts/Supplemental/Arial Bold.ttf"),
        Path("C:/Windows/Fonts/arialbd.ttf"),
    ],

    # --- Video assembly ---
    # Ordered preference list of (container, codec). The first one the local
    # ffmpeg build can mux and encode wins; if none can, the last entry is
    # used unconditionally.
    "video_fps": 30,
    "video_bitrate": "3M",
    "container_preferences": [
        ("mp4", "libx264"),
        ("mp4", "h264"),
        ("webm", "libvpx-vp9"),
        ("webm", "libvpx"),
    ],
    "encoder_warmup_ms": 100,       # Let the encoder settle before pacing starts
    "encoder_flush_ms": 300,        # Hold after the last frame before stopping
    "ffmpeg_binary": "ffmpeg",

    # --- Face tracking ---
    "detection_interval_ms": 33,    # Roughly one detection per display frame
}

#!/usr/bin/env python3
"""Demo script for pixel selection and stereo depth initialization.

Runs every frame of a EuRoC sequence through the coarse tracker:
- Rectify the raw stereo pair with the settings file
- Select pixels at a density from the schedule
- Trace every selected pixel along the right image row
- Report how many points got a valid inverse depth

Usage:
    uv run python examples/stereo_init_demo.py \\
        --left data/euroc/MH_01_easy/mav0/cam0/data \\
        --right data/euroc/MH_01_easy/mav0/cam1/data \\
        --timestamps data/euroc/MH01.txt \\
        --settings data/euroc/EuRoC.yaml

Requirements:
    - EuRoC dataset and an OpenCV settings file with Camera.* and LEFT/RIGHT.*
"""

import argparse
import logging

import numpy as np

from directvo import (
    CoarseTracker,
    PointStatus,
    StereoFrame,
    StereoSequence,
    TrackerConfig,
    load_stereo_settings,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stereo depth initialization demo")
    parser.add_argument("--left", required=True, help="Folder with left images")
    parser.add_argument("--right", required=True, help="Folder with right images")
    parser.add_argument("--timestamps", required=True, help="Timestamps file")
    parser.add_argument("--settings", required=True, help="OpenCV YAML settings file")
    parser.add_argument("--config", default=None, help="Optional tracker config YAML")
    parser.add_argument(
        "--density-index",
        type=int,
        default=0,
        help="Index into the config density schedule",
    )
    parser.add_argument("--max-frames", type=int, default=None, help="Stop after N frames")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> None:
    """Run the stereo initialization demo."""
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(message)s")

    # Configuration
    config = TrackerConfig.from_yaml(args.config) if args.config else TrackerConfig()
    density = config.density_schedule[args.density_index]

    # Initialize components
    print("Initializing coarse tracker...")
    settings = load_stereo_settings(args.settings)
    sequence = StereoSequence(args.left, args.right, args.timestamps)
    tracker = CoarseTracker(config)

    camera = settings.camera
    print(f"Camera: fx={camera.fx:.2f} bf={camera.bf:.2f} (baseline {camera.baseline:.4f})")
    print(f"Processing {len(sequence)} frames at density {density}...")
    print()

    for i, (left, right, timestamp_ns) in enumerate(sequence):
        if args.max_frames is not None and i >= args.max_frames:
            break

        left_rect, right_rect = settings.rectify(left, right)
        frame = StereoFrame.from_images(
            left_rect,
            right_rect,
            num_levels=config.pyramid_levels,
            timestamp_ns=timestamp_ns,
            frame_id=i,
        )
        result = tracker.process_frame(frame, camera, density)

        # Print progress every 50 frames
        if i % 50 == 0:
            depths = [p.depth for p in result if p.depth is not None]
            median_depth = float(np.median(depths)) if depths else float("nan")
            print(
                f"Frame {i:4d}: "
                f"{result.num_selected:5d} selected, "
                f"{len(result):5d} good, "
                f"{result.status_counts.get(PointStatus.OUTLIER, 0):5d} outliers, "
                f"median depth {median_depth:.2f}, "
                f"{result.timing.total_ms:.1f} ms"
            )

    print()
    print("Done!")


if __name__ == "__main__":
    main()

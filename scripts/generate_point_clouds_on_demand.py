"""
On-Demand Point Cloud Generation Script

Runs the depth-to-point-cloud pipeline on a synthetic depth frame (a sphere
in front of a wall) and prints a summary of the published result.

Usage:
    # One pass with default settings:
    python scripts/generate_point_clouds_on_demand.py

    # Denser sampling, splat mesh, Open3D viewer:
    python scripts/generate_point_clouds_on_demand.py --stride 1 --mesh --view

    # Periodic capture for 5 seconds on the serial path:
    python scripts/generate_point_clouds_on_demand.py --serial --duration 5
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from domain import PipelineConfig
from processing import (
    LatestResultCache,
    PipelineOrchestrator,
    PointCloudProcessor,
    StaticDepthSource,
    create_synthetic_frame,
)

logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Depth frame to point cloud pipeline demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--width',
        type=int,
        default=160,
        help='Synthetic frame width in pixels (default: 160)'
    )

    parser.add_argument(
        '--height',
        type=int,
        default=120,
        help='Synthetic frame height in pixels (default: 120)'
    )

    parser.add_argument(
        '--stride',
        type=int,
        default=2,
        help='Sample every Nth pixel (default: 2)'
    )

    parser.add_argument(
        '--dropout',
        type=float,
        default=0.05,
        help='Fraction of invalid pixels in the synthetic frame (default: 0.05)'
    )

    parser.add_argument(
        '--mesh',
        action='store_true',
        help='Build a splat mesh with every publish'
    )

    parser.add_argument(
        '--serial',
        action='store_true',
        help='Force the serial execution path'
    )

    parser.add_argument(
        '--duration',
        type=float,
        default=0.0,
        help='Run periodic capture for this many seconds (default: single pass)'
    )

    parser.add_argument(
        '--view',
        action='store_true',
        help='Show the last result in an Open3D window (requires open3d)'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args()


def main():
    """Main CLI entry point"""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose or config.DEBUG_MODE else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        pipeline_config = PipelineConfig(
            subsample_stride=args.stride,
            use_parallel=not args.serial,
            enable_reconstruction=args.mesh,
            normal_radius=0.1,
            capture_interval=0.5,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    frame = create_synthetic_frame(
        width=args.width,
        height=args.height,
        invalid_fraction=args.dropout,
    )
    source = StaticDepthSource([frame])
    cache = LatestResultCache()

    orchestrator = PipelineOrchestrator(source, pipeline_config)
    orchestrator.subscribe(cache)

    print(f"\n{'='*80}")
    print("Depth Point Cloud Pipeline")
    print(f"{'='*80}")
    print(f"Frame: {args.width}x{args.height}, stride {args.stride}, dropout {args.dropout:.0%}")
    print(f"Path: {'serial' if args.serial else 'parallel'}")
    print()

    try:
        if args.duration > 0:
            orchestrator.start()
            time.sleep(args.duration)
            orchestrator.stop()
        else:
            orchestrator.trigger()
    finally:
        orchestrator.close()

    result = cache.latest
    if result is None:
        print("No point cloud was published.")
        return 1

    stats = PointCloudProcessor().calculate_statistics(result.cloud)
    print(f"Publishes received: {cache.received}")
    print(f"Last publish: #{result.sequence} (frame {result.frame_index}, {result.execution_path} path)")
    print(json.dumps(stats.to_dict(), indent=2))
    if result.mesh is not None:
        print(f"Mesh: {json.dumps(result.mesh.statistics().to_dict())}")

    if args.view:
        from processing.consumers import Open3DViewerConsumer
        Open3DViewerConsumer()(result)

    return 0


if __name__ == "__main__":
    sys.exit(main())

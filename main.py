"""
Main Entry Point for PoseNet Keypoint Decoding
Decodes saved model outputs into single or multiple poses
"""

import argparse
import json
import sys
from pathlib import Path

import cv2

from perception.pose_estimator import (
    PoseEstimator,
    decode_output_folder,
    load_config,
    load_model_outputs,
    poses_to_dicts,
    scale_poses,
    visualize_poses
)


def main(argv=None):
    """Main entry point with command-line interface."""
    parser = argparse.ArgumentParser(
        description='PoseNet keypoint decoding from saved model outputs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Decode a single frame (single pose)
  python main.py --mode decode --input data/outputs/frame_000.npz

  # Multi-person decoding with visualization
  python main.py --mode decode --input data/outputs/frame_000.npz \\
      --estimation multi_pose --image data/frames/frame_000.jpg --vis data/vis.jpg

  # Decode a whole folder of saved outputs
  python main.py --mode batch --input_folder data/outputs --output_folder data/poses
        """
    )

    # Mode selection
    parser.add_argument(
        '--mode',
        type=str,
        required=True,
        choices=['decode', 'batch'],
        help='Operation mode'
    )

    # Decoder arguments
    parser.add_argument('--config', type=str,
                       help='JSON configuration file')
    parser.add_argument('--estimation', type=str,
                       choices=['single_pose', 'multi_pose'],
                       help='Estimation type (default: from config)')
    parser.add_argument('--model_type', type=str,
                       choices=['mobilenet', 'resnet50'],
                       help='Model that produced the outputs (default: from config)')
    parser.add_argument('--max_poses', type=int,
                       help='Maximum number of poses (multi_pose)')
    parser.add_argument('--score_threshold', type=float,
                       help='Root candidate score threshold (multi_pose)')
    parser.add_argument('--nms_radius', type=float,
                       help='Non-maximum suppression radius in pixels (multi_pose)')
    parser.add_argument('--no_sigmoid', action='store_true',
                       help='Heatmaps are already probabilities')

    # Single file arguments
    parser.add_argument('--input', type=str,
                       help='Saved model outputs (.npz) for decode mode')
    parser.add_argument('--output', type=str,
                       help='Write decoded poses to this JSON file')
    parser.add_argument('--image', type=str,
                       help='Source frame to draw the poses on')
    parser.add_argument('--vis', type=str, default='data/pose_visualization.jpg',
                       help='Visualization output path')

    # Batch arguments
    parser.add_argument('--input_folder', type=str, default='data/outputs',
                       help='Folder containing saved model outputs')
    parser.add_argument('--output_folder', type=str, default='data/poses',
                       help='Output folder for decoded poses')

    args = parser.parse_args(argv)

    overrides = {}
    if args.estimation:
        overrides['estimation_type'] = args.estimation
    if args.model_type:
        overrides['model_type'] = args.model_type
    if args.max_poses is not None:
        overrides['max_poses'] = args.max_poses
    if args.score_threshold is not None:
        overrides['score_threshold'] = args.score_threshold
    if args.nms_radius is not None:
        overrides['nms_radius'] = args.nms_radius
    if args.no_sigmoid:
        overrides['apply_sigmoid'] = False

    config = load_config(args.config, overrides)

    # Execute based on mode
    if args.mode == 'decode':
        print("\n" + "="*60)
        print("MODE: DECODE")
        print("="*60 + "\n")

        if not args.input:
            print("Error: --input required for decode mode")
            return 1

        if not Path(args.input).exists():
            print(f"Error: Outputs not found: {args.input}")
            return 1

        estimator = PoseEstimator(config, verbose=True)
        outputs, geometry = load_model_outputs(args.input)
        poses = estimator.decode_outputs(outputs,
                                         input_dims=geometry.get('input_dims'),
                                         stride=geometry.get('stride'))

        for person_idx, pose_dict in enumerate(poses_to_dicts(poses, config['min_confidence'])):
            visible = sum(1 for kp in pose_dict['keypoints'] if kp['visible'])
            print(f"  Person {person_idx+1}: score {pose_dict['score']:.3f}, "
                  f"{visible}/17 keypoints visible")

        if args.output:
            with open(args.output, 'w') as f:
                json.dump(poses_to_dicts(poses, config['min_confidence']), f, indent=2)
            print(f"\n✓ Poses saved to: {args.output}")

        if args.image:
            image = cv2.imread(args.image)
            if image is None:
                print(f"Error: Could not load image: {args.image}")
                return 1

            if 'input_dims' in geometry:
                source_size = (image.shape[1], image.shape[0])
                poses = scale_poses(poses, source_size, geometry['input_dims'],
                                    config['mirror_image'])

            Path(args.vis).parent.mkdir(parents=True, exist_ok=True)
            visualize_poses(image, poses, config['min_confidence'], args.vis)
            print(f"✓ Visualization saved to: {args.vis}")

    elif args.mode == 'batch':
        print("\n" + "="*60)
        print("MODE: BATCH DECODE")
        print("="*60 + "\n")

        if not Path(args.input_folder).exists():
            print(f"Error: Input folder not found: {args.input_folder}")
            return 1

        print(f"Decoding outputs from: {args.input_folder}")
        print(f"Output folder: {args.output_folder}\n")

        decode_output_folder(
            input_folder=args.input_folder,
            output_folder=args.output_folder,
            config=config
        )

    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user. Exiting...")
        sys.exit(0)
    except Exception as e:
        print(f"\n\nError: {e}")
        sys.exit(1)

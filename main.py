#!/usr/bin/env python3
"""
Uniform Fit Recommender - Command Line
======================================

Runs one front/side scan session from keypoint files or photos and prints
the recommended uniform sizes.
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Optional

from uniform_fit.catalog import HttpCatalogStore, InMemoryCatalogStore, create_catalog_store
from uniform_fit.config import EngineConfig, ScanPhase
from uniform_fit.keypoints import denormalize_pose, parse_pose
from uniform_fit.profile import UserProfile
from uniform_fit.session import CaptureEvent, ScanSession
from uniform_fit.utils import Timer, get_system_info, load_image, save_results, setup_logging


def load_pose_file(path: str, frame_size=(640, 480)):
    """Read detector output saved as JSON; ``"normalized": true`` files are scaled to frame_size"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict) and 'keypoints' in data:
        pose = parse_pose(data['keypoints'])
        if data.get('normalized'):
            pose = denormalize_pose(pose, frame_size)
        return pose
    return parse_pose(data)


def create_detector():
    """MediaPipe detector, imported on first use"""
    from uniform_fit.pose_detector import MediaPipePoseDetector
    return MediaPipePoseDetector()


class UniformFitApp:
    """Command line front end for one scan session"""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.catalog = None
        self.detector_factory = None

    def initialize(self, use_detector: bool = False):
        """Open the catalog and, for photo input, prepare the pose detector"""

        system_info = get_system_info()
        self.logger.info(f"System: {system_info['platform']}")
        self.logger.info(f"Python: {system_info['python_version']}")

        self.catalog = create_catalog_store(self.config.catalog)
        if isinstance(self.catalog, HttpCatalogStore):
            self.logger.info(f"Catalog: {self.catalog.base_url}")
        elif isinstance(self.catalog, InMemoryCatalogStore):
            self.logger.info(f"Catalog: {len(self.catalog.entries)} entries")

        if use_detector:
            self.detector_factory = create_detector

    def run_session(self, profile: UserProfile, front, side, from_images: bool = False):
        """Drive a session through both phases; returns (session, last outcome)"""

        session = ScanSession(profile, self.catalog, self.config, detector_factory=self.detector_factory)
        session.mark_ready()

        for phase, source in ((ScanPhase.FRONT, front), (ScanPhase.SIDE, side)):
            self.logger.info(f"Processing {phase.value} capture")
            if from_images:
                outcome = session.capture(source, load=load_image)
            else:
                outcome = session.submit_pose(load_pose_file(source, self.config.estimation.frame_size))

            print(f"[{phase.value}] {outcome.message}")

            # A CLI run cannot retry, so a front-phase fallback is taken as final
            if outcome.event in (CaptureEvent.RETRY, CaptureEvent.FALLBACK) or outcome.finished:
                return session, outcome

        return session, outcome

    def display_results(self, session: ScanSession, recommendation):
        front = session.front_measurements

        print("\n" + "=" * 60)
        print("RECOMMENDED UNIFORM SIZES")
        print("=" * 60)
        profile = session.profile
        print(f"   {profile.gender.value} | {profile.grade_level} | "
              f"Height: {profile.height_input or 'N/A'} {profile.height_unit}")
        print(f"\n   Top:    {recommendation.top_size:<10} ({recommendation.confidence_top:.0f}% confidence)")
        print(f"   Bottom: {recommendation.bottom_size:<10} ({recommendation.confidence_bottom:.0f}% confidence)")
        if recommendation.is_fallback:
            print("   (estimated from grade level)")

        if front:
            def show(value):
                return f"{value} cm" if value is not None else "N/A"

            print("\n   Measurements:")
            print(f"     Chest:        {show(front.chest_cm)}")
            print(f"     Hip:          {show(front.hip_cm)}")
            print(f"     Shoulder:     {show(front.shoulder_cm)}")
            print(f"     Torso length: {show(front.torso_length_cm)}")
        print("=" * 60)

    def save(self, session: ScanSession, recommendation, output_dir: str, fmt: str) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = Path(output_dir) / f"recommendation_{timestamp}.{fmt}"
        path = save_results(recommendation, session.front_measurements, str(filename),
                            profile=session.profile.to_dict())
        self.logger.info(f"Results saved to {path}")
        return path


def main(argv: Optional[list] = None) -> int:
    """Main entry point"""

    parser = argparse.ArgumentParser(description='Uniform size recommendation from front and side scans')
    source = parser.add_argument_group('captures')
    source.add_argument('--front', type=str, help='Front-view keypoints JSON file')
    source.add_argument('--side', type=str, help='Side-view keypoints JSON file')
    source.add_argument('--front-image', type=str, help='Front-view photo (runs MediaPipe)')
    source.add_argument('--side-image', type=str, help='Side-view photo (runs MediaPipe)')
    parser.add_argument('--height', type=str, required=True, help='Declared height, e.g. 150 or 4\'11"')
    parser.add_argument('--unit', choices=['cm', 'in', 'ft'], default='cm', help='Height unit')
    parser.add_argument('--gender', type=str, required=True, help='male/female')
    parser.add_argument('--grade', type=str, required=True, help='Kindergarten, Elementary, Junior High')
    parser.add_argument('--catalog', type=str, help='Uniform catalog file (YAML/JSON)')
    parser.add_argument('--catalog-url', type=str, help='Uniform catalog service base URL')
    parser.add_argument('--config', type=str, help='Configuration file (YAML/JSON)')
    parser.add_argument('--output', type=str, help='Output directory')
    parser.add_argument('--format', choices=['json', 'yaml', 'csv'], default='json', help='Output format')
    parser.add_argument('--log-level', default='INFO', help='Logging level')

    args = parser.parse_args(argv)

    from_images = bool(args.front_image or args.side_image)
    front = args.front_image if from_images else args.front
    side = args.side_image if from_images else args.side
    if not front or not side:
        parser.error("Provide --front and --side keypoint files, or --front-image and --side-image")

    config = EngineConfig(args.config)
    if args.catalog:
        config.catalog.source = args.catalog
    if args.catalog_url:
        config.catalog.base_url = args.catalog_url

    setup_logging(args.log_level, config.service.log_file)
    logger = logging.getLogger(__name__)

    try:
        profile = UserProfile.from_inputs(args.height, args.unit, args.gender, args.grade)
    except ValueError as e:
        parser.error(str(e))

    try:
        app = UniformFitApp(config)
        app.initialize(use_detector=from_images)

        with Timer("Scan session"):
            session, outcome = app.run_session(profile, front, side, from_images=from_images)

        if outcome.event is CaptureEvent.RETRY:
            print(outcome.message)
            return 2

        recommendation = outcome.recommendation or session.result
        app.display_results(session, recommendation)

        if args.output:
            path = app.save(session, recommendation, args.output, args.format)
            print(f"\nSaved: {path}")

        return 0

    except Exception as e:
        logger.error(f"Session failed: {e}")
        print(f"Processing failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

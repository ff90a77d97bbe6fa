#!/usr/bin/env python3
"""
Hand-Sign Recognition Engine - command-line driver.

Replays recorded hand-landmark frames through the engine and manages the
locally stored model. Camera capture and landmark detection live in the
meeting client; this driver consumes their recorded output.

Frame file format (JSON lines), one frame per line:
    {"t": 0.1, "hands": [{"handedness": "Left", "landmarks": [[x, y, z], ...]}]}

Usage:
    python main.py replay frames.jsonl              # Predict, print detections
    python main.py replay frames.jsonl --train Hello --save
    python main.py counts                           # Stored examples per label
    python main.py export model.json
    python main.py import model.json
    python main.py clear
"""

import sys
import json
import signal
import argparse
import logging

from handsign.core.engine import SignRecognitionEngine
from handsign.core.errors import HandSignError
from handsign.core.events import Events
from handsign.core.types import EngineMode
from handsign.modules.utils.config import Config
from handsign.modules.utils.logger import setup_logging, SignEventLogger

logger = logging.getLogger(__name__)


class ReplayClock:
    """Clock driven by recorded frame timestamps."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class ReplaySession:
    """Feeds a recorded frame file through one engine instance."""

    def __init__(self, config: Config):
        self._clock = ReplayClock()
        self._engine = SignRecognitionEngine.from_config(config, clock=self._clock)
        self._events = SignEventLogger()
        self._running = False

        bus = self._engine.event_bus
        bus.subscribe(Events.SIGN_DETECTED, self._events.on_sign_detected)
        bus.subscribe(Events.EXAMPLE_ADDED, self._events.on_example_added)
        bus.subscribe(Events.COUNTDOWN_TICK, self._on_countdown_tick)
        self._engine.on_detection(self._print_detection)

    @property
    def engine(self) -> SignRecognitionEngine:
        return self._engine

    def _on_countdown_tick(self, label, remaining, **_):
        logger.info("Training '%s' in %d...", label, remaining)

    def _print_detection(self, label, confidence, **_):
        print("%.2f\t%s\t%.2f" % (self._clock.now, label, confidence))

    def run(self, frames_path: str, train_label: str = None):
        """Replay every frame; with ``train_label`` run one training session."""
        self._running = True
        armed = False

        with open(frames_path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                if not self._running:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    frame = json.loads(line)
                    self._clock.now = float(frame.get("t", self._clock.now))
                    hands = frame.get("hands", [])
                except (ValueError, TypeError, AttributeError) as e:
                    logger.warning("Line %d: unreadable frame (%s), skipped", line_no, e)
                    continue

                if train_label and not armed:
                    armed = self._engine.start_training_session(train_label)

                self._engine.process_frame(hands, frame_id=line_no)

                if train_label and armed and self._engine.controller.is_idle:
                    break

        if train_label:
            if not self._engine.controller.is_idle:
                logger.warning("Recording ended before the training session finished")
                self._engine.cancel_training_session()
            self._engine.set_mode(EngineMode.PREDICTING)
            logger.info("Captured %d examples for '%s'",
                        self._engine.captured_counts.get(train_label, 0), train_label)

        logger.info("Replay finished: %d detections", self._events.total_detections)

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, stopping replay...", signum)
        self._running = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Hand-Sign Recognition Engine"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to config.yaml"
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Override logging level (DEBUG, INFO, ...)"
    )
    parser.add_argument(
        "--log-file", type=str, default=None,
        help="Also log to this rotating file"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay recorded landmark frames")
    replay.add_argument("frames", help="JSON-lines frame file")
    replay.add_argument("--train", metavar="LABEL", default=None,
                        help="Run a training session for LABEL instead of predicting")
    replay.add_argument("--save", action="store_true",
                        help="Save the model to local storage afterwards")

    sub.add_parser("counts", help="Show stored examples per label")

    export = sub.add_parser("export", help="Export the stored model to a file")
    export.add_argument("path")

    import_ = sub.add_parser("import", help="Import a model file into local storage")
    import_.add_argument("path")

    sub.add_parser("clear", help="Delete the stored model")

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    config = Config.load(args.config)

    log_cfg = config.log_settings
    setup_logging(
        level=args.log_level or log_cfg.get("level", "INFO"),
        log_file=args.log_file or log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    try:
        if args.command == "replay":
            session = ReplaySession(config)
            signal.signal(signal.SIGINT, session.handle_signal)
            signal.signal(signal.SIGTERM, session.handle_signal)
            with session.engine as engine:
                session.run(args.frames, train_label=args.train)
                if args.save:
                    engine.save_model()
            return 0

        # import and clear must work even when the stored blob is unreadable
        autoload = args.command not in ("import", "clear")
        with SignRecognitionEngine.from_config(config, autoload=autoload) as engine:
            if args.command == "counts":
                for label, count in engine.get_example_counts().items():
                    print("%-12s %d" % (label, count))
            elif args.command == "export":
                engine.export_model(args.path)
            elif args.command == "import":
                engine.import_model(args.path)
                engine.save_model()
            elif args.command == "clear":
                engine.clear_model()
        return 0

    except (HandSignError, OSError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

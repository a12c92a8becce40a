#!/usr/bin/env python3
"""Ancient City Builder — a terminal city-building game narrated by LLM agents."""

import argparse
import logging
import sys
from pathlib import Path


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Ancient City Builder — Found it. Feed it. Defend it.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Controls:
  1-9               Choose an option
  Enter             Continue to the next turn
  Left / Right      Scrub through the city's history
  E                 Export the picture on screen
  H                 Back to the title screen
  Q                 Quit

Examples:
  python main.py                          Start normally (requires OPENROUTER_API_KEY)
  python main.py --demo                   Play offline with scripted events
  python main.py --game 3f2a9c1b7d40      Resume (or start) a game by id
  python main.py --dither city.jpg bg.png Render the dithered backdrop for an image
""",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run in demo mode with scripted events and painted images (no API key needed)",
    )
    parser.add_argument("--game", metavar="GAME_ID", help="Open this game directly, skipping the title screen")
    parser.add_argument(
        "--civ",
        choices=["rome", "india", "egypt"],
        default="rome",
        help="Civilization for a new game opened with --game (default: rome)",
    )
    parser.add_argument(
        "--dither",
        nargs=2,
        metavar=("SRC", "OUT"),
        help="Write the dithered background overlay of SRC to OUT (PNG) and exit",
    )
    parser.add_argument(
        "--log-file",
        default="city_builder.log",
        help="Where to write logs (default: city_builder.log)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        filename=args.log_file,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.dither:
        from imaging.background import dither_file

        source, target = (Path(p) for p in args.dither)
        try:
            dither_file(source, target)
        except OSError as exc:
            print(f"Could not dither {source}: {exc}", file=sys.stderr)
            sys.exit(1)
        print(target)
        return

    from game.state import Civilization
    from ui.app import CityBuilderApp

    app = CityBuilderApp(demo=args.demo, game_id=args.game, civilization=Civilization(args.civ))
    app.run()


if __name__ == "__main__":
    main()

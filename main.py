"""
Main entry point for Theater Kiosk
"""
import argparse
import sys

from config import Settings
from core.kiosk import TheaterKiosk
from core.logger import setup_logger
from ui.kiosk_ui import KioskConsoleUI


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="Theater concession kiosk")
    parser.add_argument("mode", nargs="?", choices=["console", "web"],
                        help="console kiosk or web server (asked when omitted)")
    parser.add_argument("--theater", help="theater id for the console kiosk")
    parser.add_argument("--port", type=int, default=5000, help="web server port")
    parser.add_argument("--debug", help="enable debug logging", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    # program entry point - pick the console kiosk or the web server
    args = parse_arguments(argv)
    settings = Settings.from_env()
    logger = setup_logger(settings)
    if args.debug:
        logger.setLevel("DEBUG")

    mode = args.mode
    if mode is None:
        print("=== Theater Kiosk ===")
        print("1. Console kiosk")
        print("2. Web server")
        print("3. Exit")
        choice = input("\nSelect (1-3): ").strip()
        mode = {"1": "console", "2": "web"}.get(choice)
        if mode is None:
            print("Bye.")
            sys.exit(0)

    if mode == "web":
        from app import create_app
        print(f"Starting server on http://localhost:{args.port}")
        create_app(settings).run(host="0.0.0.0", port=args.port, debug=args.debug)
        return

    theater_id = args.theater or input("Theater ID: ").strip()
    if not theater_id:
        # nothing to show without a theater
        print("A theater ID is required.")
        sys.exit(1)

    kiosk = TheaterKiosk(settings)
    try:
        KioskConsoleUI(kiosk, theater_id).run()
    finally:
        kiosk.close()


if __name__ == "__main__":
    main()

"""Protean Engine runner for the ordering domain.

Runs the workers that deliver events to the notification handlers when
``event_processing`` is ``async`` (the production overlay).

Usage:
    PROTEAN_ENV=production python src/server.py
"""

import argparse

from protean.server.engine import Engine


def main():
    parser = argparse.ArgumentParser(description="Orderflow Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    from ordering.domain import ordering
    from ordering.utils.logging import configure_logging

    configure_logging()
    ordering.init()
    Engine(ordering, test_mode=args.test_mode).run()


if __name__ == "__main__":
    main()

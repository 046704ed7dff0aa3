"""Main entry point for the carelog application."""

import logging
import sys

from carelog.ui.application import create_application


def main():
    """
    Run the carelog application.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app, _window = create_application()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()

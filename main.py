import argparse
import logging

from dentibook.config import load_settings
from dentibook.worker import run_forever


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="dentibook: dental clinic booking coordinator")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    _setup_logging(args.verbose)
    settings = load_settings()

    try:
        run_forever(settings)
        return 0

    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, shutting down")
        return 0

    except Exception as e:
        logging.getLogger(__name__).error("Worker crashed (%s: %s)", type(e).__name__, e)
        raise


if __name__ == "__main__":
    raise SystemExit(main())

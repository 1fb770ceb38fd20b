from __future__ import annotations

import argparse
import sys

from polyshop.server import SERVICES, run


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="polyshop", description="Run a Polyshop store service.")
    parser.add_argument("service", choices=SERVICES, help="Service to serve")
    args = parser.parse_args(argv)
    return run(args.service)


if __name__ == "__main__":
    sys.exit(main())

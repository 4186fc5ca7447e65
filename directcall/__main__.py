"""
CLI interface for the direct test runner.

Usage:
    python -m directcall tests.test_calc
    python -m directcall path/to/test_calc.py -k add --pdb
"""

import argparse
import logging
import pdb
import sys

from .runner import run_module


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run a module's tests through the direct invocation engine. "
                    "The first failure is not caught: it ends the run with its original traceback.",
        prog="python -m directcall",
    )
    parser.add_argument("module", help="Dotted module name or path to a .py file")
    parser.add_argument("-k", dest="pattern", help="Only run tests whose full name contains PATTERN")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    parser.add_argument(
        "--pdb", action="store_true", help="Open the post-mortem debugger at the failure site"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        result = run_module(args.module, pattern=args.pattern)
    except Exception as exc:
        if args.pdb:
            pdb.post_mortem(exc.__traceback__)
        raise

    print(f"{result.count} passed in {result.total_time:.3f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())

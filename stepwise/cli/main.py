"""Main CLI entry point for stepwise."""

import argparse
import sys
from typing import Optional

from .commands import list_actions, run_tests


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the stepwise CLI."""
    parser = argparse.ArgumentParser(
        prog='stepwise',
        description='YAML-driven test automation runner'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    run_parser = subparsers.add_parser('run', help='Run test case files')
    run_parser.add_argument(
        'tests',
        nargs='+',
        help='Paths to test case YAML files'
    )
    run_parser.add_argument(
        '--var',
        action='append',
        metavar='KEY=VALUE',
        help='Override a test variable (can be specified multiple times)'
    )
    run_parser.add_argument(
        '--output',
        type=str,
        metavar='FILE',
        help='Write a JSON report to FILE'
    )
    run_parser.add_argument(
        '--max-while-iterations',
        type=int,
        default=10000,
        help='Maximum iterations of a while loop'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate without execution'
    )
    run_parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    run_parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    run_parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warning', 'error'],
        default='info',
        help='Set log level'
    )

    subparsers.add_parser('actions', help='List available actions')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'run':
        return run_tests(parsed_args)
    elif parsed_args.command == 'actions':
        return list_actions(parsed_args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())

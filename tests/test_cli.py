"""Tests for the stepwise command line interface."""

import json
import shutil
import signal
import tempfile
from argparse import Namespace
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

from stepwise.cli.commands.run import ShutdownListener, parse_variables
from stepwise.cli.main import create_parser, main


PASSING = """
testcase: passing
variables:
  vars:
    expected: 5
steps:
  - name: check
    action: assert
    args: ["${expected}", "==", 5]
"""

FAILING = """
testcase: failing
steps:
  - name: check
    action: assert
    args: [1, "==", 2]
"""

INVALID = """
testcase: invalid
steps:
  - action: log
"""


class TestRunCommand(TestCase):
    """Exit codes and reports of `stepwise run`."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _write(self, name: str, content: str) -> str:
        path = self.test_dir / name
        path.write_text(content)
        return str(path)

    def test_passing_returns_zero(self):
        self.assertEqual(main(['run', self._write('pass.yaml', PASSING)]), 0)

    def test_failing_returns_one(self):
        self.assertEqual(main(['run', self._write('fail.yaml', FAILING)]), 1)

    def test_validation_error_returns_two(self):
        self.assertEqual(main(['run', self._write('bad.yaml', INVALID)]), 2)

    def test_missing_file_returns_one(self):
        self.assertEqual(main(['run', str(self.test_dir / 'missing.yaml')]), 1)

    def test_dry_run_does_not_execute(self):
        """Dry run only validates, so a failing test still exits 0."""
        self.assertEqual(main(['run', '--dry-run', self._write('fail.yaml', FAILING)]), 0)

    def test_variable_override(self):
        path = self._write('pass.yaml', PASSING)
        self.assertEqual(main(['run', path, '--var', 'expected=6']), 1)
        self.assertEqual(main(['run', path, '--var', 'expected=5']), 0)

    def test_malformed_variable_returns_two(self):
        path = self._write('pass.yaml', PASSING)
        self.assertEqual(main(['run', path, '--var', 'expected']), 2)

    def test_json_report(self):
        output = self.test_dir / 'reports' / 'result.json'

        code = main([
            'run',
            self._write('pass.yaml', PASSING),
            self._write('fail.yaml', FAILING),
            '--output', str(output),
        ])

        self.assertEqual(code, 1)
        report = json.loads(output.read_text())
        self.assertFalse(report['passed'])
        self.assertEqual([test['name'] for test in report['tests']], ['passing', 'failing'])
        self.assertEqual(report['tests'][1]['error']['code'], 'ASSERTION_FAILED')

    def test_shutdown_request_skips_remaining_tests(self):
        """A signal during a run lets the current test finish and skips the rest."""
        paths = [self._write('pass.yaml', PASSING), self._write('fail.yaml', FAILING)]

        with patch('stepwise.cli.commands.run.ShutdownListener') as listener_class:
            listener = listener_class.return_value
            listener.requested = True
            code = main(['run'] + paths)

        self.assertEqual(code, 130)
        listener.install.assert_called_once()
        listener.uninstall.assert_called_once()


class TestCliHelpers(TestCase):
    """Argument parsing and signal handling."""

    def test_parse_variables(self):
        args = Namespace(var=['a=1', 'url=http://x?y=z'])
        self.assertEqual(parse_variables(args), {'a': '1', 'url': 'http://x?y=z'})
        self.assertEqual(parse_variables(Namespace(var=None)), {})

    def test_parse_variables_rejects_missing_equals(self):
        with self.assertRaises(ValueError):
            parse_variables(Namespace(var=['nope']))

    def test_parser_defaults(self):
        args = create_parser().parse_args(['run', 'a.yaml'])
        self.assertEqual(args.tests, ['a.yaml'])
        self.assertEqual(args.max_while_iterations, 10000)
        self.assertEqual(args.log_level, 'info')
        self.assertFalse(args.dry_run)

    def test_no_command_returns_one(self):
        with patch('sys.stdout'):
            self.assertEqual(main([]), 1)

    def test_actions_command(self):
        with patch('builtins.print') as mock_print:
            self.assertEqual(main(['actions']), 0)
        printed = [call.args[0] for call in mock_print.call_args_list]
        self.assertEqual(printed, ['assert', 'log', 'sleep', 'variable'])

    def test_second_signal_interrupts(self):
        listener = ShutdownListener()
        listener._handle(signal.SIGTERM, None)
        self.assertTrue(listener.requested)
        with self.assertRaises(KeyboardInterrupt):
            listener._handle(signal.SIGTERM, None)

    def test_install_restores_handlers(self):
        original = signal.getsignal(signal.SIGTERM)
        listener = ShutdownListener()
        listener.install()
        try:
            self.assertEqual(signal.getsignal(signal.SIGTERM), listener._handle)
        finally:
            listener.uninstall()
        self.assertEqual(signal.getsignal(signal.SIGTERM), original)

    def test_cli_is_a_regular_package(self):
        """setuptools only finds packages that carry an __init__ module."""
        import stepwise.cli

        self.assertIsNotNone(stepwise.cli.__file__)
        self.assertTrue(stepwise.cli.__file__.endswith('__init__.py'))

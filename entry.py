#!/usr/bin/env python3
"""
Functional test runner.

Usage:
    ./entry.py                    # Run all tests
    ./entry.py -t fn_devnet_bringup  # Run specific test
    ./entry.py -e devnet          # Start the devnet env and keep it running
    ./entry.py -c devnet.toml     # Use a settings file
"""

import argparse
import logging
import os
import sys

import flexitest

from envconfigs.devnet import DevnetEnvConfig
from factories.devnet import DevnetFactory
from opdevnet.config import DevnetSettings
from opdevnet.constants import ServiceType
from opdevnet.keepalive import KEEP_ALIVE_TEST_NAME, make_keepalive_test
from opdevnet.runtime import LOG_FORMAT, DevnetRuntime, TestNameFilter

TEST_DIR = os.path.join("tests", "functional")
DD_ROOT = "_dd"


def setup_logging() -> None:
    """Configure root logger."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=LOG_FORMAT,
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(TestNameFilter())


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="entry.py",
        description="Run devnet functional tests",
    )
    parser.add_argument(
        "-t",
        "--test",
        nargs="*",
        help="Run specific test(s)",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Settings file (TOML)",
    )
    parser.add_argument(
        "-e",
        "--env",
        help="Start the given env and keep it alive until interrupted",
    )
    return parser.parse_args(argv[1:])


def filter_tests(args: argparse.Namespace, modules: dict[str, str]) -> dict[str, str]:
    """Keep only the tests selected with -t, or every test if none were."""
    wanted = frozenset(os.path.basename(t).removesuffix(".py") for t in args.test or [])
    return {name: path for name, path in modules.items() if not wanted or name in wanted}


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging()
    settings = DevnetSettings.load(args.config)

    factories: dict[str, flexitest.Factory] = {
        ServiceType.Devnet: DevnetFactory(settings.ports.as_range(), settings),
    }

    global_envs: dict[str, flexitest.EnvConfig] = {
        "devnet": DevnetEnvConfig(),
        # Two independent devnets, for comparing deployments across runs.
        "devnet_pair": DevnetEnvConfig(count=2),
    }

    root_dir = os.path.dirname(os.path.abspath(__file__))
    test_dir = os.path.join(root_dir, TEST_DIR)
    datadir = flexitest.create_datadir_in_workspace(os.path.join(root_dir, DD_ROOT))
    runtime = DevnetRuntime(global_envs, datadir, factories)

    if args.env is not None:
        runtime.prepare_test(KEEP_ALIVE_TEST_NAME, make_keepalive_test(args.env))
        tests = [KEEP_ALIVE_TEST_NAME]
    else:
        modules = filter_tests(args, flexitest.runtime.scan_dir_for_modules(test_dir))
        tests = flexitest.runtime.load_candidate_modules(modules)
        runtime.prepare_registered_tests()

    results = runtime.run_tests(tests)

    # Save and display results
    runtime.save_json_file("results.json", results)
    flexitest.dump_results(results)

    # Exit with error if any test failed
    flexitest.fail_on_error(results)

    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))

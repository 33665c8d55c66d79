"""
Main orchestrator for Azure Assign.

This module coordinates the run: directory reads build one descriptor per
configured application, reconciliation decides what to change, and the
applier writes the changes. Nothing is written unless every read and every
descriptor succeeded.
"""

import sys
import logging
import argparse
from datetime import datetime
from typing import Dict, List, Optional

from azure_assign.config import load_config, ConfigurationError
from azure_assign.logging_setup import setup_logging
from azure_assign.graph_client import GraphClient, DirectoryClient, DirectoryRequestError
from azure_assign.descriptors import (
    build_descriptors,
    ServicePrincipalLookupError,
    UnknownRoleError,
)
from azure_assign.reconcile import reconcile_all
from azure_assign.applier import ChangeApplier, first_error
from azure_assign.models import Modification, OperationResult
from azure_assign.report import print_modifications

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_APPLY_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_DIRECTORY_ERROR = 3
EXIT_BUILD_ERROR = 4
EXIT_UNEXPECTED_ERROR = 5


class AssignOrchestrator:
    """
    Runs one reconciliation of configured role assignments.

    The directory client can be injected; by default a GraphClient is created
    from the loaded configuration.
    """

    def __init__(self, config_path: Optional[str] = None, dry_run: bool = False,
                 directory: Optional[DirectoryClient] = None, stream=None, verbose: bool = False):
        """
        Initialize orchestrator.

        Args:
            config_path: Path to configuration file
            dry_run: Compute and report changes without applying them
            directory: Directory client to use instead of a GraphClient
            stream: Where the report is printed (stdout by default)
            verbose: Log at DEBUG level to the console
        """
        self.config = None
        self.config_path = config_path
        self.dry_run = dry_run
        self.directory = directory
        self.stream = stream
        self.verbose = verbose
        self.modifications: List[Modification] = []
        self.results: Dict[str, List[OperationResult]] = {}

        self.stats = {
            'applications_processed': 0,
            'additions': 0,
            'deletions': 0,
            'operations_failed': 0,
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0
        }

    def run(self) -> int:
        """
        Run the complete reconciliation.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        self.stats['start_time'] = datetime.now()
        try:
            self._load_configuration()
            self._setup_logging()

            logger.info("Starting Azure Assign" + (" (dry run)" if self.dry_run else ""))

            if self.directory is None:
                self.directory = GraphClient(self.config)

            self.modifications = self._determine_modifications()

            if not self.dry_run:
                self.results = self._apply_modifications()

            # Printed once the apply phase has finished
            print_modifications(self.modifications, stream=self.stream, dry_run=self.dry_run)

            self._finish()

            error = self._first_apply_error()
            if error is not None:
                logger.error(f"Run completed with {self.stats['operations_failed']} failed operations")
                print(str(error), file=sys.stderr)
                return EXIT_APPLY_FAILED

            logger.info("Run completed successfully")
            return EXIT_SUCCESS

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            print(str(e), file=sys.stderr)
            return EXIT_CONFIG_ERROR
        except DirectoryRequestError as e:
            logger.error(f"Directory request failed: {e}")
            print(str(e), file=sys.stderr)
            return EXIT_DIRECTORY_ERROR
        except (ServicePrincipalLookupError, UnknownRoleError) as e:
            logger.error(f"Cannot build application descriptors: {e}")
            print(str(e), file=sys.stderr)
            return EXIT_BUILD_ERROR
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            print(f"Unexpected error: {e}", file=sys.stderr)
            return EXIT_UNEXPECTED_ERROR

    def _load_configuration(self):
        """Load and validate configuration."""
        try:
            self.config = load_config(self.config_path)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def _setup_logging(self):
        logging_config = dict(self.config.get('logging', {}))
        if self.verbose:
            logging_config['level'] = 'DEBUG'
            logging_config['console_level'] = 'DEBUG'
        setup_logging(logging_config)

    def _determine_modifications(self) -> List[Modification]:
        """Read directory state and reconcile every application."""
        applications = self.config['applications']

        principals = self.directory.list_service_principals()
        descriptors = build_descriptors(applications, principals, self.directory)
        modifications = reconcile_all(descriptors)

        self.stats['applications_processed'] = len(modifications)
        self.stats['additions'] = sum(len(m.additions) for m in modifications)
        self.stats['deletions'] = sum(len(m.deletions) for m in modifications)
        return modifications

    def _apply_modifications(self) -> Dict[str, List[OperationResult]]:
        max_workers = self.config.get('concurrency', {}).get('max_workers', 8)
        applier = ChangeApplier(self.directory, max_workers=max_workers)
        results = applier.apply_all(self.modifications)

        self.stats['operations_failed'] = sum(
            1 for app_results in results.values() for r in app_results if not r.succeeded
        )
        return results

    def _first_apply_error(self):
        for m in self.modifications:
            error = first_error(self.results.get(m.resource_id, []))
            if error is not None:
                return error
        return None

    def _finish(self):
        self.stats['end_time'] = datetime.now()
        self.stats['runtime_seconds'] = (
            self.stats['end_time'] - self.stats['start_time']
        ).total_seconds()
        self._log_summary()

    def _log_summary(self):
        """Log final run statistics."""
        stats = self.stats

        logger.info("=== Assignment Summary ===")
        logger.info(f"Total runtime: {stats['runtime_seconds']:.2f} seconds")
        logger.info(f"Applications processed: {stats['applications_processed']}")
        logger.info(f"Additions: {stats['additions']}")
        logger.info(f"Deletions: {stats['deletions']}")
        logger.info(f"Failed operations: {stats['operations_failed']}")


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(
        description='Assign application roles to directory groups as declared in a configuration file'
    )
    parser.add_argument('config_file', nargs='?', help='Path to configuration file')
    parser.add_argument('--config', '-c', dest='config_option', help='Path to configuration file')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show the modifications without applying them')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log at DEBUG level to the console')

    args = parser.parse_args(argv)

    orchestrator = AssignOrchestrator(
        config_path=args.config_option or args.config_file,
        dry_run=args.dry_run,
        verbose=args.verbose
    )

    sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
AP Assist Pipeline - Main Entry Point.

Runs the email poller service or one of the scheduled jobs.

Usage:
    Command Line:
        python main.py                      # poll the mailbox (default)
        python main.py poll --debug
        python main.py retry-folder --config-id 1
        python main.py validate-transactions --days-back 2 --email ap@example.com

    Python:
        from main import run_poller
        exit_code = run_poller()

Exit codes:
    0   success
    1   configuration error, mailbox connection failure or failed job
    130 interrupted (Ctrl+C)

Author: AP Automation Team
Version: 1.0.0
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from config import ConfigurationManager
from ap_assist.utils.logger import setup_logger_from_config, get_logger
from ap_assist.utils.exceptions import ConfigurationError, DocumentStoreError, MailboxError


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).

    Returns:
        Parsed argument namespace; ``command`` defaults to "poll".
    """
    parser = argparse.ArgumentParser(
        description="AP Assist - email to accounting document automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Poll the mailbox:
        python main.py poll

    Reprocess the retry folder of vendor config 1:
        python main.py retry-folder --config-id 1

    Validate yesterday's transactions and email the report:
        python main.py validate-transactions --days-back 1 --email ap@example.com
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("poll", help="Poll the mailbox and process matching emails")

    retry = subparsers.add_parser("retry-folder", help="Reprocess PDFs in a vendor retry folder")
    retry.add_argument(
        "--config-id",
        type=str,
        default=None,
        help="Vendor configuration id (default: retry_folder.config_id)"
    )
    retry.add_argument(
        "--max-files",
        type=int,
        default=None,
        help="Maximum number of PDFs to reprocess (default: retry_folder.max_files)"
    )

    validate = subparsers.add_parser(
        "validate-transactions",
        help="Validate recently created transactions"
    )
    validate.add_argument(
        "--type",
        dest="validation_type",
        choices=["comprehensive", "amounts", "accounts", "entities"],
        default=None,
        help="Validation focus (default: transaction_validation.validation_type)"
    )
    validate.add_argument(
        "--days-back",
        type=int,
        default=None,
        help="Look-back window in days (default: transaction_validation.days_back)"
    )
    validate.add_argument(
        "--email",
        type=str,
        default=None,
        help="Recipient of the summary email"
    )
    validate.add_argument(
        "--auto-flag",
        action="store_true",
        default=None,
        help="Flag transactions with critical issues"
    )

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "poll"
    return args


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize configuration and logging.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Initialized configuration manager.
    """
    config = ConfigurationManager(args.config)
    if args.debug:
        config.set("logging.level", "DEBUG")

    logger = setup_logger_from_config()

    logger.info("=" * 60)
    logger.info("AP ASSIST PIPELINE")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Command: {args.command}")

    return config


def run_poller() -> int:
    """
    Run the email poller until it is stopped.

    Returns:
        0 after a SIGTERM shutdown, 130 after SIGINT.

    Raises:
        ConfigurationError: If required settings are missing.
        MailboxError: If the mailbox connection fails at startup.
    """
    from ap_assist.pipeline import EmailPoller

    poller = EmailPoller.from_config()
    asyncio.run(poller.run())
    return 130 if poller.stop_signal == signal.SIGINT else 0


async def _retry_folder(config_id: Optional[str], max_files: Optional[int]) -> int:
    from ap_assist.extraction import ExtractionOracle
    from ap_assist.output_handler import RestletClient
    from ap_assist.pipeline import RetryFolderProcessor

    logger = get_logger(__name__)
    store = RestletClient()
    if not store.is_configured:
        raise ConfigurationError(
            "Document store is not configured",
            missing=["NETSUITE_ENABLED", "NETSUITE_RESTLET_URL"]
        )

    try:
        processor = RetryFolderProcessor(store, ExtractionOracle(), config_id=config_id, max_files=max_files)
        report = await processor.run()
    finally:
        await store.close()

    logger.info(
        f"Retry folder complete: {report.counters.succeeded} succeeded, "
        f"{report.counters.failed} failed"
    )
    return 0 if report.all_succeeded else 1


def run_retry_folder(config_id: Optional[str] = None, max_files: Optional[int] = None) -> int:
    """
    Reprocess the retry folder of one vendor configuration.

    Returns:
        0 when every file was reprocessed, 1 otherwise.
    """
    ConfigurationManager().require(["ANTHROPIC_API_KEY"])
    return asyncio.run(_retry_folder(config_id, max_files))


async def _validate_transactions(args: argparse.Namespace) -> int:
    from ap_assist.extraction import ExtractionOracle
    from ap_assist.output_handler import RestletClient
    from ap_assist.validation import TransactionValidator

    logger = get_logger(__name__)
    store = RestletClient()
    if not store.is_configured:
        raise ConfigurationError(
            "Document store is not configured",
            missing=["NETSUITE_ENABLED", "NETSUITE_RESTLET_URL"]
        )

    try:
        validator = TransactionValidator(store, ExtractionOracle())
        run = await validator.run(
            validation_type=args.validation_type,
            days_back=args.days_back,
            email_recipient=args.email,
            auto_flag=args.auto_flag
        )
    finally:
        await store.close()

    if run.excel_path:
        logger.info(f"Excel output: {run.excel_path}")
    return 0


def run_validate_transactions(args: argparse.Namespace) -> int:
    """Validate recently created transactions and report the results."""
    ConfigurationManager().require(["ANTHROPIC_API_KEY"])
    return asyncio.run(_validate_transactions(args))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = None
    try:
        args = parse_arguments(argv)
        initialize_system(args)

        if args.command == "retry-folder":
            return run_retry_folder(args.config_id, args.max_files)
        if args.command == "validate-transactions":
            return run_validate_transactions(args)
        return run_poller()

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    except MailboxError as e:
        print(f"Mailbox error: {e}", file=sys.stderr)
        return 1

    except DocumentStoreError as e:
        print(f"Document store error: {e}", file=sys.stderr)
        return 1

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130

    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args is not None and args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Command-line entry point for the charger.

Usage:
    ledger-charger run
    ledger-charger once --format text
    ledger-charger serve --port 8080
    ledger-charger --simulate once
"""

import argparse
import logging
import os
import sys
import threading
from datetime import date, timedelta
from typing import List, Optional, Tuple

from .charging import ChargeExecutor
from .config import AggregationMode, AirtableSettings, ChargerConfig, StatusApiSettings
from .errors import ConfigurationError
from .ledger import AirtableLedger, InMemoryLedger, LedgerBase
from .loop import ReconciliationLoop, ShutdownToken, install_signal_handlers, utc_now
from .models import BillingRecord, PassStatus
from .outcomes import OutcomeWriter
from .processors import ProcessorBase, SimulatorProcessor, get_processor
from .report import ReportGenerator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def demo_records(config: ChargerConfig, today: date) -> List[BillingRecord]:
    """Sample ledger rows for a simulated run, one per interesting case."""
    cols = config.columns

    def row(record_id: str, customer, amount, days_ago: int = 1, **extra) -> BillingRecord:
        fields = {
            cols.customer_id: customer,
            cols.amount: amount,
            cols.currency: "USD",
            cols.billing_date: (today - timedelta(days=days_ago)).isoformat(),
        }
        if config.mode == AggregationMode.ITEMIZED:
            fields.update({
                cols.service_date: (today - timedelta(days=days_ago + 1)).isoformat(),
                cols.quantity: 1,
                cols.item_description: "Cleaning",
                cols.property_label: "Unit 1",
            })
        fields.update(extra)
        return BillingRecord(id=record_id, fields=fields)

    return [
        row("recDemo1", "cus_demo_a", 12.50, days_ago=2),
        row("recDemo2", ["cus_demo_a"], 7.25),
        row("recDemo3", "cus_demo_b", 40),
        row("recDemo4", SimulatorProcessor.CUSTOMER_NO_METHODS, 15),
        row("recDemo5", SimulatorProcessor.CUSTOMER_DECLINE, 20),
        row("recDemo6", "cus_demo_c", 5, days_ago=30),
        row("recDemo7", "cus_demo_d", 5, **{cols.currency: "EUR"}),
    ]


def build_components(config: ChargerConfig, simulate: bool = False) -> Tuple[LedgerBase, ProcessorBase]:
    """Create the ledger and processor adapters.

    Raises:
        ConfigurationError: If credentials are missing.
    """
    if simulate:
        today = utc_now().astimezone(config.zone).date()
        return InMemoryLedger(demo_records(config, today)), get_processor("simulator")

    airtable = AirtableSettings.from_env()
    ledger = AirtableLedger(
        api_key=airtable.api_key,
        base_id=airtable.base_id,
        table_name=airtable.table_name,
        timeout=config.request_timeout_seconds,
    )
    try:
        processor = get_processor("stripe", timeout=config.request_timeout_seconds)
    except ValueError as e:
        ledger.close()
        raise ConfigurationError(str(e)) from e
    return ledger, processor


def build_loop(config: ChargerConfig, simulate: bool = False) -> ReconciliationLoop:
    ledger, processor = build_components(config, simulate=simulate)
    return ReconciliationLoop(
        ledger=ledger,
        executor=ChargeExecutor(processor, config),
        writer=OutcomeWriter(ledger, config),
        config=config,
    )


def run_once(loop: ReconciliationLoop, output_format: str = "json") -> int:
    """Run a single pass and print its report.

    Returns:
        0 if every group was charged, 1 if some group failed, 2 if the pass
        was aborted.
    """
    report = loop.run_pass()
    loop.last_report = report
    generator = ReportGenerator(report)
    if output_format == "text":
        print(generator.to_summary_text())
    elif output_format == "csv":
        print(generator.to_csv(), end="")
    else:
        print(generator.to_json())

    if report.status != PassStatus.COMPLETED:
        return 2
    return 1 if report.total_failed else 0


def run_forever(loop: ReconciliationLoop) -> int:
    token = ShutdownToken()
    install_signal_handlers(token)
    print("Charger Running....")
    loop.run_forever(token)
    return 0


def serve(loop: ReconciliationLoop, host: str, port: int, api_key: Optional[str] = None) -> int:
    """Run the loop in a background thread and the status API in the foreground."""
    import uvicorn
    from .api import create_app

    token = ShutdownToken()
    worker = threading.Thread(target=loop.run_forever, args=(token,), name="charger-loop", daemon=True)
    worker.start()
    try:
        uvicorn.run(create_app(loop, api_key=api_key), host=host, port=port)
    finally:
        token.request()
        worker.join()
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="ledger-charger",
        description="Charge unpaid ledger records through the payment processor.",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: search from the working directory)",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use an in-memory ledger with sample records and the simulator processor",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Poll and charge until interrupted")

    once_parser = subparsers.add_parser("once", help="Run a single pass and print its report")
    once_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text"],
        default="json",
        help="Output format (default: json)",
    )

    serve_parser = subparsers.add_parser("serve", help="Poll and charge, exposing the status API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    try:
        config = ChargerConfig.from_env(parsed_args.env_file)
        logging.getLogger().setLevel(config.log_level)
        loop = build_loop(config, simulate=parsed_args.simulate)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    try:
        if parsed_args.command == "once":
            return run_once(loop, output_format=parsed_args.format)
        if parsed_args.command == "serve":
            api = StatusApiSettings.from_env()
            return serve(loop, host=parsed_args.host, port=parsed_args.port, api_key=api.api_key)
        return run_forever(loop)
    finally:
        loop.ledger.close()


if __name__ == "__main__":
    sys.exit(main())

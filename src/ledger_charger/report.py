"""Rendering of pass reports."""

import json
import csv
import io
from datetime import datetime
from decimal import Decimal

from .models import PassReport


class ReportGenerator:
    """Generator for pass reports in various formats."""

    def __init__(self, report: PassReport):
        """Initialize the report generator.

        Args:
            report: The pass report to generate output from.
        """
        self.report = report

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the report.

        Args:
            include_details: If True, include every charge outcome.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the report.
        """
        if include_details:
            data = self.report.to_full_dict()
        else:
            data = self.report.to_summary_dict()

        def json_serializer(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            if isinstance(obj, Decimal):
                return str(obj)
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(data, indent=indent, default=json_serializer)

    def to_csv(self) -> str:
        """One row per charge outcome."""
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["customer_id", "status", "confirmation_id", "failure_detail", "failed_lines"])
        for outcome in self.report.outcomes:
            writer.writerow([
                outcome.customer_id,
                outcome.status.value,
                outcome.confirmation_id or "",
                outcome.failure_detail or "",
                ";".join(outcome.failed_lines),
            ])
        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable summary of the pass."""
        r = self.report
        lines = [
            "=" * 60,
            "CHARGER PASS REPORT",
            "=" * 60,
            f"Pass ID:         {r.id}",
            f"Status:          {r.status.value.upper()}",
            f"Mode:            {r.mode}",
            f"Started:         {r.started_at.isoformat()}",
            f"Completed:       {r.completed_at.isoformat() if r.completed_at else 'N/A'}",
            "",
            "-" * 60,
            "STATISTICS",
            "-" * 60,
            f"Records Fetched:     {r.total_fetched}",
            f"Records Eligible:    {r.total_eligible}",
            f"Records Skipped:     {r.total_skipped}",
        ]
        for reason, count in sorted(r.skipped.items()):
            lines.append(f"  {reason:<18} {count}")
        lines.extend([
            f"Customer Groups:     {r.total_groups}",
            f"Charged:             {r.total_succeeded}",
            f"Failed:              {r.total_failed}",
            f"Ledger Updates:      {r.updates_applied} applied, {r.updates_failed} failed",
        ])
        if r.error_message:
            lines.extend(["", "-" * 60, "ERROR", "-" * 60, r.error_message])
        lines.append("=" * 60)
        return "\n".join(lines)

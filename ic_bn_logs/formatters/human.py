"""Human-readable formatter for log stream output."""

from typing import List, Optional, TextIO

from ic_bn_logs.formatters.base import BaseFormatter
from ic_bn_logs.models import LogEvent, Notice, WorkerSummary


class HumanFormatter(BaseFormatter):
    """Plain log lines, optionally prefixed with the endpoint they came from."""

    def __init__(self, output_file: Optional[TextIO] = None, show_endpoint: bool = True):
        """Initialize human formatter."""
        super().__init__(output_file)
        self.show_endpoint = show_endpoint

    def format_event(self, event: LogEvent) -> str:
        """Format a log line."""
        if self.show_endpoint:
            return f"[{event.source_endpoint}] {event.payload}\n"
        return f"{event.payload}\n"

    def format_notice(self, notice: Notice) -> str:
        """Format a notice as a single warning line."""
        target = notice.endpoint_id or "*"
        return f"! [{target}] {notice.detail}\n"

    def format_summary(self, summaries: List[WorkerSummary]) -> str:
        """Format per-endpoint statistics as a table."""
        lines = [
            "",
            f"{'Endpoint':<40} {'Events':>8} {'Errors':>7} {'Connected':>10}  Closed",
            "─" * 83,
        ]
        for summary in summaries:
            reason = summary.close_reason.value if summary.close_reason else summary.state.value
            duration = summary.duration_seconds
            connected = "-" if duration is None else f"{duration:.1f}s"
            lines.append(
                f"{summary.endpoint_id:<40} {summary.events_received:>8} {summary.decode_errors:>7}"
                f" {connected:>10}  {reason}"
            )
        total = sum(summary.events_received for summary in summaries)
        lines.append("─" * 83)
        lines.append(f"{'Total':<40} {total:>8}")
        return "\n".join(lines) + "\n"

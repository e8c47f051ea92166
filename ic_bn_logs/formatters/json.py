"""JSON lines formatter for log stream output."""

import json
from typing import Any, Dict, List

from ic_bn_logs.formatters.base import BaseFormatter
from ic_bn_logs.models import LogEvent, Notice, WorkerSummary


class JSONFormatter(BaseFormatter):
    """One JSON object per line for machine consumption."""
    
    def format_event(self, event: LogEvent) -> str:
        """Format a log event as JSON."""
        return self._format_json({"event": "log", **event.to_dict()}) + "\n"
    
    def format_notice(self, notice: Notice) -> str:
        """Format a notice as JSON."""
        return self._format_json({"event": "notice", **notice.to_dict()}) + "\n"
    
    def format_summary(self, summaries: List[WorkerSummary]) -> str:
        """Format the run summary as JSON."""
        summary_data = {
            "event": "summary",
            "endpoints": [summary.model_dump(mode="json") for summary in summaries],
            "total_events": sum(summary.events_received for summary in summaries),
        }
        return self._format_json(summary_data) + "\n"
    
    def _format_json(self, data: Dict[str, Any]) -> str:
        """Format data as JSON string."""
        try:
            return json.dumps(
                data,
                ensure_ascii=False,
                sort_keys=True
            )
        except (TypeError, ValueError) as e:
            # Fallback for non-serializable data
            return json.dumps({
                "event": "format_error",
                "error": str(e),
                "original_data": str(data)
            })

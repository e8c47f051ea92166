"""Base formatter for log stream output."""

from abc import ABC, abstractmethod
from typing import List, Optional, TextIO

from ic_bn_logs.models import LogEvent, Notice, WorkerSummary


class BaseFormatter(ABC):
    """Abstract base class for output formatters."""
    
    def __init__(self, output_file: Optional[TextIO] = None):
        """Initialize formatter with optional output file."""
        self.output_file = output_file
    
    @abstractmethod
    def format_event(self, event: LogEvent) -> str:
        """
        Format a single log event.
        
        Args:
            event: Log event from the merged stream
            
        Returns:
            Formatted string, newline terminated
        """
        pass
    
    @abstractmethod
    def format_notice(self, notice: Notice) -> str:
        """
        Format a side-channel notice.
        
        Args:
            notice: Endpoint or run-level notice
            
        Returns:
            Formatted string, newline terminated
        """
        pass
    
    @abstractmethod
    def format_summary(self, summaries: List[WorkerSummary]) -> str:
        """
        Format the end-of-run summary.
        
        Args:
            summaries: Per-endpoint statistics
            
        Returns:
            Formatted string
        """
        pass
    
    def output(self, text: str) -> None:
        """
        Output text to file or stdout, flushing immediately.
        
        Args:
            text: Text to output
        """
        if self.output_file:
            self.output_file.write(text)
            self.output_file.flush()
        else:
            print(text, end='', flush=True)
    
    def close(self) -> None:
        """Close output file if applicable."""
        if self.output_file and hasattr(self.output_file, 'close'):
            self.output_file.close()

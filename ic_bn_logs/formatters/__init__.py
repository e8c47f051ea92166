"""Output formatters for the merged log stream."""

from ic_bn_logs.formatters.base import BaseFormatter
from ic_bn_logs.formatters.human import HumanFormatter
from ic_bn_logs.formatters.json import JSONFormatter

__all__ = ["BaseFormatter", "HumanFormatter", "JSONFormatter"]

"""Log the outcome of an SSH execution"""

import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


def format_ssh_result(result: Any) -> List[str]:
    """Render a result as log lines; stdout and stderr are shown quoted"""
    try:
        remote = f"{getattr(result, 'user', '')}@{getattr(result, 'host', '')}"
        return [
            f"ssh {remote}: command:   {getattr(result, 'command', '')}",
            f"ssh {remote}: stdout:    {getattr(result, 'stdout', '')!r}",
            f"ssh {remote}: stderr:    {getattr(result, 'stderr', '')!r}",
            f"ssh {remote}: exit code: {getattr(result, 'exit_code', 0)}",
        ]
    except Exception as e:
        # a field whose __str__/__repr__ raises must not break reporting
        return [f"ssh result could not be formatted: {e.__class__.__name__}"]


def log_ssh_result(result: Any, sink: Optional[Callable[[str], None]] = None) -> None:
    """Write a result to ``sink`` (defaults to this module's logger at INFO)"""
    emit = sink or logger.info
    for line in format_ssh_result(result):
        emit(line)

"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log line per connection, written after the connection is closed.

    text:  127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /style.css HTTP/1.1" 200 1834 0.84ms
    json:  {"connection_id": "3f2a9c1b", "client_ip": "127.0.0.1", ...}

The access log has its own logger, "staticserver.access", so it can be
routed or silenced separately from the diagnostic logs:

    logging.getLogger("staticserver.access").setLevel(logging.WARNING)

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass, asdict
from typing import Optional


logger = logging.getLogger("staticserver.access")


@dataclass
class RequestLog:
    """
    Structured log entry for one connection.

    request_line is "-" when nothing parseable arrived; status_code is None
    when no response was attempted (peer reset the connection).
    """

    connection_id: str
    client_ip: str
    request_line: str
    status_code: Optional[int]
    bytes_sent: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Apache common-log style line."""
        status = self.status_code if self.status_code is not None else "-"
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.request_line}" {status} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """Formats RequestLog entries and emits them on the access logger."""

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def record(
        self,
        connection_id: str,
        client_ip: str,
        request_line: Optional[str],
        status_code: Optional[int],
        bytes_sent: int,
        duration_ms: float,
    ) -> RequestLog:
        entry = RequestLog(
            connection_id=connection_id,
            client_ip=client_ip,
            request_line=request_line or "-",
            status_code=int(status_code) if status_code is not None else None,
            bytes_sent=bytes_sent,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return entry

"""Logging configuration for the provisioning CLI."""

from __future__ import annotations

import logging
import sys

_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class EnsureRunIdFilter(logging.Filter):
    """Guarantee a run_id attribute so every line can be correlated to a run."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = self.run_id
        return True


class KeyValueFormatter(logging.Formatter):
    """Append the `extra=` fields of a record as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}
        if not fields:
            return base
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{base} {rendered}"


def configure_logging(level: str = "INFO", run_id: str = "-") -> logging.Logger:
    root = logging.getLogger("landing_zone")
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    handler.addFilter(EnsureRunIdFilter(run_id))
    root.addHandler(handler)
    root.propagate = False
    return root

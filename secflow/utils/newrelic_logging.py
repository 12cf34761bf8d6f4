"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that sends error-level logs to New Relic.

    Error and critical logs are reported with notice_error; every log level passes through unchanged.
    Without an active New Relic application the call is a no-op.
    """
    if method_name in ("error", "critical"):
        newrelic.agent.notice_error()

    return event_dict

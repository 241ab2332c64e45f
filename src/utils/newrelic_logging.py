"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent

# Context keys forwarded to New Relic as error attributes
FORWARDED_KEYS = ("tenant_id", "binding_id", "db_name", "username", "sqlstate")


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that reports error-level logs to New Relic.

    The current exception (if any) is noticed with the tenant/binding context of
    the log line attached. All log levels pass through unchanged.
    """
    if method_name in ("error", "critical"):
        attributes = {key: event_dict[key] for key in FORWARDED_KEYS if key in event_dict}
        newrelic.agent.notice_error(attributes=attributes)

    return event_dict

# ==============================================
# Sink Registry
# ==============================================
#
# Maps a sink type string to its implementation. Concrete sinks are
# imported on first use, so a run against local files never needs the
# database drivers loaded.
#
#   get_sink("local-file") → LocalFileSink()
#   get_sink("nope")       → ConfigurationError
#
# ==============================================

import importlib
from typing import List

from recordflow.errors import ConfigurationError
from .base import Sink


SINK_TYPES = {
    "local-file": ("recordflow.sinks.local_file_sink", "LocalFileSink"),
    "mysql": ("recordflow.sinks.mysql_sink", "MySQLSink"),
    "mongo": ("recordflow.sinks.mongo_sink", "MongoSink"),
}


def sink_types() -> List[str]:
    return sorted(SINK_TYPES)


def get_sink(sink_type: str) -> Sink:
    """
    Create the sink registered under `sink_type`.

    Raises:
        ConfigurationError: no sink is registered under that type
    """
    try:
        module_name, class_name = SINK_TYPES[sink_type]
    except KeyError:
        raise ConfigurationError(
            f"Unknown sink type '{sink_type}'. Available: {', '.join(sink_types())}"
        ) from None
    module = importlib.import_module(module_name)
    return getattr(module, class_name)()

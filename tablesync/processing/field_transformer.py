"""Normalization of remote records into the local record shape."""

import json

import structlog

from tablesync.models.config import StreamConfig
from tablesync.models.records import LocalRecord, RawRecord

log = structlog.stdlib.get_logger()


def transform_record(raw: RawRecord, config: StreamConfig) -> LocalRecord:
    """
    Convert one raw remote record into the local record shape.

    Steps run in a fixed order:
    1. drop locally-owned fields (keys of ``mapping_add``)
    2. drop remote-only fields (``filter``)
    3. rename remote fields to local names (``mapping_replace``)
    4. decode JSON text in ``json_fields``; undecodable text is kept as-is

    Because discarding runs before renaming, a field listed in both ``filter``
    and ``mapping_replace`` is removed and never renamed.

    Args:
        raw: Record as returned by the remote
        config: Stream configuration

    Returns:
        New dict; ``raw`` is not modified
    """
    dropped = set(config.mapping_add) | set(config.filter)
    record: LocalRecord = {key: value for key, value in raw.items() if key not in dropped}

    for remote_name, local_name in config.mapping_replace.items():
        if remote_name in record:
            record[local_name] = record.pop(remote_name)

    for field in config.json_fields:
        value = record.get(field)
        if not isinstance(value, str):
            continue
        try:
            record[field] = json.loads(value)
        except ValueError as e:
            log.warning(
                "json_field_decode_failed",
                field=field,
                value=value,
                record_id=record.get(config.primary_key),
                error=str(e),
            )

    return record


class FieldTransformer:
    """Applies a stream's field mapping rules to raw remote records."""

    def __init__(self, config: StreamConfig):
        self._config = config

    def transform(self, raw: RawRecord) -> LocalRecord:
        return transform_record(raw, self._config)

import asyncio
import io
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pandas as pd
import requests

from citenet.errors import (
    EmptySourceError,
    FetchError,
    MalformedRecordWarning,
    NoValidRecordsError,
)
from citenet.records import Record, RecordSchema

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class IngestionResult:
    """Typed records that survived validation, plus drop bookkeeping."""

    records: List[Record]
    total_rows: int = 0
    dropped: int = 0
    warnings: List[MalformedRecordWarning] = field(default_factory=list)


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def fetch_text(source: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Reads the raw text of a record source in a single attempt.

    Args:
        source (str): Local file path or http(s) URL.
        timeout (float): Request timeout in seconds for URL sources.

    Returns:
        str: The source text.

    Raises:
        FetchError: The source is unreachable or answered with a non-2xx status.
        EmptySourceError: The source yielded no text.
    """
    if _is_url(source):
        try:
            response = requests.get(source, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Could not reach {source}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"HTTP error! status: {response.status_code} - {response.reason}",
                status=response.status_code,
            )
        text = response.text
    else:
        try:
            with open(source, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError as e:
            raise FetchError(f"Source not found: {source}") from e
        except (IOError, UnicodeDecodeError) as e:
            raise FetchError(f"Failed to read {source}: {e}") from e

    if not text or not text.strip():
        raise EmptySourceError(f"Source {source} is empty")

    return text


def parse_delimited(text: str, schema: RecordSchema, sep: str = ",") -> IngestionResult:
    """
    Parses delimited text into typed records, dropping invalid rows.

    Args:
        text (str): Raw delimited text with a header row.
        schema (RecordSchema): Validation rules and target record type.
        sep (str): Field separator.

    Returns:
        IngestionResult: Valid records in source order and the drop count.

    Raises:
        EmptySourceError: The text is blank.
        NoValidRecordsError: Required columns are missing or no row is valid.
    """
    if not text or not text.strip():
        raise EmptySourceError(f"No {schema.name} data to parse")

    warnings: List[MalformedRecordWarning] = []

    def skip_ragged(fields: List[str]) -> None:
        # Rows with more fields than the header never reach the frame
        warning = MalformedRecordWarning(
            None, f"saw {len(fields)} fields", dict(enumerate(fields))
        )
        warnings.append(warning)
        logger.debug(f"Skipping {schema.name} {warning}")
        return None

    def read(source: str) -> pd.DataFrame:
        return pd.read_csv(
            io.StringIO(source),
            sep=sep,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=skip_ragged,
        )

    try:
        df = read(text)
        lines = text.splitlines()
        removed: List[str] = []
        while not isinstance(df.index, pd.RangeIndex):
            # pandas reads a too-long first data row as an implicit index
            filled = [i for i, line in enumerate(lines) if line.strip()]
            if len(filled) < 2:
                break
            removed.append(lines.pop(filled[1]))
            warnings.clear()
            for line in removed:
                skip_ragged(line.split(sep))
            df = read("\n".join(lines))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise NoValidRecordsError(f"Could not parse {schema.name} data: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in schema.required_columns if c not in df.columns]
    if missing:
        raise NoValidRecordsError(
            f"{schema.name} data is missing required columns: {', '.join(missing)}",
            dropped=len(df),
        )

    records: List[Record] = []
    ragged = len(warnings)

    for row_number, row in enumerate(df.to_dict(orient="records"), start=1):
        record, reason = schema.convert(row)
        if record is None:
            warning = MalformedRecordWarning(row_number, reason, row)
            warnings.append(warning)
            logger.debug(f"Skipping {schema.name} {warning}")
            continue
        records.append(record)

    total = len(df) + ragged
    dropped = len(warnings)
    logger.info(f"Parsed {total} {schema.name} rows, {len(records)} valid.")
    if dropped:
        logger.warning(f"Dropped {dropped} malformed {schema.name} rows.")

    if not records:
        raise NoValidRecordsError(
            f"No valid {schema.name} rows ({dropped} dropped)", dropped=dropped
        )

    return IngestionResult(
        records=records, total_rows=total, dropped=dropped, warnings=warnings
    )


def load_records(
    source: str,
    schema: RecordSchema,
    sep: str = ",",
    timeout: float = DEFAULT_TIMEOUT,
) -> IngestionResult:
    """Fetches a tabular source once and parses it against ``schema``."""
    logger.info(f"Loading {schema.name} from {source}...")
    text = fetch_text(source, timeout=timeout)
    if sep == "," and os.path.splitext(source)[1].lower() in (".tsv", ".tab"):
        sep = "\t"
    return parse_delimited(text, schema, sep=sep)


async def load_records_async(
    source: str,
    schema: RecordSchema,
    sep: str = ",",
    timeout: float = DEFAULT_TIMEOUT,
) -> IngestionResult:
    """Non-blocking variant of ``load_records`` for asyncio hosts."""
    return await asyncio.to_thread(load_records, source, schema, sep, timeout)


def load_graph_json(source: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    """
    Loads a pre-built ``{"nodes": [...], "links": [...]}`` graph payload.

    Raises:
        FetchError: Unreachable source, invalid JSON, or a payload carrying
            an ``error`` message from the server.
        EmptySourceError: Blank text or no ``nodes`` list.
    """
    text = fetch_text(source, timeout=timeout)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise FetchError(f"Invalid graph JSON from {source}: {e}") from e

    if not isinstance(payload, dict):
        raise FetchError(f"Graph payload from {source} is not an object")
    if payload.get("error"):
        raise FetchError(str(payload["error"]))

    nodes = payload.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        raise EmptySourceError(f"Graph payload from {source} has no nodes")

    links = payload.get("links")
    payload["links"] = links if isinstance(links, list) else []

    logger.info(
        f"Loaded graph payload: {len(nodes)} nodes, {len(payload['links'])} links"
    )
    return payload


async def load_graph_json_async(
    source: str, timeout: float = DEFAULT_TIMEOUT
) -> Dict[str, Any]:
    return await asyncio.to_thread(load_graph_json, source, timeout)

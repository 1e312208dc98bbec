import csv
import json
import logging
import os
import random

logger = logging.getLogger(__name__)

PROTOCOLS = ["TCP", "UDP", "ICMP", "HTTP", "DNS", "TLS"]


class RecordSourceError(ValueError):
    """Raised when a flow-record file cannot be read."""


def _coerce_priority(value):
    # CSV cells arrive as text; JSON may already carry ints or null
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _normalize(row):
    record = dict(row)
    if "Priority" in record:
        record["Priority"] = _coerce_priority(record["Priority"])
    return record


def load_records(path):
    """
    Reads flow records from a .csv or .json file.

    CSV files need a header row with at least SourceIP and DestinationIP.
    JSON files hold either a list of record objects or {"records": [...]}.
    Returns a list of dicts keyed by the record field names.
    """
    suffix = os.path.splitext(path)[1].lower()
    if suffix not in (".csv", ".json"):
        raise RecordSourceError(f"Unsupported record file type: {path}")

    try:
        with open(path, "r", newline="", encoding="utf-8") as f:
            if suffix == ".csv":
                rows = list(csv.DictReader(f))
            else:
                payload = json.load(f)
                rows = payload.get("records", []) if isinstance(payload, dict) else payload
    except (OSError, json.JSONDecodeError, csv.Error) as e:
        raise RecordSourceError(f"Could not read records from {path}: {e}") from e

    if not isinstance(rows, list):
        raise RecordSourceError(f"Expected a list of records in {path}")

    records = [_normalize(row) for row in rows if isinstance(row, dict)]
    logger.info("Loaded %d flow records from %s", len(records), path)
    return records


def generate_sample_records(hosts=100, flows=300, seed=None):
    """
    Builds a random traffic sample: a chain of hosts so the graph is connected,
    plus random extra flows, a few hot hosts and occasional urgent priorities.
    """
    rng = random.Random(seed)
    addresses = [f"10.0.{i // 250}.{i % 250 + 1}" for i in range(max(hosts, 2))]
    hot = rng.sample(addresses, k=max(1, len(addresses) // 20))

    def _record(src, dst):
        record = {"SourceIP": src, "DestinationIP": dst}
        if rng.random() < 0.9:
            record["Protocol"] = rng.choice(PROTOCOLS)
        if rng.random() < 0.8:
            record["PacketInfo"] = str(rng.randint(40, 1500))
        record["Priority"] = rng.randint(0, 9) if rng.random() < 0.3 else None
        return record

    records = [_record(a, b) for a, b in zip(addresses, addresses[1:])]
    while len(records) < flows:
        # Hot hosts attract a third of the extra traffic
        src = rng.choice(hot) if rng.random() < 0.33 else rng.choice(addresses)
        dst = rng.choice(addresses)
        if src != dst:
            records.append(_record(src, dst))
    return records

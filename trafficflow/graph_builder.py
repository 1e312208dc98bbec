import logging
import random
import re
from collections.abc import Mapping

import networkx as nx

from trafficflow.config import (
    DEFAULT_PACKET_SIZE,
    DEFAULT_PRIORITY,
    DEFAULT_PROTOCOL,
    SURFACE_HEIGHT,
    SURFACE_WIDTH,
)

logger = logging.getLogger(__name__)

# Leading integer of the packet-info text, e.g. "1500" or "  60 bytes"
PACKET_PAT = re.compile(r'^\s*\+?(\d+)')


def parse_packet_size(packet_info):
    """Packet size from the textual PacketInfo field, or the default when absent/unparsable."""
    if packet_info is None:
        return DEFAULT_PACKET_SIZE
    m = PACKET_PAT.match(str(packet_info))
    if not m:
        return DEFAULT_PACKET_SIZE
    return int(m.group(1))


def _endpoint(value):
    if value is None:
        return None
    text = str(value)
    return text if text else None


def build_links(records):
    """
    Converts flow records into link dicts with every optional field filled:
        protocol   -> "TCP" when absent or empty
        packetSize -> parsed from PacketInfo, 1000 when absent or unparsable
        priority   -> 999 when null/undefined
    Rows without both endpoints are skipped.
    """
    links = []
    skipped = 0
    for record in records:
        if not isinstance(record, Mapping):
            skipped += 1
            continue
        source = _endpoint(record.get("SourceIP"))
        target = _endpoint(record.get("DestinationIP"))
        if source is None or target is None:
            skipped += 1
            continue

        priority = record.get("Priority")
        if isinstance(priority, bool) or not isinstance(priority, int):
            priority = DEFAULT_PRIORITY

        links.append({
            "source": source,
            "target": target,
            "protocol": record.get("Protocol") or DEFAULT_PROTOCOL,
            "packetSize": parse_packet_size(record.get("PacketInfo")),
            "priority": priority,
        })

    if skipped:
        logger.debug("Skipped %d records without both endpoints", skipped)
    return links


def build_graph(records, width=SURFACE_WIDTH, height=SURFACE_HEIGHT, rng=None):
    """
    Builds the (nodes, links) pair for one generation of flow records.

    Nodes are the deduplicated union of link endpoints; each carries its
    degree (one count per link end, so a self-flow counts twice) and a
    uniform-random seed position inside the width x height surface.
    """
    rng = rng or random.Random()
    links = build_links(records)

    # A multigraph keeps parallel flows, so degree == number of incident links
    G = nx.MultiGraph()
    for link in links:
        G.add_edge(link["source"], link["target"])

    nodes = [
        {
            "id": node,
            "degree": G.degree(node),
            "x": rng.random() * width,
            "y": rng.random() * height,
        }
        for node in G.nodes()
    ]
    return nodes, links

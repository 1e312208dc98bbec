import json

import pytest

from trafficflow.graph_builder import build_graph
from trafficflow.records import RecordSourceError, generate_sample_records, load_records


def test_load_csv_records(tmp_path):
    path = tmp_path / "flows.csv"
    path.write_text(
        "SourceIP,DestinationIP,Protocol,PacketInfo,Priority\n"
        "10.0.0.1,10.0.0.2,UDP,512,1\n"
        "10.0.0.2,10.0.0.3,,,\n",
        encoding="utf-8",
    )
    records = load_records(str(path))

    assert records[0] == {"SourceIP": "10.0.0.1", "DestinationIP": "10.0.0.2",
                          "Protocol": "UDP", "PacketInfo": "512", "Priority": 1}
    assert records[1]["Priority"] is None

    _, links = build_graph(records)
    assert links[1]["protocol"] == "TCP"
    assert links[1]["packetSize"] == 1000
    assert links[1]["priority"] == 999


def test_load_json_list_and_wrapped_records(tmp_path):
    flows = [{"SourceIP": "a", "DestinationIP": "b", "Priority": None}, {"SourceIP": "b", "DestinationIP": "c"}]
    plain = tmp_path / "flows.json"
    plain.write_text(json.dumps(flows), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"records": flows}), encoding="utf-8")

    assert load_records(str(plain)) == flows
    assert load_records(str(wrapped)) == flows


def test_unsupported_or_unreadable_sources_raise(tmp_path):
    with pytest.raises(RecordSourceError):
        load_records(str(tmp_path / "flows.txt"))
    with pytest.raises(RecordSourceError):
        load_records(str(tmp_path / "missing.csv"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(RecordSourceError):
        load_records(str(broken))


def test_sample_generator_is_seeded_and_complete():
    first = generate_sample_records(hosts=30, flows=80, seed=11)
    assert first == generate_sample_records(hosts=30, flows=80, seed=11)
    assert len(first) == 80
    assert all(r["SourceIP"] and r["DestinationIP"] for r in first)

    nodes, links = build_graph(first)
    assert len(nodes) == 30
    assert len(links) == 80

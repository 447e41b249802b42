import json

import pytest

from vulnfeeds.mariner_oval import (
    parse_definitions,
    parse_objects,
    parse_states,
    parse_tests,
)
from vulnfeeds.store import FeedError


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def test_parse_objects_maps_ids_to_names(tmp_path):
    write_json(
        tmp_path / "objects" / "objects.json",
        {
            "RpminfoObjects": [
                {"ID": "obj:1", "Version": "0", "Name": "clamav"},
                {"ID": "obj:2", "Version": "0", "Name": "wireshark"},
            ]
        },
    )
    assert parse_objects(tmp_path) == {"obj:1": "clamav", "obj:2": "wireshark"}


def test_parse_objects_rejects_wrong_type(tmp_path):
    write_json(tmp_path / "objects" / "objects.json", {"RpminfoObjects": "oops"})
    with pytest.raises(FeedError, match="failed to unmarshal objects"):
        parse_objects(tmp_path)


def test_parse_states_reads_evr(tmp_path):
    write_json(
        tmp_path / "states" / "states.json",
        {
            "RpminfoState": [
                {
                    "ID": "ste:1",
                    "Version": "0",
                    "Evr": {
                        "Text": "0:0.103.2-1.cm1",
                        "Datatype": "evr_string",
                        "Operation": "less than",
                    },
                }
            ]
        },
    )
    states = parse_states(tmp_path)
    assert list(states) == ["ste:1"]
    assert states["ste:1"].evr.text == "0:0.103.2-1.cm1"
    assert states["ste:1"].evr.datatype == "evr_string"
    assert states["ste:1"].evr.operation == "less than"


def test_parse_states_broken_json(tmp_path):
    path = tmp_path / "states" / "states.json"
    path.parent.mkdir(parents=True)
    path.write_text("{broken")
    with pytest.raises(FeedError, match="failed to unmarshal states"):
        parse_states(tmp_path)


def test_parse_tests_reads_refs_with_any_key_case(tmp_path):
    write_json(
        tmp_path / "tests" / "tests.json",
        {
            "rpminfo_tests_ignored": [],
            "rpminfotests": [
                {
                    "check": "at least one",
                    "id": "tst:1",
                    "object": {"object_ref_ignored": "", "objectref": "obj:1"},
                    "state": {"stateref": "ste:1"},
                }
            ],
        },
    )
    tests = parse_tests(tmp_path)
    assert len(tests) == 1
    assert tests[0].check == "at least one"
    assert tests[0].id == "tst:1"
    assert tests[0].object_ref == "obj:1"
    assert tests[0].state_ref == "ste:1"


def test_parse_tests_missing_file(tmp_path):
    with pytest.raises(FeedError, match="failed to unmarshal tests"):
        parse_tests(tmp_path)


def test_parse_definitions_reads_metadata_in_file_order(tmp_path):
    for name, cve in (("b.json", "CVE-2021-39924"), ("a.json", "CVE-2008-3914")):
        write_json(
            tmp_path / "definitions" / name,
            {
                "Class": "vulnerability",
                "ID": f"def:{cve}",
                "Metadata": {
                    "Title": f"{cve} title",
                    "Reference": {"RefID": cve, "RefURL": f"https://nvd.example.com/{cve}"},
                    "Patchable": "true",
                    "Severity": "High",
                },
                "Criteria": {"Operator": "AND", "Criterion": {"TestRef": f"tst:{cve}"}},
            },
        )
    defs = parse_definitions(tmp_path)
    assert [d.metadata.reference.ref_id for d in defs] == ["CVE-2008-3914", "CVE-2021-39924"]
    assert defs[0].class_name == "vulnerability"
    assert defs[0].metadata.title == "CVE-2008-3914 title"
    assert defs[0].metadata.reference.ref_url == "https://nvd.example.com/CVE-2008-3914"
    assert defs[0].criteria.criterion.test_ref == "tst:CVE-2008-3914"


def test_parse_definitions_without_directory(tmp_path):
    with pytest.raises(FeedError, match="no definitions dir"):
        parse_definitions(tmp_path)


def test_parse_definitions_broken_file(tmp_path):
    path = tmp_path / "definitions" / "broken.json"
    path.parent.mkdir(parents=True)
    path.write_text("[not json")
    with pytest.raises(FeedError, match="failed to decode"):
        parse_definitions(tmp_path)
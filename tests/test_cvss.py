import pytest

from vulnfeeds.cvss import CVSSError, cvss3_score

K8S_VECTOR = "CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N"
LOCAL_VECTOR = "CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H"


def test_known_scores():
    assert cvss3_score(K8S_VECTOR) == 6.5
    assert cvss3_score(LOCAL_VECTOR) == 7.8


def test_no_impact_scores_zero():
    assert cvss3_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:N/I:N/A:N") == 0.0


def test_undefined_temporal_metrics_keep_base_score():
    assert cvss3_score(K8S_VECTOR + "/E:X/RL:X/RC:X") == cvss3_score(K8S_VECTOR)


def test_temporal_metrics_lower_score():
    assert cvss3_score(LOCAL_VECTOR + "/E:U/RL:O/RC:U") < cvss3_score(LOCAL_VECTOR)


def test_version_30_prefix_accepted():
    assert cvss3_score(K8S_VECTOR.replace("CVSS:3.1", "CVSS:3.0")) == cvss3_score(K8S_VECTOR)


def test_changed_scope_not_lower():
    unchanged = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:L/I:L/A:N"
    changed = unchanged.replace("S:U", "S:C")
    assert cvss3_score(changed) >= cvss3_score(unchanged)


@pytest.mark.parametrize(
    "vector",
    [
        K8S_VECTOR,
        LOCAL_VECTOR,
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:C/C:H/I:H/A:H",
        "CVSS:3.0/AV:P/AC:H/PR:H/UI:R/S:U/C:L/I:N/A:N",
    ],
)
def test_score_within_bounds(vector):
    assert 0.0 <= cvss3_score(vector) <= 10.0


@pytest.mark.parametrize(
    "vector",
    [
        "AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N",
        "CVSS:2.0/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N",
        "CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H",
        "CVSS:3.1/AV:Q/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N",
        "CVSS:3.1/AV:N/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N",
        "CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N/ZZ:H",
        "CVSS:3.1/AV:N/AC:L/PR:H/UI:N/S:U/C:H/I:H/A:N/",
        "CVSS:3.1",
    ],
)
def test_invalid_vectors(vector):
    with pytest.raises(CVSSError):
        cvss3_score(vector)
from b3cluster.backend_state import BackendState
from b3cluster.routing import filter_required_tags, sort_by_load
from b3cluster.settings import BackendSettings


def test_filter_required_tags_empty_keeps_all():
    b1 = BackendState()
    filtered = filter_required_tags([b1], [])
    assert len(filtered) == 1
    assert filtered[0] is b1


def test_filter_required_tags_removes_missing():
    sip = BackendState(id="sip", settings=BackendSettings(tags=["sip", "foo"]))
    plain = BackendState(id="plain", settings=BackendSettings(tags=["foo"]))
    filtered = filter_required_tags([sip, plain], ["sip", "foo"])
    assert [b.id for b in filtered] == ["sip"]


def test_filter_required_tags_none_match():
    b = BackendState(settings=BackendSettings(tags=["foo"]))
    assert filter_required_tags([b], ["bar"]) == []


def test_sort_backend_by_load():
    backends = [
        BackendState(id="A", meetings_count=20, load_factor=1, attendees_count=12),
        BackendState(id="B", meetings_count=10, load_factor=1, attendees_count=12),
        BackendState(id="C", meetings_count=0, load_factor=1, attendees_count=0),
    ]
    result = sort_by_load(backends)
    assert [b.id for b in result] == ["C", "B", "A"]
    assert [b.id for b in backends] == ["C", "B", "A"]
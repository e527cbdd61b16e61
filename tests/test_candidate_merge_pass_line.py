from verifier.candidates import describe, is_valid, merge_candidate
from verifier.gate import display_status, is_verifiable
from verifier.models import ContractCandidate


def _cand(resolved, missing, **kw):
    return ContractCandidate(
        id=kw.pop("id", "c1"),
        name=kw.pop("name", "Token"),
        compiler_version=kw.pop("compiler_version", "0.8.20"),
        resolved_sources=dict(resolved),
        missing_sources=set(missing),
        **kw,
    )


def test_merge_moves_new_paths_out_of_missing():
    old = _cand({"A.sol": "a"}, {"B.sol"})
    new = _cand({"A.sol": "a", "B.sol": "b"}, set())

    merged = merge_candidate(old, new)

    assert merged is old
    assert merged.resolved_sources == {"A.sol": "a", "B.sol": "b"}
    assert merged.missing_sources == set()


def test_merge_never_forgets_a_resolved_path():
    old = _cand({"A.sol": "a", "B.sol": "b"}, set())
    new = _cand({"A.sol": "a"}, {"B.sol"})

    merged = merge_candidate(old, new)

    assert "B.sol" in merged.resolved_sources
    assert "B.sol" not in merged.missing_sources


def test_merge_keeps_union_of_tracked_paths():
    old = _cand({"A.sol": "a"}, {"B.sol", "C.sol"})
    new = _cand({"A.sol": "a", "B.sol": "b"}, set())

    merged = merge_candidate(old, new)

    tracked = set(merged.resolved_sources) | merged.missing_sources
    assert tracked == {"A.sol", "B.sol", "C.sol"}
    assert set(merged.resolved_sources).isdisjoint(merged.missing_sources)


def test_merge_keeps_id_target_and_status():
    old = _cand({"A.sol": "a"}, {"B.sol"}, id="stable", address="0xabc", chain_id="1", status="partial")
    new = _cand({"A.sol": "a", "B.sol": "b"}, set(), id="other", address=None, chain_id=None)

    merged = merge_candidate(old, new)

    assert merged.id == "stable"
    assert (merged.address, merged.chain_id) == ("0xabc", "1")
    assert merged.status == "partial"


def test_merge_takes_invalid_and_compiler_from_new_pass():
    old = _cand({"A.sol": "a"}, set(), compiler_version=None, invalid_sources={"A.sol"})
    new = _cand({"A.sol": "a2"}, set(), compiler_version="0.8.21")

    merged = merge_candidate(old, new)

    assert merged.invalid_sources == set()
    assert merged.compiler_version == "0.8.21"
    assert merged.resolved_sources["A.sol"] == "a2"


def test_is_valid_and_describe():
    c = _cand({"A.sol": "a"}, {"B.sol"}, invalid_sources={"C.sol"})
    assert is_valid(c) is False
    assert is_valid(c, ignore_missing=True) is False
    assert describe(c) == "Token (C.sol, B.sol)"

    c.invalid_sources.clear()
    assert is_valid(c, ignore_missing=True) is True


def test_gate_requires_sources_target_and_compiler():
    c = _cand({"A.sol": "a"}, {"B.sol"})
    assert is_verifiable(c) is False
    assert display_status(c) == "pending"

    c.add_sources({"B.sol": "b"})
    assert is_verifiable(c) is False

    c.set_target("0xabc", "1")
    assert is_verifiable(c) is True
    assert display_status(c) == "verifiable"

    c.compiler_version = None
    assert is_verifiable(c) is False


def test_set_target_never_clears():
    c = _cand({}, set(), address="0xabc", chain_id="5")
    c.set_target("", None)
    assert (c.address, c.chain_id) == ("0xabc", "5")


def test_recorded_outcome_wins_over_derived_status():
    c = _cand({"A.sol": "a"}, set(), address="0xabc", chain_id="1", status="extra-file-input-bug")
    assert display_status(c) == "extra-file-input-bug"

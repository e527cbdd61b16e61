import pytest

from api.storage import MemorySessionStore
from conftest import ADDRESS, FakeValidation, FakeVerification, metadata_file, source_file
from verifier.errors import BadRequest, CapacityExceeded, NotFound
from verifier.models import Match
from verifier.service import SessionVerifier, VerificationTarget, parse_targets


@pytest.mark.asyncio
async def test_incremental_upload_then_attach_and_verify(session_verifier, store, verification):
    meta = metadata_file("Token", ["A.sol", "B.sol"])

    assert await session_verifier.upload_files("s1", [meta, source_file("A.sol")]) == 2
    (cand,) = store.load("s1").candidates.values()
    assert cand.missing_sources == {"B.sol"}
    assert session_verifier.snapshot("s1").contracts[0]["status"] == "pending"

    assert await session_verifier.upload_files("s1", [source_file("B.sol")]) == 1
    (again,) = store.load("s1").candidates.values()
    assert again.id == cand.id
    assert again.missing_sources == set()
    assert verification.calls == []

    status = await session_verifier.attach_target_and_verify("s1", cand.id, ADDRESS, "1")

    assert status in ("perfect", "partial")
    assert len(verification.calls) == 1
    assert store.load("s1").candidates[cand.id].status == status


@pytest.mark.asyncio
async def test_reupload_is_a_no_op(session_verifier, store, validation):
    files = [metadata_file("Token", ["A.sol"]), source_file("A.sol")]
    await session_verifier.upload_files("s1", files)
    before = store.load("s1").as_dict()
    checks = validation.check_calls

    assert await session_verifier.upload_files("s1", files) == 0
    assert validation.check_calls == checks
    assert store.load("s1").as_dict() == before


@pytest.mark.asyncio
async def test_upload_reverifies_bound_candidates(session_verifier, store, verification):
    await session_verifier.upload_files("s1", [metadata_file("Token", ["A.sol", "B.sol"]), source_file("A.sol")])
    (cand,) = store.load("s1").candidates.values()
    assert await session_verifier.attach_target_and_verify("s1", cand.id, ADDRESS, "1") == "pending"

    await session_verifier.upload_files("s1", [source_file("B.sol")])

    assert store.load("s1").candidates[cand.id].status == "perfect"
    assert len(verification.calls) == 1


@pytest.mark.asyncio
async def test_capacity_error_leaves_session_untouched(store, validation, verification):
    sv = SessionVerifier(store, validation, verification, max_session_bytes=64)
    await sv.upload_files("s1", [source_file("A.sol", "x" * 40)])

    with pytest.raises(CapacityExceeded):
        await sv.upload_files("s1", [source_file("B.sol", "y" * 30)])

    assert sv.snapshot("s1").files == ["A.sol"]


@pytest.mark.asyncio
async def test_attach_unknown_candidate_raises_not_found(session_verifier):
    with pytest.raises(NotFound):
        await session_verifier.attach_target_and_verify("s1", "nope", ADDRESS, "1")


@pytest.mark.asyncio
async def test_verify_validated_requires_pending_contracts(session_verifier):
    with pytest.raises(BadRequest):
        await session_verifier.verify_validated("s1", [VerificationTarget("x", ADDRESS, "1")])


@pytest.mark.asyncio
async def test_verify_validated_skips_unknown_ids(session_verifier, store):
    await session_verifier.upload_files("s1", [metadata_file("Token", ["A.sol"]), source_file("A.sol")])
    (cand,) = store.load("s1").candidates.values()

    targets = parse_targets(
        [
            {"verificationId": cand.id, "address": ADDRESS, "chainId": "1"},
            {"verificationId": "unknown", "address": ADDRESS, "chainId": "1"},
            {"address": ADDRESS},
        ]
    )
    snap = await session_verifier.verify_validated("s1", targets)

    assert len(targets) == 2
    assert [c["status"] for c in snap.contracts] == ["perfect"]


@pytest.mark.asyncio
async def test_snapshot_lists_unused_files(session_verifier):
    await session_verifier.upload_files(
        "s1", [metadata_file("Token", ["A.sol"]), source_file("A.sol"), source_file("README.md")]
    )
    snap = session_verifier.snapshot("s1").as_dict()

    assert snap["unused"] == ["README.md"]
    assert snap["files"] == ["A.sol", "README.md", "metadata.json"]
    assert snap["contracts"][0]["files"] == {"found": ["A.sol"], "missing": [], "invalid": []}


@pytest.mark.asyncio
async def test_reset_session_drops_everything(session_verifier):
    await session_verifier.upload_files("s1", [source_file("A.sol")])
    session_verifier.reset_session("s1")
    assert session_verifier.snapshot("s1").as_dict() == {"contracts": [], "unused": [], "files": []}


@pytest.mark.asyncio
async def test_sessions_do_not_share_candidates():
    store = MemorySessionStore()
    sv = SessionVerifier(store, FakeValidation(), FakeVerification([Match(status="perfect")]))
    await sv.upload_files("s1", [metadata_file("Token", ["A.sol"]), source_file("A.sol")])

    assert sv.snapshot("s2").contracts == []
    assert len(sv.snapshot("s1").contracts) == 1


@pytest.mark.asyncio
async def test_unrelated_upload_does_not_reverify_a_partial_match(store, validation):
    verification = FakeVerification([Match(status="partial")])
    sv = SessionVerifier(store, validation, verification)
    await sv.upload_files("s1", [metadata_file("Token", ["A.sol"]), source_file("A.sol")])
    (cand,) = store.load("s1").candidates.values()
    assert await sv.attach_target_and_verify("s1", cand.id, ADDRESS, "1") == "partial"

    await sv.upload_files("s1", [source_file("README.md")])

    assert len(verification.calls) == 1
    assert store.load("s1").candidates[cand.id].status == "partial"

import pytest

from conftest import ADDRESS, FakeValidation, FakeVerification, source_file
from verifier.models import ContractCandidate, Match, Session
from verifier.orchestrator import VerificationOrchestrator


def _session_with(candidate: ContractCandidate, *files) -> Session:
    s = Session(id="s1", candidates={candidate.id: candidate})
    for f in files:
        s.files[f.content_hash] = f
    return s


def _ready(**kw) -> ContractCandidate:
    c = ContractCandidate(
        id=kw.pop("id", "c1"),
        name="Token",
        compiler_version="0.8.20",
        resolved_sources={"A.sol": "a"},
        address=ADDRESS,
        chain_id="1",
    )
    for k, v in kw.items():
        setattr(c, k, v)
    return c


@pytest.mark.asyncio
async def test_verify_records_perfect(validation):
    verification = FakeVerification([Match(status="perfect", storage_timestamp="t1")])
    cand = _ready()

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "perfect"
    assert cand.storage_timestamp == "t1"
    assert len(verification.calls) == 1


@pytest.mark.asyncio
async def test_not_verifiable_is_skipped_without_error(validation, verification):
    cand = _ready(chain_id=None)

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "pending"
    assert verification.calls == []


@pytest.mark.asyncio
async def test_stored_match_short_circuits_the_service(validation, verification):
    verification.store(ADDRESS, "1", "perfect")
    cand = _ready()

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "perfect"
    assert verification.calls == []


@pytest.mark.asyncio
async def test_second_verify_after_perfect_does_not_call_service(validation):
    verification = FakeVerification([Match(status="perfect")])
    cand = _ready()
    orch = VerificationOrchestrator(validation, verification)
    session = _session_with(cand)

    await orch.verify(session, cand)
    await orch.verify(session, cand)

    assert cand.status == "perfect"
    assert len(verification.calls) == 1


@pytest.mark.asyncio
async def test_extra_file_input_bug_retries_once_with_all_sources(validation):
    verification = FakeVerification([Match(status="extra-file-input-bug"), Match(status="perfect")])
    cand = _ready()
    session = _session_with(cand, source_file("A.sol"), source_file("lib/Extra.sol"))

    await VerificationOrchestrator(validation, verification).verify(session, cand)

    assert cand.status == "perfect"
    assert validation.expand_calls == 1
    assert [c[2] for c in verification.calls] == [["A.sol"], ["A.sol", "lib/Extra.sol"]]
    # the expanded set is only used for the retry
    assert sorted(cand.resolved_sources) == ["A.sol"]


@pytest.mark.asyncio
async def test_retry_is_bounded_and_its_outcome_is_adopted(validation):
    verification = FakeVerification(
        [
            Match(status="extra-file-input-bug"),
            Match(status="extra-file-input-bug", message="still short"),
            Match(status="perfect"),
        ]
    )
    cand = _ready()

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "extra-file-input-bug"
    assert cand.status_message == "still short"
    assert len(verification.calls) == 2
    assert validation.expand_calls == 1


@pytest.mark.asyncio
async def test_service_error_is_recorded_on_candidate(validation):
    verification = FakeVerification([RuntimeError("bytecode fetch failed")])
    cand = _ready()

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "error"
    assert cand.status_message == "bytecode fetch failed"


@pytest.mark.asyncio
async def test_error_is_not_terminal_for_the_candidate(validation):
    verification = FakeVerification([RuntimeError("timeout"), Match(status="partial")])
    cand = _ready()
    orch = VerificationOrchestrator(validation, verification)
    session = _session_with(cand)

    await orch.verify(session, cand)
    assert cand.status == "error"

    await orch.verify(session, cand)
    assert cand.status == "partial"
    assert cand.status_message is None


@pytest.mark.asyncio
async def test_missing_sources_are_fetched_before_the_gate(verification):
    validation = FakeValidation(remote={"B.sol": "b"})
    cand = _ready(missing_sources={"B.sol"})

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert validation.fetch_calls == 1
    assert cand.missing_sources == set()
    assert cand.status == "perfect"


@pytest.mark.asyncio
async def test_fetch_failure_is_not_fatal(verification):
    validation = FakeValidation(fetch_error=RuntimeError("ipfs down"))
    cand = _ready(missing_sources={"B.sol"})

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert validation.fetch_calls == 1
    assert cand.status == "pending"
    assert verification.calls == []


@pytest.mark.asyncio
async def test_verify_all_continues_after_a_failing_candidate(validation):
    verification = FakeVerification([RuntimeError("boom"), Match(status="perfect")])
    a = _ready(id="a")
    b = _ready(id="b", address="0x" + "cd" * 20)
    session = Session(id="s1", candidates={"a": a, "b": b})

    out = await VerificationOrchestrator(validation, verification).verify_all(session)

    assert [c.id for c in out] == ["a", "b"]
    assert (a.status, b.status) == ("error", "perfect")


@pytest.mark.asyncio
async def test_stored_partial_match_short_circuits_the_service(validation, verification):
    verification.store(ADDRESS, "1", "partial")
    cand = _ready()

    await VerificationOrchestrator(validation, verification).verify(_session_with(cand), cand)

    assert cand.status == "partial"
    assert cand.storage_timestamp is not None
    assert verification.calls == []


@pytest.mark.asyncio
async def test_partial_outcome_is_not_verified_again(validation):
    verification = FakeVerification([Match(status="partial"), Match(status="perfect")])
    cand = _ready()
    orch = VerificationOrchestrator(validation, verification)
    session = _session_with(cand)

    await orch.verify(session, cand)
    await orch.verify(session, cand)

    assert cand.status == "partial"
    assert len(verification.calls) == 1

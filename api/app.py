from __future__ import annotations

import uuid
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

import api.service as service
from api.auth import require_scopes
from api.metrics import MetricsMiddleware, metrics_response
from api.models import Create2Request, EtherscanRequest, InputFilesRequest, VerifyRequest, VerifyValidatedRequest
from api.settings import APISettings
from api.storage import is_valid_session_id
from verifier.errors import BadRequest, VerifierError
from verifier.models import SourceFile
from verifier.service import SessionVerifier, parse_targets
from verifier.validators import check_chain_id, validate_addresses, validate_chain_ids


settings = APISettings.from_env()


def get_settings() -> APISettings:
    return settings


@lru_cache(maxsize=1)
def get_verifier() -> SessionVerifier:
    return service.build_verifier(settings)


def get_session_id(request: Request, response: Response) -> str:
    sid = request.cookies.get(settings.session_cookie, "")
    # an unusable cookie is replaced rather than rejected
    if not is_valid_session_id(sid):
        sid = uuid.uuid4().hex
        response.set_cookie(settings.session_cookie, sid, httponly=True, samesite="lax")
    return sid


app = FastAPI(
    title="Contract Source Verifier API",
    version="v1",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def size_limit_middleware(request: Request, call_next):
    body = await request.body()
    if len(body) > settings.max_body_bytes:
        return JSONResponse(status_code=413, content={"schema": "api.error.v1", "error": "BODY_TOO_LARGE"})
    request._body = body
    return await call_next(request)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    return await MetricsMiddleware()(request, call_next)


@app.exception_handler(VerifierError)
async def verifier_error_handler(request: Request, exc: VerifierError):
    print(f"FAIL_API_REQUEST path={request.url.path} reason={exc.reason}")
    return JSONResponse(status_code=exc.http_status, content=exc.as_dict())


def _is_multipart(request: Request) -> bool:
    return (request.headers.get("content-type", "") or "").startswith("multipart/form-data")


async def _form_files(request: Request) -> List[SourceFile]:
    form = await request.form()
    out: List[SourceFile] = []
    for up in form.getlist("files"):
        if isinstance(up, str):
            continue
        out.append(SourceFile(path=str(up.filename or "file"), content=await up.read()))
    return out


async def _json_body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError as e:
        raise BadRequest("Request body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def _parse(model, payload: dict):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise BadRequest(f"Invalid request: {e.errors()[0].get('msg', 'bad field')}") from e


@app.get("/v1/health")
def health():
    return service.health_payload(settings)


@app.get("/v1/status", dependencies=[Depends(require_scopes(["read"], get_settings))])
def status():
    return service.api_status(settings)


@app.get("/v1/metrics")
def metrics():
    return metrics_response()


@app.get("/session/data", dependencies=[Depends(require_scopes(["read"], get_settings))])
@app.get("/session-data", dependencies=[Depends(require_scopes(["read"], get_settings))])
def session_data(
    session_id: str = Depends(get_session_id),
    verifier: SessionVerifier = Depends(get_verifier),
):
    return service.session_payload(verifier.snapshot(session_id))


@app.post("/session/input-files", dependencies=[Depends(require_scopes(["upload"], get_settings))])
@app.post("/input-files", dependencies=[Depends(require_scopes(["upload"], get_settings))])
async def input_files(
    request: Request,
    url: Optional[str] = Query(None),
    session_id: str = Depends(get_session_id),
    verifier: SessionVerifier = Depends(get_verifier),
):
    if url:
        files = [await service.fetch_remote_file(url, settings.max_body_bytes, settings.service_timeout_s)]
    elif _is_multipart(request):
        files = await _form_files(request)
    else:
        files = service.files_from_json(_parse(InputFilesRequest, await _json_body(request)).files)

    if not files:
        raise BadRequest("There should be files in the <files> field")

    new_count = await verifier.upload_files(session_id, files)
    print(f"PASS_API_INPUT_FILES session={session_id} received={len(files)} new={new_count}")
    return service.session_payload(verifier.snapshot(session_id))


@app.post("/session/clear", dependencies=[Depends(require_scopes(["upload"], get_settings))])
@app.post("/restart-session", dependencies=[Depends(require_scopes(["upload"], get_settings))])
def clear_session(
    session_id: str = Depends(get_session_id),
    verifier: SessionVerifier = Depends(get_verifier),
):
    verifier.reset_session(session_id)
    return PlainTextResponse("Session successfully cleared")


@app.post("/session/verify-validated", dependencies=[Depends(require_scopes(["verify"], get_settings))])
@app.post("/verify-validated", dependencies=[Depends(require_scopes(["verify"], get_settings))])
async def verify_validated(
    req: VerifyValidatedRequest,
    session_id: str = Depends(get_session_id),
    verifier: SessionVerifier = Depends(get_verifier),
):
    raw = []
    for c in req.contracts:
        address = validate_addresses(c.address)[0] if c.address else ""
        chain_id = check_chain_id(c.chainId, settings.supported_chains) if c.chainId else ""
        raw.append({"verificationId": c.verificationId, "address": address, "chainId": chain_id})
    snapshot = await verifier.verify_validated(session_id, parse_targets(raw))
    return service.session_payload(snapshot)


@app.post("/session/verify/etherscan", dependencies=[Depends(require_scopes(["verify"], get_settings))])
async def session_verify_etherscan(
    req: EtherscanRequest,
    session_id: str = Depends(get_session_id),
    verifier: SessionVerifier = Depends(get_verifier),
):
    address = validate_addresses(req.address)[0]
    chain_id = check_chain_id(req.chainId, settings.supported_chains)
    snapshot = await verifier.verify_from_etherscan_with_session(session_id, chain_id, address)
    print(f"PASS_API_SESSION_ETHERSCAN session={session_id} chain={chain_id} address={address}")
    return service.session_payload(snapshot)


@app.post("/verify/etherscan", dependencies=[Depends(require_scopes(["verify"], get_settings))])
async def verify_etherscan(req: EtherscanRequest, verifier: SessionVerifier = Depends(get_verifier)):
    address = validate_addresses(req.address)[0]
    chain_id = check_chain_id(req.chainId, settings.supported_chains)
    matches = await verifier.verify_from_etherscan(chain_id, address)
    return service.result_payload(matches)


@app.post("/verify", dependencies=[Depends(require_scopes(["verify"], get_settings))])
@app.post("/", dependencies=[Depends(require_scopes(["verify"], get_settings))])
async def verify(request: Request, verifier: SessionVerifier = Depends(get_verifier)):
    if _is_multipart(request):
        form = await request.form()
        req = _parse(
            VerifyRequest,
            {
                "address": form.get("address") or "",
                "chain": form.get("chain") or "",
                "chosenContract": form.get("chosenContract") or None,
            },
        )
        files = await _form_files(request)
    else:
        req = _parse(VerifyRequest, await _json_body(request))
        files = service.files_from_json(req.files)

    addresses = validate_addresses(req.address)
    chain_id = check_chain_id(req.chain, settings.supported_chains)
    matches = await verifier.verify_direct(addresses, chain_id, files, req.chosenContract)

    statuses = ",".join(str(m.status) for m in matches)
    print(f"PASS_API_VERIFY chain={chain_id} addresses={len(addresses)} status={statuses}")
    return service.result_payload(matches)


@app.post("/verify/create2", dependencies=[Depends(require_scopes(["verify"], get_settings))])
async def verify_create2(req: Create2Request, verifier: SessionVerifier = Depends(get_verifier)):
    deployer = validate_addresses(req.deployerAddress)[0]
    if not req.salt.strip():
        raise BadRequest("salt is required")
    match = await verifier.verify_create2(
        deployer,
        req.salt.strip(),
        service.files_from_json(req.files),
        constructor_args=req.constructorArgs,
        chosen_contract=req.chosenContract,
    )
    print(f"PASS_API_VERIFY_CREATE2 deployer={deployer} status={match.status}")
    return service.result_payload([match])


@app.get("/check-by-addresses", dependencies=[Depends(require_scopes(["read"], get_settings))])
@app.get("/checkByAddresses", dependencies=[Depends(require_scopes(["read"], get_settings))])
def check_by_addresses(
    addresses: str = Query(...),
    chainIds: str = Query(...),
    verifier: SessionVerifier = Depends(get_verifier),
):
    return verifier.batch_status(
        validate_addresses(addresses),
        validate_chain_ids(chainIds, settings.supported_chains),
    )


@app.get("/check-all-by-addresses", dependencies=[Depends(require_scopes(["read"], get_settings))])
@app.get("/checkAllByAddresses", dependencies=[Depends(require_scopes(["read"], get_settings))])
def check_all_by_addresses(
    addresses: str = Query(...),
    chainIds: str = Query(...),
    verifier: SessionVerifier = Depends(get_verifier),
):
    return verifier.batch_status_all(
        validate_addresses(addresses),
        validate_chain_ids(chainIds, settings.supported_chains),
    )

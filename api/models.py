from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.versioning import build_meta


class BaseAPIResponse(BaseModel):
    api_version: str
    repo_version: str
    build_git_sha: str

    @classmethod
    def with_meta(cls, **kwargs):
        m = build_meta()
        return cls(
            api_version=m.api_version,
            repo_version=m.repo_version,
            build_git_sha=m.build_git_sha,
            **kwargs,
        )


class _Base(BaseAPIResponse):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class HealthResponse(_Base):
    schema_: str = Field("api.health.v1", alias="schema")
    ok: bool = True
    host: Optional[str] = None
    port: Optional[int] = None
    session_schema_version: Optional[str] = None


class APIStatusResponse(_Base):
    schema_: str = Field("api.status.v1", alias="schema")
    ok: bool
    host: str
    port: int
    session_backend: str
    max_session_bytes: int
    supported_chains: List[str]
    contracts_digest: str
    ts_ms: int


class SessionDataResponse(_Base):
    schema_: str = Field("api.session_data.v1", alias="schema")
    contracts: List[Dict[str, Any]]
    unused: List[str]
    files: List[str]


class VerifyResultResponse(_Base):
    schema_: str = Field("api.verify_result.v1", alias="schema")
    result: List[Dict[str, Any]]


class SendableContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    verificationId: str
    address: str = ""
    chainId: str = ""


class VerifyValidatedRequest(BaseModel):
    contracts: List[SendableContract]


class EtherscanRequest(BaseModel):
    address: str
    chainId: str


class InputFilesRequest(BaseModel):
    files: Dict[str, str]


class VerifyRequest(BaseModel):
    address: str
    chain: str
    files: Optional[Dict[str, str]] = None
    chosenContract: Optional[int] = None


class Create2Request(BaseModel):
    deployerAddress: str
    salt: str
    constructorArgs: List[Any] = []
    files: Optional[Dict[str, str]] = None
    chosenContract: Optional[int] = None

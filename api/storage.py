from __future__ import annotations

import copy
import json
import re
from pathlib import Path
from typing import Dict

from api.settings import APISettings
from verifier.collaborators import SessionStore
from verifier.models import Session


_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_ID_RE.match(session_id or ""))


def _check_id(session_id: str) -> str:
    if not is_valid_session_id(session_id):
        raise ValueError(f"BAD_SESSION_ID {session_id!r}")
    return session_id


def _encode(session: Session) -> bytes:
    return (json.dumps(session.as_dict(), sort_keys=True, separators=(",", ":")) + "\n").encode("utf-8")


def _decode(raw: bytes) -> Session:
    return Session.from_dict(json.loads(raw.decode("utf-8")))


class MemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def load(self, session_id: str) -> Session:
        s = self._sessions.get(_check_id(session_id))
        return copy.deepcopy(s) if s is not None else Session(id=session_id)

    def save(self, session: Session) -> None:
        self._sessions[_check_id(session.id)] = copy.deepcopy(session)

    def destroy(self, session_id: str) -> None:
        self._sessions.pop(_check_id(session_id), None)


class FilesystemSessionStore(SessionStore):
    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, session_id: str) -> Path:
        return self.root / f"{_check_id(session_id)}.json"

    def load(self, session_id: str) -> Session:
        p = self._path(session_id)
        if not p.exists():
            return Session(id=session_id)
        return _decode(p.read_bytes())

    def save(self, session: Session) -> None:
        p = self._path(session.id)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(".tmp")
        tmp.write_bytes(_encode(session))
        tmp.replace(p)

    def destroy(self, session_id: str) -> None:
        p = self._path(session_id)
        if p.exists():
            p.unlink()


class S3SessionStore(SessionStore):
    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str = "",
        endpoint_url: str = "",
        client: object | None = None,
    ):
        self.bucket = bucket.strip()
        self.prefix = prefix.strip()
        if self.prefix and not self.prefix.endswith("/"):
            self.prefix += "/"
        self.region = region.strip()
        self.endpoint_url = endpoint_url.strip()
        self._client = client

    def _s3(self):
        if self._client is not None:
            return self._client

        import boto3

        kw = {}
        if self.region:
            kw["region_name"] = self.region
        if self.endpoint_url:
            kw["endpoint_url"] = self.endpoint_url
        self._client = boto3.client("s3", **kw)
        return self._client

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}sessions/{_check_id(session_id)}.json"

    def load(self, session_id: str) -> Session:
        from botocore.exceptions import ClientError

        try:
            obj = self._s3().get_object(Bucket=self.bucket, Key=self._key(session_id))
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code") or "")
            if code in ("NoSuchKey", "404"):
                return Session(id=session_id)
            raise
        return _decode(obj["Body"].read())

    def save(self, session: Session) -> None:
        self._s3().put_object(
            Bucket=self.bucket,
            Key=self._key(session.id),
            Body=_encode(session),
            ContentType="application/json",
        )

    def destroy(self, session_id: str) -> None:
        self._s3().delete_object(Bucket=self.bucket, Key=self._key(session_id))


def build_session_store(settings: APISettings) -> SessionStore:
    backend = settings.session_backend
    if backend == "s3":
        return S3SessionStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    if backend == "memory":
        return MemorySessionStore()
    return FilesystemSessionStore(root=settings.session_root)

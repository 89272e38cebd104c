"""
Shared fixtures for the bgcompare tests.

No test talks to the network: `FakeSession` stands in for `requests.Session`
and `FakeReplicate` plays the prediction API behind it.
"""

from __future__ import annotations

from io import BytesIO
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import numpy as np
from PIL import Image
import pytest
import requests

from bgcompare.config import Settings
from bgcompare.image_io import encode_data_uri
from bgcompare.replicate_client import PredictionClient

NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b"", text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Records every call and answers through `handler(method, url, **kwargs)`."""

    def __init__(self, handler: Callable[..., Any]):
        self.handler = handler
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append((method.upper(), url, kwargs))
        result = self.handler(method.upper(), url, **kwargs)
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)


class FakeReplicate:
    """
    Scripted stand-in for the predictions endpoints.

    `script(version, "starting", "processing", "succeeded", output=...)` makes
    creation return the first status and each poll the next one. Once a
    script runs out, polls keep answering "processing".
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._scripts: Dict[str, List[Dict[str, Any]]] = {}
        self._pending: Dict[str, List[Dict[str, Any]]] = {}
        self._versions: Dict[str, str] = {}
        self._counter = 0
        self.create_failures: Dict[str, Tuple[int, Any]] = {}
        self.poll_failures: Set[str] = set()
        self.created: List[Dict[str, Any]] = []

    def script(self, version: str, *statuses: str, output: Any = None, error: Optional[str] = None) -> None:
        snapshots = [{"status": s, "output": None, "error": None} for s in statuses]
        snapshots[-1]["output"] = output
        snapshots[-1]["error"] = error
        self._scripts[version] = snapshots

    def __call__(self, method: str, url: str, **kwargs) -> FakeResponse:
        if method == "POST" and url.endswith("/predictions"):
            body = kwargs["json"]
            version = body["version"]
            with self._lock:
                self.created.append(body)
                if version in self.create_failures:
                    status, payload = self.create_failures[version]
                    return FakeResponse(status, payload)
                self._counter += 1
                prediction_id = f"pred-{self._counter}"
                snapshots = [dict(s) for s in self._scripts.get(version, [{"status": "succeeded", "output": None, "error": None}])]
                first = snapshots.pop(0)
                self._pending[prediction_id] = snapshots
                self._versions[prediction_id] = version
            return FakeResponse(201, {"id": prediction_id, **first})

        if method == "GET" and "/predictions/" in url:
            prediction_id = url.rsplit("/", 1)[-1]
            with self._lock:
                version = self._versions[prediction_id]
                if version in self.poll_failures:
                    return FakeResponse(502, {"detail": "bad gateway"})
                remaining = self._pending[prediction_id]
                snapshot = remaining.pop(0) if remaining else {"status": "processing", "output": None, "error": None}
            return FakeResponse(200, {"id": prediction_id, **snapshot})

        return FakeResponse(404, {"detail": "not found"})


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with instant polling and a throwaway data dir. No real API key."""
    return Settings(
        replicate_api_key=None,
        poll_interval_seconds=0,
        poll_timeout_seconds=5,
        data_dir=tmp_path,
    )


@pytest.fixture
def fake_replicate() -> FakeReplicate:
    return FakeReplicate()


@pytest.fixture
def replicate_session(fake_replicate: FakeReplicate) -> FakeSession:
    return FakeSession(fake_replicate)


@pytest.fixture
def make_session() -> Callable[[Callable[..., Any]], FakeSession]:
    return FakeSession


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    return FakeResponse


@pytest.fixture
def client(settings: Settings, replicate_session: FakeSession) -> PredictionClient:
    return PredictionClient.from_settings("r8_test", settings, session=replicate_session)


@pytest.fixture
def green_screen_png() -> bytes:
    """4x2 image: left half pure green, right half a red subject."""
    data = np.zeros((2, 4, 4), dtype=np.uint8)
    data[:, :2] = (0, 255, 0, 255)
    data[:, 2:] = (200, 30, 30, 255)
    out = BytesIO()
    Image.fromarray(data).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def green_screen_uri(green_screen_png: bytes) -> str:
    return encode_data_uri(green_screen_png, "image/png")


@pytest.fixture
def no_json() -> object:
    """Payload marker for a FakeResponse whose body is not JSON."""
    return NO_JSON

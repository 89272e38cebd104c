"""
Thin client for Replicate predictions.

A prediction is created once and then polled at a fixed interval until it
reaches a terminal status. Polling can be bounded by an attempt count or a
deadline and interrupted through a `threading.Event`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from . import config
from .errors import CreationError, PollCancelled, PollError, PollTimeout

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


@dataclass
class Prediction:
    id: str
    status: str
    output: Any = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "Prediction":
        error = payload.get("error")
        return cls(
            id=str(payload.get("id", "")),
            status=str(payload.get("status", "starting")),
            output=payload.get("output"),
            error=str(error) if error else None,
            raw=payload,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def _response_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _prediction_from_response(resp: requests.Response) -> Prediction:
    payload = resp.json()
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return Prediction.from_json(payload)


class PredictionClient:
    """Create and poll predictions against the Replicate HTTP API."""

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = "https://api.replicate.com/v1",
        session: Optional[requests.Session] = None,
        timeout_seconds: int = 30,
        poll_interval_seconds: float = 1.0,
        poll_max_attempts: Optional[int] = None,
        poll_timeout_seconds: Optional[float] = None,
    ):
        if not api_token:
            raise ValueError("A Replicate API token is required")
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_max_attempts = poll_max_attempts
        self.poll_timeout_seconds = poll_timeout_seconds

    @classmethod
    def from_settings(
        cls,
        api_token: str,
        settings: Optional[config.Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> "PredictionClient":
        settings = settings or config.get_settings()
        return cls(
            api_token,
            base_url=settings.replicate_base_url,
            session=session,
            timeout_seconds=settings.request_timeout_seconds,
            poll_interval_seconds=settings.poll_interval_seconds,
            poll_max_attempts=settings.poll_max_attempts,
            poll_timeout_seconds=settings.poll_timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Token {self.api_token}",
            "Content-Type": "application/json",
        }

    def create_prediction(
        self,
        version: str,
        image: str,
        input_key: str = "image",
        extra_input: Optional[Dict[str, Any]] = None,
    ) -> Prediction:
        """Start a prediction for `version` with `image` (data URI or URL) as input."""
        body = {"version": version, "input": {input_key: image, **(extra_input or {})}}
        try:
            resp = self.session.post(
                f"{self.base_url}/predictions",
                json=body,
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise CreationError(f"Could not reach prediction API: {exc}") from exc

        if not resp.ok:
            payload = _response_body(resp)
            logger.error("create_prediction %s failed status=%s body=%s", version, resp.status_code, payload)
            raise CreationError(
                f"Failed to create prediction ({resp.status_code}): {payload}",
                status_code=resp.status_code,
                body=payload,
            )

        try:
            prediction = _prediction_from_response(resp)
        except ValueError as exc:
            raise CreationError(
                f"Invalid prediction response: {exc}", status_code=resp.status_code, body=resp.text
            ) from exc
        logger.info("created prediction id=%s version=%s status=%s", prediction.id, version, prediction.status)
        return prediction

    def get_prediction(self, prediction_id: str) -> Prediction:
        try:
            resp = self.session.get(
                f"{self.base_url}/predictions/{prediction_id}",
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise PollError(f"Failed to check prediction status: {exc}") from exc

        if not resp.ok:
            raise PollError(
                f"Failed to check prediction status ({resp.status_code})",
                status_code=resp.status_code,
                body=_response_body(resp),
            )
        try:
            return _prediction_from_response(resp)
        except ValueError as exc:
            raise PollError(
                f"Invalid prediction status response: {exc}", status_code=resp.status_code, body=resp.text
            ) from exc

    def poll_prediction(
        self,
        prediction: Prediction,
        on_update: Optional[Callable[[Prediction], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Prediction:
        """
        Poll until `prediction` reaches a terminal status and return the final snapshot.

        `on_update` sees the starting snapshot and then every polled snapshot in
        order. A job ending in `failed` is returned, not raised.

        Raises:
            PollError: a status request failed.
            PollTimeout: the attempt or deadline ceiling was reached first.
            PollCancelled: `cancel` was set.
        """
        if on_update:
            on_update(prediction)

        deadline = None
        if self.poll_timeout_seconds is not None:
            deadline = time.monotonic() + self.poll_timeout_seconds

        attempts = 0
        while not prediction.is_terminal:
            if self.poll_max_attempts is not None and attempts >= self.poll_max_attempts:
                raise PollTimeout(
                    f"Prediction {prediction.id} still {prediction.status} after {attempts} polls"
                )
            if deadline is not None and time.monotonic() >= deadline:
                raise PollTimeout(
                    f"Prediction {prediction.id} still {prediction.status} after {self.poll_timeout_seconds}s"
                )
            if cancel is not None:
                if cancel.wait(self.poll_interval_seconds):
                    raise PollCancelled(f"Polling of prediction {prediction.id} was cancelled")
            else:
                time.sleep(self.poll_interval_seconds)

            prediction = self.get_prediction(prediction.id)
            attempts += 1
            logger.debug("poll id=%s attempt=%d status=%s", prediction.id, attempts, prediction.status)
            if on_update:
                on_update(prediction)

        logger.info("prediction id=%s finished status=%s after %d polls", prediction.id, prediction.status, attempts)
        return prediction

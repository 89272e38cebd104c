"""
Fan a single input image out to every selected model and collect the results.

Each model runs its own create -> poll sequence on a worker thread. A model's
errors end up in that model's `ModelJob.error`; they never stop the others.
`run_all` returns once every job is terminal.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from .errors import BgCompareError
from .models import JobStatus, ModelJob, ModelSpec, normalize_output
from .replicate_client import Prediction, PredictionClient

logger = logging.getLogger(__name__)

JobCallback = Callable[[str, ModelJob], None]


class ComparisonOrchestrator:
    def __init__(self, client: PredictionClient):
        self.client = client
        self._lock = threading.RLock()
        self._jobs: Dict[str, ModelJob] = {}

    def snapshot(self) -> Dict[str, ModelJob]:
        with self._lock:
            return {model_id: job.model_copy(deep=True) for model_id, job in self._jobs.items()}

    def _update(self, model_id: str, on_update: Optional[JobCallback], **changes) -> ModelJob:
        # callbacks run under the lock so that consumers see one update at a time
        with self._lock:
            job = self._jobs[model_id].model_copy(update=changes)
            self._jobs[model_id] = job
            if on_update:
                on_update(model_id, job.model_copy(deep=True))
        return job

    def _run_one(
        self,
        model: ModelSpec,
        image: str,
        on_update: Optional[JobCallback],
        cancel: Optional[threading.Event],
    ) -> None:
        def apply_snapshot(prediction: Prediction) -> None:
            self._update(
                model.id,
                on_update,
                status=JobStatus.from_upstream(prediction.status),
                output=normalize_output(prediction.output),
                error=prediction.error,
            )

        try:
            self._update(model.id, on_update, status=JobStatus.STARTING)
            prediction = self.client.create_prediction(model.version, image, input_key=model.inputKey)
            final = self.client.poll_prediction(prediction, on_update=apply_snapshot, cancel=cancel)
            if final.status != "succeeded":
                self._update(
                    model.id,
                    on_update,
                    status=JobStatus.FAILED,
                    error=final.error or f"Prediction {final.status}",
                )
        except BgCompareError as exc:
            logger.warning("model %s failed: %s", model.id, exc.message)
            self._update(model.id, on_update, status=JobStatus.FAILED, error=exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("model %s crashed", model.id)
            self._update(model.id, on_update, status=JobStatus.FAILED, error=str(exc) or type(exc).__name__)

    def run_all(
        self,
        models: Sequence[ModelSpec],
        image: str,
        on_update: Optional[JobCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, ModelJob]:
        """
        Run every model against `image` concurrently.

        Returns one terminal `ModelJob` per model, keyed by model id.
        """
        models = list(models)
        with self._lock:
            self._jobs = {m.id: ModelJob(modelId=m.id, name=m.name) for m in models}
        if not models:
            return {}

        logger.info("comparison started models=%s", [m.id for m in models])
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(models)) as executor:
            futures: List[concurrent.futures.Future] = [
                executor.submit(self._run_one, model, image, on_update, cancel) for model in models
            ]
            concurrent.futures.wait(futures)

        results = self.snapshot()
        logger.info(
            "comparison finished %s",
            {model_id: job.status.value for model_id, job in results.items()},
        )
        return results

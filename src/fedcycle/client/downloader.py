"""Concurrent retrieval of the plan and model of an accepted cycle.

The two fetches are independent, so they run as sibling tasks and are
joined. The step succeeds only when both fetches and both decodes succeed;
the first failure cancels the other fetch and nothing is delivered.
"""

import asyncio
import io
import logging
import os
import tempfile
from typing import Any, Callable, Optional

import torch

from fedcycle.communication.transport import ArtifactSource
from fedcycle.core.errors import DecodeFailure
from fedcycle.core.types import (
    ArtifactKind,
    CycleAccepted,
    ModelArtifact,
    PlanArtifact,
    TrainingPlan,
)


def decode_model_state(data: bytes) -> Any:
    """Decode a serialized model state (tensors only) onto the CPU"""
    return torch.load(io.BytesIO(data), map_location='cpu', weights_only=True)


def extract_plan_payload(data: bytes) -> bytes:
    """Return the executable part of a plan blob.

    Plans are requested as TorchScript, so the blob is the payload.
    """
    if not data:
        raise ValueError("empty plan")
    return data


def load_plan_module(path: str) -> Any:
    """Load a TorchScript plan from disk"""
    return torch.jit.load(path, map_location='cpu')


class ArtifactDownloader:
    """Fetches and decodes the plan and model for a cycle"""

    def __init__(
        self,
        source: ArtifactSource,
        model_decoder: Callable[[bytes], Any] = decode_model_state,
        plan_extractor: Callable[[bytes], bytes] = extract_plan_payload,
        plan_loader: Callable[[str], Any] = load_plan_module,
        plan_dir: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize artifact downloader.

        Args:
            source: Where raw artifact bytes come from
            model_decoder: Turns model bytes into parameters
            plan_extractor: Turns plan bytes into a file-loadable payload
            plan_loader: Loads the plan from a file path
            plan_dir: Directory for temporary plan files (system temp if None)
            logger: Logger instance
        """
        self.source = source
        self.model_decoder = model_decoder
        self.plan_extractor = plan_extractor
        self.plan_loader = plan_loader
        self.plan_dir = plan_dir
        self.logger = logger or logging.getLogger("artifact_downloader")

    async def fetch_model(self, cycle: CycleAccepted, worker_id: str) -> ModelArtifact:
        data = await self.source.fetch_artifact(
            ArtifactKind.MODEL, cycle.model_id, worker_id, cycle.request_key
        )
        try:
            params = self.model_decoder(data)
        except Exception as e:
            raise DecodeFailure(ArtifactKind.MODEL.value, str(e)) from e
        return ModelArtifact(params=params, num_bytes=len(data))

    def _write_plan_file(self, payload: bytes) -> str:
        """Write the plan payload to a unique ``.pt`` file.

        The execution engine loads plans from a path, not from memory.
        """
        path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='wb', suffix='.pt', dir=self.plan_dir, delete=False
            ) as f:
                path = f.name
                f.write(payload)
        except OSError as e:
            if path is not None and os.path.exists(path):
                os.remove(path)
            raise DecodeFailure(
                ArtifactKind.PLAN.value, f"cannot write plan file: {e}"
            ) from e
        return path

    async def fetch_plan(self, cycle: CycleAccepted, worker_id: str) -> PlanArtifact:
        data = await self.source.fetch_artifact(
            ArtifactKind.PLAN, cycle.plan_id, worker_id, cycle.request_key
        )
        try:
            payload = self.plan_extractor(data)
        except Exception as e:
            raise DecodeFailure(ArtifactKind.PLAN.value, str(e)) from e

        path = self._write_plan_file(payload)

        try:
            module = self.plan_loader(path)
        except Exception as e:
            os.remove(path)
            raise DecodeFailure(ArtifactKind.PLAN.value, str(e)) from e

        return PlanArtifact(module=module, path=path)

    async def download(self, cycle: CycleAccepted, worker_id: str) -> TrainingPlan:
        """Fetch model and plan concurrently and join them.

        Args:
            cycle: Accepted cycle (model id, plan id, request key)
            worker_id: Worker id from authentication

        Returns:
            Plan and model, both decoded

        Raises:
            TransportFailure: A fetch failed
            DecodeFailure: A fetched artifact could not be decoded
        """
        model_task = asyncio.ensure_future(self.fetch_model(cycle, worker_id))
        plan_task = asyncio.ensure_future(self.fetch_plan(cycle, worker_id))

        done, pending = await asyncio.wait(
            {model_task, plan_task}, return_when=asyncio.FIRST_EXCEPTION
        )

        # Retrieve every finished task's exception, model first
        errors = [
            task.exception() for task in (model_task, plan_task)
            if task in done and not task.cancelled()
        ]
        failure = next((e for e in errors if e is not None), None)

        if failure is None:
            plan, model = plan_task.result(), model_task.result()
            self.logger.info(
                f"Downloaded plan {cycle.plan_id} and model {cycle.model_id} "
                f"({model.num_bytes} bytes)"
            )
            return TrainingPlan(plan=plan, model=model)

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if not plan_task.cancelled() and plan_task.exception() is None:
            plan_task.result().cleanup()

        self.logger.warning(f"Artifact download failed: {failure}")
        raise failure

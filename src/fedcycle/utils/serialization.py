"""Serialization helpers for training diffs."""

import io
from typing import Any, Union

import numpy as np
import torch

DiffLike = Union[bytes, bytearray, memoryview, torch.Tensor, np.ndarray, list, tuple, dict]


def _to_tensor(value: Any) -> torch.Tensor:
    if isinstance(value, torch.Tensor):
        return value.detach().cpu()
    if isinstance(value, np.ndarray):
        return torch.from_numpy(np.ascontiguousarray(value))
    return torch.tensor(value, dtype=torch.float32)


def serialize_diff(diff: DiffLike) -> bytes:
    """Serialize a training result to the bytes sent in a report.

    Raw bytes pass through unchanged. Tensors, arrays, lists of them and
    state dicts are serialized with torch.

    Args:
        diff: Training result

    Returns:
        Diff bytes
    """
    if isinstance(diff, (bytes, bytearray, memoryview)):
        return bytes(diff)

    if isinstance(diff, dict):
        payload = {name: _to_tensor(value) for name, value in diff.items()}
    elif isinstance(diff, (list, tuple)):
        payload = [_to_tensor(value) for value in diff]
    elif isinstance(diff, (torch.Tensor, np.ndarray)):
        payload = _to_tensor(diff)
    else:
        raise TypeError(f"Cannot serialize diff of type {type(diff).__name__}")

    buffer = io.BytesIO()
    torch.save(payload, buffer)
    return buffer.getvalue()


def deserialize_diff(data: bytes) -> Any:
    """Inverse of serialize_diff for non-raw diffs"""
    return torch.load(io.BytesIO(data), map_location='cpu', weights_only=True)

"""
Inference engines for the RMBG segmentation network.

Two serializations of the same network are supported:
 - an ONNX export, run with onnxruntime,
 - a TorchScript export, run with torch on CUDA / MPS / CPU.

Both expose ``run({"input": tensor}) -> {"output": mask, ...}`` over numpy
arrays so the rest of the pipeline never touches framework types. Engines are
not safe for concurrent ``run`` calls; callers go through ``ModelContext``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

import numpy as np
import onnxruntime as ort
import torch

from . import config
from .errors import ModelLoadError

logger = logging.getLogger(__name__)

ONNX_SUFFIXES = {".onnx"}
TORCHSCRIPT_SUFFIXES = {".pt", ".pth", ".torchscript"}


class InferenceEngine(Protocol):
    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...


def resolve_torch_device(preference: str = "auto") -> torch.device:
    """Prefer CUDA -> Apple MPS -> CPU unless a device is forced."""
    if preference != "auto":
        return torch.device(preference)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():  # type: ignore[attr-defined]
        return torch.device("mps")
    return torch.device("cpu")


def onnx_providers(preference: str = "auto") -> List[str]:
    """Pick onnxruntime execution providers matching the configured device."""
    available = ort.get_available_providers()
    if preference in ("auto", "cuda") and "CUDAExecutionProvider" in available:
        return ["CUDAExecutionProvider", "CPUExecutionProvider"]
    if preference in ("auto", "mps") and "CoreMLExecutionProvider" in available:
        return ["CoreMLExecutionProvider", "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


class OnnxEngine:
    def __init__(self, session: ort.InferenceSession):
        self.session = session
        self.output_names = [o.name for o in session.get_outputs()]

    @classmethod
    def from_path(cls, model_path: Path, settings: config.Settings) -> "OnnxEngine":
        options = ort.SessionOptions()
        if settings.onnx_intra_op_threads:
            options.intra_op_num_threads = settings.onnx_intra_op_threads
        providers = onnx_providers(settings.inference_device)
        session = ort.InferenceSession(str(model_path), sess_options=options, providers=providers)
        logger.info("ONNX session ready providers=%s", session.get_providers())
        return cls(session)

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        results = self.session.run(None, dict(inputs))
        return dict(zip(self.output_names, results))


def _first_tensor(result: Any) -> Optional[torch.Tensor]:
    """TorchScript exports return a tensor, a tuple/list, or a dict of tensors."""
    if isinstance(result, torch.Tensor):
        return result
    if isinstance(result, (list, tuple)):
        for item in result:
            found = _first_tensor(item)
            if found is not None:
                return found
    if isinstance(result, dict):
        if "output" in result:
            return _first_tensor(result["output"])
        for item in result.values():
            found = _first_tensor(item)
            if found is not None:
                return found
    return None


class TorchScriptEngine:
    def __init__(self, module: torch.nn.Module, device: torch.device):
        self.module = module
        self.device = device

    @classmethod
    def from_path(cls, model_path: Path, settings: config.Settings) -> "TorchScriptEngine":
        device = resolve_torch_device(settings.inference_device)
        module = torch.jit.load(str(model_path), map_location=device)
        module.eval()
        logger.info("TorchScript model ready on device: %s", device)
        return cls(module, device)

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        tensor = torch.from_numpy(inputs["input"]).to(self.device)
        with torch.no_grad():
            result = self.module(tensor)
        output = _first_tensor(result)
        if output is None:
            # Surfaces as a missing output rather than an empty mask.
            return {}
        return {"output": output.detach().float().cpu().numpy()}


def load_engine(model_path: Path, settings: Optional[config.Settings] = None) -> InferenceEngine:
    """Load the engine matching the file suffix of ``model_path``."""
    settings = settings or config.get_settings()
    model_path = Path(model_path)
    if not model_path.is_file():
        raise ModelLoadError(f"RMBG model not found at {model_path}")

    suffix = model_path.suffix.lower()
    if suffix in ONNX_SUFFIXES:
        loader = OnnxEngine.from_path
    elif suffix in TORCHSCRIPT_SUFFIXES:
        loader = TorchScriptEngine.from_path
    else:
        raise ModelLoadError(f"Unsupported model format '{suffix}' for {model_path}")

    logger.info("Loading RMBG model from %s", model_path)
    try:
        return loader(model_path, settings)
    except Exception as exc:  # noqa: BLE001
        raise ModelLoadError(f"Failed to load RMBG model from {model_path}: {exc}") from exc

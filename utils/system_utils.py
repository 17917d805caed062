from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING, Final

from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from pathlib import Path

__all__: list[str] = ["SystemUtils"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)

ALL_GPUS_LABEL: Final[str] = "All GPUs (-1)"
DEFAULT_GPU_LABEL: Final[str] = "GPU 0: Default GPU"
NVIDIA_SMI_TIMEOUT: Final[float] = 5.0
MODEL_SUFFIX: Final[str] = ".gguf"


class SystemUtils:
    """Host inspection helpers for choosing a GPU and a model file."""

    @staticmethod
    def list_gpus() -> list[str]:
        """GPU choices as display labels.

        The first entry is always ``"All GPUs (-1)"``. When ``nvidia-smi`` is missing or
        reports nothing, a single default GPU is listed.

        Returns:
            list[str]: Labels such as ``"GPU 1: NVIDIA GeForce RTX 4070"``.
        """
        gpus: list[str] = []
        executable: str | None = shutil.which("nvidia-smi")
        if executable is None:
            logger.info("nvidia-smi not found, using default GPU")
        else:
            try:
                completed = subprocess.run(  # noqa: S603
                    [executable, "--query-gpu=index,name", "--format=csv,noheader"],
                    capture_output=True,
                    text=True,
                    timeout=NVIDIA_SMI_TIMEOUT,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as err:
                logger.warning("Failed to detect GPUs, using default: %s", err)
            else:
                for line in completed.stdout.splitlines():
                    gpu_id, sep, name = line.partition(",")
                    if sep:
                        gpus.append(f"GPU {gpu_id.strip()}: {name.strip()}")

        if not gpus:
            gpus.append(DEFAULT_GPU_LABEL)
        return [ALL_GPUS_LABEL, *gpus]

    @staticmethod
    def extract_gpu_id(label: str) -> int:
        """Parse the id out of a ``list_gpus`` label; -1 for all GPUs or unparsable labels."""
        if label.startswith("All GPUs"):
            return -1
        id_part: str = label.split(":", 1)[0].replace("GPU", "").strip()
        try:
            return int(id_part)
        except ValueError:
            logger.error("Failed to parse GPU ID from: '%s'", label)
            return -1

    @staticmethod
    def list_models(models_dir: Path) -> list[str]:
        """Sorted ``*.gguf`` file names in ``models_dir``; empty when the directory is missing."""
        if not models_dir.is_dir():
            return []
        try:
            return sorted(path.name for path in models_dir.iterdir() if path.is_file() and path.suffix == MODEL_SUFFIX)
        except OSError as err:
            logger.error("Failed to list model files in '%s': %s", models_dir, err)
            return []

"""
Hardware profiles: built-in presets and file loading.

Hardware detection happens elsewhere; the advisor receives its result as a
HardwareProfile. Profiles can be written by hand as JSON or YAML using the
model's field names, e.g.::

    gpu_count: 2
    gpu_total_vram_bytes: 171798691840
    gpu_device_name: NVIDIA A100-SXM4-80GB
    gpu_compute_capability: [8, 0]
    simd_level: Avx2
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from accelsense.advisor.models import HardwareProfile, SimdLevel
from accelsense.config import format_validation_error, load_structured_file
from accelsense.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CPU_ONLY = HardwareProfile()

# 2x A100 80GB, one Alveo U250 and an ONNX Runtime NPU on AVX2 hosts.
REFERENCE_CLUSTER = HardwareProfile(
    gpu_count=2,
    gpu_total_vram_bytes=160 * 1024 ** 3,
    gpu_device_name="NVIDIA A100-SXM4-80GB",
    gpu_compute_capability=(8, 0),
    fpga_available=True,
    fpga_device_name="Xilinx Alveo U250",
    npu_available=True,
    simd_level=SimdLevel.AVX2,
)


def load_hardware_profile(
    path: str | Path,
    *,
    gpu_offload_threshold_rows: int | None = None,
) -> HardwareProfile:
    """
    Load a hardware profile from a JSON or YAML file.

    Args:
        path: Profile file
        gpu_offload_threshold_rows: Optional override applied after loading

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    data = load_structured_file(Path(path)) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Hardware profile must contain a mapping: {path}",
            config_key=str(path),
        )

    if gpu_offload_threshold_rows is not None:
        data["gpu_offload_threshold_rows"] = gpu_offload_threshold_rows

    try:
        profile = HardwareProfile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid hardware profile in {path}:\n{format_validation_error(e)}",
            config_key=str(path),
        ) from e

    logger.debug(
        "Loaded hardware profile from %s (gpus=%d, fpga=%s, npu=%s)",
        path, profile.gpu_count, profile.fpga_available, profile.npu_available,
    )
    return profile

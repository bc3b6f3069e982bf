"""Structured configuration for the machine driver and the headless runner."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from omegaconf import OmegaConf

from chix8.constants import DEFAULT_INSTRUCTIONS_PER_FRAME, NUM_KEYS, TIMER_HZ

ERROR_POLICIES = ("raise", "halt", "skip")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class MachineConfig:
    """Driver settings for a ``Chip8`` machine.

    Attributes:
        instructions_per_frame: Steps executed before each timer tick
        timer_hz: Timer tick rate, one tick per video frame
        seed: Seed for the random key used by CXNN
        error_policy: "raise", "halt" or "skip" (skip decode errors, halt on others)
        log_level: Console log level
        use_colors: Colourize console output when attached to a terminal
    """
    instructions_per_frame: int = DEFAULT_INSTRUCTIONS_PER_FRAME
    timer_hz: int = TIMER_HZ
    seed: int = 0
    error_policy: str = "raise"
    log_level: str = "INFO"
    use_colors: bool = True


@dataclass
class RunConfig:
    """Settings for a headless run of a ROM."""
    rom: Optional[str] = None
    frames: int = 600
    hold_keys: List[int] = field(default_factory=list)
    snapshot: Optional[str] = None
    scale: int = 8
    color_scheme: str = "classic"
    realtime: bool = False
    ascii: bool = False
    progress: bool = True
    machine: MachineConfig = field(default_factory=MachineConfig)


def validate_machine_config(config: MachineConfig) -> MachineConfig:
    if config.instructions_per_frame < 1:
        raise ValueError(
            f"instructions_per_frame must be at least 1, got {config.instructions_per_frame}"
        )
    if config.timer_hz <= 0:
        raise ValueError(f"timer_hz must be positive, got {config.timer_hz}")
    if config.error_policy not in ERROR_POLICIES:
        raise ValueError(
            f"Unknown error_policy '{config.error_policy}'. Available: {list(ERROR_POLICIES)}"
        )
    if config.log_level.upper() not in LOG_LEVELS:
        raise ValueError(
            f"Unknown log_level '{config.log_level}'. Available: {list(LOG_LEVELS)}"
        )
    return config


def validate_run_config(config: RunConfig) -> RunConfig:
    validate_machine_config(config.machine)
    if config.frames < 0:
        raise ValueError(f"frames must be non-negative, got {config.frames}")
    if config.scale < 1:
        raise ValueError(f"scale must be at least 1, got {config.scale}")
    for key in config.hold_keys:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"hold_keys entry {key} outside 0-{NUM_KEYS - 1}")
    return config


def load_config(path: Optional[str] = None, overrides: Sequence[str] = ()) -> RunConfig:
    """Merge structured defaults, an optional YAML file and ``key=value`` overrides."""
    cfg = OmegaConf.structured(RunConfig)
    if path is not None:
        cfg = OmegaConf.merge(cfg, OmegaConf.load(path))
    if overrides:
        cfg = OmegaConf.merge(cfg, OmegaConf.from_dotlist(list(overrides)))
    config: RunConfig = OmegaConf.to_object(cfg)
    return validate_run_config(config)

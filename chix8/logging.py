"""Console logging utilities for chix8 runs.

A small console logger with levels, colours and elapsed-time stamps, plus an
emulator-specific logger for run, frame and fault messages and a tqdm progress
bar for long headless runs.
"""

import sys
import time
from typing import Any, Dict, Optional

from tqdm import tqdm


class ConsoleLogger:
    """Flexible console logger with levels and formatters."""

    level_order = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3,
        "CRITICAL": 4,
    }

    def __init__(
        self,
        name: str = "chix8",
        log_level: str = "INFO",
        use_colors: bool = True,
        show_timestamps: bool = True,
        stream=None,
    ):
        self.name = name
        self.stream = stream if stream is not None else sys.stdout
        self.log_level = log_level.upper()
        self.use_colors = (
            use_colors and hasattr(self.stream, "isatty") and self.stream.isatty()
        )
        self.show_timestamps = show_timestamps
        self.start_time = time.time()

        self.colors = (
            {
                "DEBUG": "\033[36m",
                "INFO": "\033[32m",
                "WARNING": "\033[33m",
                "ERROR": "\033[31m",
                "CRITICAL": "\033[35m",
                "RESET": "\033[0m"
            }
            if self.use_colors
            else {
                k: ""
                for k in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "RESET"]
            }
        )

    def _should_log(self, level: str) -> bool:
        """Check if message should be logged based on current log level."""
        return self.level_order.get(level.upper(), 1) >= self.level_order.get(
            self.log_level, 1
        )

    def _format_message(self, level: str, message: str) -> str:
        """Format log message with timestamp, level, and colors."""
        timestamp = (
            f"[{time.time() - self.start_time:8.2f}s]" if self.show_timestamps else ""
        )
        level_str = f"[{level:>8s}]"
        name_str = f"[{self.name}]"

        if self.use_colors:
            color = self.colors.get(level.upper(), "")
            reset = self.colors["RESET"]
            level_str = f"{color}{level_str}{reset}"

        return f"{timestamp}{level_str}{name_str} {message}"

    def log(self, level: str, message: str):
        """Log a message at the specified level."""
        if self._should_log(level):
            formatted = self._format_message(level, message)
            print(formatted, file=self.stream, flush=True)

    def debug(self, message: str):
        self.log("DEBUG", message)

    def info(self, message: str):
        self.log("INFO", message)

    def warning(self, message: str):
        self.log("WARNING", message)

    def error(self, message: str):
        self.log("ERROR", message)

    def critical(self, message: str):
        self.log("CRITICAL", message)


class EmulatorLogger(ConsoleLogger):
    """Logger for machine runs: configuration, periodic frame status, faults."""

    def __init__(self, name: str = "chix8", **kwargs):
        super().__init__(name, **kwargs)
        self.fault_count = 0

    def log_run_start(self, config: Dict[str, Any]):
        """Log run configuration and start message."""
        self.info("=" * 60)
        self.info("Starting run with configuration:")
        for key, value in config.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    self.info(f"  {key}.{sub_key}: {sub_value}")
            else:
                self.info(f"  {key}: {value}")
        self.info("=" * 60)

    def log_frame(self, frame: int, total_frames: int, state, log_interval: int = 60):
        """Log machine registers every ``log_interval`` frames at DEBUG level."""
        if frame % log_interval != 0 and frame != total_frames - 1:
            return
        registers = " ".join(f"V{i:X}={int(v):02X}" for i, v in enumerate(state.V))
        self.debug(
            f"Frame {frame + 1:5d}/{total_frames} "
            f"PC=0x{int(state.pc):03X} I=0x{int(state.I):03X} "
            f"DT={int(state.delay_timer):3d} ST={int(state.sound_timer):3d} | {registers}"
        )

    def log_fault(self, error, action: str):
        """Log an engine error together with the action the driver took."""
        self.fault_count += 1
        level = "WARNING" if action == "skipped" else "ERROR"
        self.log(level, f"{error.__class__.__name__}: {error.message} ({action})")

    def log_run_end(self, stats: Dict[str, Any]):
        """Log run completion with final statistics."""
        elapsed = time.time() - self.start_time
        self.info("=" * 60)
        self.info(f"Run completed in {elapsed:.1f}s")
        for key, value in stats.items():
            if isinstance(value, float):
                self.info(f"  {key}: {value:.4f}")
            else:
                self.info(f"  {key}: {value}")
        self.info("=" * 60)


def frame_progress(total: int, desc: Optional[str] = None, enabled: bool = True, **kwargs) -> tqdm:
    """Progress bar over video frames for headless runs."""
    if desc is None:
        desc = f"Running ({total:,} frames)"
    for kwarg in ("total", "unit", "disable"):
        kwargs.pop(kwarg, None)
    return tqdm(total=total, desc=desc, unit="frame", disable=not enabled, **kwargs)

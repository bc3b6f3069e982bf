"""Host-facing CHIP-8 machine that owns one emulator state."""

from dataclasses import dataclass
from typing import Optional

import jax
import numpy as np

from chix8.config import MachineConfig, validate_machine_config
from chix8.constants import Fault
from chix8.emulator import load, fault_error, run_instructions, step_state, waiting_for_key
from chix8.errors import DecodeError, EngineError
from chix8.logging import EmulatorLogger
from chix8.peripherals import set_key, framebuffer, consume_redraw_flag
from chix8.state import EmulatorState, create_state
from chix8.timers import ToneEndEvent, tick_timers


@dataclass
class FrameResult:
    """Outcome of one driven frame."""
    executed: int
    tone_end: Optional[ToneEndEvent] = None
    error: Optional[EngineError] = None
    halted: bool = False


class Chip8:
    """A single CHIP-8 machine.

    Wraps the functional engine with an explicitly owned state, a logger and a
    driver policy. The core never spins or sleeps: ``run_frame`` executes
    ``instructions_per_frame`` steps and one timer tick, and the caller paces
    frames.

    Example:
        >>> machine = Chip8()
        >>> machine.load(rom_bytes)
        >>> machine.set_key(5, True)
        >>> result = machine.run_frame()
        >>> if machine.consume_redraw_flag():
        ...     draw(machine.framebuffer())
    """

    def __init__(self, config: Optional[MachineConfig] = None, logger: Optional[EmulatorLogger] = None):
        self.config = validate_machine_config(config or MachineConfig())
        self.logger = logger or EmulatorLogger(
            log_level=self.config.log_level, use_colors=self.config.use_colors
        )
        self.program: bytes = b""
        self.halted = False
        self.frame_count = 0
        self.instruction_count = 0
        self.state: EmulatorState = create_state(jax.random.PRNGKey(self.config.seed))

    def reset(self):
        """Return to the power-on state and re-apply the last loaded program."""
        self.state = create_state(jax.random.PRNGKey(self.config.seed))
        self.halted = False
        self.frame_count = 0
        self.instruction_count = 0
        if self.program:
            self.state = load(self.state, self.program).state
        self.logger.debug("Machine reset")

    def load(self, data: bytes) -> int:
        """Load a program image at 0x200. Returns the number of bytes written."""
        result = load(self.state, data)
        self.state = result.state
        self.program = bytes(data[:result.bytes_written])
        if result.truncated:
            self.logger.warning(f"Program truncated: {result.truncated} bytes did not fit")
        self.logger.debug(f"Loaded {result.bytes_written} bytes at 0x200")
        return result.bytes_written

    def load_rom(self, filename: str) -> int:
        with open(filename, 'rb') as f:
            rom_data = f.read()
        self.logger.info(f"Loading ROM {filename} ({len(rom_data)} bytes)")
        return self.load(rom_data)

    def step(self):
        """Execute one instruction, raising an ``EngineError`` on failure.

        The machine keeps the post-step state even when the step fails. A
        step spent waiting on FX0A is not counted as an instruction.
        """
        waiting = bool(waiting_for_key(self.state))
        self.state = step_state(self.state)
        if not waiting:
            self.instruction_count += 1
        error = fault_error(self.state)
        if error is not None:
            raise error

    def tick_timers(self) -> Optional[ToneEndEvent]:
        self.state, event = tick_timers(self.state)
        return event

    def set_key(self, index: int, pressed: bool):
        self.state = set_key(self.state, index, pressed)

    def framebuffer(self) -> np.ndarray:
        return framebuffer(self.state)

    def consume_redraw_flag(self) -> bool:
        self.state, redraw = consume_redraw_flag(self.state)
        return redraw

    def _handle_error(self, error: EngineError) -> bool:
        """Apply the error policy. Returns True when execution may continue."""
        policy = self.config.error_policy
        if policy == "raise":
            self.logger.log_fault(error, "raised")
            raise error
        if policy == "skip" and isinstance(error, DecodeError):
            self.logger.log_fault(error, "skipped")
            return True
        self.logger.log_fault(error, "halted")
        self.halted = True
        return False

    def run_frame(self) -> FrameResult:
        """Run one video frame: ``instructions_per_frame`` steps then one timer tick.

        A halted machine does nothing until ``reset``. With the "raise" policy the
        error propagates before the timers tick.
        """
        if self.halted:
            return FrameResult(executed=0, halted=True)

        remaining = self.config.instructions_per_frame
        executed_total = 0
        last_error = None
        while remaining > 0:
            self.state, executed = run_instructions(self.state, remaining)
            executed = int(executed)
            executed_total += executed
            self.instruction_count += executed
            remaining -= executed
            if int(self.state.fault) == Fault.NONE:
                break
            last_error = fault_error(self.state)
            if not self._handle_error(last_error):
                break

        tone_end = self.tick_timers()
        if tone_end is not None:
            self.logger.debug(f"Tone ended at frame {self.frame_count}")
        self.frame_count += 1
        return FrameResult(
            executed=executed_total, tone_end=tone_end, error=last_error, halted=self.halted
        )

"""CHIP-8 virtual machine package."""

from chix8.state import EmulatorState, StackState, create_state
from chix8.emulator import (
    LoadResult, execute, fetch, step, step_state, run_instructions, run_frame, load, load_rom,
    waiting_for_key,
)
from chix8.decode import DecodedInstruction, decode
from chix8.constants import *
from chix8.errors import (
    Chip8Error, EngineError, DecodeError, StackOverflow, StackUnderflow, MemoryOutOfBounds,
    InvalidKeyIndex, RomTruncatedWarning,
)
from chix8.timers import ToneEndEvent, tick_timers
from chix8.peripherals import set_key, framebuffer, consume_redraw_flag
from chix8.config import MachineConfig, RunConfig, load_config
from chix8.machine import Chip8, FrameResult

reset = create_state

__all__ = [
    "EmulatorState",
    "StackState",
    "create_state",
    "reset",
    "fetch",
    "execute",
    "step",
    "step_state",
    "waiting_for_key",
    "run_instructions",
    "run_frame",
    "load",
    "load_rom",
    "LoadResult",
    "DecodedInstruction",
    "decode",
    "tick_timers",
    "ToneEndEvent",
    "set_key",
    "framebuffer",
    "consume_redraw_flag",
    "Chip8",
    "FrameResult",
    "MachineConfig",
    "RunConfig",
    "load_config",
    "Chip8Error",
    "EngineError",
    "DecodeError",
    "StackOverflow",
    "StackUnderflow",
    "MemoryOutOfBounds",
    "InvalidKeyIndex",
    "RomTruncatedWarning",
    "Fault",
    "MEMORY_SIZE",
    "PROGRAM_START",
    "FONT_START",
    "FONT_DATA",
    "SCREEN_WIDTH",
    "SCREEN_HEIGHT",
    "STACK_SIZE",
]

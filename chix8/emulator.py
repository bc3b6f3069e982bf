"""Main CHIP-8 emulator execution engine."""

import warnings
from typing import NamedTuple, Optional

import jax
import jax.lax
import jax.numpy as jnp
import numpy as np
from chix8.state import EmulatorState, with_fault
from chix8.decode import decode
from chix8.constants import MEMORY_SIZE, PROGRAM_START, MAX_PROGRAM_SIZE, Fault
from chix8.errors import FAULT_ERRORS, EngineError, MemoryOutOfBounds, RomTruncatedWarning
from chix8.instructions.system import execute_system_instruction
from chix8.instructions.control_flow import (
    execute_jump, execute_call, execute_skip_if_equal_immediate,
    execute_skip_if_not_equal_immediate, execute_skip_if_equal_register,
    execute_skip_if_not_equal_register, execute_jump_with_offset, execute_key_instruction
)
from chix8.instructions.alu import execute_alu_operation
from chix8.instructions.memory import execute_set, execute_add, execute_set_index, execute_random
from chix8.instructions.display import execute_display
from chix8.instructions.misc import execute_misc_instruction
from chix8.timers import tick


class LoadResult(NamedTuple):
    state: EmulatorState
    bytes_written: int
    truncated: int


@jax.jit
def execute(state: EmulatorState, instruction: int) -> EmulatorState:
    """Execute single CHIP-8 instruction on a state whose pc was already advanced."""
    decoded_instruction = decode(instruction)

    return jax.lax.switch(
        decoded_instruction.opcode,
        [
            execute_system_instruction,
            execute_jump,
            execute_call,
            execute_skip_if_equal_immediate,
            execute_skip_if_not_equal_immediate,
            execute_skip_if_equal_register,
            execute_set,
            execute_add,
            execute_alu_operation,
            execute_skip_if_not_equal_register,
            execute_set_index,
            execute_jump_with_offset,
            execute_random,
            execute_display,
            execute_key_instruction,
            execute_misc_instruction,
        ],
        state, decoded_instruction
    )


def _pack_u16(high: jnp.uint8, low: jnp.uint8) -> jnp.uint16:
    """Pack two bytes into uint16."""
    return (high.astype(jnp.uint16) << 8) | low.astype(jnp.uint16)


def fetch(state: EmulatorState) -> tuple[EmulatorState, jnp.uint16]:
    """Fetch next instruction from memory and advance pc.

    A pc whose second byte lies past the end of memory records a fault; the
    returned instruction is then meaningless.
    """
    pc = jnp.astype(state.pc, jnp.int32)
    high = state.memory.at[pc].get(mode="clip")
    low = state.memory.at[pc + 1].get(mode="clip")
    state = jax.lax.cond(
        pc + 1 >= MEMORY_SIZE,
        lambda s: with_fault(s, Fault.MEMORY_OUT_OF_BOUNDS),
        lambda s: s,
        state
    )
    return state.replace(pc=state.pc + 2), _pack_u16(high, low)


def waiting_for_key(state: EmulatorState) -> jnp.ndarray:
    """Whether the next instruction is FX0A with no key down.

    Such a step would only move the pc back onto itself.
    """
    pc = jnp.astype(state.pc, jnp.int32)
    high = state.memory.at[pc].get(mode="clip")
    low = state.memory.at[pc + 1].get(mode="clip")
    return (pc + 1 < MEMORY_SIZE) & ((high >> 4) == 0xF) & (low == 0x0A) & ~jnp.any(state.keypad)


@jax.jit
def step_state(state: EmulatorState) -> EmulatorState:
    """Run one fetch-decode-execute cycle without raising.

    The outcome is recorded in ``fault``. On a decode error the fetched state
    (pc advanced) is kept; on any other fault the pre-step state is kept.
    """
    state = with_fault(state, Fault.NONE)
    fetched, instruction = fetch(state)
    executed = execute(fetched, instruction)
    fault = jnp.where(fetched.fault != int(Fault.NONE), fetched.fault, executed.fault)

    keep = (fault == int(Fault.NONE)) | (fault == int(Fault.DECODE))
    new_state = jax.tree.map(lambda new, old: jnp.where(keep, new, old), executed, state)
    return new_state.replace(fault=fault)


def _read_opcode(state: EmulatorState, pc: int) -> Optional[int]:
    memory = np.asarray(state.memory)
    if not 0 <= pc < MEMORY_SIZE - 1:
        return None
    return (int(memory[pc]) << 8) | int(memory[pc + 1])


def _faulting_address(state: EmulatorState, pc: int, opcode: Optional[int]) -> int:
    if opcode is None:
        return pc if pc >= MEMORY_SIZE else pc + 1
    index = int(state.I)
    family, x, low_byte = opcode >> 12, (opcode >> 8) & 0xF, opcode & 0xFF
    if family == 0xD:
        return index + (opcode & 0xF) - 1
    if family == 0xF and low_byte == 0x33:
        return index + 2
    if family == 0xF and low_byte in (0x55, 0x65):
        return index + x
    return index


def fault_error(state: EmulatorState) -> Optional[EngineError]:
    """Build the exception matching the fault recorded on ``state``, if any."""
    fault = Fault(int(state.fault))
    if fault == Fault.NONE:
        return None

    pc = int(state.pc)
    if fault == Fault.DECODE:
        pc -= 2
    opcode = _read_opcode(state, pc)
    error_cls = FAULT_ERRORS[fault]
    opcode_str = "----" if opcode is None else f"{opcode:04X}"

    if error_cls is MemoryOutOfBounds:
        address = _faulting_address(state, pc, opcode)
        return MemoryOutOfBounds(
            f"Memory access at 0x{address:X} out of bounds (opcode {opcode_str} at 0x{pc:03X})",
            address=address, pc=pc, opcode=opcode, state=state,
        )

    messages = {
        Fault.DECODE: f"Unknown opcode {opcode_str} at 0x{pc:03X}",
        Fault.STACK_OVERFLOW: f"Stack overflow calling from 0x{pc:03X}",
        Fault.STACK_UNDERFLOW: f"Stack underflow returning from 0x{pc:03X}",
    }
    return error_cls(messages[fault], pc=pc, opcode=opcode, state=state)


def step(state: EmulatorState) -> EmulatorState:
    """Execute one instruction, raising an ``EngineError`` subclass on failure.

    The exception's ``state`` attribute is the state the machine holds after
    the failed step.
    """
    new_state = step_state(state)
    error = fault_error(new_state)
    if error is not None:
        raise error
    return new_state


@jax.jit
def run_instructions(state: EmulatorState, n: int) -> tuple[EmulatorState, jnp.ndarray]:
    """Run up to ``n`` steps, stopping after the first faulting one.

    Also stops when the program waits on FX0A with no key down; the key
    latch cannot change before the caller's next batch. Returns the final
    state and the number of steps taken, the faulting step included.
    """
    def cond_fn(carry):
        executed, state = carry
        return (executed < n) & (state.fault == int(Fault.NONE)) & ~waiting_for_key(state)

    def body_fn(carry):
        executed, state = carry
        return executed + 1, step_state(state)

    executed, state = jax.lax.while_loop(
        cond_fn, body_fn, (jnp.zeros((), dtype=jnp.int32), with_fault(state, Fault.NONE))
    )
    return state, executed


@jax.jit
def run_frame(state: EmulatorState, n: int) -> tuple[EmulatorState, jnp.ndarray, jnp.ndarray]:
    """Run one video frame: up to ``n`` steps, then a single timer tick.

    Timers tick even when a step faulted, since the frame interval elapsed.
    """
    state, executed = run_instructions(state, n)
    fault = state.fault
    state, tone_end = tick(state)
    return state.replace(fault=fault), executed, tone_end


def load(state: EmulatorState, data: bytes) -> LoadResult:
    """Load a program image into memory starting at 0x200.

    Images longer than the program space are truncated with a
    ``RomTruncatedWarning``; nothing is ever written past the end of memory.
    """
    data = bytes(data)
    bytes_written = min(len(data), MAX_PROGRAM_SIZE)
    truncated = len(data) - bytes_written
    if truncated:
        warnings.warn(
            f"Program image is {len(data)} bytes, only {MAX_PROGRAM_SIZE} fit; "
            f"dropped the last {truncated}",
            RomTruncatedWarning,
            stacklevel=2,
        )
    if bytes_written == 0:
        return LoadResult(state, 0, truncated)

    rom_array = jnp.array(list(data[:bytes_written]), dtype=jnp.uint8)
    new_memory = state.memory.at[PROGRAM_START:PROGRAM_START + bytes_written].set(rom_array)
    return LoadResult(state.replace(memory=new_memory), bytes_written, truncated)


def load_rom(state: EmulatorState, filename: str) -> LoadResult:
    """Load ROM data from a raw CHIP-8 file into memory starting at 0x200."""
    with open(filename, 'rb') as f:
        rom_data = f.read()
    return load(state, rom_data)

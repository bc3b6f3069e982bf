"""CHIP-8 miscellaneous instructions (Fxxx)."""

import jax
import jax.lax
import jax.numpy as jnp
import numpy as np
from chix8.constants import FONT_START, FONT_GLYPH_SIZE, MEMORY_SIZE, NUM_REGISTERS, Fault
from chix8.state import EmulatorState, with_fault
from chix8.decode import DecodedInstruction
from chix8.instructions.system import decode_error


def execute_get_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX07 - Set VX to delay timer value."""
    return state.replace(V=state.V.at[instruction.x].set(state.delay_timer))


def execute_set_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX15 - Set delay timer to VX."""
    return state.replace(delay_timer=state.V[instruction.x])


def execute_set_sound_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX18 - Set sound timer to VX."""
    return state.replace(sound_timer=state.V[instruction.x])


def execute_add_to_index(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX1E - Add VX to I. I is a plain 16-bit register, VF is not touched."""
    new_i = jnp.astype(state.I, jnp.int32) + jnp.astype(state.V[instruction.x], jnp.int32)
    return state.replace(I=jnp.astype(new_i & 0xFFFF, jnp.uint16))


def execute_wait_for_key(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX0A - Wait for key press.

    Without a pressed key the pc is moved back onto this instruction, so the
    step is a no-op the driver retries on its next cycle.
    """
    def key_pressed_action(state):
        pressed_key = jnp.astype(jnp.argmax(jnp.astype(state.keypad, jnp.int32)), jnp.uint8)
        return state.replace(V=state.V.at[instruction.x].set(pressed_key))

    def wait_action(state):
        return state.replace(pc=state.pc - 2)

    return jax.lax.cond(jnp.any(state.keypad), key_pressed_action, wait_action, state)


def execute_font_character(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX29 - Set I to location of sprite for digit VX."""
    font_address = FONT_START + jnp.astype(state.V[instruction.x], jnp.int32) * FONT_GLYPH_SIZE
    return state.replace(I=jnp.astype(font_address, jnp.uint16))


def make_checked_access(handler, last_offset_fn):
    """Fault instead of running ``handler`` when I + last offset leaves memory."""
    def checked(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        last_address = jnp.astype(state.I, jnp.int32) + last_offset_fn(instruction)
        return jax.lax.cond(
            last_address >= MEMORY_SIZE,
            lambda state, instruction: with_fault(state, Fault.MEMORY_OUT_OF_BOUNDS),
            handler,
            state, instruction
        )
    return checked


def bcd_conversion(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    value = state.V[instruction.x]

    # Vectorized BCD conversion
    digits = jnp.array([
        value // 100,
        (value // 10) % 10,
        value % 10
    ], dtype=jnp.uint8)

    indices = jnp.arange(3) + jnp.astype(state.I, jnp.int32)
    new_memory = state.memory.at[indices].set(digits, mode="drop")
    return state.replace(memory=new_memory)


def store_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    register_mask = jnp.arange(NUM_REGISTERS) <= instruction.x
    base_indices = jnp.astype(state.I, jnp.int32) + jnp.arange(NUM_REGISTERS)
    current_memory_values = state.memory.at[base_indices].get(mode="clip")
    new_memory_values = jnp.where(register_mask, state.V, current_memory_values)
    new_memory = state.memory.at[base_indices].set(new_memory_values, mode="drop")
    return state.replace(memory=new_memory)


def load_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    register_mask = jnp.arange(NUM_REGISTERS) <= instruction.x
    base_indices = jnp.astype(state.I, jnp.int32) + jnp.arange(NUM_REGISTERS)
    memory_values = state.memory.at[base_indices].get(mode="clip")
    return state.replace(V=jnp.where(register_mask, memory_values, state.V))


# FX33 - Store BCD representation of VX at I, I+1, I+2
execute_bcd_conversion = make_checked_access(bcd_conversion, lambda inst: 2)
# FX55 - Store V0 through VX in memory starting at I, I unchanged
execute_store_registers = make_checked_access(store_registers, lambda inst: inst.x)
# FX65 - Load V0 through VX from memory starting at I, I unchanged
execute_load_registers = make_checked_access(load_registers, lambda inst: inst.x)


MISC_OPERATIONS = [
    execute_get_delay_timer,
    execute_wait_for_key,
    execute_set_delay_timer,
    execute_set_sound_timer,
    execute_add_to_index,
    execute_font_character,
    execute_bcd_conversion,
    execute_store_registers,
    execute_load_registers,
    decode_error,
]

_misc_table = np.full(256, len(MISC_OPERATIONS) - 1, dtype=np.int32)
for _index, _nn in enumerate([0x07, 0x0A, 0x15, 0x18, 0x1E, 0x29, 0x33, 0x55, 0x65]):
    _misc_table[_nn] = _index
# Low byte -> position in MISC_OPERATIONS
MISC_TABLE = jnp.asarray(_misc_table)


def execute_misc_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """Dispatch FXNN instructions on the low byte."""
    return jax.lax.switch(MISC_TABLE[instruction.nn], MISC_OPERATIONS, state, instruction)

"""CHIP-8 control flow instructions."""

import jax
import jax.lax
import jax.numpy as jnp
from chix8.constants import Fault
from chix8.state import EmulatorState, with_fault
from chix8.decode import DecodedInstruction
from chix8.stack import push, is_full
from chix8.instructions.system import decode_error


def execute_jump(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """1NNN - Jump to address NNN."""
    return state.replace(pc=jnp.astype(instruction.nnn, jnp.uint16))


def execute_call(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """2NNN - Call subroutine at NNN.

    The pc has already been advanced past the call, so it is the return address.
    """
    def _call(state):
        state = state.replace(stack=push(state.stack, state.pc))
        return execute_jump(state, instruction)

    return jax.lax.cond(
        is_full(state.stack),
        lambda state: with_fault(state, Fault.STACK_OVERFLOW),
        _call,
        state
    )


def make_skip_instruction(condition_fn):
    """Factory for skip instructions."""
    def skip_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        condition = condition_fn(state, instruction)
        return jax.lax.cond(
            condition,
            lambda s: s.replace(pc=s.pc + 2),
            lambda s: s,
            state
        )
    return skip_instruction


def require_zero_n(handler):
    """5XY0 and 9XY0 only exist with a zero low nibble."""
    def checked(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        return jax.lax.cond(instruction.n == 0, handler, decode_error, state, instruction)
    return checked


execute_skip_if_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] == inst.nn
)

execute_skip_if_not_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] != inst.nn
)

execute_skip_if_equal_register = require_zero_n(make_skip_instruction(
    lambda state, inst: state.V[inst.x] == state.V[inst.y]
))

execute_skip_if_not_equal_register = require_zero_n(make_skip_instruction(
    lambda state, inst: state.V[inst.x] != state.V[inst.y]
))


def execute_jump_with_offset(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """BNNN - Jump to address NNN + V0.

    The target is not masked; a target past the end of memory faults on the
    next fetch.
    """
    jump_address = instruction.nnn + jnp.astype(state.V[0], jnp.int32)
    return state.replace(pc=jnp.astype(jump_address, jnp.uint16))


def execute_skip_if_key(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """EX9E/EXA1 - Skip if key pressed/not pressed."""

    key_index = state.V[instruction.x] & 0xF
    key_pressed = state.keypad[key_index]
    is_not_instruction = (instruction.nn == 0xA1)
    condition = key_pressed ^ is_not_instruction

    return jax.lax.cond(
        condition,
        lambda state: state.replace(pc=state.pc + 2),
        lambda state: state,
        state
    )


def execute_key_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """Dispatch EXxx: only 9E and A1 are defined."""
    is_key_instruction = (instruction.nn == 0x9E) | (instruction.nn == 0xA1)
    return jax.lax.cond(is_key_instruction, execute_skip_if_key, decode_error, state, instruction)

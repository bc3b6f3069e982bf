"""Tests for system instructions (0xxx) and subroutine calls."""

import jax.numpy as jnp
import pytest
from chix8 import execute, Fault, STACK_SIZE


def test_execute_clear_screen(fresh_state):
    """Test 00E0 - Clear display."""
    state = fresh_state.replace(display=fresh_state.display.at[0, 0].set(1))

    state = execute(state, 0x00E0)

    assert jnp.sum(state.display) == 0
    assert bool(state.redraw)
    assert state.pc == fresh_state.pc


def test_execute_call_and_return(fresh_state):
    """Test 2NNN (call) and 00EE (return) together."""
    state = fresh_state
    initial_pc = state.pc

    # Call subroutine
    state = execute(state, 0x2300)  # Call 0x300
    assert state.pc == 0x300
    assert state.stack.pointer == 1
    assert state.stack.data[state.stack.pointer - 1] == initial_pc

    # Return from subroutine
    state = execute(state, 0x00EE)  # Return
    assert state.pc == initial_pc
    assert state.stack.pointer == 0


def test_nested_calls_return_in_order(fresh_state):
    state = fresh_state.replace(pc=jnp.astype(0x202, jnp.uint16))
    state = execute(state, 0x2400)
    state = state.replace(pc=state.pc + 2)
    state = execute(state, 0x2500)
    assert state.stack.pointer == 2

    state = execute(state, 0x00EE)
    assert state.pc == 0x402
    state = execute(state, 0x00EE)
    assert state.pc == 0x202


def test_call_on_full_stack_faults(fresh_state):
    state = fresh_state
    for _ in range(STACK_SIZE):
        state = execute(state, 0x2300)
    assert state.stack.pointer == STACK_SIZE
    assert int(state.fault) == Fault.NONE

    state = execute(state, 0x2300)

    assert int(state.fault) == Fault.STACK_OVERFLOW
    assert state.stack.pointer == STACK_SIZE


def test_return_on_empty_stack_faults(fresh_state):
    state = execute(fresh_state, 0x00EE)

    assert int(state.fault) == Fault.STACK_UNDERFLOW
    assert state.stack.pointer == 0
    assert state.pc == fresh_state.pc


@pytest.mark.parametrize("instruction", [0x0000, 0x0123, 0x00E1, 0x00EF, 0x01E0, 0x0FFF])
def test_other_system_opcodes_are_undefined(fresh_state, instruction):
    """0NNN machine-code calls and near misses of 00E0/00EE are decode errors."""
    state = fresh_state.replace(display=fresh_state.display.at[3, 3].set(1))

    state = execute(state, instruction)

    assert int(state.fault) == Fault.DECODE
    assert state.display[3, 3] == 1
    assert state.stack.pointer == 0

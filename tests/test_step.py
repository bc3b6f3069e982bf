"""Tests for the fetch-decode-execute cycle."""

import dataclasses

import jax
import jax.numpy as jnp
import pytest
from chix8 import (
    step, step_state, run_instructions, run_frame, fetch, decode, waiting_for_key, Fault,
    STACK_SIZE, DecodeError, StackOverflow, StackUnderflow, MemoryOutOfBounds, EngineError,
)
from conftest import write_program, set_registers, setup_sprite_in_memory


def prepared_state(state, opcode, keys=()):
    """One instruction at 0x200 with registers, I, a timer and a return address set."""
    state = write_program(state, [opcode])
    state = set_registers(state, V0=0x02, V1=0x13, V2=0x07)
    state = setup_sprite_in_memory(state, 0x300, [0xFF, 0x81])
    keypad = state.keypad
    for key in keys:
        keypad = keypad.at[key].set(True)
    return state.replace(
        I=jnp.astype(0x300, jnp.uint16),
        delay_timer=jnp.astype(5, jnp.uint8),
        keypad=keypad,
        stack=state.stack.replace(
            data=state.stack.data.at[0].set(0x400),
            pointer=jnp.astype(1, jnp.int32),
        ),
    )


def changed_fields(before, after):
    """Names of the state fields, pc excluded, that differ between two states."""
    changed = set()
    for field in dataclasses.fields(before):
        if field.name == "pc":
            continue
        old_leaves = jax.tree.leaves(getattr(before, field.name))
        new_leaves = jax.tree.leaves(getattr(after, field.name))
        if not all(jnp.array_equal(old, new) for old, new in zip(old_leaves, new_leaves)):
            changed.add(field.name)
    return changed


class TestProgramCounter:
    """The pc advances by 2 per instruction unless the instruction says otherwise."""

    # V0=0x02 V1=0x13 V2=0x07 I=0x300 DT=5, return address 0x400 on the stack
    @pytest.mark.parametrize("opcode,keys,expected_pc,expected_changes", [
        (0x00E0, (), 0x202, {"redraw"}),
        (0x00EE, (), 0x400, {"stack"}),
        (0x1456, (), 0x456, set()),
        (0x2456, (), 0x456, {"stack"}),
        (0x3113, (), 0x204, set()),
        (0x3114, (), 0x202, set()),
        (0x4113, (), 0x202, set()),
        (0x4114, (), 0x204, set()),
        (0x5110, (), 0x204, set()),
        (0x5120, (), 0x202, set()),
        (0x6A12, (), 0x202, {"V"}),
        (0x7A01, (), 0x202, {"V"}),
        (0x8120, (), 0x202, {"V"}),
        (0x8121, (), 0x202, {"V"}),
        (0x8122, (), 0x202, {"V"}),
        (0x8123, (), 0x202, {"V"}),
        (0x8124, (), 0x202, {"V"}),
        (0x8125, (), 0x202, {"V"}),
        (0x8126, (), 0x202, {"V"}),
        (0x8127, (), 0x202, {"V"}),
        (0x812E, (), 0x202, {"V"}),
        (0x9110, (), 0x202, set()),
        (0x9120, (), 0x204, set()),
        (0xA123, (), 0x202, {"I"}),
        (0xB300, (), 0x302, set()),
        (0xC100, (), 0x202, {"V", "rng"}),
        (0xD122, (), 0x202, {"display", "redraw"}),
        (0xE19E, (), 0x202, set()),
        (0xE19E, (3,), 0x204, set()),
        (0xE1A1, (), 0x204, set()),
        (0xE1A1, (3,), 0x202, set()),
        (0xF107, (), 0x202, {"V"}),
        (0xF10A, (), 0x200, set()),
        (0xF10A, (6,), 0x202, {"V"}),
        (0xF115, (), 0x202, {"delay_timer"}),
        (0xF118, (), 0x202, {"sound_timer"}),
        (0xF11E, (), 0x202, {"I"}),
        (0xF129, (), 0x202, {"I"}),
        (0xF133, (), 0x202, {"memory"}),
        (0xF155, (), 0x202, {"memory"}),
        (0xF165, (), 0x202, {"V"}),
    ])
    def test_single_step(self, fresh_state, opcode, keys, expected_pc, expected_changes):
        """Each opcode sets the pc and touches only its own part of the state."""
        before = prepared_state(fresh_state, opcode, keys)

        after = step(before)

        assert after.pc == expected_pc
        assert int(after.fault) == Fault.NONE
        assert changed_fields(before, after) == expected_changes

    def test_decode_fields(self):
        decoded = decode(0xD3A7)

        assert int(decoded.opcode) == 0xD
        assert int(decoded.x) == 0x3
        assert int(decoded.y) == 0xA
        assert int(decoded.n) == 0x7
        assert int(decoded.nn) == 0xA7
        assert int(decoded.nnn) == 0x3A7
        assert decoded.nnn.dtype == jnp.int32

    def test_fetch_is_big_endian(self, fresh_state):
        state = write_program(fresh_state, [0xA2F0])

        state, instruction = fetch(state)

        assert instruction == 0xA2F0
        assert state.pc == 0x202

    def test_small_program(self, fresh_state):
        state = write_program(fresh_state, [
            0x6005,  # V0 = 5
            0x6103,  # V1 = 3
            0x8014,  # V0 += V1
            0xA300,  # I = 0x300
            0xF033,  # BCD of V0
        ])

        for _ in range(5):
            state = step(state)

        assert state.V[0] == 8
        assert [int(b) for b in state.memory[0x300:0x303]] == [0, 0, 8]
        assert state.pc == 0x20A

    def test_wait_for_key_holds_pc(self, fresh_state):
        state = write_program(fresh_state, [0xF50A])

        state = step(state)
        state = step(state)
        assert state.pc == 0x200

        state = state.replace(keypad=state.keypad.at[9].set(True))
        state = step(state)
        assert state.pc == 0x202
        assert state.V[5] == 9


class TestStepErrors:
    """Failed steps raise with the resulting state attached."""

    def test_decode_error_advances_pc(self, fresh_state):
        state = write_program(fresh_state, [0x5121])

        with pytest.raises(DecodeError) as exc_info:
            step(state)

        error = exc_info.value
        assert error.pc == 0x200
        assert error.opcode == 0x5121
        assert error.state.pc == 0x202
        assert "5121" in str(error)

    def test_stack_overflow_after_sixteen_calls(self, fresh_state):
        state = write_program(fresh_state, [0x2200])  # Calls itself

        for _ in range(STACK_SIZE):
            state = step(state)
        assert state.stack.pointer == STACK_SIZE

        with pytest.raises(StackOverflow) as exc_info:
            step(state)

        error = exc_info.value
        assert isinstance(error, EngineError)
        assert error.state.stack.pointer == STACK_SIZE
        assert error.state.pc == 0x200
        assert error.pc == 0x200

    def test_stack_underflow_keeps_pre_step_state(self, fresh_state):
        state = write_program(fresh_state, [0x00EE])

        with pytest.raises(StackUnderflow) as exc_info:
            step(state)

        assert exc_info.value.state.pc == 0x200
        assert exc_info.value.opcode == 0x00EE

    def test_fetch_past_end_of_memory(self, fresh_state):
        state = fresh_state.replace(pc=jnp.astype(0xFFF, jnp.uint16))

        with pytest.raises(MemoryOutOfBounds) as exc_info:
            step(state)

        error = exc_info.value
        assert error.address == 0x1000
        assert error.opcode is None
        assert error.state.pc == 0xFFF

    def test_fetch_of_last_instruction(self, fresh_state):
        state = write_program(fresh_state, [0x6042], address=0xFFE)
        state = state.replace(pc=jnp.astype(0xFFE, jnp.uint16))

        state = step(state)

        assert state.V[0] == 0x42
        assert state.pc == 0x1000

    def test_sprite_out_of_bounds_reports_address(self, fresh_state):
        state = write_program(fresh_state, [0xD013])
        state = state.replace(I=jnp.astype(0xFFE, jnp.uint16))

        with pytest.raises(MemoryOutOfBounds) as exc_info:
            step(state)

        error = exc_info.value
        assert error.address == 0x1000
        assert error.to_dict()["address"] == 0x1000
        assert error.to_dict()["type"] == "MemoryOutOfBounds"
        assert error.state.pc == 0x200
        assert jnp.sum(error.state.display) == 0

    def test_store_registers_out_of_bounds_leaves_memory(self, fresh_state):
        state = write_program(fresh_state, [0xF355])
        state = set_registers(state, V0=1, V1=2, V2=3, V3=4)
        state = state.replace(I=jnp.astype(0xFFD, jnp.uint16))

        with pytest.raises(MemoryOutOfBounds) as exc_info:
            step(state)

        assert exc_info.value.address == 0x1000
        assert [int(b) for b in exc_info.value.state.memory[0xFFD:]] == [0, 0, 0]

    def test_step_state_records_fault_without_raising(self, fresh_state):
        state = write_program(fresh_state, [0x00EE])

        state = step_state(state)

        assert int(state.fault) == Fault.STACK_UNDERFLOW
        assert state.pc == 0x200

    def test_fault_cleared_by_next_step(self, fresh_state):
        state = write_program(fresh_state, [0xFFFF, 0x6001])

        state = step_state(state)
        assert int(state.fault) == Fault.DECODE

        state = step_state(state)
        assert int(state.fault) == Fault.NONE
        assert state.V[0] == 1


class TestRunInstructions:
    """Test multi-step execution."""

    def test_runs_requested_number_of_steps(self, fresh_state):
        state = write_program(fresh_state, [0x7001, 0x1200])  # V0 += 1; loop

        state, executed = run_instructions(state, 10)

        assert executed == 10
        assert state.V[0] == 5

    def test_stops_while_waiting_for_key(self, fresh_state):
        """FX0A with no key down ends the batch without counting steps."""
        state = write_program(fresh_state, [0x7001, 0xF20A, 0x7101])

        state, executed = run_instructions(state, 10)

        assert executed == 1
        assert state.pc == 0x202
        assert bool(waiting_for_key(state))

        state = state.replace(keypad=state.keypad.at[7].set(True))
        state, executed = run_instructions(state, 2)

        assert executed == 2
        assert state.V[2] == 7
        assert state.V[1] == 1

    def test_waiting_for_key_needs_fx0a(self, fresh_state):
        assert not bool(waiting_for_key(write_program(fresh_state, [0xF20B])))
        assert not bool(waiting_for_key(write_program(fresh_state, [0xE20A])))
        assert bool(waiting_for_key(write_program(fresh_state, [0xFF0A])))

    def test_stops_at_first_fault(self, fresh_state):
        state = write_program(fresh_state, [0x7001, 0x7001, 0x00EE, 0x7001])

        state, executed = run_instructions(state, 10)

        assert executed == 3
        assert int(state.fault) == Fault.STACK_UNDERFLOW
        assert state.V[0] == 2
        assert state.pc == 0x204

    def test_run_frame_ticks_timers_once(self, fresh_state):
        state = write_program(fresh_state, [0x1200])
        state = state.replace(
            delay_timer=jnp.astype(5, jnp.uint8), sound_timer=jnp.astype(1, jnp.uint8)
        )

        state, executed, tone_end = run_frame(state, 10)

        assert executed == 10
        assert state.delay_timer == 4
        assert state.sound_timer == 0
        assert bool(tone_end)

    def test_run_frame_keeps_fault(self, fresh_state):
        state = write_program(fresh_state, [0x00EE])
        state = state.replace(delay_timer=jnp.astype(3, jnp.uint8))

        state, executed, _ = run_frame(state, 10)

        assert executed == 1
        assert int(state.fault) == Fault.STACK_UNDERFLOW
        assert state.delay_timer == 2

    def test_batched_machines(self, fresh_state):
        """Independent machines run side by side under vmap."""
        program = write_program(fresh_state, [0x7001, 0x1200])
        states = [set_registers(program, V0=start) for start in (0, 10, 20, 30)]
        batch = jax.tree.map(lambda *leaves: jnp.stack(leaves), *states)

        batch, executed = jax.vmap(run_instructions, in_axes=(0, None))(batch, 10)

        assert [int(v) for v in batch.V[:, 0]] == [5, 15, 25, 35]
        assert [int(n) for n in executed] == [10, 10, 10, 10]

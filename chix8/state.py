"""CHIP-8 emulator state structures."""

import jax
import jax.numpy as jnp
from flax.struct import PyTreeNode, field

from chix8.constants import (
    MEMORY_SIZE, PROGRAM_START, FONT_START, FONT_DATA, SCREEN_WIDTH, SCREEN_HEIGHT,
    STACK_SIZE, NUM_REGISTERS, NUM_KEYS, Fault,
)


class StackState(PyTreeNode):
    """Stack state for subroutine calls."""
    data: jnp.ndarray = field(default_factory=lambda: jnp.zeros(STACK_SIZE, dtype=jnp.uint16))
    pointer: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.int32))


class EmulatorState(PyTreeNode):
    """Main CHIP-8 emulator state.

    The display is stored row-major as ``(SCREEN_HEIGHT, SCREEN_WIDTH)`` so
    that the flattened index of pixel ``(x, y)`` is ``y * 64 + x``.
    """
    rng: jax.Array
    memory: jnp.ndarray = field(default_factory=lambda: jnp.zeros(MEMORY_SIZE, dtype=jnp.uint8))
    pc: jnp.ndarray = field(default_factory=lambda: jnp.astype(PROGRAM_START, jnp.uint16))
    display: jnp.ndarray = field(default_factory=lambda: jnp.zeros((SCREEN_HEIGHT, SCREEN_WIDTH), dtype=jnp.uint8))
    stack: StackState = field(default_factory=lambda: StackState())
    delay_timer: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.uint8))
    sound_timer: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.uint8))
    keypad: jnp.ndarray = field(default_factory=lambda: jnp.zeros(NUM_KEYS, dtype=jnp.bool_))
    V: jnp.ndarray = field(default_factory=lambda: jnp.zeros(NUM_REGISTERS, dtype=jnp.uint8))
    I: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.uint16))
    redraw: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.bool_))
    fault: jnp.ndarray = field(default_factory=lambda: jnp.zeros((), dtype=jnp.uint8))


def create_state(rng: jax.Array = None) -> EmulatorState:
    """Create a power-on state with the font table loaded."""
    if rng is None:
        rng = jax.random.PRNGKey(0)
    state = EmulatorState(rng)
    return state.replace(memory=state.memory.at[FONT_START:FONT_START + len(FONT_DATA)].set(FONT_DATA))


def with_fault(state: EmulatorState, fault: Fault) -> EmulatorState:
    """Record a fault code on the state."""
    return state.replace(fault=jnp.asarray(int(fault), dtype=jnp.uint8))

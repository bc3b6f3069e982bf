"""CHIP-8 display operations."""

import jax
import jax.numpy as jnp
from chix8.constants import (
    SCREEN_WIDTH, SCREEN_HEIGHT, SPRITE_WIDTH, MAX_SPRITE_HEIGHT, MEMORY_SIZE, FLAG_REGISTER, Fault,
)
from chix8.state import EmulatorState, with_fault
from chix8.decode import DecodedInstruction

# Pre-computed sprite-local coordinate grids, shape (MAX_SPRITE_HEIGHT, SPRITE_WIDTH)
rows, cols = jnp.meshgrid(jnp.arange(MAX_SPRITE_HEIGHT), jnp.arange(SPRITE_WIDTH), indexing='ij')


def draw_sprite(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    sprite_x = jnp.astype(state.V[instruction.x], jnp.int32)
    sprite_y = jnp.astype(state.V[instruction.y], jnp.int32)

    # Every pixel wraps, so the (row, col) -> (py, px) mapping stays one-to-one
    px = (sprite_x + cols) % SCREEN_WIDTH
    py = (sprite_y + rows) % SCREEN_HEIGHT

    addresses = jnp.astype(state.I, jnp.int32) + jnp.arange(MAX_SPRITE_HEIGHT)
    sprite_bytes = jnp.astype(state.memory.at[addresses].get(mode="clip"), jnp.int32)
    sprite = (sprite_bytes[:, None] >> (7 - cols)) & 1
    sprite = jnp.astype(sprite * (rows < instruction.n), jnp.uint8)

    current = state.display[py, px]
    collision = jnp.any((current & sprite) == 1)

    return state.replace(
        display=state.display.at[py, px].set(current ^ sprite),
        V=state.V.at[FLAG_REGISTER].set(jnp.astype(collision, jnp.uint8)),
        redraw=jnp.ones((), dtype=jnp.bool_),
    )


def execute_display(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """DXYN - Draw sprite at (VX, VY) with height N, reading memory[I..I+N).

    DXY0 reads nothing, so I is not checked.
    """
    out_of_bounds = (instruction.n > 0) & (jnp.astype(state.I, jnp.int32) + instruction.n > MEMORY_SIZE)
    return jax.lax.cond(
        out_of_bounds,
        lambda state, instruction: with_fault(state, Fault.MEMORY_OUT_OF_BOUNDS),
        draw_sprite,
        state, instruction
    )

"""CHIP-8 ALU operations (8xxx).

Every operation maps ``(vx, vy, vf)`` to ``(result, new_vf)``. The flag is
always derived from the operands before anything is written back, and the
dispatcher writes VF first and VX second, so ``8FY4`` and friends leave the
arithmetic result in VF.
"""

import jax
import jax.lax
import jax.numpy as jnp
from chix8.constants import FLAG_REGISTER
from chix8.state import EmulatorState
from chix8.decode import DecodedInstruction
from chix8.instructions.system import decode_error


def alu_set(vx, vy, vf):
    """8XY0 - Set: VX = VY."""
    return vy, vf


def alu_or(vx, vy, vf):
    """8XY1 - Binary OR: VX |= VY."""
    return vx | vy, vf


def alu_and(vx, vy, vf):
    """8XY2 - Binary AND: VX &= VY."""
    return vx & vy, vf


def alu_xor(vx, vy, vf):
    """8XY3 - Logical XOR: VX ^= VY."""
    return vx ^ vy, vf


def alu_add(vx, vy, vf):
    """8XY4 - Add: VX += VY, set carry flag."""
    result = vx + vy
    carry = jnp.astype(result > 0xFF, jnp.int32)
    return result & 0xFF, carry


def alu_sub_xy(vx, vy, vf):
    """8XY5 - Subtract: VX -= VY, VF = NOT borrow."""
    no_borrow = jnp.astype(vx >= vy, jnp.int32)
    return (vx - vy) & 0xFF, no_borrow


def alu_shift_right(vx, vy, vf):
    """8XY6 - Shift right: VX >>= 1, VF = shifted-out bit."""
    return vx >> 1, vx & 1


def alu_sub_yx(vx, vy, vf):
    """8XY7 - Subtract: VX = VY - VX, VF = NOT borrow."""
    no_borrow = jnp.astype(vy >= vx, jnp.int32)
    return (vy - vx) & 0xFF, no_borrow


def alu_shift_left(vx, vy, vf):
    """8XYE - Shift left: VX <<= 1, VF = shifted-out bit."""
    return (vx << 1) & 0xFF, (vx & 0x80) >> 7


ALU_OPERATIONS = [
    alu_set, alu_or, alu_and, alu_xor, alu_add,
    alu_sub_xy, alu_shift_right, alu_sub_yx, alu_shift_left,
]

# Low nibble -> position in ALU_OPERATIONS, -1 for undefined variants
ALU_TABLE = jnp.array([0, 1, 2, 3, 4, 5, 6, 7, -1, -1, -1, -1, -1, -1, 8, -1], dtype=jnp.int32)


def execute_alu(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    vx = jnp.astype(state.V[instruction.x], jnp.int32)
    vy = jnp.astype(state.V[instruction.y], jnp.int32)
    vf = jnp.astype(state.V[FLAG_REGISTER], jnp.int32)

    result, new_vf = jax.lax.switch(ALU_TABLE[instruction.n], ALU_OPERATIONS, vx, vy, vf)

    new_V = state.V.at[FLAG_REGISTER].set(jnp.astype(new_vf, jnp.uint8))
    new_V = new_V.at[instruction.x].set(jnp.astype(result, jnp.uint8))
    return state.replace(V=new_V)


def execute_alu_operation(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """8XYN - ALU operations dispatcher."""
    return jax.lax.cond(
        ALU_TABLE[instruction.n] >= 0,
        execute_alu,
        decode_error,
        state, instruction
    )

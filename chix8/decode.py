"""CHIP-8 instruction decoding."""

import jax.numpy as jnp
from chex import dataclass


@dataclass(frozen=True)
class DecodedInstruction:
    """Operand fields of one opcode, each an int32 scalar array.

    Fields follow the usual CHIP-8 naming: for ``0xDXYN`` the family is ``D``,
    ``x`` and ``y`` select registers, ``nn`` is the low byte and ``nnn`` the
    low 12 bits.
    """
    raw: jnp.ndarray
    opcode: jnp.ndarray
    x: jnp.ndarray
    y: jnp.ndarray
    n: jnp.ndarray
    nn: jnp.ndarray
    nnn: jnp.ndarray


def decode(instruction) -> DecodedInstruction:
    """Split a 16-bit opcode into its nibble fields."""
    word = jnp.astype(instruction, jnp.int32) & 0xFFFF
    return DecodedInstruction(
        raw=word,
        opcode=word >> 12,
        x=(word >> 8) & 0xF,
        y=(word >> 4) & 0xF,
        n=word & 0xF,
        nn=word & 0xFF,
        nnn=word & 0xFFF,
    )

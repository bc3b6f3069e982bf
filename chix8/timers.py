"""CHIP-8 delay and sound timers.

Timers are decremented by the driver at a fixed 60 Hz cadence, independent of
how many instructions ran in between.
"""

from dataclasses import dataclass
from typing import Optional

import jax
import jax.numpy as jnp
from chix8.state import EmulatorState


@dataclass(frozen=True)
class ToneEndEvent:
    """The sound timer just reached zero; the audio collaborator stops the tone."""


def _decrement(timer: jnp.ndarray) -> jnp.ndarray:
    return jnp.where(timer > 0, timer - 1, timer)


@jax.jit
def tick(state: EmulatorState) -> tuple[EmulatorState, jnp.ndarray]:
    """Decrement both timers once. Returns whether the sound timer went 1 -> 0."""
    tone_end = state.sound_timer == 1
    return state.replace(
        delay_timer=_decrement(state.delay_timer),
        sound_timer=_decrement(state.sound_timer),
    ), tone_end


def tick_timers(state: EmulatorState) -> tuple[EmulatorState, Optional[ToneEndEvent]]:
    """Host-facing timer tick."""
    state, tone_end = tick(state)
    return state, ToneEndEvent() if bool(tone_end) else None

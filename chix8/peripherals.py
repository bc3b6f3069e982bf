"""Key-input and frame interfaces used by host input and rendering layers."""

import jax.numpy as jnp
import numpy as np

from chix8.constants import NUM_KEYS
from chix8.errors import InvalidKeyIndex
from chix8.state import EmulatorState


def set_key(state: EmulatorState, index: int, pressed: bool) -> EmulatorState:
    """Latch the pressed/released state of hexadecimal key ``index``."""
    if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
        raise InvalidKeyIndex(f"Key index must be an integer, got {index!r}")
    if not 0 <= index < NUM_KEYS:
        raise InvalidKeyIndex(f"Key index {index} outside 0-{NUM_KEYS - 1}")
    return state.replace(keypad=state.keypad.at[int(index)].set(bool(pressed)))


def release_all_keys(state: EmulatorState) -> EmulatorState:
    return state.replace(keypad=jnp.zeros_like(state.keypad))


def framebuffer(state: EmulatorState) -> np.ndarray:
    """Read-only (32, 64) uint8 copy of the display, indexed ``[y, x]``."""
    frame = np.array(state.display, dtype=np.uint8)
    frame.setflags(write=False)
    return frame


def consume_redraw_flag(state: EmulatorState) -> tuple[EmulatorState, bool]:
    """Return whether the display changed since the last call, and clear the flag."""
    redraw = bool(state.redraw)
    return state.replace(redraw=jnp.zeros((), dtype=jnp.bool_)), redraw

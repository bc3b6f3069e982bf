import sys
import time
import timeit

import jax
import jax.numpy as jnp
import numpy as np

from chix8 import create_state, load_rom, run_frame
from chix8.rendering import display_to_text


def time_it_measure(bench, repeat=10, number=3) -> np.ndarray:
    times = timeit.repeat(bench, repeat=repeat, number=number)
    return np.array(times) / number


if __name__ == "__main__":
    rom_path = sys.argv[1]
    # Number of machines run side by side
    num_machines = int(sys.argv[2]) if len(sys.argv) > 2 else 1000

    @jax.jit
    def rollout(rng):
        state = load_rom(create_state(rng), rom_path).state

        def frame(state, _):
            state, executed, tone_end = run_frame(state, 10)
            return state, (executed, tone_end)

        return jax.lax.scan(frame, state, length=600)

    rngs = jax.random.split(jax.random.PRNGKey(0), num_machines)

    # Measure compilation time
    start_compile = time.perf_counter()
    compiled = jax.block_until_ready(jax.jit(jax.vmap(rollout)).lower(rngs).compile())
    end_compile = time.perf_counter()

    print("Compilation time (s):", end_compile - start_compile)

    # Measure execution time
    def bench():
        jax.block_until_ready(compiled(rngs))

    times = time_it_measure(bench)
    print("Mean time (s):", times.mean())
    print("Q1 (s):", np.quantile(times, 0.25))
    print("Q3 (s):", np.quantile(times, 0.75))
    print("Instructions per second:", num_machines * 600 * 10 / times.mean())

    final_state, (executed, tone_ends) = compiled(rngs)
    print("Machines faulting in the last frame:", int(jnp.sum(final_state.fault != 0)))
    print("Tone ends, machine 0:", int(jnp.sum(tone_ends[0])))
    print(display_to_text(final_state.display[0]))

"""
Batch experiments
Arrival-rate sweeps and repeated stay-left vs random-choice comparisons
"""

import copy
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from walkway_config import SimulationConfig, get_stay_left_config, get_random_choice_config
from walkway_sim import CrowdSimulation


def run_scenario(config: SimulationConfig, max_time: Optional[float] = None) -> CrowdSimulation:
    """
    Initialize and run one simulation.

    With ``spawn.max_pedestrians`` set the run lasts until every walker has
    left (bounded by ``max_time``, or by ``config.timesteps`` steps without
    one), otherwise for ``config.timesteps`` steps.
    """
    sim = CrowdSimulation(config)
    sim.initialize()
    if config.spawn.max_pedestrians is not None:
        sim.run_until_empty(max_time=max_time)
    else:
        sim.run()
    return sim


def _summary_row(sim: CrowdSimulation, **extra) -> dict:
    summary = sim.collector.summary(trim=sim.config.trimmed_pedestrians)
    row = dict(extra)
    row.update({
        'arrived': summary['count'],
        'mean_travel_time': summary['mean'],
        'std_travel_time': summary['std'],
        'discarded': sim.state.discarded,
        'blocked_spawns': sim.state.blocked_spawns,
        'duration': sim.state.time,
    })
    return row


# ==================== ARRIVAL RATE SWEEP ====================

def sweep_arrival_rates(base_config: SimulationConfig, rates: Sequence[float],
                        max_time: Optional[float] = None, verbose: bool = True) -> pd.DataFrame:
    """
    Run ``base_config`` once per arrival rate.

    Args:
        base_config: Configuration copied for every run
        rates: Arrival rates (walkers/s per flow) to try
        max_time: Time limit for runs with a pedestrian cap
        verbose: Print one line per rate

    Returns:
        DataFrame with one row per rate
    """
    rows = []
    for rate in rates:
        config = copy.deepcopy(base_config)
        config.spawn.arrival_rate = float(rate)
        config.enable_analytics = False
        sim = run_scenario(config, max_time)
        row = _summary_row(sim, arrival_rate=float(rate))
        rows.append(row)
        if verbose:
            if row['mean_travel_time'] is None:
                print(f"  {rate:.2f}: no arrivals")
            else:
                print(f"  {rate:.2f}: {row['mean_travel_time']:.2f} ± {row['std_travel_time']:.2f}s")
    return pd.DataFrame(rows)


# ==================== ETIQUETTE COMPARISON ====================

def compare_etiquettes(iterations: int = 10, base_seed: Optional[int] = None,
                       configure=None, max_time: Optional[float] = None,
                       verbose: bool = True) -> pd.DataFrame:
    """
    Run the stay-left and random-choice presets side by side ``iterations``
    times and record which policy gave the lower mean travel time.

    Args:
        iterations: Number of paired runs
        base_seed: Run ``i`` uses seed ``base_seed + i`` for both policies
        configure: Optional callable applied to both configs before each run
        max_time: Time limit for runs with a pedestrian cap
        verbose: Print per-iteration results and the final tally
    """
    rows = []
    for i in range(iterations):
        seed = None if base_seed is None else base_seed + i
        results = {}
        for label, factory in (('stay_left', get_stay_left_config),
                               ('random_choice', get_random_choice_config)):
            config = factory()
            config.random_seed = seed
            if configure is not None:
                configure(config)
            sim = run_scenario(config, max_time)
            results[label] = sim.collector.summary(trim=config.trimmed_pedestrians)

        left_mean = results['stay_left']['mean']
        random_mean = results['random_choice']['mean']
        if left_mean is None or random_mean is None or left_mean == random_mean:
            winner = 'tie'
        else:
            winner = 'stay_left' if left_mean < random_mean else 'random_choice'

        rows.append({
            'iteration': i,
            'seed': seed,
            'stay_left_mean': left_mean,
            'stay_left_std': results['stay_left']['std'],
            'random_choice_mean': random_mean,
            'random_choice_std': results['random_choice']['std'],
            'winner': winner,
        })
        if verbose:
            print(f"  Stay left: {_fmt(left_mean, results['stay_left']['std'])}  |  "
                  f"Random choice: {_fmt(random_mean, results['random_choice']['std'])}")

    frame = pd.DataFrame(rows)
    if verbose:
        wins = frame['winner'].value_counts()
        print(f"\nStay left won {int(wins.get('stay_left', 0))} times.")
        print(f"Random choice won {int(wins.get('random_choice', 0))} times.")
    return frame


def _fmt(mean: Optional[float], std: Optional[float]) -> str:
    if mean is None:
        return "n/a"
    return f"{mean:.2f} ± {std:.2f}s"


def rate_grid(lower: float, upper: float, increment: float) -> List[float]:
    """Inclusive grid of rates rounded to the millisecond to avoid drift"""
    count = int(np.floor((upper - lower) / increment + 1e-9)) + 1
    return [round(lower + i * increment, 3) for i in range(count)]

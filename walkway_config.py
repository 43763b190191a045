"""
Configuration Module for the Walkway Etiquette Simulation
Calibrated parameters, scenario presets and validation
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional
import json


ETIQUETTE_NAMES = ('stay_left', 'stay_right', 'random_choice')
ENVIRONMENT_NAMES = ('corridor', 'corridor_vertical', 'diagonal', 'crossroads')

# Observed ratio of left-, random- and right-choosing pedestrians at the
# calibration site
CALIBRATION_ETIQUETTE_MIX = {
    'stay_left': 0.443877551020408,
    'random_choice': 0.520408163265306,
    'stay_right': 0.0357142857142857,
}


@dataclass
class WalkerConfig:
    """Configuration for individual pedestrian properties"""
    # Desired speed distribution (m/s)
    desired_speed_mean: float = 1.3
    desired_speed_std: float = 0.2
    desired_speed_min: float = 0.6
    desired_speed_max: float = 2.0

    # Kinematics
    max_speed: float = 2.5  # hard cap on walking speed
    radius: float = 0.25  # body radius in metres
    mass: float = 1.0  # normalised


@dataclass
class ForceConfig:
    """Coefficients for the steering force terms"""
    # Goal attraction
    relaxation_time: float = 0.5  # seconds

    # Agent repulsion (accelerations, m/s^2)
    interaction_radius: float = 2.5
    agent_strength: float = 2.0
    agent_range: float = 0.3

    # Head-on lateral avoidance
    lateral_strength: float = 2.0
    lateral_range: float = 1.0
    head_on_cosine: float = 0.5  # cos of the half-angle of the "ahead" cone

    # Walls
    wall_interaction_distance: float = 1.0
    wall_strength: float = 5.0
    wall_range: float = 0.2

    # Stability
    max_force: float = 10.0
    noise_std: float = 0.05  # velocity perturbation per step (m/s)


@dataclass
class SpawnConfig:
    """Configuration for the arrival process"""
    arrival_rate: float = 1.0  # walkers per second per flow
    flow_arrival_rates: Dict[str, float] = field(default_factory=dict)
    max_pedestrians: Optional[int] = None  # None = unlimited
    spawn_attempts: int = 5

    # Etiquette: either a single mode for everyone or a weighted mix
    etiquette_mode: str = 'stay_left'
    etiquette_mix: Optional[Dict[str, float]] = None

    def rate_for(self, flow_name: str) -> float:
        return self.flow_arrival_rates.get(flow_name, self.arrival_rate)

    def etiquette_weights(self) -> Dict[str, float]:
        """Normalised etiquette weights, in a fixed order"""
        if not self.etiquette_mix:
            return {self.etiquette_mode: 1.0}
        total = sum(self.etiquette_mix.values())
        return {name: self.etiquette_mix[name] / total
                for name in ETIQUETTE_NAMES if self.etiquette_mix.get(name, 0.0) > 0}


@dataclass
class SimulationConfig:
    """Main simulation configuration"""
    # Scenario
    environment: str = 'corridor'
    corridor_length: float = 25.0
    corridor_width: float = 6.0

    # Time settings
    timesteps: int = 1000
    time_step: float = 0.1  # seconds per step

    # Simulation behavior
    random_seed: Optional[int] = None

    # Data collection
    collect_data: bool = True
    save_history: bool = False  # keep a snapshot per step for rendering
    trimmed_pedestrians: int = 0  # arrivals excluded at each temporal extreme

    # Reporting
    enable_analytics: bool = False

    # Sub-configurations
    walker: WalkerConfig = None
    forces: ForceConfig = None
    spawn: SpawnConfig = None

    def __post_init__(self):
        if self.walker is None:
            self.walker = WalkerConfig()
        if self.forces is None:
            self.forces = ForceConfig()
        if self.spawn is None:
            self.spawn = SpawnConfig()


# ==================== PRESET CONFIGURATIONS ====================

def get_calibration_config() -> SimulationConfig:
    """Mixed etiquette matching the calibration site"""
    config = SimulationConfig()
    config.spawn.arrival_rate = 0.8
    config.spawn.etiquette_mix = dict(CALIBRATION_ETIQUETTE_MIX)
    return config


def get_stay_left_config() -> SimulationConfig:
    """Everyone keeps to the left"""
    config = SimulationConfig()
    config.spawn.etiquette_mode = 'stay_left'
    return config


def get_random_choice_config() -> SimulationConfig:
    """No convention, each encounter decided by a coin flip"""
    config = SimulationConfig()
    config.spawn.etiquette_mode = 'random_choice'
    return config


def get_vertical_calibration_config() -> SimulationConfig:
    """Calibration mix on the corridor rotated onto the y axis"""
    config = get_calibration_config()
    config.environment = 'corridor_vertical'
    return config


def get_diagonal_config() -> SimulationConfig:
    """Walkway at 45 degrees, checks that slanted walls behave"""
    config = get_calibration_config()
    config.environment = 'diagonal'
    config.spawn.etiquette_mix = {'stay_left': 0.44, 'random_choice': 0.52, 'stay_right': 0.04}
    return config


def get_crossroads_config() -> SimulationConfig:
    """Two crossing walkways, four flows (best effort)"""
    config = get_diagonal_config()
    config.environment = 'crossroads'
    config.spawn.arrival_rate = 0.4
    return config


# ==================== CONFIGURATION MANAGEMENT ====================

class ConfigManager:
    """Manage and validate configurations"""

    @staticmethod
    def get_all_presets() -> Dict[str, SimulationConfig]:
        """Get all predefined configurations"""
        return {
            'calibration': get_calibration_config(),
            'stay_left': get_stay_left_config(),
            'random_choice': get_random_choice_config(),
            'vertical_calibration': get_vertical_calibration_config(),
            'diagonal': get_diagonal_config(),
            'crossroads': get_crossroads_config(),
        }

    @staticmethod
    def save_config(config: SimulationConfig, filepath: str):
        """Save configuration to JSON file"""
        with open(filepath, 'w') as f:
            json.dump(asdict(config), f, indent=2)

    @staticmethod
    def load_config(filepath: str) -> SimulationConfig:
        """Load configuration from JSON file"""
        with open(filepath, 'r') as f:
            config_dict = json.load(f)

        # Reconstruct nested configs
        walker_config = WalkerConfig(**config_dict.get('walker', {}))
        force_config = ForceConfig(**config_dict.get('forces', {}))
        spawn_config = SpawnConfig(**config_dict.get('spawn', {}))

        return SimulationConfig(
            **{k: v for k, v in config_dict.items()
               if k not in ['walker', 'forces', 'spawn']},
            walker=walker_config,
            forces=force_config,
            spawn=spawn_config
        )

    @staticmethod
    def validate_config(config: SimulationConfig) -> List[str]:
        """Validate configuration and return list of problems"""
        problems = []

        # Scenario
        if config.environment not in ENVIRONMENT_NAMES:
            problems.append(f"Unknown environment '{config.environment}'")
        if config.corridor_length <= 0 or config.corridor_width <= 0:
            problems.append("Corridor dimensions must be positive")

        # Time
        if config.time_step <= 0:
            problems.append("Time step must be positive")
        if config.timesteps < 1:
            problems.append("Timesteps must be at least 1")
        if config.trimmed_pedestrians < 0:
            problems.append("Trimmed pedestrian count cannot be negative")

        # Walker
        walker = config.walker
        if walker.desired_speed_mean <= 0:
            problems.append("Desired speed must be positive")
        if walker.desired_speed_std < 0:
            problems.append("Desired speed deviation cannot be negative")
        if not 0 < walker.desired_speed_min <= walker.desired_speed_max:
            problems.append("Desired speed bounds must satisfy 0 < min <= max")
        if walker.max_speed < walker.desired_speed_max:
            problems.append("Maximum speed must be at least the largest desired speed")
        if walker.radius <= 0 or walker.mass <= 0:
            problems.append("Walker radius and mass must be positive")

        # Forces
        forces = config.forces
        if forces.relaxation_time < config.time_step:
            problems.append("Relaxation time shorter than the time step is unstable")
        if min(forces.agent_range, forces.lateral_range, forces.wall_range) <= 0:
            problems.append("Force ranges must be positive")
        if forces.max_force <= 0:
            problems.append("Maximum force must be positive")
        if forces.noise_std < 0:
            problems.append("Noise deviation cannot be negative")

        # Spawning
        spawn = config.spawn
        rates = [spawn.arrival_rate] + list(spawn.flow_arrival_rates.values())
        if any(rate < 0 for rate in rates):
            problems.append("Arrival rates cannot be negative")
        if any(rate * config.time_step > 1.0 for rate in rates):
            problems.append("Arrival rate too high for the time step (probability above 1)")
        if spawn.max_pedestrians is not None and spawn.max_pedestrians < 0:
            problems.append("Maximum pedestrian count cannot be negative")
        if spawn.spawn_attempts < 1:
            problems.append("Spawn attempts must be at least 1")
        if spawn.etiquette_mix:
            unknown = set(spawn.etiquette_mix) - set(ETIQUETTE_NAMES)
            if unknown:
                problems.append(f"Unknown etiquette names in mix: {sorted(unknown)}")
            if any(weight < 0 for weight in spawn.etiquette_mix.values()):
                problems.append("Etiquette weights cannot be negative")
            if sum(spawn.etiquette_mix.values()) <= 0:
                problems.append("Etiquette weights must sum to a positive value")
        elif spawn.etiquette_mode not in ETIQUETTE_NAMES:
            problems.append(f"Unknown etiquette mode '{spawn.etiquette_mode}'")

        return problems

    @staticmethod
    def print_config_summary(config: SimulationConfig):
        """Print a readable summary of the configuration"""
        print("\n" + "="*70)
        print(" SIMULATION CONFIGURATION ".center(70))
        print("="*70)

        print(f"\n🚶 WALKER SETTINGS:")
        print(f"   Desired speed: {config.walker.desired_speed_mean:.2f} ± {config.walker.desired_speed_std:.2f} m/s "
              f"(clipped to {config.walker.desired_speed_min:.1f}-{config.walker.desired_speed_max:.1f})")
        print(f"   Max speed: {config.walker.max_speed:.1f} m/s")
        print(f"   Body radius: {config.walker.radius:.2f} m")

        print(f"\n🧲 FORCE SETTINGS:")
        print(f"   Relaxation time: {config.forces.relaxation_time:.2f}s")
        print(f"   Agent repulsion: {config.forces.agent_strength:.1f} m/s² over {config.forces.agent_range:.2f} m")
        print(f"   Lateral avoidance: {config.forces.lateral_strength:.1f} m/s² over {config.forces.lateral_range:.2f} m")
        print(f"   Wall repulsion: {config.forces.wall_strength:.1f} m/s² over {config.forces.wall_range:.2f} m")
        print(f"   Noise: {config.forces.noise_std:.3f} m/s per step")

        print(f"\n🚪 SPAWN SETTINGS:")
        print(f"   Environment: {config.environment}")
        print(f"   Arrival rate: {config.spawn.arrival_rate:.2f} walkers/s per flow")
        if config.spawn.max_pedestrians is not None:
            print(f"   Pedestrian cap: {config.spawn.max_pedestrians}")
        weights = config.spawn.etiquette_weights()
        print(f"   Etiquette: " + ", ".join(f"{name} {weight*100:.0f}%" for name, weight in weights.items()))

        print(f"\n⏱️  SIMULATION SETTINGS:")
        print(f"   Duration: {config.timesteps} steps ({config.timesteps * config.time_step:.0f}s)")
        print(f"   Time step: {config.time_step}s")
        print(f"   Random seed: {config.random_seed}")

        print("="*70 + "\n")


# ==================== SCENARIO COMPARISON ====================

def compare_scenarios(scenario_names: List[str] = None):
    """Compare multiple scenario configurations"""
    if scenario_names is None:
        scenario_names = ['calibration', 'stay_left', 'random_choice', 'crossroads']

    presets = ConfigManager.get_all_presets()

    print("\n" + "="*90)
    print(" SCENARIO COMPARISON ".center(90))
    print("="*90)

    print(f"\n{'Metric':<25}", end="")
    for name in scenario_names:
        print(f"{name:<20}", end="")
    print()
    print("-" * 90)

    metrics = [
        ('Environment', lambda c: c.environment),
        ('Arrival rate (1/s)', lambda c: c.spawn.arrival_rate),
        ('Speed (m/s)', lambda c: c.walker.desired_speed_mean),
        ('Stay left %', lambda c: f"{c.spawn.etiquette_weights().get('stay_left', 0)*100:.0f}%"),
        ('Random %', lambda c: f"{c.spawn.etiquette_weights().get('random_choice', 0)*100:.0f}%"),
        ('Time step (s)', lambda c: c.time_step),
    ]

    for metric_name, metric_func in metrics:
        print(f"{metric_name:<25}", end="")
        for name in scenario_names:
            if name in presets:
                print(f"{str(metric_func(presets[name])):<20}", end="")
        print()

    print("="*90 + "\n")


DEFAULT_CONFIG = get_calibration_config()

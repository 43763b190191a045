"""
Walkway Etiquette Simulation
Force-based pedestrian model with two opposing flows
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import KDTree

from walkway_config import SimulationConfig, ConfigManager, get_calibration_config
from walkway_environment import (ConfigurationError, Direction, Flow, WalkwayEnvironment,
                                 Zone, build_environment)
from walkway_statistics import ArrivalEvent, DiscardEvent, TravelTimeCollector


class Etiquette(Enum):
    STAY_LEFT = 'stay_left'
    STAY_RIGHT = 'stay_right'
    RANDOM_CHOICE = 'random_choice'


class WalkerStatus(Enum):
    ACTIVE = 'active'
    ARRIVED = 'arrived'
    REMOVED = 'removed'


class SimState(Enum):
    UNINITIALIZED = 'uninitialized'
    RUNNING = 'running'
    PAUSED = 'paused'
    STOPPED = 'stopped'


class IntegrationAnomaly(RuntimeError):
    """Raised when a walker's position or velocity stops being finite."""


# ==================== WALKER CLASS ====================
class Walker:
    """Represents an individual pedestrian in the simulation"""

    def __init__(self, walker_id: int, position: np.ndarray, target: np.ndarray,
                 target_zone: Zone, flow: Flow, desired_speed: float,
                 etiquette: Etiquette, spawn_time: float,
                 velocity: Optional[np.ndarray] = None):
        """
        Initialize a walker.

        Args:
            walker_id: Unique identifier
            position: Starting (x, y) position
            target: Goal point, fixed for the walker's lifetime
            target_zone: Zone containing the goal; entering it means arrival
            flow: Flow the walker belongs to
            desired_speed: Preferred walking speed in m/s
            etiquette: Lateral avoidance policy
            spawn_time: Simulation time of creation
            velocity: Initial velocity (at rest if None)
        """
        self.id = walker_id
        self.pos = np.array(position, dtype=float)
        self.vel = np.zeros(2) if velocity is None else np.array(velocity, dtype=float)
        self.target = np.array(target, dtype=float)
        self.target_zone = target_zone
        self.flow = flow.name
        self.direction: Direction = flow.direction
        self.desired_speed = float(desired_speed)
        self.etiquette = etiquette
        self.status = WalkerStatus.ACTIVE

        # Timing
        self.spawn_time = spawn_time
        self.arrival_time: Optional[float] = None
        self.line_crossings: Dict[int, float] = {}

    def heading(self) -> np.ndarray:
        """Unit vector towards the target (or along the velocity once there)"""
        to_target = self.target - self.pos
        dist = np.linalg.norm(to_target)
        if dist > 1e-9:
            return to_target / dist
        speed = np.linalg.norm(self.vel)
        if speed > 1e-9:
            return self.vel / speed
        return np.zeros(2)

    def record_crossings(self, old_pos: np.ndarray, timing_lines, time: float):
        """Remember the first time each timing line is crossed"""
        for idx, line in enumerate(timing_lines):
            if idx not in self.line_crossings and line.crosses(old_pos, self.pos):
                self.line_crossings[idx] = time

    def get_travel_time(self) -> Optional[float]:
        if self.arrival_time is None:
            return None
        return self.arrival_time - self.spawn_time

    def get_timed_travel_time(self) -> Optional[float]:
        """Time between the first and the last timing line crossed"""
        if len(self.line_crossings) < 2:
            return None
        times = self.line_crossings.values()
        return max(times) - min(times)

    def __repr__(self):
        return (f"Walker({self.id}, {self.flow}, pos=({self.pos[0]:.2f}, {self.pos[1]:.2f}), "
                f"{self.etiquette.value}, {self.status.value})")


# ==================== FORCE MODEL CLASS ====================
class ForceModel:
    """
    Steering force on each walker from goal attraction, neighbour repulsion
    (with etiquette-dependent sidestepping in head-on encounters) and walls.

    All forces of a step are computed from one copy of the walker positions
    and velocities taken before anything moves.
    """

    def __init__(self, config: SimulationConfig, environment: WalkwayEnvironment):
        self.params = config.forces
        self.radius = config.walker.radius
        self.environment = environment

        # (walker id, neighbour id) -> +1 (own left) / -1 (own right),
        # drawn once per encounter for RANDOM_CHOICE walkers
        self.encounter_sides: Dict[Tuple[int, int], int] = {}

    # --- Individual terms ---
    def goal_force(self, velocity: np.ndarray, heading: np.ndarray, desired_speed: float) -> np.ndarray:
        """Relaxation towards the desired velocity"""
        if not np.any(heading):
            return np.zeros(2)
        return (desired_speed * heading - velocity) / self.params.relaxation_time

    def wall_repulsion(self, position: np.ndarray) -> np.ndarray:
        force = np.zeros(2)
        for wall in self.environment.walls:
            dist, normal = wall.distance_and_normal(position)
            # Sitting exactly on the wall line gives no usable normal
            if dist == 0.0 or dist > self.params.wall_interaction_distance:
                continue
            force += self.params.wall_strength * np.exp((self.radius - dist) / self.params.wall_range) * normal
        return force

    def is_head_on(self, position: np.ndarray, heading: np.ndarray,
                   other_position: np.ndarray, other_heading: np.ndarray) -> bool:
        """Neighbour is ahead within the cone and walking the opposite way"""
        if np.dot(heading, other_heading) >= 0:
            return False
        offset = other_position - position
        dist = np.linalg.norm(offset)
        if dist < 1e-9:
            return True
        return float(np.dot(heading, offset)) / dist > self.params.head_on_cosine

    def side_for(self, walker_id: int, etiquette: Etiquette, neighbour_id: int) -> int:
        if etiquette == Etiquette.STAY_LEFT:
            return 1
        if etiquette == Etiquette.STAY_RIGHT:
            return -1
        return self.encounter_sides.get((walker_id, neighbour_id), 0)

    def agent_repulsion(self, walker_id: int, position: np.ndarray, heading: np.ndarray,
                        etiquette: Etiquette, neighbours: Sequence[Tuple[int, np.ndarray, np.ndarray]]) -> np.ndarray:
        """
        Repulsion from neighbouring walkers.

        Args:
            walker_id: Id of the walker the force acts on
            position: Its position at step start
            heading: Its unit heading
            etiquette: Its etiquette
            neighbours: (id, position, heading) of every walker within the
                interaction radius, ordered by id

        Returns:
            Acceleration vector
        """
        p = self.params
        contact = 2 * self.radius
        left = np.array([-heading[1], heading[0]])
        force = np.zeros(2)

        for other_id, other_pos, other_heading in neighbours:
            offset = position - other_pos
            dist = np.linalg.norm(offset)
            if dist > 1e-9:
                away = offset / dist
            else:
                away = left
            force += p.agent_strength * np.exp((contact - dist) / p.agent_range) * away

            if self.is_head_on(position, heading, other_pos, other_heading):
                side = self.side_for(walker_id, etiquette, other_id)
                force += side * p.lateral_strength * np.exp(-(dist - contact) / p.lateral_range) * left

        return force

    def clamp(self, force: np.ndarray) -> np.ndarray:
        magnitude = np.linalg.norm(force)
        if magnitude > self.params.max_force:
            return force * (self.params.max_force / magnitude)
        return force

    # --- Whole step ---
    def find_neighbours(self, positions: np.ndarray) -> List[List[int]]:
        """Indices of the walkers within the interaction radius of each walker"""
        if len(positions) == 0:
            return []
        tree = KDTree(positions)
        result = []
        for idx, found in enumerate(tree.query_ball_point(positions, self.params.interaction_radius)):
            result.append(sorted(j for j in found if j != idx))
        return result

    def resolve_encounters(self, ids: Sequence[int], positions: np.ndarray, headings: np.ndarray,
                           etiquettes: Sequence[Etiquette], neighbours: List[List[int]],
                           rng: np.random.Generator):
        """
        Keep the sidestep choice of ongoing RANDOM_CHOICE encounters and draw
        one for each new head-on encounter, in walker id then neighbour id
        order. Pairs that drifted out of range are forgotten.
        """
        sides = {}
        for i, walker_id in enumerate(ids):
            if etiquettes[i] != Etiquette.RANDOM_CHOICE:
                continue
            for j in neighbours[i]:
                key = (walker_id, ids[j])
                if key in self.encounter_sides:
                    sides[key] = self.encounter_sides[key]
                elif self.is_head_on(positions[i], headings[i], positions[j], headings[j]):
                    sides[key] = 1 if rng.random() < 0.5 else -1
        self.encounter_sides = sides

    def compute_forces(self, walkers: Sequence[Walker], rng: np.random.Generator) -> Dict[int, np.ndarray]:
        """Net (clamped) force per walker id; walkers must be ordered by id"""
        if not walkers:
            self.encounter_sides = {}
            return {}

        ids = [w.id for w in walkers]
        positions = np.array([w.pos for w in walkers])
        velocities = np.array([w.vel for w in walkers])
        headings = np.array([w.heading() for w in walkers])
        etiquettes = [w.etiquette for w in walkers]

        neighbours = self.find_neighbours(positions)
        self.resolve_encounters(ids, positions, headings, etiquettes, neighbours, rng)

        forces = {}
        for i, walker in enumerate(walkers):
            force = self.goal_force(velocities[i], headings[i], walker.desired_speed)
            force = force + self.agent_repulsion(
                ids[i], positions[i], headings[i], etiquettes[i],
                [(ids[j], positions[j], headings[j]) for j in neighbours[i]])
            force = force + self.wall_repulsion(positions[i])
            forces[walker.id] = self.clamp(force)
        return forces


# ==================== INTEGRATOR CLASS ====================
class Integrator:
    """Semi-implicit Euler step with velocity noise and wall collision handling"""

    def __init__(self, config: SimulationConfig, environment: WalkwayEnvironment):
        self.mass = config.walker.mass
        self.max_speed = config.walker.max_speed
        self.radius = config.walker.radius
        self.noise_std = config.forces.noise_std
        self.environment = environment

    def sample_noise(self, rng: np.random.Generator) -> np.ndarray:
        return rng.normal(0.0, self.noise_std, size=2)

    def integrate(self, walker: Walker, force: np.ndarray, noise: np.ndarray, dt: float):
        """
        Advance one walker by ``dt``.

        Raises:
            IntegrationAnomaly: if the new state is not finite
        """
        new_vel = walker.vel + force / self.mass * dt + noise
        if not np.all(np.isfinite(new_vel)):
            raise IntegrationAnomaly(f"Walker {walker.id} has a non-finite velocity")

        speed = np.linalg.norm(new_vel)
        if speed > self.max_speed:
            new_vel = new_vel * (self.max_speed / speed)

        new_pos = walker.pos + new_vel * dt
        if not np.all(np.isfinite(new_pos)):
            raise IntegrationAnomaly(f"Walker {walker.id} has a non-finite position")

        wall = self.environment.move_crosses_wall(walker.pos, new_pos)
        if wall is not None:
            # Stay put and drop the velocity component pointing into the wall
            new_pos = walker.pos.copy()
            dist, normal = wall.distance_and_normal(walker.pos)
            if dist > 0:
                into = np.dot(new_vel, normal)
                if into < 0:
                    new_vel = new_vel - into * normal

        walker.pos = self.resolve_wall_collisions(new_pos)
        walker.vel = new_vel

    def resolve_wall_collisions(self, position: np.ndarray) -> np.ndarray:
        """Nudge a position that overlaps a wall back out along the wall normal"""
        position = position.copy()
        for wall in self.environment.walls:
            dist, normal = wall.distance_and_normal(position)
            if dist == 0.0:
                continue
            if dist < self.radius:
                position += (self.radius - dist) * normal
        return position


# ==================== SIMULATION STATE ====================
@dataclass
class SimulationState:
    """Mutable state owned by the driver; walkers are kept in id order"""
    walkers: Dict[int, Walker] = field(default_factory=dict)
    time: float = 0.0
    step: int = 0
    next_id: int = 0

    # Accumulated counts
    spawned: int = 0
    arrived: int = 0
    discarded: int = 0
    blocked_spawns: int = 0
    total_travel_time: float = 0.0

    @property
    def active_count(self) -> int:
        return len(self.walkers)

    @property
    def mean_travel_time(self) -> Optional[float]:
        if self.arrived == 0:
            return None
        return self.total_travel_time / self.arrived


@dataclass(frozen=True)
class WalkerView:
    """Read-only copy of one active walker"""
    id: int
    position: Tuple[float, float]
    velocity: Tuple[float, float]
    direction: str
    flow: str
    etiquette: str
    status: str


@dataclass(frozen=True)
class SimulationSnapshot:
    """Read-only view of the simulation between two steps"""
    time: float
    step: int
    walkers: Tuple[WalkerView, ...]
    active_count: int
    spawned: int
    arrived: int
    discarded: int
    blocked_spawns: int
    mean_travel_time: Optional[float]


# ==================== POPULATION MANAGER CLASS ====================
class PopulationManager:
    """Spawns walkers at entry zones and retires them on arrival or discard"""

    def __init__(self, config: SimulationConfig, environment: WalkwayEnvironment,
                 rng: np.random.Generator):
        self.config = config
        self.environment = environment
        self.rng = rng

        weights = config.spawn.etiquette_weights()
        self._etiquette_choices = [Etiquette(name) for name in weights]
        self._etiquette_probs = np.array(list(weights.values()), dtype=float)

    # --- Sampling ---
    def sample_desired_speed(self) -> float:
        """Sample speed from normal distribution with bounds"""
        w = self.config.walker
        return float(np.clip(self.rng.normal(w.desired_speed_mean, w.desired_speed_std),
                             w.desired_speed_min, w.desired_speed_max))

    def sample_etiquette(self) -> Etiquette:
        idx = self.rng.choice(len(self._etiquette_choices), p=self._etiquette_probs)
        return self._etiquette_choices[idx]

    def _find_free_position(self, zone: Zone, state: SimulationState) -> Optional[np.ndarray]:
        """Point in the zone at least one body diameter away from everyone"""
        diameter = 2 * self.config.walker.radius
        occupied = np.array([w.pos for w in state.walkers.values()]) if state.walkers else None
        for _ in range(self.config.spawn.spawn_attempts):
            candidate = zone.sample(self.rng)
            if occupied is None or np.min(np.linalg.norm(occupied - candidate, axis=1)) >= diameter:
                return candidate
        return None

    def _register(self, state: SimulationState, flow: Flow, position: np.ndarray,
                  target: np.ndarray, target_zone: Zone, desired_speed: float,
                  etiquette: Etiquette, velocity: Optional[np.ndarray] = None) -> Walker:
        walker = Walker(state.next_id, position, target, target_zone, flow,
                        desired_speed, etiquette, state.time, velocity)
        state.walkers[walker.id] = walker
        state.next_id += 1
        state.spawned += 1
        return walker

    # --- Lifecycle ---
    def cap_reached(self, state: SimulationState) -> bool:
        cap = self.config.spawn.max_pedestrians
        return cap is not None and state.spawned >= cap

    def spawn(self, state: SimulationState) -> List[Walker]:
        """
        One Bernoulli trial per entry zone, flows in declaration order.

        Each success draws, in order: the position (up to spawn_attempts
        tries), the target zone, the target point, the desired speed and the
        etiquette. A success with no free position counts as blocked.
        """
        dt = self.config.time_step
        created = []
        for flow in self.environment.flows.values():
            probability = self.config.spawn.rate_for(flow.name) * dt / len(flow.entries)
            for zone in flow.entries:
                if self.cap_reached(state):
                    return created
                if self.rng.random() >= probability:
                    continue

                position = self._find_free_position(zone, state)
                if position is None:
                    state.blocked_spawns += 1
                    continue

                target_zone = flow.targets[int(self.rng.integers(len(flow.targets)))]
                target = target_zone.sample(self.rng)
                desired_speed = self.sample_desired_speed()
                etiquette = self.sample_etiquette()
                created.append(self._register(state, flow, position, target, target_zone,
                                              desired_speed, etiquette))
        return created

    def add_walker(self, state: SimulationState, position, flow_name: str, target=None,
                   etiquette: Optional[Etiquette] = None, desired_speed: Optional[float] = None,
                   velocity=None) -> Walker:
        """
        Place a walker explicitly.

        Unspecified target, desired speed and etiquette are drawn the same way
        spawning draws them.
        """
        flow = self.environment.get_flow(flow_name)
        position = np.array(position, dtype=float)
        if not self.environment.is_in_bounds(position):
            raise ValueError(f"Position {tuple(position)} is outside the environment")

        if target is None:
            target_zone = flow.targets[int(self.rng.integers(len(flow.targets)))]
            target = target_zone.sample(self.rng)
        else:
            target = np.array(target, dtype=float)
            target_zone = next((z for z in flow.targets if z.contains(target)), None)
            if target_zone is None:
                raise ValueError(f"Target {tuple(target)} is not inside a target zone of flow '{flow_name}'")

        if desired_speed is None:
            desired_speed = self.sample_desired_speed()
        if etiquette is None:
            etiquette = self.sample_etiquette()
        return self._register(state, flow, position, target, target_zone,
                              desired_speed, etiquette, velocity)

    def collect_arrivals(self, state: SimulationState, time: float) -> List[ArrivalEvent]:
        """Retire walkers standing inside their own target zone"""
        events = []
        for walker in list(state.walkers.values()):
            if not walker.target_zone.contains(walker.pos):
                continue
            walker.status = WalkerStatus.ARRIVED
            walker.arrival_time = time
            travel_time = walker.get_travel_time()
            del state.walkers[walker.id]
            state.arrived += 1
            state.total_travel_time += travel_time
            events.append(ArrivalEvent(
                walker_id=walker.id,
                flow=walker.flow,
                direction=walker.direction.value,
                etiquette=walker.etiquette.value,
                spawn_time=walker.spawn_time,
                arrival_time=time,
                travel_time=travel_time,
                timed_travel_time=walker.get_timed_travel_time(),
            ))
        return events

    def discard(self, state: SimulationState, walker_id: int, time: float, reason: str) -> DiscardEvent:
        walker = state.walkers.pop(walker_id)
        walker.status = WalkerStatus.REMOVED
        state.discarded += 1
        return DiscardEvent(walker_id=walker_id, time=time, reason=reason, flow=walker.flow)

    def collect_out_of_bounds(self, state: SimulationState, time: float) -> List[DiscardEvent]:
        escaped = [w.id for w in state.walkers.values() if not self.environment.is_in_bounds(w.pos)]
        return [self.discard(state, walker_id, time, 'out_of_bounds') for walker_id in escaped]


# ==================== SIMULATION DRIVER CLASS ====================
class CrowdSimulation:
    """
    Main simulation driver.
    Owns the state, the random generator and every component.
    """

    def __init__(self, config: SimulationConfig = None,
                 environment: Optional[WalkwayEnvironment] = None):
        """
        Create a simulation; nothing is validated until ``initialize``.

        Args:
            config: Simulation configuration (calibration preset if None)
            environment: Custom geometry; built from ``config.environment`` if None
        """
        self.config = config if config is not None else get_calibration_config()
        self.environment = environment
        self.verbose = self.config.enable_analytics

        # Components, created by initialize()
        self.rng: Optional[np.random.Generator] = None
        self.force_model: Optional[ForceModel] = None
        self.integrator: Optional[Integrator] = None
        self.population: Optional[PopulationManager] = None

        self.sim_state = SimState.UNINITIALIZED
        self.state = SimulationState()
        self.collector = TravelTimeCollector()

        # Data collection
        self.stats_history: List[Dict] = []
        self.history: List[SimulationSnapshot] = []

    # --- Lifecycle ---
    def initialize(self):
        """
        Validate the configuration, build the environment and components.

        Raises:
            ConfigurationError: if the configuration or geometry is invalid
            RuntimeError: if called twice
        """
        if self.sim_state != SimState.UNINITIALIZED:
            raise RuntimeError("Simulation already initialized")

        problems = ConfigManager.validate_config(self.config)
        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

        if self.verbose:
            print("\n🏗️  Initializing simulation...")
            print(f"  Building '{self.config.environment}' environment...")
        if self.environment is None:
            self.environment = build_environment(self.config.environment,
                                                 self.config.corridor_length,
                                                 self.config.corridor_width)

        unknown = set(self.config.spawn.flow_arrival_rates) - set(self.environment.flows)
        if unknown:
            raise ConfigurationError(f"Arrival rates given for unknown flows: {sorted(unknown)}")

        self.rng = np.random.default_rng(self.config.random_seed)
        self.force_model = ForceModel(self.config, self.environment)
        self.integrator = Integrator(self.config, self.environment)
        self.population = PopulationManager(self.config, self.environment, self.rng)

        self.sim_state = SimState.RUNNING
        if self.config.save_history:
            self.history.append(self.snapshot())

        if self.verbose:
            print("✓ Initialization complete!")
            self._print_initialization_summary()

    def pause(self):
        if self.sim_state != SimState.RUNNING:
            raise RuntimeError(f"Cannot pause a simulation that is {self.sim_state.value}")
        self.sim_state = SimState.PAUSED

    def resume(self):
        if self.sim_state != SimState.PAUSED:
            raise RuntimeError(f"Cannot resume a simulation that is {self.sim_state.value}")
        self.sim_state = SimState.RUNNING

    def stop(self):
        if self.sim_state == SimState.UNINITIALIZED:
            raise RuntimeError("Simulation not initialized. Call initialize() first.")
        self.sim_state = SimState.STOPPED

    def _require_running(self):
        if self.sim_state == SimState.UNINITIALIZED:
            raise RuntimeError("Simulation not initialized. Call initialize() first.")
        if self.sim_state != SimState.RUNNING:
            raise RuntimeError(f"Simulation is {self.sim_state.value}, not running")

    # --- Stepping ---
    def add_walker(self, position, flow_name: str, target=None, etiquette=None,
                   desired_speed: Optional[float] = None, velocity=None) -> Walker:
        """Place a walker by hand between steps"""
        if self.sim_state == SimState.UNINITIALIZED:
            raise RuntimeError("Simulation not initialized. Call initialize() first.")
        if isinstance(etiquette, str):
            etiquette = Etiquette(etiquette)
        return self.population.add_walker(self.state, position, flow_name, target,
                                          etiquette, desired_speed, velocity)

    def step(self) -> SimulationSnapshot:
        """Execute one simulation step"""
        self._require_running()
        dt = self.config.time_step
        end_time = (self.state.step + 1) * dt

        # Spawn
        self.population.spawn(self.state)

        # Forces from the step-start state
        walkers = list(self.state.walkers.values())
        forces = self.force_model.compute_forces(walkers, self.rng)

        # Integrate
        anomalies = []
        for walker in walkers:
            noise = self.integrator.sample_noise(self.rng)
            old_pos = walker.pos.copy()
            try:
                self.integrator.integrate(walker, forces[walker.id], noise, dt)
            except IntegrationAnomaly as exc:
                anomalies.append((walker.id, str(exc)))
                continue
            walker.record_crossings(old_pos, self.environment.timing_lines, end_time)

        # Prune
        discards = [self.population.discard(self.state, walker_id, end_time, 'non_finite_state')
                    for walker_id, _ in anomalies]
        arrivals = self.population.collect_arrivals(self.state, end_time)
        discards += self.population.collect_out_of_bounds(self.state, end_time)

        for event in arrivals:
            self.collector.record_arrival(event)
        for event in discards:
            self.collector.record_discard(event)
        if self.verbose:
            for walker_id, message in anomalies:
                print(f"[DEBUG] {message}")
            for event in discards:
                print(f"[DEBUG] t={event.time:.1f}s discarded walker {event.walker_id} ({event.reason})")

        # Advance time
        self.state.step += 1
        self.state.time = end_time

        snapshot = self.snapshot()
        if self.config.collect_data:
            self.stats_history.append(self.get_statistics())
        if self.config.save_history:
            self.history.append(snapshot)
        return snapshot

    def run(self, max_steps: int = None):
        """
        Run the simulation.

        Args:
            max_steps: Maximum steps to run (uses config if None)
        """
        self._require_running()
        if max_steps is None:
            max_steps = self.config.timesteps

        if self.verbose:
            print(f"\n🏃 Running simulation for {max_steps} steps...")

        for step in range(max_steps):
            self.step()
            if self.verbose and step % 100 == 0:
                print(f"  Step {step}/{max_steps} ({self.state.time:.0f}s) "
                      f"active={self.state.active_count} arrived={self.state.arrived}")

        if self.verbose:
            print("✓ Simulation complete!")
            self._print_final_statistics()

    def run_until_empty(self, max_time: Optional[float] = None):
        """
        Run until ``spawn.max_pedestrians`` walkers have been created and all
        of them have left, or until ``max_time`` seconds have elapsed.
        Without ``max_time`` the run is bounded by ``config.timesteps`` steps
        so a starved arrival process still returns.
        """
        self._require_running()
        if self.config.spawn.max_pedestrians is None:
            raise ValueError("run_until_empty needs spawn.max_pedestrians to be set")
        if max_time is None:
            max_time = self.config.timesteps * self.config.time_step

        if self.verbose:
            print(f"\n🏃 Running until {self.config.spawn.max_pedestrians} walkers have left...")

        while not (self.population.cap_reached(self.state) and self.state.active_count == 0):
            if self.state.time >= max_time - 1e-9:
                break
            self.step()

        if self.verbose:
            print(f"✓ Finished after {self.state.time:.1f}s")
            self._print_final_statistics()

    # --- Read-only views ---
    def snapshot(self) -> SimulationSnapshot:
        views = tuple(
            WalkerView(
                id=w.id,
                position=(float(w.pos[0]), float(w.pos[1])),
                velocity=(float(w.vel[0]), float(w.vel[1])),
                direction=w.direction.value,
                flow=w.flow,
                etiquette=w.etiquette.value,
                status=w.status.value,
            )
            for w in self.state.walkers.values()
        )
        return SimulationSnapshot(
            time=self.state.time,
            step=self.state.step,
            walkers=views,
            active_count=self.state.active_count,
            spawned=self.state.spawned,
            arrived=self.state.arrived,
            discarded=self.state.discarded,
            blocked_spawns=self.state.blocked_spawns,
            mean_travel_time=self.state.mean_travel_time,
        )

    def get_statistics(self) -> Dict:
        """Get current simulation statistics"""
        active_by_flow = {name: 0 for name in self.environment.flows} if self.environment else {}
        for walker in self.state.walkers.values():
            active_by_flow[walker.flow] = active_by_flow.get(walker.flow, 0) + 1

        return {
            'step': self.state.step,
            'time': self.state.time,
            'state': self.sim_state.value,
            'active_count': self.state.active_count,
            'active_by_flow': active_by_flow,
            'spawned': self.state.spawned,
            'arrived': self.state.arrived,
            'discarded': self.state.discarded,
            'blocked_spawns': self.state.blocked_spawns,
            'mean_travel_time': self.state.mean_travel_time,
        }

    def _print_initialization_summary(self):
        """Print initialization summary"""
        print("\n" + "="*70)
        print(" INITIALIZATION SUMMARY ".center(70))
        print("="*70)

        b = self.environment.bounds
        print(f"\n🗺️  ENVIRONMENT: {self.environment.name}")
        print(f"   Bounds: x {b['x_min']:.1f}..{b['x_max']:.1f}, y {b['y_min']:.1f}..{b['y_max']:.1f}")
        print(f"   Walls: {len(self.environment.walls)}, timing lines: {len(self.environment.timing_lines)}")
        print(f"   Entry zones: {len(self.environment.entry_zones)}, target zones: {len(self.environment.target_zones)}")

        print(f"\n🚶 FLOWS:")
        for flow in self.environment.flows.values():
            print(f"   {flow.name} ({flow.direction.value}): {len(flow.entries)} entries, "
                  f"{len(flow.targets)} targets, {self.config.spawn.rate_for(flow.name):.2f} walkers/s")

        print(f"\n🎲 RANDOM SEED: {self.config.random_seed}")
        print("="*70 + "\n")

    def _print_final_statistics(self):
        """Print final statistics"""
        summary = self.collector.summary(trim=self.config.trimmed_pedestrians)

        print("\n" + "="*70)
        print(" FINAL STATISTICS ".center(70))
        print("="*70)

        print(f"\n📊 POPULATION:")
        print(f"   Spawned: {self.state.spawned}")
        print(f"   Arrived: {self.state.arrived}")
        print(f"   Still walking: {self.state.active_count}")
        print(f"   Discarded: {self.state.discarded}")
        print(f"   Blocked spawns: {self.state.blocked_spawns}")

        if summary['count']:
            print(f"\n⏱️  TRAVEL TIMES ({summary['count']} samples):")
            print(f"   Average: {summary['mean']:.2f}s")
            print(f"   Std dev: {summary['std']:.2f}s")
            print(f"   Fastest: {summary['min']:.1f}s")
            print(f"   Slowest: {summary['max']:.1f}s")

            print(f"\n🧭 BY DIRECTION:")
            for row in self.collector.summary_frame(('direction',)).itertuples(index=False):
                print(f"   {row.direction}: {row.mean:.2f}s over {row.count} walkers")

        print("="*70 + "\n")

    def generate_report(self) -> Dict:
        """Generate comprehensive simulation report"""
        trim = self.config.trimmed_pedestrians
        summary = self.collector.summary(trim=trim)

        report = {
            'configuration': {
                'environment': self.environment.name if self.environment else self.config.environment,
                'arrival_rate': self.config.spawn.arrival_rate,
                'etiquette': self.config.spawn.etiquette_weights(),
                'time_step': self.config.time_step,
                'random_seed': self.config.random_seed,
                'duration': self.state.time,
            },
            'population': {
                'spawned': self.state.spawned,
                'arrived': self.state.arrived,
                'active': self.state.active_count,
                'discarded': self.state.discarded,
                'blocked_spawns': self.state.blocked_spawns,
                'discard_reasons': self.collector.discard_reasons(),
            },
            'travel_time': summary,
            'timed_travel_time': self.collector.summary(trim=trim, timed=True),
            'by_direction': self.collector.summary_frame(('direction',), trim).to_dict('records'),
            'by_etiquette': self.collector.summary_frame(('etiquette',), trim).to_dict('records'),
            'throughput': self.collector.throughput(self.state.time),
        }

        return report

"""
Simple Example: Running the Walkway Etiquette Simulation
No user input required - runs the calibration preset
Includes visualizations!
"""

from walkway_config import get_calibration_config, compare_scenarios, ConfigManager
from walkway_sim import CrowdSimulation
from walkway_visualizer import visualize_simulation


def main(show_visualizations: bool = True):
    print("\n" + "="*70)
    print(" WALKWAY ETIQUETTE SIMULATION - SIMPLE EXAMPLE ".center(70))
    print("="*70)

    # Create configuration
    config = get_calibration_config()
    config.random_seed = 42
    config.save_history = show_visualizations
    config.trimmed_pedestrians = 20
    config.enable_analytics = True

    ConfigManager.print_config_summary(config)
    compare_scenarios()

    # Create and run simulation
    sim = CrowdSimulation(config)
    sim.initialize()
    sim.run()

    # Get final report
    report = sim.generate_report()

    print("\n" + "="*70)
    print(" FINAL REPORT ".center(70))
    print("="*70)

    population = report['population']
    print(f"\n🚶 POPULATION:")
    print(f"   Arrived: {population['arrived']}/{population['spawned']}")
    print(f"   Discarded: {population['discarded']} {population['discard_reasons'] or ''}")
    print(f"   Throughput: {report['throughput']:.2f} walkers/s")

    travel = report['travel_time']
    if travel['mean'] is not None:
        print(f"\n⏱️  TRAVEL TIME (trimmed {config.trimmed_pedestrians} at each end):")
        print(f"   Average: {travel['mean']:.2f} ± {travel['std']:.2f}s")
        print(f"   Fastest: {travel['min']:.1f}s")
        print(f"   Slowest: {travel['max']:.1f}s")
        print(f"   Total walker time: {travel['total'] / 3600:.2f} hours")

    timed = report['timed_travel_time']
    if timed['mean'] is not None:
        print(f"   Between timing lines: {timed['mean']:.2f} ± {timed['std']:.2f}s")

    print(f"\n🧭 BY ETIQUETTE:")
    for row in report['by_etiquette']:
        print(f"   {row['etiquette']}: {row['mean']:.2f}s ({row['count']} walkers)")

    print("\n" + "="*70)

    if show_visualizations:
        print("\n🎬 Generating visualizations...")
        print("   (This will open in your browser)")
        visualize_simulation(sim)

    print("\n✨ Simulation complete!\n")

    return sim, report


if __name__ == '__main__':
    simulation, report = main()

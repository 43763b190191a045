import plotly.graph_objects as go
import pytest

from walkway_config import get_calibration_config
from walkway_sim import CrowdSimulation
from walkway_visualizer import WalkwayVisualizer


def run_sim(save_history=True, steps=60):
    config = get_calibration_config()
    config.random_seed = 12
    config.save_history = save_history
    sim = CrowdSimulation(config)
    sim.initialize()
    sim.run(steps)
    return sim


def test_animation_has_frames_and_controls():
    sim = run_sim()
    fig = WalkwayVisualizer(sim).create_animation(max_frames=20)
    assert isinstance(fig, go.Figure)
    assert 1 < len(fig.frames) <= 61
    assert fig.layout.sliders[0].steps[0].label == '0.0s'
    assert len(fig.layout.updatemenus[0].buttons) == 3


def test_animation_needs_history():
    sim = run_sim(save_history=False, steps=5)
    with pytest.raises(ValueError):
        WalkwayVisualizer(sim).create_animation()


def test_rendering_does_not_touch_the_simulation():
    sim = run_sim()
    before = sim.snapshot()
    viz = WalkwayVisualizer(sim)
    viz.create_animation(max_frames=10)
    viz.create_analytics_dashboard()
    viz.create_heatmap_animation(max_frames=10)
    assert sim.snapshot() == before


def test_dashboard_and_heatmap():
    sim = run_sim()
    viz = WalkwayVisualizer(sim)
    dashboard = viz.create_analytics_dashboard()
    assert any(trace.name == 'Active' for trace in dashboard.data)

    heatmap = viz.create_heatmap_animation(max_frames=10)
    assert isinstance(heatmap.frames[0].data[0], go.Heatmap)

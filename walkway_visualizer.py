"""
Visualization Module for the Walkway Simulation
Plotly animations and analytics dashboards built from recorded snapshots
"""

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from typing import List
import plotly.io as pio

pio.renderers.default = "browser"

DIRECTION_COLORS = {'forward': 'royalblue', 'backward': 'darkorange'}
ETIQUETTE_SYMBOLS = {'stay_left': 'circle', 'stay_right': 'square', 'random_choice': 'diamond'}


class WalkwayVisualizer:
    """Handles all visualization for the walkway simulation"""

    def __init__(self, simulation):
        """
        Initialize visualizer with simulation object.

        Args:
            simulation: CrowdSimulation instance, run with ``save_history``
                enabled for the animations
        """
        self.sim = simulation
        self.environment = simulation.environment
        self.history = simulation.history
        self.config = simulation.config

    def _frame_steps(self, max_frames: int) -> List[int]:
        if not self.history:
            raise ValueError("No snapshots recorded; run the simulation with save_history=True")
        return list(range(0, len(self.history), max(1, len(self.history) // max_frames)))

    def _geometry_traces(self, show_legend: bool) -> List[go.Scatter]:
        """Static walls, zones and timing lines"""
        traces = []
        for idx, wall in enumerate(self.environment.walls):
            traces.append(go.Scatter(
                x=[wall.start[0], wall.end[0]],
                y=[wall.start[1], wall.end[1]],
                mode='lines',
                line={'color': 'black', 'width': 3},
                name='Walls',
                legendgroup='walls',
                showlegend=show_legend and idx == 0,
                hoverinfo='skip'
            ))

        for idx, line in enumerate(self.environment.timing_lines):
            traces.append(go.Scatter(
                x=[line.start[0], line.end[0]],
                y=[line.start[1], line.end[1]],
                mode='lines',
                line={'color': 'gray', 'width': 1, 'dash': 'dot'},
                name='Timing lines',
                legendgroup='timing',
                showlegend=show_legend and idx == 0,
                hoverinfo='skip'
            ))

        for flow in self.environment.flows.values():
            color = DIRECTION_COLORS.get(flow.direction.value, 'gray')
            for zone, kind in [(z, 'entry') for z in flow.entries] + [(z, 'target') for z in flow.targets]:
                vertices = np.vstack([zone.vertices, zone.vertices[:1]])
                traces.append(go.Scatter(
                    x=vertices[:, 0],
                    y=vertices[:, 1],
                    fill='toself',
                    fillcolor='rgba(0, 160, 0, 0.15)' if kind == 'target' else 'rgba(120, 120, 120, 0.15)',
                    line={'color': color, 'width': 1},
                    name=zone.name,
                    showlegend=False,
                    hovertemplate=f'<b>{zone.name}</b><br>{flow.name} {kind}<extra></extra>'
                ))
        return traces

    def _create_frame(self, index: int) -> go.Frame:
        """Create a single animation frame"""
        snapshot = self.history[index]
        traces = self._geometry_traces(show_legend=(index == 0))

        # One trace per direction/etiquette pair so the legend stays stable
        for direction, color in DIRECTION_COLORS.items():
            for etiquette, symbol in ETIQUETTE_SYMBOLS.items():
                views = [w for w in snapshot.walkers
                         if w.direction == direction and w.etiquette == etiquette]
                positions = np.array([w.position for w in views]) if views else np.empty((0, 2))
                traces.append(go.Scatter(
                    x=positions[:, 0],
                    y=positions[:, 1],
                    mode='markers',
                    marker={'size': 9, 'color': color, 'symbol': symbol, 'opacity': 0.8},
                    name=f'{direction} / {etiquette}',
                    showlegend=(index == 0),
                    text=[str(w.id) for w in views],
                    hovertemplate='Walker %{text}<extra></extra>'
                ))

        mean = snapshot.mean_travel_time
        mean_text = f"{mean:.1f}s" if mean is not None else "n/a"
        return go.Frame(
            data=traces,
            name=f"{snapshot.time:.1f}",
            layout=go.Layout(
                title={
                    'text': f'<b>Walkway Simulation ({self.environment.name})</b><br>'
                            f'<sup>Time: {snapshot.time:.1f}s | '
                            f'Active: {snapshot.active_count} | '
                            f'Arrived: {snapshot.arrived} | '
                            f'Mean travel time: {mean_text}</sup>',
                    'x': 0.5,
                    'xanchor': 'center'
                }
            )
        )

    def create_animation(self, max_frames: int = 200):
        """Create interactive Plotly animation of the walkers"""
        print("\n🎬 Creating animation...")

        frames = [self._create_frame(i) for i in self._frame_steps(max_frames)]

        fig = go.Figure(
            data=frames[0].data,
            layout=frames[0].layout,
            frames=frames
        )

        b = self.environment.bounds
        fig.update_layout(
            xaxis={'range': [b['x_min'] - 1, b['x_max'] + 1], 'title': 'x (m)'},
            yaxis={'range': [b['y_min'] - 1, b['y_max'] + 1], 'title': 'y (m)',
                   'scaleanchor': 'x', 'scaleratio': 1},
            template='plotly_white',
            updatemenus=[{
                'type': 'buttons',
                'showactive': True,
                'x': 0.5,
                'y': -0.08,
                'xanchor': 'center',
                'yanchor': 'top',
                'direction': 'left',
                'pad': {'r': 10, 't': 10},
                'buttons': [
                    {
                        'label': '▶ Play',
                        'method': 'animate',
                        'args': [None, {
                            'frame': {'duration': 50, 'redraw': True},
                            'fromcurrent': True,
                            'transition': {'duration': 0},
                            'mode': 'immediate'
                        }]
                    },
                    {
                        'label': '⏸ Pause',
                        'method': 'animate',
                        'args': [[None], {
                            'frame': {'duration': 0, 'redraw': False},
                            'mode': 'immediate',
                            'transition': {'duration': 0}
                        }]
                    },
                    {
                        'label': '⏮ Reset',
                        'method': 'animate',
                        'args': [[frames[0].name], {
                            'frame': {'duration': 0, 'redraw': True},
                            'mode': 'immediate',
                            'transition': {'duration': 0}
                        }]
                    }
                ]
            }],
            sliders=[{
                'active': 0,
                'yanchor': 'top',
                'y': -0.15,
                'xanchor': 'left',
                'currentvalue': {
                    'prefix': '<b>Time: </b>',
                    'visible': True,
                    'xanchor': 'center',
                    'font': {'size': 14, 'color': '#333'}
                },
                'transition': {'duration': 0},
                'pad': {'b': 10, 't': 30},
                'len': 0.9,
                'x': 0.05,
                'steps': [{
                    'args': [[frame.name], {
                        'frame': {'duration': 0, 'redraw': True},
                        'mode': 'immediate',
                        'transition': {'duration': 0}
                    }],
                    'label': f"{frame.name}s",
                    'method': 'animate'
                } for frame in frames]
            }]
        )

        print("✓ Animation created!")
        return fig

    def create_analytics_dashboard(self):
        """Create travel-time analytics dashboard"""
        print("\n📊 Creating analytics dashboard...")

        fig = make_subplots(
            rows=2, cols=2,
            subplot_titles=(
                'Walkers Over Time',
                'Travel Time Distribution',
                'Mean Travel Time by Direction',
                'Mean Travel Time by Etiquette'
            ),
            specs=[
                [{'type': 'scatter'}, {'type': 'histogram'}],
                [{'type': 'bar'}, {'type': 'bar'}]
            ]
        )

        # 1. Population over time
        if self.sim.stats_history:
            times = [s['time'] for s in self.sim.stats_history]
            fig.add_trace(
                go.Scatter(x=times, y=[s['active_count'] for s in self.sim.stats_history],
                           name='Active', line={'color': 'orange', 'width': 2}),
                row=1, col=1
            )
            fig.add_trace(
                go.Scatter(x=times, y=[s['arrived'] for s in self.sim.stats_history],
                           name='Arrived', line={'color': 'green', 'width': 2}),
                row=1, col=1
            )

        # 2. Travel time histogram
        trim = self.config.trimmed_pedestrians
        travel_times = self.sim.collector.travel_times(trim)
        if len(travel_times):
            fig.add_trace(
                go.Histogram(x=travel_times, nbinsx=30, name='Travel Times',
                             marker={'color': 'blue'}),
                row=1, col=2
            )

        # 3/4. Grouped means
        for col, key in ((1, 'direction'), (2, 'etiquette')):
            frame = self.sim.collector.summary_frame((key,), trim)
            if len(frame):
                fig.add_trace(
                    go.Bar(x=frame[key], y=frame['mean'], name=f'By {key}',
                           error_y={'type': 'data', 'array': frame['std']},
                           marker={'color': 'teal' if col == 1 else 'purple'}),
                    row=2, col=col
                )

        fig.update_xaxes(title_text="Time (seconds)", row=1, col=1)
        fig.update_xaxes(title_text="Travel Time (seconds)", row=1, col=2)
        fig.update_xaxes(title_text="Direction", row=2, col=1)
        fig.update_xaxes(title_text="Etiquette", row=2, col=2)

        fig.update_yaxes(title_text="Walkers", row=1, col=1)
        fig.update_yaxes(title_text="Frequency", row=1, col=2)
        fig.update_yaxes(title_text="Seconds", row=2, col=1)
        fig.update_yaxes(title_text="Seconds", row=2, col=2)

        summary = self.sim.collector.summary(trim)
        mean_text = f"{summary['mean']:.2f}s" if summary['mean'] is not None else "n/a"
        fig.update_layout(
            height=800,
            width=1400,
            title_text=f"<b>Walkway Analytics Dashboard</b><br>"
                       f"<sup>Arrived: {self.sim.state.arrived} | "
                       f"Discarded: {self.sim.state.discarded} | "
                       f"Mean travel time: {mean_text}</sup>",
            showlegend=True,
            template='plotly_white'
        )

        print("✓ Dashboard created!")
        return fig

    def create_heatmap_animation(self, cell_size: float = 0.5, max_frames: int = 100):
        """Create heatmap animation showing walker density over time"""
        print("\n🔥 Creating heatmap animation...")

        b = self.environment.bounds
        x_bins = np.arange(b['x_min'], b['x_max'] + cell_size, cell_size)
        y_bins = np.arange(b['y_min'], b['y_max'] + cell_size, cell_size)

        frames = []
        for index in self._frame_steps(max_frames):
            snapshot = self.history[index]
            positions = np.array([w.position for w in snapshot.walkers]) if snapshot.walkers else np.empty((0, 2))
            density, _, _ = np.histogram2d(positions[:, 0], positions[:, 1], bins=[x_bins, y_bins])
            frames.append(go.Frame(
                data=[go.Heatmap(
                    z=density.T,
                    x=x_bins[:-1],
                    y=y_bins[:-1],
                    colorscale='YlOrRd',
                    showscale=True,
                    hovertemplate='Walkers: %{z}<extra></extra>'
                )],
                name=f"{snapshot.time:.1f}"
            ))

        fig = go.Figure(data=frames[0].data, frames=frames)
        fig.update_layout(
            title='Walker Density Over Time',
            xaxis_title='x (m)',
            yaxis_title='y (m)',
            width=1200,
            height=500,
            sliders=[{
                'steps': [{
                    'args': [[f.name], {'frame': {'duration': 0, 'redraw': True}, 'mode': 'immediate'}],
                    'label': f"{f.name}s",
                    'method': 'animate'
                } for f in frames]
            }]
        )

        print("✓ Heatmap created!")
        return fig

    def show_all(self):
        """Show all visualizations"""
        print("\n🎨 Generating all visualizations...")

        print("\n1/3: Main animation")
        self.create_animation().show()

        print("\n2/3: Analytics dashboard")
        self.create_analytics_dashboard().show()

        print("\n3/3: Heatmap animation")
        self.create_heatmap_animation().show()

        print("\n✨ All visualizations complete!")


# ==================== CONVENIENCE FUNCTIONS ====================

def visualize_simulation(simulation):
    """
    Quick function to visualize a completed simulation.

    Args:
        simulation: CrowdSimulation instance (after running)
    """
    viz = WalkwayVisualizer(simulation)
    viz.show_all()

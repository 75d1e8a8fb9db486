"""
Reading Plotting Module

Plots decoded meter readings over time with optional frame annotations.
"""

import math

import matplotlib.pyplot as plt
import numpy as np
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class AnnotationLike(Protocol):
    """Protocol for annotation objects."""
    start: float
    end: float
    row: str
    @property
    def label(self) -> str: ...


@dataclass
class Style:
    """Visual styling configuration."""
    # Line styles
    signal_width: float = 2.0
    marker_size: float = 4.0
    marker_width: float = 0.8
    marker_alpha: float = 0.7

    # Font sizes
    font_label: float = 12
    font_annotation: float = 7.0
    font_axis: float = 12
    font_title: float = 14

    # Colors
    signal_color: str = "black"
    error_color: str = "tab:red"
    power_color: str = "tab:blue"
    background: str = "white"

    # DPI for export
    dpi: int = 300


DEFAULT_STYLE = Style()

plt.rcParams["font.sans-serif"] = ["TeX Gyre Heros", "Helvetica", "Arial", "DejaVu Sans"]
plt.rcParams["font.family"] = "sans-serif"


class ReadingPlot:
    """
    Reading timeline plotter with annotation support.

    ``values`` holds one number per reading; None or NaN marks an
    over-range or blank display and leaves a gap in the trace.

    Usage:
        plot = ReadingPlot(times, values, unit="kOhm")
        plot.add_annotations(capture.to_annotations())
        fig, ax = plot.render()
    """

    TIME_SCALES = {
        "s": (1.0, "Time (s)"),
        "min": (1 / 60, "Time (min)"),
        "ms": (1e3, "Time (ms)"),
    }

    def __init__(
        self,
        time: Sequence[float],
        values: Sequence[Optional[float]],
        unit: str = "",
        style: Style = None,
    ):
        self.time = np.asarray(time, dtype=np.float64)
        self.values = np.array(
            [math.nan if v is None else v for v in values], dtype=np.float64
        )
        if len(self.time) != len(self.values):
            raise ValueError(f"{len(self.time)} timestamps for {len(self.values)} values")
        self.unit = unit
        self.style = style or DEFAULT_STYLE
        self.annotations: list[AnnotationLike] = []

    def add_annotations(self, annotations: list[AnnotationLike]) -> "ReadingPlot":
        """Add annotations to the plot. Returns self for chaining."""
        self.annotations.extend(annotations)
        return self

    def render(
        self,
        time_unit: str = "s",
        title: str = "Meter Capture",
        figsize: tuple[float, float] = (12, 6),
        label_readings: bool = True,
        show: bool = True,
    ) -> tuple[plt.Figure, plt.Axes]:
        """
        Render the reading plot.
        """
        s = self.style
        scale, xlabel = self.TIME_SCALES.get(time_unit, (1.0, "Time (s)"))
        t = self.time * scale

        fig, ax = plt.subplots(figsize=figsize, dpi=s.dpi, layout="constrained")

        if len(t):
            ax.step(t, self.values, where="post", lw=s.signal_width,
                    color=s.signal_color, zorder=2)
            ax.plot(t, self.values, "o", ms=s.marker_size, color=s.signal_color, zorder=3)

        for ann in self.annotations:
            self._draw_annotation(ax, ann, scale, label_readings)

        # X-axis
        if len(t) > 1:
            ax.set_xlim(t[0], t[-1])
        ax.set_xlabel(xlabel, fontsize=s.font_axis, color=s.signal_color)
        ax.tick_params(axis='x', labelsize=s.font_axis, labelcolor=s.signal_color, color=s.signal_color)

        # Y-axis
        ylabel = f"Reading ({self.unit})" if self.unit else "Reading"
        ax.set_ylabel(ylabel, fontsize=s.font_label, color=s.signal_color)
        ax.tick_params(axis='y', labelsize=s.font_axis, labelcolor=s.signal_color, color=s.signal_color)

        ax.set_title(title, fontsize=s.font_title, color=s.signal_color)

        ax.spines[["top", "right"]].set_visible(False)

        ax.set_facecolor(s.background)
        fig.patch.set_facecolor(s.background)

        if show:
            plt.show()

        return fig, ax

    def _draw_annotation(
        self,
        ax: plt.Axes,
        ann: AnnotationLike,
        time_scale: float,
        label_readings: bool,
    ):
        """Draw a single annotation."""
        s = self.style
        t_end = ann.end * time_scale

        if ann.row == "readings":
            if not label_readings:
                return
            ax.annotate(
                ann.label,
                xy=(t_end, 0), xycoords=("data", "axes fraction"),
                xytext=(0, -2), textcoords="offset points",
                fontsize=s.font_annotation,
                ha="left",
                va="top",
                rotation=90,
            )
        else:
            color = s.power_color if ann.row == "power" else s.error_color
            ax.axvline(
                t_end,
                color=color,
                linestyle="dotted",
                linewidth=s.marker_width,
                alpha=s.marker_alpha,
                zorder=0,
            )
            ax.annotate(
                ann.label,
                xy=(t_end, 1), xycoords=("data", "axes fraction"),
                fontsize=s.font_annotation,
                color=color,
                ha="left",
                va="top",
            )


def plot_capture(
    capture,
    scaled: bool = False,
    annotations: bool = True,
    time_unit: str = "s",
    figsize: tuple[float, float] = (12, 6),
    title: str = None,
    show: bool = True,
) -> tuple[plt.Figure, plt.Axes]:
    """
    Convenience function for plotting a Capture's readings.

    With ``scaled`` the values are converted to base units (kilo Ohms
    plotted as Ohms).
    """
    readings = capture.readings()
    times = [t for t, _ in readings]
    if scaled:
        values = [r.scaled_value for _, r in readings]
    else:
        values = [r.value for _, r in readings]

    unit = ""
    if readings:
        last = readings[-1][1]
        unit = last.unit if scaled else last.prefix + last.unit

    plot = ReadingPlot(times, values, unit=unit)
    if annotations:
        plot.add_annotations(capture.to_annotations())
    return plot.render(
        time_unit=time_unit,
        title=title or capture.name,
        figsize=figsize,
        show=show,
    )

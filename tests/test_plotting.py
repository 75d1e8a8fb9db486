import math

import matplotlib.pyplot as plt
import pytest

from tp4000_lib.capture import Capture
from tp4000_lib.decoder import Annotation
from tp4000_lib.plotting import ReadingPlot, Style, plot_capture


SMALL = Style(dpi=50)


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


def test_render_trace_with_gaps():
    plot = ReadingPlot([0.0, 1.0, 2.0], [4.71, None, 4.70], unit="kOhm", style=SMALL)

    fig, ax = plot.render(figsize=(4, 2), show=False)

    assert ax.get_ylabel() == "Reading (kOhm)"
    assert ax.get_xlabel() == "Time (s)"
    assert len(ax.lines) == 2


def test_annotations_are_drawn():
    plot = ReadingPlot([0.0, 1.0], [1.0, 2.0], style=SMALL)
    plot.add_annotations([
        Annotation(start=0.0, end=0.5, text=["04.71 kilo Ohms", "04.71"]),
        Annotation(start=0.6, end=0.7, text=["Invalid framing byte 0xF3", "InvalidFraming"], row="errors"),
    ])

    fig, ax = plot.render(figsize=(4, 2), show=False)

    texts = [t.get_text() for t in ax.texts]
    assert "04.71" in texts
    assert "InvalidFraming" in texts
    # error marker line on top of the two trace lines
    assert len(ax.lines) == 3


def test_reading_labels_can_be_hidden():
    plot = ReadingPlot([0.0, 1.0], [1.0, 2.0], style=SMALL)
    plot.add_annotations([Annotation(start=0.0, end=0.5, text=["1.000"])])

    fig, ax = plot.render(figsize=(4, 2), label_readings=False, show=False)

    assert len(ax.texts) == 0


def test_length_mismatch_rejected():
    with pytest.raises(ValueError):
        ReadingPlot([0.0], [1.0, 2.0])


def test_plot_capture(example_frame):
    capture = Capture.from_bytes(example_frame * 3, name="resistor")

    fig, ax = plot_capture(capture, figsize=(4, 2), show=False)

    assert ax.get_title() == "resistor"
    assert ax.get_ylabel() == "Reading (kOhm)"


def test_plot_capture_scaled(example_frame):
    capture = Capture.from_bytes(example_frame * 2, name="resistor")

    fig, ax = plot_capture(capture, scaled=True, annotations=False, figsize=(4, 2), show=False)

    assert ax.get_ylabel() == "Reading (Ohm)"
    ydata = ax.lines[1].get_ydata()
    assert ydata[0] == pytest.approx(4710.0)


def test_plot_capture_with_unparseable_reading(example_frame):
    odd = bytes.fromhex("20 35 4D 5B 69 7F 82 97 A0 B0 C0 D4 E0")
    capture = Capture.from_bytes(example_frame + odd, name="mixed")

    fig, ax = plot_capture(capture, annotations=False, figsize=(4, 2), show=False)

    ydata = ax.lines[1].get_ydata()
    assert ydata[0] == pytest.approx(4.71)
    assert math.isnan(ydata[1])

"""
display.py
~~~~~~~~~~

Plain-text rendering of digit images and training/testing progress,
for use in a terminal.
"""

import numpy as np

from mnist3lnn.trainer import TRAINING

PHASE_NUMBERS = {TRAINING: 1}


def render_image(image, label: int, classification: int, frame: bool = True) -> str:
    """
    Render an image as rows of 'X' (ink) and '.' (blank) characters,
    followed by its label and the network's classification.

    Args:
        image: 2-D pixel array, or a flat array of a square image
        label: Correct digit
        classification: Digit predicted by the network
        frame: Draw a '-'/'|' border around the image
    """
    pixels = np.asarray(image)
    if pixels.ndim == 1:
        side = int(round(np.sqrt(pixels.size)))
        pixels = pixels.reshape(side, -1)

    rows = [
        "".join("X" if pixel else "." for pixel in row)
        for row in pixels
    ]
    if frame:
        border = "-" * (pixels.shape[1] + 2)
        rows = [border] + [f"|{row}|" for row in rows] + [border]
    rows.append(f"     Label:{label}   Classification:{classification}")
    return "\n".join(rows) + "\n"


def format_progress(stats) -> str:
    """
    Format a progress line for a RunStats object, e.g.

        1: TRAINING: Reading image No.   100 of 60000 images [  0%]  Result: ...
    """
    number = PHASE_NUMBERS.get(stats.phase, 2)
    label = f"{number}: {stats.phase.upper()}:"
    line = (
        f"{label:<13}Reading image No. {stats.image_count:5d} of "
        f"{stats.total:5d} images [{int(stats.progress):3d}%]  "
        f"Result: Correct={stats.correct:5d}  "
        f"Incorrect={stats.error_count:5d}  "
        f"Accuracy={stats.accuracy * 100:5.4f}%"
    )
    if stats.total_epochs > 1:
        line += f"  Epoch {stats.epoch}/{stats.total_epochs}"
    return line

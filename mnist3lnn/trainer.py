"""
trainer.py
~~~~~~~~~~

Training and testing passes over a labelled image set.

Each sample is converted to a vector, fed forward and classified; during
training the error is also back propagated. Running statistics are
reported through an optional callback.
"""

import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional, Sequence

from mnist3lnn.mnist import image_to_vector
from mnist3lnn.network import Network

logger = logging.getLogger(__name__)

TRAINING = 'training'
TESTING = 'testing'

DEFAULT_REPORT_EVERY = 100


@dataclass
class RunStats:
    """Running statistics of a training or testing pass."""

    phase: str
    total: int
    image_count: int = 0
    error_count: int = 0
    epoch: int = 1
    total_epochs: int = 1
    elapsed_time: float = 0.0

    @property
    def correct(self) -> int:
        return self.image_count - self.error_count

    @property
    def accuracy(self) -> float:
        if self.image_count == 0:
            return 0.0
        return self.correct / self.image_count

    @property
    def progress(self) -> float:
        """Percentage of the samples of this epoch processed so far."""
        if self.total == 0:
            return 100.0
        return self.image_count / self.total * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            correct=self.correct,
            accuracy=self.accuracy,
            progress=self.progress
        )
        return data


def _run(
    nn: Network,
    images: Sequence,
    labels: Sequence,
    phase: str,
    epoch: int = 1,
    total_epochs: int = 1,
    callback: Optional[Callable[[RunStats], None]] = None,
    report_every: int = DEFAULT_REPORT_EVERY,
    yield_func: Optional[Callable[[], None]] = None,
    to_vector: Callable = image_to_vector
) -> RunStats:
    if len(images) != len(labels):
        raise ValueError(
            f"Got {len(images)} images but {len(labels)} labels"
        )
    if report_every < 1:
        raise ValueError(f"report_every must be positive, got {report_every}")

    stats = RunStats(phase, len(images), epoch=epoch, total_epochs=total_epochs)
    start_time = time.time()

    for image, label in zip(images, labels):
        label = int(label)
        nn.feed_input(to_vector(image))
        nn.feed_forward()

        if phase == TRAINING:
            nn.back_propagate(label)

        if nn.classify() != label:
            stats.error_count += 1
        stats.image_count += 1

        if stats.image_count % report_every == 0:
            stats.elapsed_time = time.time() - start_time
            if callback is not None:
                callback(stats)
            if yield_func is not None:
                yield_func()

    stats.elapsed_time = time.time() - start_time
    if callback is not None and stats.image_count % report_every != 0:
        callback(stats)

    logger.info(
        f"{phase.capitalize()} epoch {epoch}/{total_epochs}: "
        f"{stats.correct}/{stats.image_count} correct "
        f"({stats.accuracy:.2%}) in {stats.elapsed_time:.1f}s"
    )
    return stats


def train_network(
    nn: Network,
    images: Sequence,
    labels: Sequence,
    epochs: int = 1,
    callback: Optional[Callable[[RunStats], None]] = None,
    report_every: int = DEFAULT_REPORT_EVERY,
    yield_func: Optional[Callable[[], None]] = None,
    to_vector: Callable = image_to_vector
) -> RunStats:
    """
    Train a network on every sample, in order, `epochs` times.

    Args:
        nn: Network to train (updated in place)
        images: Images (or raw vectors, see `to_vector`)
        labels: Integer labels in [0, output count)
        epochs: Number of passes over the samples
        callback: Called with the running RunStats every `report_every`
            samples and at the end of each epoch
        report_every: Reporting interval in samples
        yield_func: Called after every report, e.g. to let other
            cooperative tasks run during a long pass
        to_vector: Conversion from a sample to an input vector

    Returns:
        RunStats: Statistics of the last epoch
    """
    if epochs < 1:
        raise ValueError(f"epochs must be a positive integer, got {epochs}")

    stats = None
    for epoch in range(1, epochs + 1):
        stats = _run(
            nn, images, labels, TRAINING,
            epoch=epoch,
            total_epochs=epochs,
            callback=callback,
            report_every=report_every,
            yield_func=yield_func,
            to_vector=to_vector
        )
    return stats


def test_network(
    nn: Network,
    images: Sequence,
    labels: Sequence,
    callback: Optional[Callable[[RunStats], None]] = None,
    report_every: int = DEFAULT_REPORT_EVERY,
    yield_func: Optional[Callable[[], None]] = None,
    to_vector: Callable = image_to_vector
) -> RunStats:
    """
    Classify every sample without updating any weights.

    Takes the same arguments as train_network (without `epochs`).

    Returns:
        RunStats: Statistics of the pass
    """
    return _run(
        nn, images, labels, TESTING,
        callback=callback,
        report_every=report_every,
        yield_func=yield_func,
        to_vector=to_vector
    )

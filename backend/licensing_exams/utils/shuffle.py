"""Question and option randomization for exam deliveries.

Options are shuffled per question. The shuffle is described by two maps:
`position_to_label` (displayed position 0-3 -> original label A-D) and its
inverse `label_to_position`. Answers come back from clients as displayed
labels, which are positions written as letters ("A" is position 0).
"""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

OPTION_LABELS = ('A', 'B', 'C', 'D')


@dataclass
class ShuffledOptions:
    """Option texts in display order plus the maps needed to undo the shuffle."""
    texts: List[str]
    position_to_label: Dict[int, str]
    label_to_position: Dict[str, int]


def shuffle_questions(questions: Sequence, rng: Optional[random.Random] = None) -> list:
    """Return a uniformly shuffled copy of `questions` (Fisher-Yates)."""
    rng = rng or random
    out = list(questions)
    rng.shuffle(out)
    return out


def shuffle_options(question, rng: Optional[random.Random] = None) -> ShuffledOptions:
    """Shuffle the four options of `question` independently of other questions."""
    rng = rng or random
    options = [(label, getattr(question, f'option_{label.lower()}')) for label in OPTION_LABELS]
    rng.shuffle(options)
    position_to_label = {pos: label for pos, (label, _) in enumerate(options)}
    label_to_position = {label: pos for pos, label in position_to_label.items()}
    return ShuffledOptions(
        texts=[text for _, text in options],
        position_to_label=position_to_label,
        label_to_position=label_to_position,
    )


def position_of(displayed_label: str) -> int:
    """Convert a displayed label ("A".."D") to its position (0..3)."""
    try:
        return OPTION_LABELS.index(displayed_label.strip().upper())
    except (AttributeError, ValueError):
        raise ValueError(f'invalid option label: {displayed_label!r}')


def decode_answer(displayed_label: str, position_to_label: Dict) -> str:
    """Map a displayed label back to the question's original label.

    `position_to_label` may have int or string keys; JSON round-trips
    turn the former into the latter.
    """
    pos = position_of(displayed_label)
    label = position_to_label.get(pos, position_to_label.get(str(pos)))
    if label is None:
        raise ValueError(f'no option at position {pos}')
    return label


def encode_answer(original_label: str, label_to_position: Dict[str, int]) -> str:
    """Map an original label to the label displayed for it after shuffling."""
    return OPTION_LABELS[label_to_position[original_label]]


def serialize_mapping(position_to_label: Dict[int, str]) -> Dict[str, str]:
    """JSON-friendly copy of a position map (string keys)."""
    return {str(pos): label for pos, label in position_to_label.items()}

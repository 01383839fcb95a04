"""File parsing utilities that convert uploaded question banks into a
normalized question list.

Supported input types: JSON and CSV. Parsers return a list of
dictionaries with keys: `question`, `option_a`..`option_d`,
`correct_answer` and `explanation`. Validation of the values is left to
the import service so that bad rows can be reported individually.
"""

import io
import json
import csv
from typing import List, Dict

OPTION_KEYS = ('option_a', 'option_b', 'option_c', 'option_d')


def parse_file_to_questions(file_bytes: bytes, filename: str) -> List[Dict]:
    """Dispatch to the appropriate parser based on file extension."""
    name = filename.lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    if name.endswith('.csv'):
        return parse_csv(file_bytes)
    raise ValueError('Unsupported file type')


def parse_json(b: bytes):
    """Parse a JSON array of question objects and normalize them."""
    try:
        data = json.loads(b.decode('utf-8-sig'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f'invalid JSON: {e}')
    if isinstance(data, dict) and isinstance(data.get('questions'), list):
        data = data['questions']
    if not isinstance(data, list):
        raise ValueError('JSON must be a list of questions')
    return [normalize_question(item) if isinstance(item, dict) else item for item in data]


def parse_csv(b: bytes):
    """Parse a CSV with one question per row.

    Expected columns: `question`, `option_a`..`option_d` and
    `correct_answer` (or `correct`); `explanation` is optional. Header
    names are matched case-insensitively.
    """
    try:
        text = b.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise ValueError(f'invalid CSV encoding: {e}')
    reader = csv.DictReader(io.StringIO(text))
    out = []
    for row in reader:
        lowered = {(k or '').strip().lower(): v for k, v in row.items()}
        out.append(normalize_question(lowered))
    return out


def normalize_question(item: dict) -> dict:
    """Normalize a parsed question object (maps alternative keys to the
    canonical output shape).
    """
    options = item.get('options')
    if isinstance(options, list) and len(options) == 4:
        option_values = [_clean(o) for o in options]
    else:
        option_values = [
            _clean(item.get(key) or item.get(_camel(key)))
            for key in OPTION_KEYS
        ]
    correct = item.get('correct_answer') or item.get('correctAnswer') or item.get('correct')
    return {
        'question': _clean(item.get('question') or item.get('question_text')),
        **dict(zip(OPTION_KEYS, option_values)),
        'correct_answer': _clean(correct).upper() if correct is not None else None,
        'explanation': _clean(item.get('explanation')) or None,
    }


def _camel(key: str) -> str:
    # option_a -> optionA
    head, tail = key.split('_', 1)
    return head + tail.upper()


def _clean(val):
    if val is None:
        return None
    return str(val).strip()

# instructions.py
# Turns route steps into instructions and instructions into display / voice text.
# Pure functions; the only state is the caller-held "last announced" marker.

import re
from html import unescape
from typing import Dict, List, Optional, Tuple

from .geo_utils import format_distance
from .models import Instruction, Route
from .nav_config import (
    ANNOUNCEMENT_THRESHOLDS,
    NavigationSettings,
    PROGRESS_MILESTONES_IMPERIAL,
    PROGRESS_MILESTONES_METRIC,
)


# ---------------------------------------------------------------------------
# Phrase tables
# ---------------------------------------------------------------------------

MANEUVER_INSTRUCTIONS: Dict[str, str] = {
    'turn-left':          'Turn left',
    'turn-right':         'Turn right',
    'turn-slight-left':   'Turn slightly left',
    'turn-slight-right':  'Turn slightly right',
    'turn-sharp-left':    'Turn sharply left',
    'turn-sharp-right':   'Turn sharply right',
    'uturn-left':         'Make a U-turn to the left',
    'uturn-right':        'Make a U-turn to the right',
    'continue':           'Continue straight',
    'merge':              'Merge',
    'on-ramp':            'Take the on-ramp',
    'off-ramp':           'Take the off-ramp',
    'fork-left':          'Keep left at the fork',
    'fork-right':         'Keep right at the fork',
    'roundabout-exit-1':  'At the roundabout, take the 1st exit',
    'roundabout-exit-2':  'At the roundabout, take the 2nd exit',
    'roundabout-exit-3':  'At the roundabout, take the 3rd exit',
    'roundabout-exit-4':  'At the roundabout, take the 4th exit',
    'roundabout-exit-5':  'At the roundabout, take the 5th exit',
    'arrive':             'Arrive at your destination',
    'arrive-left':        'Arrive at your destination on the left',
    'arrive-right':       'Arrive at your destination on the right',
}

DISPLAY_SYMBOLS: Dict[str, str] = {
    'turn-left':          '← ',
    'turn-right':         '→ ',
    'turn-slight-left':   '↖ ',
    'turn-slight-right':  '↗ ',
    'continue':           '↑ ',
    'uturn-left':         '↻ ',
    'uturn-right':        '↻ ',
}

MODIFIER_DIRECTIONS: Dict[str, str] = {
    'left':         'left',
    'right':        'right',
    'straight':     'straight',
    'uturn':        'u-turn',
    'slight left':  'slight-left',
    'slight right': 'slight-right',
    'sharp left':   'sharp-left',
    'sharp right':  'sharp-right',
}

ARRIVAL_TEXT = 'You have arrived at your destination'

# Ordered: first match wins.
_ROUNDABOUT_EXITS: List[Tuple[Tuple[str, ...], str]] = [
    (('1st', 'first'),  'roundabout-exit-1'),
    (('2nd', 'second'), 'roundabout-exit-2'),
    (('3rd', 'third'),  'roundabout-exit-3'),
    (('4th', 'fourth'), 'roundabout-exit-4'),
    (('5th', 'fifth'),  'roundabout-exit-5'),
]

_STREET_PATTERNS = [
    re.compile(r'onto\s+([^,.]+)', re.IGNORECASE),
    re.compile(r'\bon\s+([^,.]+)', re.IGNORECASE),
    re.compile(r'toward\s+([^,.]+)', re.IGNORECASE),
]

_TAG_RE = re.compile(r'<[^>]*>')
_SPACE_RE = re.compile(r'\s+')


# ---------------------------------------------------------------------------
# Parsing free-text provider instructions
# ---------------------------------------------------------------------------

def clean_instruction(html_instruction: str) -> str:
    """Strip HTML tags / entities from a provider instruction."""
    cleaned = unescape(_TAG_RE.sub('', html_instruction))
    return _SPACE_RE.sub(' ', cleaned).strip()


def extract_maneuver(instruction: str) -> str:
    """
    Infer a maneuver code from instruction text.

    Patterns are tried in a fixed order and the first match wins;
    anything unrecognised is 'continue'.
    """
    text = instruction.lower()

    if 'turn left' in text:
        return 'turn-left'
    if 'turn right' in text:
        return 'turn-right'
    if 'slight left' in text:
        return 'turn-slight-left'
    if 'slight right' in text:
        return 'turn-slight-right'
    if 'sharp left' in text:
        return 'turn-sharp-left'
    if 'sharp right' in text:
        return 'turn-sharp-right'
    if 'u-turn' in text or 'u turn' in text:
        return 'uturn-left' if 'left' in text else 'uturn-right'
    if 'roundabout' in text:
        for words, code in _ROUNDABOUT_EXITS:
            if any(w in text for w in words):
                return code
    if 'merge' in text:
        return 'merge'
    if 'on-ramp' in text or 'on ramp' in text:
        return 'on-ramp'
    if 'off-ramp' in text or 'off ramp' in text:
        return 'off-ramp'
    if 'keep left' in text:
        return 'fork-left'
    if 'keep right' in text:
        return 'fork-right'
    if 'destination' in text:
        if 'left' in text:
            return 'arrive-left'
        if 'right' in text:
            return 'arrive-right'
        return 'arrive'
    return 'continue'


def extract_street_name(instruction: str) -> Optional[str]:
    """Pull a street name out of 'onto X' / 'on X' / 'toward X' phrases."""
    for pattern in _STREET_PATTERNS:
        match = pattern.search(instruction)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def map_modifier_to_direction(modifier: Optional[str]) -> Optional[str]:
    if not modifier:
        return None
    return MODIFIER_DIRECTIONS.get(modifier.lower())


# ---------------------------------------------------------------------------
# Route → instructions
# ---------------------------------------------------------------------------

def generate_instructions(route: Route) -> List[Instruction]:
    """
    One instruction per route step, plus a final arrival instruction.

    Args:
        route: Route returned by the route provider.

    Returns:
        New list; the caller replaces its previous list wholesale.
    """
    instructions: List[Instruction] = []

    for n, step in enumerate(route.steps):
        raw = clean_instruction(step.instructions)
        street = step.street_name or extract_street_name(raw)

        text = raw
        if street and street.lower() not in text.lower():
            text = f"{raw} on {street}"
        if step.exits:
            text += f" (Exit {step.exits})"
        elif step.reference:
            text += f" ({step.reference})"
        if step.destinations:
            text += f" toward {step.destinations}"

        instructions.append(Instruction(
            instruction_id=f"instruction_{n}",
            distance_m=step.distance_m,
            text=text,
            location=step.end_location,
            maneuver=step.maneuver or extract_maneuver(raw),
            street_name=street,
            modifier=step.modifier,
            exit_number=step.exits,
            direction=map_modifier_to_direction(step.modifier),
        ))

    instructions.append(Instruction(
        instruction_id=f"instruction_{len(instructions)}",
        distance_m=0.0,
        text=ARRIVAL_TEXT,
        location=route.end,
        maneuver='arrive',
        is_destination=True,
    ))
    return instructions


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------

def format_instruction(
    instruction: Instruction,
    units: str = 'metric',
    voice: bool = False,
    distance_m: Optional[float] = None,
    voice_prefix_m: float = 50.0,
) -> str:
    """
    Human text for an instruction.

    Args:
        instruction:    Instruction to render.
        units:          'metric' or 'imperial'.
        voice:          Natural-language variant with an "In X, ..." prefix.
        distance_m:     Live distance to the maneuver; defaults to the step length.
        voice_prefix_m: Distance above which the voice variant gets the prefix.
    """
    if instruction.is_destination:
        return ARRIVAL_TEXT if voice else 'Destination reached'

    dist = instruction.distance_m if distance_m is None else distance_m
    maneuver = instruction.maneuver or 'continue'
    formatted = MANEUVER_INSTRUCTIONS.get(maneuver) or instruction.text

    if instruction.street_name:
        if 'turn' in maneuver:
            formatted += f" onto {instruction.street_name}"
        elif maneuver == 'continue':
            formatted = f"Continue on {instruction.street_name}"

    if instruction.exit_number:
        formatted += f" (Exit {instruction.exit_number})"

    if voice and dist > voice_prefix_m:
        formatted = f"In {format_distance(dist, units)}, {formatted[0].lower()}{formatted[1:]}"

    return formatted


def format_display_instruction(
    instruction: Instruction,
    units: str = 'metric',
    distance_m: Optional[float] = None,
) -> str:
    """Compact single line for the glasses, e.g. '200 m - ← Main St'."""
    if instruction.is_destination:
        return 'Destination'

    dist = instruction.distance_m if distance_m is None else distance_m
    maneuver = instruction.maneuver or 'continue'
    display = DISPLAY_SYMBOLS.get(maneuver, '')

    if instruction.street_name and len(instruction.street_name) < 20:
        display += instruction.street_name
    else:
        simple = MANEUVER_INSTRUCTIONS.get(maneuver, 'Continue')
        display += re.sub(r'^(Turn|Continue|Make a)?\s*', '', simple, flags=re.IGNORECASE)

    return f"{format_distance(dist, units)} - {display}"


# ---------------------------------------------------------------------------
# Announcement gating
# ---------------------------------------------------------------------------

def announcement_thresholds(frequency: int) -> List[int]:
    return ANNOUNCEMENT_THRESHOLDS.get(frequency, ANNOUNCEMENT_THRESHOLDS[3])


def crossed_threshold(distance_m: float, frequency: int, tolerance_m: float = 10.0) -> Optional[int]:
    """Smallest announcement threshold the user is already inside of, if any."""
    inside = [t for t in announcement_thresholds(frequency) if distance_m <= t + tolerance_m]
    return min(inside) if inside else None


def generate_voice_announcement(
    instruction: Instruction,
    distance_m: float,
    settings: NavigationSettings,
    last_threshold: Optional[int] = None,
    tolerance_m: float = 10.0,
    voice_prefix_m: float = 50.0,
) -> Optional[Tuple[str, int]]:
    """
    Voice cue for the current instruction if a new threshold was crossed.

    Args:
        instruction:    Current instruction.
        distance_m:     Live distance to its maneuver point.
        settings:       User settings (voice toggle, frequency, units).
        last_threshold: Threshold already announced for this instruction.

    Returns:
        (text, threshold) to speak and remember, or None.
    """
    if not settings.voice_guidance:
        return None

    threshold = crossed_threshold(distance_m, settings.announcement_frequency, tolerance_m)
    if threshold is None:
        return None
    if last_threshold is not None and threshold >= last_threshold:
        return None

    text = format_instruction(
        instruction, settings.distance_units, voice=True,
        distance_m=distance_m, voice_prefix_m=voice_prefix_m,
    )
    return text, threshold


def generate_progress_announcement(
    remaining_m: float,
    units: str = 'metric',
    last_milestone: Optional[float] = None,
    tolerance_m: float = 100.0,
) -> Optional[Tuple[str, float]]:
    """'<distance> remaining to destination' near a long-route milestone, once each."""
    milestones = PROGRESS_MILESTONES_IMPERIAL if units == 'imperial' else PROGRESS_MILESTONES_METRIC
    for milestone in milestones:
        if abs(remaining_m - milestone) < tolerance_m and milestone != last_milestone:
            return f"{format_distance(remaining_m, units)} remaining to destination", milestone
    return None

"""
Wargear option parser.

Turns one free-text option sentence into a ParsedWargearOption by running it
through the ordered targeting and action tables in ``patterns``. Parsing is a
pure, total function of the text: it never raises for any input string, and
text that no pattern recognizes comes back classified as ``unknown``.
"""

import logging
from typing import Iterable

from ..exceptions import MalformedNumericTokenError
from .models import (
    ActionDef,
    DatasheetOption,
    OptionConstraints,
    ParsedWargearOption,
    TargetingDef,
)
from .patterns import (
    ACTION_PATTERNS,
    TARGETING_PATTERNS,
    OptionPattern,
    extract_constraints,
    normalize_quotes,
)

logger = logging.getLogger("codex-engine.wargear")


def _first_match(table: tuple[OptionPattern, ...], text: str, fallback):
    """Classify ``text`` with the first matching entry of ``table``.

    A matching entry whose counts cannot be read yields ``fallback``
    instead of falling through to later, less specific entries.
    """
    for pattern in table:
        try:
            result = pattern.apply(text)
        except MalformedNumericTokenError as e:
            logger.debug(f"Pattern '{pattern.name}' matched but {e}; leaving axis unknown")
            return fallback
        if result is not None:
            return result
    return fallback


def classify_targeting(text: str) -> TargetingDef:
    """Which models an option applies to; ``unknown`` when nothing matches."""
    return _first_match(TARGETING_PATTERNS, normalize_quotes(text).strip(), TargetingDef())


def classify_action(text: str) -> ActionDef:
    """What an option lets its models do; ``unknown`` when nothing matches."""
    return _first_match(ACTION_PATTERNS, normalize_quotes(text).strip(), ActionDef())


def is_none_keyword(text: str) -> bool:
    return text.strip().lower() in ("none", "none.")


def is_footnote(text: str) -> bool:
    return text.strip().startswith("*")


def parse(text: str, line: int = 0) -> ParsedWargearOption:
    """Parse one wargear option sentence.

    Args:
        text: Raw option text, possibly containing HTML list markup
        line: Ordering key of the option within its datasheet

    Returns:
        ParsedWargearOption. ``wargear_parsed`` is True when both axes were
        classified, or when the text is "None" or a footnote (nothing to
        generate, but nothing unrecognized either).

    Example:
        >>> parse("up to three weapons").targeting.max_total
        3
        >>> parse("This model's bolt pistol can be replaced with 1 plasma pistol.").action.kind
        'replace-with-single'
    """
    normalized = normalize_quotes(text).strip()

    targeting = _first_match(TARGETING_PATTERNS, normalized, TargetingDef())
    action = _first_match(ACTION_PATTERNS, normalized, ActionDef())
    constraints = OptionConstraints(**extract_constraints(normalized))

    classified = targeting.type != "unknown" and action.type != "unknown"
    wargear_parsed = classified or is_none_keyword(normalized) or is_footnote(normalized)
    if not wargear_parsed:
        logger.debug(
            f"Unclassified wargear option (line {line}): targeting={targeting.kind}, "
            f"action={action.kind}: {normalized[:80]!r}"
        )

    return ParsedWargearOption(
        line=line,
        raw_text=text,
        wargear_parsed=wargear_parsed,
        targeting=targeting,
        action=action,
        constraints=constraints,
    )


def parse_option(option: DatasheetOption) -> ParsedWargearOption:
    return parse(option.description, line=option.line)


def parse_options(options: Iterable[DatasheetOption]) -> list[ParsedWargearOption]:
    """Parse a datasheet's options in line order."""
    return [parse_option(option) for option in sorted(options, key=lambda o: o.line)]


def describe_unparsed(parsed: Iterable[ParsedWargearOption]) -> list[str]:
    """Human-readable lines for options no pattern recognized.

    Returns:
        One "line N: <text>" entry per unparsed option, in input order
    """
    return [
        f"line {option.line}: {option.raw_text.strip()}"
        for option in parsed
        if not option.wargear_parsed
    ]

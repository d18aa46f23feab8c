"""
String utility functions for nounapi.

Naming rules shared by the REST, GraphQL and OpenAPI surfaces. Every surface
must derive routes, operation names and event names from these helpers so the
three protocols agree on naming.
"""

from __future__ import annotations

_VOWELS = frozenset("aeiou")


def pluralize(noun: str) -> str:
    """
    Convert a noun name to its lower-case plural form.

    Rules:
    - Words ending in -s, -x, -z, -ch, -sh get "es" (Box -> boxes)
    - Words ending in consonant + y get "ies" (Category -> categories)
    - Everything else gets "s" (Todo -> todos, Key -> keys)

    Args:
        noun: Noun name (usually PascalCase)

    Returns:
        Lower-case plural used for routes and list queries

    Examples:
        >>> pluralize("Todo")
        'todos'
        >>> pluralize("Category")
        'categories'
        >>> pluralize("Box")
        'boxes'
    """
    lower = noun.lower()
    if not lower:
        return lower

    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return lower + "es"
    if lower.endswith("y") and (len(lower) < 2 or lower[-2] not in _VOWELS):
        return lower[:-1] + "ies"
    return lower + "s"


def singularize(noun: str) -> str:
    """Return the lower-case singular form used for get queries and events."""
    return noun.lower()


def capitalize(value: str) -> str:
    """Upper-case the first character, leaving the rest untouched."""
    if not value:
        return value
    return value[0].upper() + value[1:]


def camel_case(name: str) -> str:
    """Convert PascalCase to camelCase."""
    if not name:
        return name
    return name[0].lower() + name[1:]


def past_tense(verb: str) -> str:
    """
    Derive the past tense of a verb for event names.

    >>> past_tense("complete")
    'completed'
    >>> past_tense("archive")
    'archived'
    >>> past_tense("publish")
    'published'
    """
    if verb.endswith("e"):
        return verb + "d"
    return verb + "ed"


def verb_event_name(noun: str, verb: str) -> str:
    """Event emitted after a custom verb runs (e.g. Todo/complete -> todoCompleted)."""
    return f"{singularize(noun)}{capitalize(past_tense(verb))}"


def crud_event_name(noun: str, action: str) -> str:
    """Event emitted after a CRUD mutation (action is Created/Updated/Deleted)."""
    return f"{singularize(noun)}{action}"

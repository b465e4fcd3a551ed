"""Fold cook-session learnings into an ingredient/step set.

Learnings arrive pre-classified from an external model call. They are applied
strictly in the order given; every learning contributes its context sentence
to the change notes, even when it cannot be located structurally.
"""

import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from ..core.text import extract_minutes
from ..schemas import Ingredient, Step, Learning

CHANGE_NOTES_HEADER = "Created from cooking session:"
ADDED_INGREDIENT_NOTE = "Added based on your cooking session"
DEFAULT_SESSION_TITLE = "From Cook Session"


def _learning_ingredient_id() -> str:
    return f"learning-{uuid.uuid4().hex[:12]}"


@dataclass
class AppliedLearnings:
    ingredients: list[Ingredient] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    change_notes: list[str] = field(default_factory=list)


def _apply_substitution(ingredients: list[Ingredient], learning: Learning) -> None:
    if not learning.original:
        return
    needle = learning.original.lower()
    for idx, ing in enumerate(ingredients):
        if needle in ing.item.lower():
            ingredients[idx] = ing.model_copy(update={
                "item": learning.modification,
                "original_text": f"Originally: {learning.original}",
            })
            return


def _apply_timing(steps: list[Step], learning: Learning) -> None:
    if learning.step_number is None:
        return
    for idx, step in enumerate(steps):
        if step.step_number == learning.step_number:
            minutes = extract_minutes(learning.modification)
            if minutes is not None:
                steps[idx] = step.model_copy(update={"duration_minutes": minutes})
            return


def _apply_addition(ingredients: list[Ingredient], learning: Learning, id_factory: Callable[[], str]) -> None:
    ingredients.append(Ingredient(
        id=id_factory(),
        item=learning.modification,
        quantity=None,
        unit=None,
        preparation=None,
        is_optional=False,
        sort_order=len(ingredients),
        original_text=ADDED_INGREDIENT_NOTE,
    ))


def apply_learnings(
    base_ingredients: Sequence[Ingredient],
    base_steps: Sequence[Step],
    learnings: Sequence[Learning],
    id_factory: Optional[Callable[[], str]] = None,
) -> AppliedLearnings:
    """Apply learnings to a base set and collect change notes.

    The base lists are never mutated. A substitution whose original cannot be
    found, or a timing learning without a matching step or a parseable
    minute value, is a structural no-op; its note is still recorded.
    Preference and technique learnings are advisory and only add notes.
    """
    make_id = id_factory or _learning_ingredient_id
    ingredients = list(base_ingredients)
    steps = list(base_steps)
    notes: list[str] = []

    for learning in learnings:
        notes.append(learning.context)

        if learning.type == "substitution":
            _apply_substitution(ingredients, learning)
        elif learning.type == "timing":
            _apply_timing(steps, learning)
        elif learning.type == "addition":
            _apply_addition(ingredients, learning, make_id)

    return AppliedLearnings(ingredients=ingredients, steps=steps, change_notes=notes)


def format_change_notes(notes: Sequence[str]) -> str:
    return "\n".join([CHANGE_NOTES_HEADER, *notes])


def generate_version_title(learnings: Sequence[Learning], limit: int = 3) -> str:
    """Short label for a session-created version, e.g. "Used pancetta, Added garlic"."""
    summaries: list[str] = []
    for learning in learnings[:limit]:
        if learning.type == "substitution" and learning.original:
            summaries.append(f"Used {learning.modification}")
        elif learning.type == "addition":
            summaries.append(f"Added {learning.modification}")
        elif learning.type == "timing":
            summaries.append("Adjusted timing")
        elif learning.type == "preference":
            summaries.append(f"Prefers {learning.modification}")
        elif learning.type == "technique":
            summaries.append("Changed technique")
    return ", ".join(summaries) if summaries else DEFAULT_SESSION_TITLE

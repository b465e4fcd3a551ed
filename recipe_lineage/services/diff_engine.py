"""Structured comparison between two ingredient/step sets.

Used to show what changed between a user's version and a source extraction
(or the original v1). Pure functions only: nothing here touches the store.

Ingredients are matched in two phases: first by stable id, then by fuzzy
item-name similarity for whatever is left. Steps are matched strictly by
step_number since they are structurally ordered.
"""

from typing import Optional, Sequence

from ..core.text import normalize_text, significant_words, word_overlap_ratio, format_number
from ..schemas import (
    Ingredient,
    Step,
    VersionLearning,
    IngredientDiff,
    StepDiff,
    NoteDiff,
    RecipeDiff,
    CompareResult,
)

# Instruction edits below this word overlap are reported
INSTRUCTION_SIMILARITY_THRESHOLD = 0.8

# Share of the shorter side's significant words that must match for a fuzzy hit
FUZZY_WORD_MATCH_RATIO = 0.5

DIFF_PRIORITY = {
    "note-added": 1,
    "ingredient-modified": 2,
    "step-modified": 3,
    "ingredient-added": 4,
    "step-added": 5,
    "ingredient-removed": 6,
    "step-removed": 7,
}


def is_similar_item(a: Optional[str], b: Optional[str]) -> bool:
    """Check if two ingredient names are close enough to be the same item.

    Matches on exact normalized text, substring containment
    ("chicken breast" vs "chicken"), or at least half of the shorter side's
    significant words having a containment match on the other side.
    """
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)

    if norm_a == norm_b:
        return True

    if norm_a in norm_b or norm_b in norm_a:
        return True

    words_a = significant_words(norm_a)
    words_b = significant_words(norm_b)
    if not words_a or not words_b:
        return False

    matching = [w for w in words_a if any(w in other or other in w for other in words_b)]
    return len(matching) >= min(len(words_a), len(words_b)) * FUZZY_WORD_MATCH_RATIO


def _format_quantity(quantity: Optional[float], unit: Optional[str]) -> str:
    if quantity is None:
        return ""
    unit_str = f" {unit}" if unit else ""
    return f"{format_number(quantity)}{unit_str}"


def _format_temperature(value: Optional[float], unit: Optional[str]) -> str:
    if not value:
        return "no temp"
    return f"{format_number(value)}°{unit or 'F'}"


def compare_ingredient(original: Ingredient, current: Ingredient) -> Optional[IngredientDiff]:
    """Field-level diff of a matched ingredient pair, or None if nothing differs.

    The first changed field in item > quantity/unit > preparation order
    becomes the diff's primary field.
    """
    changes: list[str] = []
    primary_field = None

    if normalize_text(original.item) != normalize_text(current.item):
        changes.append(f'"{original.item}" → "{current.item}"')
        primary_field = "item"

    # Quantity and unit are reported as one token; a unit-only change is reported alone
    if original.quantity != current.quantity:
        orig_qty = _format_quantity(original.quantity, original.unit)
        curr_qty = _format_quantity(current.quantity, current.unit)
        if orig_qty != curr_qty:
            changes.append(f"{orig_qty or 'unspecified'} → {curr_qty or 'unspecified'}")
            primary_field = primary_field or "quantity"
    elif original.unit != current.unit:
        changes.append(f"{original.unit or 'no unit'} → {current.unit or 'no unit'}")
        primary_field = primary_field or "unit"

    if normalize_text(original.preparation) != normalize_text(current.preparation):
        changes.append(f"prep: {original.preparation or 'no prep'} → {current.preparation or 'no prep'}")
        primary_field = primary_field or "preparation"

    if not changes:
        return None

    return IngredientDiff(
        type="modified",
        original=original,
        current=current,
        field=primary_field,
        summary=f"{current.item}: {', '.join(changes)}",
    )


def compare_step(original: Step, current: Step) -> Optional[StepDiff]:
    changes: list[str] = []
    primary_field = None

    norm_original = normalize_text(original.instruction)
    norm_current = normalize_text(current.instruction)
    if norm_original != norm_current:
        if word_overlap_ratio(norm_original, norm_current) < INSTRUCTION_SIMILARITY_THRESHOLD:
            changes.append("instruction changed")
            primary_field = "instruction"

    if original.duration_minutes != current.duration_minutes:
        orig_dur = f"{original.duration_minutes} min" if original.duration_minutes else "no time"
        curr_dur = f"{current.duration_minutes} min" if current.duration_minutes else "no time"
        changes.append(f"{orig_dur} → {curr_dur}")
        primary_field = primary_field or "duration"

    if (
        original.temperature_value != current.temperature_value
        or original.temperature_unit != current.temperature_unit
    ):
        orig_temp = _format_temperature(original.temperature_value, original.temperature_unit)
        curr_temp = _format_temperature(current.temperature_value, current.temperature_unit)
        if orig_temp != curr_temp:
            changes.append(f"{orig_temp} → {curr_temp}")
            primary_field = primary_field or "temperature"

    if not changes:
        return None

    return StepDiff(
        type="modified",
        step_number=current.step_number,
        original=original,
        current=current,
        field=primary_field,
        summary=f"Step {current.step_number}: {', '.join(changes)}",
    )


def match_ingredients(
    original: Sequence[Ingredient],
    current: Sequence[Ingredient],
) -> tuple[list[tuple[Ingredient, Ingredient]], list[Ingredient], list[Ingredient]]:
    """Partition two ingredient lists into matched pairs and leftovers.

    Returns (pairs, unmatched_current, unmatched_original). Pairs keep the
    order in which they were matched: id matches first, then fuzzy matches.
    Each original is matched at most once.
    """
    pairs: list[tuple[Ingredient, Ingredient]] = []
    matched_original: set[int] = set()
    matched_current: set[int] = set()

    # Pass 1: stable id
    for c_idx, curr in enumerate(current):
        for o_idx, orig in enumerate(original):
            if o_idx not in matched_original and orig.id == curr.id:
                matched_original.add(o_idx)
                matched_current.add(c_idx)
                pairs.append((orig, curr))
                break

    # Pass 2: fuzzy item name, first hit wins
    for c_idx, curr in enumerate(current):
        if c_idx in matched_current:
            continue
        for o_idx, orig in enumerate(original):
            if o_idx not in matched_original and is_similar_item(orig.item, curr.item):
                matched_original.add(o_idx)
                matched_current.add(c_idx)
                pairs.append((orig, curr))
                break

    unmatched_current = [c for i, c in enumerate(current) if i not in matched_current]
    unmatched_original = [o for i, o in enumerate(original) if i not in matched_original]
    return pairs, unmatched_current, unmatched_original


def compare_ingredients(original: Sequence[Ingredient], current: Sequence[Ingredient]) -> list[IngredientDiff]:
    pairs, added, removed = match_ingredients(original, current)

    diffs: list[IngredientDiff] = []
    for orig, curr in pairs:
        diff = compare_ingredient(orig, curr)
        if diff:
            diffs.append(diff)

    for curr in added:
        diffs.append(IngredientDiff(type="added", current=curr, summary=f"Added: {curr.item}"))

    for orig in removed:
        diffs.append(IngredientDiff(type="removed", original=orig, summary=f"Removed: {orig.item}"))

    return diffs


def compare_steps(original: Sequence[Step], current: Sequence[Step]) -> list[StepDiff]:
    """Diff steps keyed by step_number (which may be non-contiguous, e.g. 1, 3, 5)."""
    original_map = {s.step_number: s for s in original}
    current_map = {s.step_number: s for s in current}

    diffs: list[StepDiff] = []
    for step_number in sorted(set(original_map) | set(current_map)):
        orig = original_map.get(step_number)
        curr = current_map.get(step_number)

        if orig and curr:
            diff = compare_step(orig, curr)
            if diff:
                diffs.append(diff)
        elif curr:
            diffs.append(StepDiff(
                type="added", step_number=step_number, current=curr,
                summary=f"Added step {step_number}",
            ))
        else:
            diffs.append(StepDiff(
                type="removed", step_number=step_number, original=orig,
                summary=f"Removed step {step_number}",
            ))

    return diffs


def extract_notes(version_learnings: Optional[Sequence[VersionLearning]]) -> list[NoteDiff]:
    return [
        NoteDiff(note_type=learning.type, content=learning.content, summary=learning.content)
        for learning in (version_learnings or [])
    ]


def compare_versions(
    original_ingredients: Sequence[Ingredient],
    original_steps: Sequence[Step],
    current_ingredients: Sequence[Ingredient],
    current_steps: Sequence[Step],
    version_learnings: Optional[Sequence[VersionLearning]] = None,
) -> CompareResult:
    """Compare a current ingredient/step set against an original one."""
    ingredient_diffs = compare_ingredients(original_ingredients, current_ingredients)
    step_diffs = compare_steps(original_steps, current_steps)
    note_diffs = extract_notes(version_learnings)

    diffs: list[RecipeDiff] = [*ingredient_diffs, *step_diffs, *note_diffs]

    return CompareResult(
        diffs=diffs,
        total_changes=len(diffs),
        ingredient_changes=len(ingredient_diffs),
        step_changes=len(step_diffs),
        note_changes=len(note_diffs),
        has_changes=len(diffs) > 0,
    )


def get_top_diffs(result: CompareResult, limit: int = 3) -> list[RecipeDiff]:
    """Most significant diffs first; ties keep their original order."""
    ranked = sorted(
        result.diffs,
        key=lambda d: DIFF_PRIORITY.get(f"{d.category}-{d.type}", 99),
    )
    return ranked[:limit]

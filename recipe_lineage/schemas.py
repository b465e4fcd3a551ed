"""Pydantic schemas for recipe lineage.

Value types shared by the pure services:
- Ingredient / Step (version content)
- Learning (session-scoped, consumed once)
- IngredientDiff / StepDiff / NoteDiff / CompareResult (computed, never persisted)

Request/response models for the HTTP surface follow below.
"""

from datetime import datetime
from typing import Optional, Literal, Union

from pydantic import BaseModel, Field


CreationMode = Literal["import", "edit", "cook_session", "source_apply"]
LearningType = Literal["substitution", "addition", "timing", "preference", "technique"]
LinkStatus = Literal["pending", "linked", "rejected"]
DiffType = Literal["added", "removed", "modified"]


# --- Version content ---

class Ingredient(BaseModel):
    id: str
    item: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    preparation: Optional[str] = None
    is_optional: Optional[bool] = False
    sort_order: Optional[int] = None
    original_text: Optional[str] = None

    class Config:
        extra = "allow"


class Step(BaseModel):
    id: Optional[str] = None
    step_number: int
    instruction: str = ""
    duration_minutes: Optional[int] = None
    timer_label: Optional[str] = None
    temperature_value: Optional[float] = None
    temperature_unit: Optional[str] = None
    equipment: list[str] = Field(default_factory=list)
    techniques: list[str] = Field(default_factory=list)

    class Config:
        extra = "allow"


# --- Learnings ---

class Learning(BaseModel):
    type: LearningType
    original: Optional[str] = None  # required for substitution
    modification: str = ""
    context: str = ""
    step_number: Optional[int] = None  # relevant for timing
    detected_at: Optional[datetime] = None


class VersionLearning(BaseModel):
    """Version-level note shown alongside a diff."""
    type: str
    content: str


# --- Diffs ---

class IngredientDiff(BaseModel):
    category: Literal["ingredient"] = "ingredient"
    type: DiffType
    original: Optional[Ingredient] = None
    current: Optional[Ingredient] = None
    field: Optional[Literal["item", "quantity", "unit", "preparation"]] = None
    summary: str


class StepDiff(BaseModel):
    category: Literal["step"] = "step"
    type: DiffType
    step_number: int
    original: Optional[Step] = None
    current: Optional[Step] = None
    field: Optional[Literal["instruction", "duration", "temperature"]] = None
    summary: str


class NoteDiff(BaseModel):
    category: Literal["note"] = "note"
    type: Literal["added"] = "added"
    note_type: str
    content: str
    summary: str


RecipeDiff = Union[IngredientDiff, StepDiff, NoteDiff]


class CompareResult(BaseModel):
    diffs: list[RecipeDiff] = Field(default_factory=list)
    total_changes: int = 0
    ingredient_changes: int = 0
    step_changes: int = 0
    note_changes: int = 0
    has_changes: bool = False


# --- Versions / Recipes ---

class VersionOut(BaseModel):
    id: str
    master_recipe_id: str
    version_number: int
    title: Optional[str]
    ingredients: list[Ingredient]
    steps: list[Step]
    change_notes: Optional[str]
    parent_version_id: Optional[str]
    based_on_source_id: Optional[str]
    created_from_mode: str
    created_from_session_id: Optional[str]
    created_from_title: Optional[str]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MasterRecipeOut(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str]
    forked_from_id: Optional[str]
    current_version_id: Optional[str]
    is_forked: bool
    current_version: Optional[VersionOut] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecipeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    ingredients: list[Ingredient]
    steps: list[Step]


class RecipeContentUpdate(BaseModel):
    """Direct edit. Omitting based_on_source_id keeps the existing attribution;
    sending null explicitly clears it."""
    ingredients: list[Ingredient]
    steps: list[Step]
    change_notes: Optional[str] = None
    based_on_source_id: Optional[str] = None


class ContentSaveOut(BaseModel):
    version: VersionOut
    branch: Literal["forked", "outsourced"]
    created_new_version: bool


class SetActiveVersionRequest(BaseModel):
    version_id: str


class ApplySourceRequest(BaseModel):
    source_link_id: str


class VersionViewOut(BaseModel):
    version: Optional[VersionOut]
    is_viewing_original: bool


class CompareRequest(BaseModel):
    original_ingredients: list[Ingredient] = Field(default_factory=list)
    original_steps: list[Step] = Field(default_factory=list)
    current_ingredients: list[Ingredient] = Field(default_factory=list)
    current_steps: list[Step] = Field(default_factory=list)
    version_learnings: Optional[list[VersionLearning]] = None
    top_limit: int = Field(3, ge=0)


class CompareOut(BaseModel):
    result: CompareResult
    top_diffs: list[RecipeDiff]


# --- Source links ---

class ConfirmSourceLinkRequest(BaseModel):
    action: Literal["link_existing", "create_new", "reject"]
    master_recipe_id: Optional[str] = None  # required for link_existing


class ConfirmSourceLinkOut(BaseModel):
    action: Literal["linked_existing", "created_new", "rejected"]
    source_link_id: str
    master_recipe_id: Optional[str] = None
    version_id: Optional[str] = None
    message: str
    source_count: Optional[int] = None


# --- Cook sessions ---

class CookSessionCreate(BaseModel):
    master_recipe_id: str
    version_id: Optional[str] = None
    source_link_id: Optional[str] = None


class CookSessionOut(BaseModel):
    id: str
    master_recipe_id: str
    version_id: Optional[str]
    source_link_id: Optional[str]
    status: str
    detected_learnings: list[Learning]
    started_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LearningsAppend(BaseModel):
    learnings: list[Learning] = Field(..., min_length=1)


class CreateMyVersionRequest(BaseModel):
    source_link_id: Optional[str] = None


class CreateMyVersionOut(BaseModel):
    version_id: str
    version_number: int
    branch: Literal["forked", "outsourced"]
    changes_applied: int
    change_notes: str
    message: str

"""
Data models and validation for the recipe search and nutrition advice system.
Handles all input validation and data transformation.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Iterable, Union


MEALDB_MAX_INGREDIENTS = 20

SUGGESTED_INGREDIENTS = ["Chicken", "Salmon", "Beef", "Pork", "Eggs", "Potatoes", "Onions", "Tofu"]
DIETARY_GOALS = ["Weight Loss", "Muscle Gain", "Balanced Diet", "Low Carb", "High Protein", "Vegetarian"]
DEFAULT_GOAL = "Balanced Diet"

SECTION_HEADINGS = [
    "RECIPE SUGGESTIONS",
    "NUTRITIONAL OVERVIEW",
    "GOAL ALIGNMENT",
    "SMART SUBSTITUTIONS",
]
SECTION_ICONS = {
    "RECIPE SUGGESTIONS": "🍽",
    "NUTRITIONAL OVERVIEW": "📊",
    "GOAL ALIGNMENT": "🎯",
    "SMART SUBSTITUTIONS": "🔄",
}


class ValidationError(Exception):
    """Custom exception for validation errors."""
    def __init__(self, message: str, field: str = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


class APIError(Exception):
    """Base exception for API errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ExternalAPIError(APIError):
    """Exception for external API (TheMealDB, Anthropic) failures."""
    pass


def split_ingredient_text(raw: Union[str, List[Any], None], field: str = "ingredients") -> List[str]:
    """
    Normalize a comma-separated ingredient string (or a list of them).

    Entries are trimmed and lower-cased; empty entries are dropped.
    Duplicates are kept.

    Raises:
        ValidationError: If raw is not a string, a list or None
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = []
        for entry in raw:
            items.extend(str(entry).split(","))
    else:
        raise ValidationError(f"{field} must be a comma-separated string or an array", field)
    return [item.strip().lower() for item in items if item.strip()]


@dataclass(frozen=True)
class Ingredient:
    """One ingredient line of a recipe."""
    name: str
    measure: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {"name": self.name, "measure": self.measure}

    def describe(self) -> str:
        return f"{self.measure} {self.name}".strip()


@dataclass(frozen=True)
class Recipe:
    """Full recipe record as returned by the lookup endpoint."""
    id: str
    title: str
    category: str = ""
    area: str = ""
    thumbnail: str = ""
    instructions: str = ""
    youtube: Optional[str] = None
    ingredients: List[Ingredient] = field(default_factory=list)

    @staticmethod
    def from_mealdb(record: Dict[str, Any]) -> "Recipe":
        """
        Build a Recipe from a raw TheMealDB meal record.

        Args:
            record: One entry of the ``meals`` array

        Returns:
            Recipe with its numbered ingredient/measure slots collapsed
            into an ordered ingredient list
        """
        ingredients = []
        for i in range(1, MEALDB_MAX_INGREDIENTS + 1):
            name = (record.get(f"strIngredient{i}") or "").strip()
            if not name:
                continue
            measure = (record.get(f"strMeasure{i}") or "").strip()
            ingredients.append(Ingredient(name=name, measure=measure))

        return Recipe(
            id=str(record.get("idMeal", "")),
            title=record.get("strMeal") or "",
            category=record.get("strCategory") or "",
            area=record.get("strArea") or "",
            thumbnail=record.get("strMealThumb") or "",
            instructions=record.get("strInstructions") or "",
            youtube=record.get("strYoutube") or None,
            ingredients=ingredients,
        )

    def ingredient_names(self) -> set:
        """Lower-cased ingredient names, for comparison only."""
        return {ingredient.name.lower() for ingredient in self.ingredients}

    def contains_any(self, names: Iterable[str]) -> bool:
        own = self.ingredient_names()
        return any(name.lower() in own for name in names)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "area": self.area,
            "thumbnail": self.thumbnail,
            "instructions": self.instructions,
            "youtube": self.youtube,
            "ingredients": [i.to_dict() for i in self.ingredients],
        }


@dataclass
class SearchQuery:
    """Requested and omitted ingredient names for one search."""
    requested: List[str] = field(default_factory=list)
    omitted: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.requested

    @staticmethod
    def from_text(ingredients: Union[str, Iterable[Any], None], omit: Union[str, Iterable[Any], None] = None) -> "SearchQuery":
        """
        Create a SearchQuery from raw comma-separated input.

        Args:
            ingredients: Ingredients every recipe must contain
            omit: Ingredients no recipe may contain

        Returns:
            SearchQuery with normalized names
        """
        return SearchQuery(
            requested=split_ingredient_text(ingredients, "ingredients"),
            omitted=split_ingredient_text(omit, "omit"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {"ingredients": self.requested, "omit": self.omitted}


@dataclass
class NutritionRequest:
    """Validated input for a personalised meal-plan suggestion."""
    ingredients: str
    goal: str = DEFAULT_GOAL
    calories: Optional[int] = None
    notes: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "NutritionRequest":
        """
        Create NutritionRequest from dictionary with full validation.

        Args:
            data: Dictionary from JSON request

        Returns:
            NutritionRequest object with validated fields

        Raises:
            ValidationError: If any field fails validation
        """
        raw_ingredients = data.get("ingredients", "")
        if isinstance(raw_ingredients, list):
            raw_ingredients = ", ".join(str(i) for i in raw_ingredients)
        ingredients = str(raw_ingredients or "").strip()
        if not ingredients:
            raise ValidationError("ingredients are required", "ingredients")
        if len(ingredients) > 1000:
            raise ValidationError("ingredients must be at most 1000 characters", "ingredients")

        # Validate calories (optional)
        calories = None
        raw_calories = data.get("calories")
        if raw_calories not in (None, ""):
            if isinstance(raw_calories, bool):
                raise ValidationError("calories must be an integer", "calories")
            if isinstance(raw_calories, float) and not raw_calories.is_integer():
                raise ValidationError("calories must be a whole number", "calories")
            try:
                calories = int(raw_calories)
            except (TypeError, ValueError, OverflowError):
                raise ValidationError("calories must be an integer", "calories")
            if not (100 <= calories <= 3000):
                raise ValidationError("calories must be between 100-3000 kcal", "calories")

        goal = str(data.get("goal") or DEFAULT_GOAL).strip()
        matches = [g for g in DIETARY_GOALS if g.lower() == goal.lower()]
        if not matches:
            raise ValidationError(
                f"goal must be one of: {', '.join(DIETARY_GOALS)}",
                "goal"
            )

        notes = str(data.get("notes") or "").strip()
        if len(notes) > 500:
            raise ValidationError("notes must be at most 500 characters", "notes")

        return NutritionRequest(
            ingredients=ingredients,
            goal=matches[0],
            calories=calories,
            notes=notes,
        )


@dataclass(frozen=True)
class Section:
    """One labeled block of an AI reply."""
    heading: Optional[str]
    icon: Optional[str]
    body: str

    @property
    def title(self) -> Optional[str]:
        """Heading with the first letter of each word capitalized."""
        if self.heading is None:
            return None
        return " ".join(word[:1].upper() + word[1:].lower() for word in self.heading.split(" "))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "heading": self.heading,
            "title": self.title,
            "icon": self.icon,
            "body": self.body,
        }

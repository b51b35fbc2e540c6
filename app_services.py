"""
Service layer for external API calls and business logic.
Handles TheMealDB, Anthropic, ingredient intersection and reply formatting.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict, Any, Optional, Callable, Sequence
import requests
from anthropic import Anthropic
from app_models import (
    Recipe, SearchQuery, NutritionRequest, Section,
    ExternalAPIError, SECTION_HEADINGS, SECTION_ICONS
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

FAILURE_MESSAGE = "Something went wrong. Please check your API key and try again."
NO_ANALYSIS_MESSAGE = "Could not retrieve analysis."
NO_PLAN_MESSAGE = "No response received."

ANALYSIS_SYSTEM_PROMPT = (
    "You are a warm, knowledgeable nutritionist. Provide concise, practical nutritional analysis. "
    "Never use asterisks, hashtags, or markdown. Use plain numbered lists and clear paragraphs."
)
PLAN_SYSTEM_PROMPT = (
    "You are a warm, expert nutritionist and creative chef. Give practical, personalized advice. "
    "Never use asterisks, hashtags, bullet dashes, or markdown. Use clear plain-text paragraphs "
    "and the section headings provided."
)


class MealDBService:
    """Handle all TheMealDB API calls with caching."""

    BASE_URL = "https://www.themealdb.com/api/json/v1/1"
    REQUEST_TIMEOUT = 10

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize TheMealDB service."""
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout or self.REQUEST_TIMEOUT
        self._recipe_cache = {}  # Simple in-memory cache

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            url = f"{self.base_url}/{endpoint}"
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"TheMealDB {endpoint} error: {str(e)}")
            raise ExternalAPIError(f"TheMealDB request failed: {str(e)}")
        except ValueError as e:
            logger.error(f"TheMealDB {endpoint} returned invalid JSON: {str(e)}")
            raise ExternalAPIError(f"TheMealDB returned invalid JSON: {str(e)}")

    def filter_by_ingredient(self, ingredient: str) -> List[str]:
        """
        List the ids of all recipes that use a single ingredient.

        Args:
            ingredient: Ingredient name, e.g. "chicken"

        Returns:
            Recipe ids in the order TheMealDB returns them; empty when the
            ingredient is unknown

        Raises:
            ExternalAPIError: If API call fails
        """
        data = self._get("filter.php", {"i": ingredient})
        meals = data.get("meals") if isinstance(data, dict) else None
        if not isinstance(meals, list):
            logger.info(f"TheMealDB has no recipes for ingredient '{ingredient}'")
            return []

        ids = [str(meal["idMeal"]) for meal in meals if meal and meal.get("idMeal")]
        logger.info(f"TheMealDB found {len(ids)} recipes for '{ingredient}'")
        return ids

    def lookup_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """
        Get the full record for a recipe.

        Args:
            recipe_id: TheMealDB recipe id

        Returns:
            Recipe, or None if TheMealDB has no record for the id

        Raises:
            ExternalAPIError: If API call fails
        """
        recipe_id = str(recipe_id)
        # Check cache first
        if recipe_id in self._recipe_cache:
            return self._recipe_cache[recipe_id]

        data = self._get("lookup.php", {"i": recipe_id})
        meals = data.get("meals") if isinstance(data, dict) else None
        if not isinstance(meals, list) or not meals or not meals[0]:
            logger.info(f"TheMealDB has no record for recipe {recipe_id}")
            return None

        recipe = Recipe.from_mealdb(meals[0])
        self._recipe_cache[recipe_id] = recipe
        return recipe


def fetch_all(fetch: Callable[[Any], Any], items: Sequence[Any], max_workers: int = 8) -> List[Any]:
    """
    Run ``fetch`` for every item in parallel and return results in input order.

    The first failure is re-raised immediately; lookups that have not
    started yet are cancelled and the rest are not waited for.
    """
    if not items:
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items))))
    futures = [executor.submit(fetch, item) for item in items]
    try:
        for future in as_completed(futures):
            future.result()
    except Exception:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=False)
    return [future.result() for future in futures]


class RecipeSearchService:
    """Conjunctive ingredient search over TheMealDB."""

    def __init__(self, mealdb_service: MealDBService, max_workers: int = 8):
        """Initialize with dependencies."""
        self.mealdb = mealdb_service
        self.max_workers = max_workers

    def search(self, query: SearchQuery) -> Optional[List[Recipe]]:
        """
        Find recipes containing every requested ingredient and none of the
        omitted ones.

        Args:
            query: Normalized search query

        Returns:
            None when nothing was requested (no search is performed),
            otherwise the matching recipes in detail-fetch order. Any
            failure along the way yields an empty list.
        """
        if query.is_empty:
            return None

        try:
            return self._search(query)
        except Exception as e:
            logger.error(f"Recipe search for {query.requested} failed: {str(e)}")
            return []

    def _search(self, query: SearchQuery) -> List[Recipe]:
        # Step 1: one filter lookup per ingredient
        id_lists = fetch_all(self.mealdb.filter_by_ingredient, query.requested, self.max_workers)

        if any(not ids for ids in id_lists):
            logger.info("At least one ingredient has no recipes, nothing can match all of them")
            return []

        # Step 2: intersect, keeping the first ingredient's order
        common = set(id_lists[0])
        for ids in id_lists[1:]:
            common &= set(ids)
        common_ids = [recipe_id for recipe_id in dict.fromkeys(id_lists[0]) if recipe_id in common]

        if not common_ids:
            logger.info(f"No recipe uses all of {query.requested}")
            return []

        # Step 3: full records
        details = fetch_all(self.mealdb.lookup_recipe, common_ids, self.max_workers)
        recipes = [recipe for recipe in details if recipe]
        if len(recipes) < len(common_ids):
            logger.warning(f"Dropped {len(common_ids) - len(recipes)} recipes with no detail record")

        # Step 4: omit filter
        if query.omitted:
            kept = [recipe for recipe in recipes if not recipe.contains_any(query.omitted)]
            logger.info(f"Filtered out {len(recipes) - len(kept)} recipes containing {query.omitted}")
            recipes = kept

        logger.info(f"Returning {len(recipes)} recipes")
        return recipes


def sectionize(text: str, headings: Sequence[str] = SECTION_HEADINGS) -> List[Section]:
    """
    Split an AI reply into labeled sections.

    Each heading's body runs from the end of its first occurrence to the
    first occurrence of the next later heading that appears in the text.
    Headings that appear out of order or repeat can therefore produce
    empty or overlapping bodies. If no heading is found the whole reply
    becomes a single unlabeled section.
    """
    if not text:
        return []

    positions = [text.find(heading) for heading in headings]
    sections = []
    for idx, heading in enumerate(headings):
        start = positions[idx]
        if start == -1:
            continue
        end = next((pos for pos in positions[idx + 1:] if pos != -1), len(text))
        body = text[start + len(heading):end].strip()
        sections.append(Section(heading=heading, icon=SECTION_ICONS.get(heading), body=body))

    if not sections:
        return [Section(heading=None, icon=None, body=text.strip())]
    return sections


class NutritionistService:
    """Handle all Anthropic API calls."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize with an optional default key."""
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL

    def _complete(self, prompt: str, system: str, max_tokens: int, api_key: Optional[str]) -> Optional[str]:
        client = Anthropic(api_key=api_key or self.api_key)
        response = client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        if not response.content:
            return None
        return getattr(response.content[0], "text", None)

    def analyze_recipe(self, recipe: Recipe, api_key: Optional[str] = None) -> str:
        """
        Ask for a nutritional analysis of one recipe.

        Args:
            recipe: Recipe to analyze
            api_key: Caller's Anthropic key; falls back to the default key

        Returns:
            Plain-text analysis, or a fixed placeholder on any failure
        """
        ingredient_list = ", ".join(i.describe() for i in recipe.ingredients)
        prompt = f"""You are a professional nutritionist. Analyze this recipe:

Recipe: {recipe.title}
Category: {recipe.category or "Unknown"} | Cuisine: {recipe.area or "Unknown"}
Ingredients: {ingredient_list}

Please provide:
1. Estimated calories per serving (assume 4 servings)
2. Macronutrient breakdown (protein, carbs, fat) per serving
3. Key vitamins & minerals present
4. Health benefits of this dish
5. Who this recipe is ideal for (e.g., weight loss, athletes, etc.)
6. One simple tip to make it even healthier

Keep your response clear, practical, and encouraging. Use plain text with no markdown symbols."""

        try:
            text = self._complete(prompt, ANALYSIS_SYSTEM_PROMPT, 1000, api_key)
        except Exception as e:
            logger.error(f"Anthropic analysis error for recipe {recipe.id}: {str(e)}")
            return FAILURE_MESSAGE

        if not text:
            logger.warning(f"Anthropic returned no analysis for recipe {recipe.id}")
            return NO_ANALYSIS_MESSAGE
        logger.info(f"Anthropic analysis for recipe {recipe.id}: {len(text)} chars")
        return text

    def suggest_meal_plan(self, request: NutritionRequest, api_key: Optional[str] = None) -> str:
        """
        Ask for recipe suggestions and nutrition advice for the ingredients
        a user has on hand.

        Args:
            request: Validated nutrition request
            api_key: Caller's Anthropic key; falls back to the default key

        Returns:
            Plain-text reply using the known section headings, or a fixed
            placeholder on any failure
        """
        if request.calories:
            calorie_note = f"Target calories per meal: {request.calories} kcal."
        else:
            calorie_note = "No specific calorie target."
        notes_line = f"Additional notes: {request.notes}" if request.notes else ""

        prompt = f"""You are a professional nutritionist and creative chef. A client has come to you with the following:

Available ingredients: {request.ingredients}
{calorie_note}
Dietary goal: {request.goal}
{notes_line}

Please provide:

RECIPE SUGGESTIONS
Suggest 2-3 creative, delicious recipes they can make with these ingredients. For each recipe give a name, brief description (1-2 sentences), estimated calories per serving, and whether it fits their goal.

NUTRITIONAL OVERVIEW
Briefly explain the nutritional strengths and any gaps in their ingredient list.

GOAL ALIGNMENT
Explain how your suggestions support their {request.goal} goal with 2-3 specific tips.

SMART SUBSTITUTIONS
Suggest 2-3 ingredient swaps or additions that would improve their nutrition.

Use clear sections with the headings above. Write in plain text only, no asterisks, dashes, or markdown symbols. Be warm, encouraging, and specific."""

        try:
            text = self._complete(prompt, PLAN_SYSTEM_PROMPT, 1200, api_key)
        except Exception as e:
            logger.error(f"Anthropic meal plan error: {str(e)}")
            return FAILURE_MESSAGE

        if not text:
            logger.warning("Anthropic returned no meal plan text")
            return NO_PLAN_MESSAGE
        logger.info(f"Anthropic meal plan for goal '{request.goal}': {len(text)} chars")
        return text

"""Flask app entrypoint for Mise en Place.

This file wires up the Flask app, configuration, and the endpoints used
by the frontend: ingredient search, recipe lookup, AI nutrition analysis
and the AI nutritionist.
"""

import os
import logging
from datetime import datetime
from flask import Flask, request, jsonify
from flask_cors import CORS
from dotenv import load_dotenv
from app_models import (
    SearchQuery,
    NutritionRequest,
    ValidationError,
    ExternalAPIError,
    SUGGESTED_INGREDIENTS,
    DIETARY_GOALS,
)
from app_services import MealDBService, RecipeSearchService, NutritionistService, sectionize

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# CORS configuration - configure for production
CORS_METHODS = ["GET", "POST", "OPTIONS"]
cors_config = {
    "origins": "*",
    "methods": CORS_METHODS,
    "allow_headers": ["Content-Type", "X-API-Key"],
    "max_age": 3600,
}
CORS(app, resources={r"/api/*": cors_config})

# Initialize services
MEALDB_BASE_URL = os.getenv("MEALDB_BASE_URL")
MEALDB_TIMEOUT = float(os.getenv("MEALDB_TIMEOUT", 10))
SEARCH_MAX_WORKERS = int(os.getenv("SEARCH_MAX_WORKERS", 8))
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL")

if not ANTHROPIC_API_KEY:
    logger.warning("No default Anthropic key - AI endpoints need an X-API-Key header")

mealdb_service = MealDBService(MEALDB_BASE_URL, MEALDB_TIMEOUT)
search_service = RecipeSearchService(mealdb_service, max_workers=SEARCH_MAX_WORKERS)
nutritionist_service = NutritionistService(ANTHROPIC_API_KEY, ANTHROPIC_MODEL)

start_time = datetime.now()


def get_api_key():
    """Caller-supplied Anthropic key, falling back to the configured one."""
    return request.headers.get("X-API-Key") or ANTHROPIC_API_KEY


def missing_key_response():
    return jsonify({
        "success": False,
        "error": "An Anthropic API key is required",
        "field": "X-API-Key"
    }), 400


# --- RECIPE ENDPOINTS ---
@app.route("/api/recipes/search", methods=["GET", "POST"])
def search_recipes():
    """
    Search recipes by ingredient intersection.

    Query string: ?ingredients=chicken,rice&omit=garlic

    Or request JSON:
    {
        "ingredients": "chicken, rice",
        "omit": ["garlic"]
    }

    Response (success):
    {
        "success": true,
        "query": {"ingredients": [...], "omit": [...]},
        "recipe_count": 2,
        "recipes": [...]
    }
    """
    if request.method == "POST":
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.warning("Search body is not a JSON object")
            return jsonify({
                "success": False,
                "error": "Request body must be JSON"
            }), 400
        ingredients, omit = data.get("ingredients"), data.get("omit")
    else:
        # Repeated query args (?ingredients=a&ingredients=b) are merged
        ingredients, omit = request.args.getlist("ingredients"), request.args.getlist("omit")

    try:
        query = SearchQuery.from_text(ingredients, omit)
    except ValidationError as e:
        logger.warning(f"Validation error: {e.message}")
        return jsonify({
            "success": False,
            "error": e.message,
            "field": e.field
        }), 400

    if query.is_empty:
        logger.warning("Search without ingredients")
        return jsonify({
            "success": False,
            "error": "Please provide ingredients as a comma-separated list.",
            "field": "ingredients"
        }), 400

    logger.info(f"Processing search - ingredients: {query.requested}, omit: {query.omitted}")
    recipes = search_service.search(query) or []

    return jsonify({
        "success": True,
        "query": query.to_dict(),
        "recipe_count": len(recipes),
        "recipes": [r.to_dict() for r in recipes]
    }), 200


@app.route("/api/recipes/<recipe_id>", methods=["GET"])
def get_recipe(recipe_id):
    """Get the full record for one recipe."""
    try:
        recipe = mealdb_service.lookup_recipe(recipe_id)
    except ExternalAPIError as e:
        logger.error(f"External API error: {e.message}")
        return jsonify({
            "success": False,
            "error": e.message,
            "type": "external_api_error"
        }), 500

    if not recipe:
        return jsonify({"success": False, "error": "Recipe not found"}), 404

    return jsonify({"success": True, "recipe": recipe.to_dict()}), 200


@app.route("/api/recipes/<recipe_id>/analysis", methods=["POST"])
def analyze_recipe(recipe_id):
    """Get an AI nutrition analysis for one recipe."""
    api_key = get_api_key()
    if not api_key:
        return missing_key_response()

    try:
        recipe = mealdb_service.lookup_recipe(recipe_id)
    except ExternalAPIError as e:
        logger.error(f"External API error: {e.message}")
        return jsonify({
            "success": False,
            "error": e.message,
            "type": "external_api_error"
        }), 500

    if not recipe:
        return jsonify({"success": False, "error": "Recipe not found"}), 404

    analysis = nutritionist_service.analyze_recipe(recipe, api_key=api_key)
    return jsonify({
        "success": True,
        "recipe_id": recipe.id,
        "analysis": analysis
    }), 200


# --- NUTRITIONIST ENDPOINTS ---
@app.route("/api/nutritionist", methods=["POST"])
def nutritionist():
    """
    Get AI recipe suggestions for the ingredients a user has.

    Request JSON:
    {
        "ingredients": "chicken, rice, onions",
        "calories": 500,
        "goal": "High Protein",
        "notes": "lactose intolerant"
    }
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        logger.warning("Empty or non-object request body")
        return jsonify({
            "success": False,
            "error": "Request body must be JSON"
        }), 400

    try:
        nutrition_request = NutritionRequest.from_dict(data)
    except ValidationError as e:
        logger.warning(f"Validation error: {e.message}")
        return jsonify({
            "success": False,
            "error": e.message,
            "field": e.field
        }), 400

    api_key = get_api_key()
    if not api_key:
        return missing_key_response()

    text = nutritionist_service.suggest_meal_plan(nutrition_request, api_key=api_key)
    sections = sectionize(text)

    return jsonify({
        "success": True,
        "goal": nutrition_request.goal,
        "text": text,
        "sections": [s.to_dict() for s in sections]
    }), 200


@app.route("/api/suggestions", methods=["GET"])
def suggestions():
    """Suggested search ingredients and supported dietary goals."""
    return jsonify({
        "ingredients": SUGGESTED_INGREDIENTS,
        "goals": DIETARY_GOALS,
    }), 200


# --- UTILITY ENDPOINTS ---
@app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint for deployment monitoring."""
    uptime_seconds = (datetime.now() - start_time).total_seconds()
    return jsonify({
        "status": "ok",
        "uptime_seconds": int(uptime_seconds),
        "timestamp": datetime.now().isoformat()
    }), 200


@app.errorhandler(400)
def handle_bad_request(e):
    """Handle 400 errors."""
    logger.warning(f"Bad request: {str(e)}")
    return jsonify({
        "success": False,
        "error": "Bad request"
    }), 400


@app.errorhandler(404)
def handle_not_found(e):
    """Handle 404 errors."""
    return jsonify({
        "success": False,
        "error": "Endpoint not found"
    }), 404


@app.errorhandler(500)
def handle_server_error(e):
    """Handle 500 errors."""
    logger.error(f"Server error: {str(e)}")
    return jsonify({
        "success": False,
        "error": "Internal server error"
    }), 500


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5001))
    debug = os.getenv("FLASK_ENV", "production") == "development"

    logger.info(f"Starting Flask app on port {port} (debug={debug})")
    logger.info("CORS allowed origins: * (all sites)")
    logger.info(f"TheMealDB: {mealdb_service.base_url}")
    logger.info(f"Anthropic API: {'configured' if ANTHROPIC_API_KEY else 'per-request key only'}")

    app.run(host="0.0.0.0", port=port, debug=debug)

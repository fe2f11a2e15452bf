"""
Fact category vocabulary and credit products.

The category list is passed verbatim to the extraction prompt. Categories
outside this list are still stored and displayed as-is.
"""

# Fact categories with their icons (order matters: it is the prompt order)
FACT_CATEGORIES = {
    "work": "💼",
    "family": "👨‍👩‍👧",
    "interests": "🎯",
    "location": "📍",
    "education": "🎓",
    "personality": "🙂",
    "relationship": "🤝",
    "health": "🩺",
    "events": "📅",
    "appearance": "👀",
    "preferences": "⚙️",
    "other": "📄",
}

DEFAULT_CATEGORY = "other"


def category_icon(category: str) -> str:
    """Icon for a category; unknown categories get the generic icon."""
    return FACT_CATEGORIES.get(category, FACT_CATEGORIES[DEFAULT_CATEGORY])


# Credit pack product IDs -> credits granted
CREDIT_PRODUCTS = {
    "com.contactcard.credits.100": 100,
    "com.contactcard.credits.500": 500,
    "com.contactcard.credits.1500": 1500,
    "com.contactcard.credits.4000": 4000,
}

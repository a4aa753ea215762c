"""
Category Resolver
Assigns a category to an extracted transaction through a fixed priority chain:

1. Exact user rule for the merchant key
2. Pattern user rule contained in the merchant key (longest first)
3. Category of the most recent prior transaction for the merchant
4. Built-in merchant keyword table
5. Built-in provider table
6. 'Uncategorized'
"""

from ingest.logging_config import get_logger

logger = get_logger(__name__)

UNCATEGORIZED = "Uncategorized"

# Seeded system categories: (name, icon, color)
DEFAULT_CATEGORIES = [
    ("Food & Dining", "utensils", "#ef4444"),
    ("Food Delivery", "bike", "#f97316"),
    ("Transportation", "car", "#eab308"),
    ("Rideshare", "map-pin", "#84cc16"),
    ("Shopping", "shopping-bag", "#22c55e"),
    ("Entertainment", "film", "#14b8a6"),
    ("Subscriptions", "repeat", "#06b6d4"),
    ("Utilities", "zap", "#0ea5e9"),
    ("Healthcare", "heart-pulse", "#3b82f6"),
    ("Personal Care", "sparkles", "#6366f1"),
    ("Travel", "plane", "#8b5cf6"),
    ("Gifts & Donations", "gift", "#a855f7"),
    ("Education", "graduation-cap", "#d946ef"),
    ("Peer Payment", "users", "#ec4899"),
    (UNCATEGORIZED, "help-circle", "#6b7280"),
]

# Provider id -> category name
PROVIDER_CATEGORIES = {
    "amazon": "Shopping",
    "doordash": "Food Delivery",
    "uber_eats": "Food Delivery",
    "uber": "Rideshare",
    "venmo": "Peer Payment",
}

# Ordered (keyword, category) pairs; first substring hit wins, so
# delivery brands must precede the ride and dining keywords they contain
MERCHANT_PATTERNS = [
    # Food Delivery
    ("doordash", "Food Delivery"),
    ("uber eats", "Food Delivery"),
    ("grubhub", "Food Delivery"),
    ("postmates", "Food Delivery"),
    ("instacart", "Food Delivery"),
    # Rideshare
    ("uber", "Rideshare"),
    ("lyft", "Rideshare"),
    # Shopping
    ("amazon", "Shopping"),
    ("walmart", "Shopping"),
    ("target", "Shopping"),
    ("costco", "Shopping"),
    ("best buy", "Shopping"),
    ("home depot", "Shopping"),
    ("lowes", "Shopping"),
    ("ikea", "Shopping"),
    # Food & Dining
    ("starbucks", "Food & Dining"),
    ("mcdonald", "Food & Dining"),
    ("chipotle", "Food & Dining"),
    ("subway", "Food & Dining"),
    ("dunkin", "Food & Dining"),
    ("restaurant", "Food & Dining"),
    ("cafe", "Food & Dining"),
    ("coffee", "Food & Dining"),
    ("pizza", "Food & Dining"),
    ("burger", "Food & Dining"),
    ("taco", "Food & Dining"),
    ("sushi", "Food & Dining"),
    # Subscriptions
    ("netflix", "Subscriptions"),
    ("spotify", "Subscriptions"),
    ("hulu", "Subscriptions"),
    ("disney", "Subscriptions"),
    ("hbo", "Subscriptions"),
    ("apple music", "Subscriptions"),
    ("youtube premium", "Subscriptions"),
    # Entertainment
    ("amc", "Entertainment"),
    ("regal", "Entertainment"),
    ("cinemark", "Entertainment"),
    ("movie", "Entertainment"),
    ("theater", "Entertainment"),
    ("concert", "Entertainment"),
    ("tickets", "Entertainment"),
    # Utilities
    ("electric", "Utilities"),
    ("water", "Utilities"),
    ("gas", "Utilities"),
    ("internet", "Utilities"),
    ("phone", "Utilities"),
    ("verizon", "Utilities"),
    ("att", "Utilities"),
    ("t-mobile", "Utilities"),
    ("comcast", "Utilities"),
    ("spectrum", "Utilities"),
    # Transportation
    ("gas station", "Transportation"),
    ("shell", "Transportation"),
    ("chevron", "Transportation"),
    ("exxon", "Transportation"),
    ("bp", "Transportation"),
    ("parking", "Transportation"),
    # Healthcare
    ("pharmacy", "Healthcare"),
    ("cvs", "Healthcare"),
    ("walgreens", "Healthcare"),
    ("doctor", "Healthcare"),
    ("hospital", "Healthcare"),
    ("dental", "Healthcare"),
    ("medical", "Healthcare"),
    # Personal Care
    ("salon", "Personal Care"),
    ("barber", "Personal Care"),
    ("spa", "Personal Care"),
    ("gym", "Personal Care"),
    ("fitness", "Personal Care"),
    # Travel
    ("airline", "Travel"),
    ("hotel", "Travel"),
    ("airbnb", "Travel"),
    ("booking.com", "Travel"),
    ("expedia", "Travel"),
    ("marriott", "Travel"),
    ("hilton", "Travel"),
    # Education
    ("university", "Education"),
    ("college", "Education"),
    ("school", "Education"),
    ("tuition", "Education"),
    ("textbook", "Education"),
    ("coursera", "Education"),
    ("udemy", "Education"),
    # Peer Payments
    ("venmo", "Peer Payment"),
    ("paypal", "Peer Payment"),
    ("zelle", "Peer Payment"),
    ("cash app", "Peer Payment"),
]


def get_merchant_pattern_category(merchant_key: str) -> str | None:
    """First built-in keyword contained in the merchant key."""
    for keyword, category in MERCHANT_PATTERNS:
        if keyword in merchant_key:
            return category
    return None


def get_provider_category(provider: str) -> str | None:
    return PROVIDER_CATEGORIES.get(provider)


class CategoryResolver:
    """Resolves categories against a Store (rules, history, named categories)."""

    def __init__(self, store):
        self.store = store

    def resolve(self, merchant_key: str, provider: str, user_id: int = 1) -> dict | None:
        """
        Resolve the category for a normalized merchant key.

        Args:
            merchant_key: Output of normalize_merchant()
            provider: Extractor id (e.g. 'amazon', 'receipt_photo')
            user_id: Category scope

        Returns:
            Category dict, or None when no step (including 'Uncategorized')
            yields a stored category
        """
        category = self.store.find_exact_rule_category(merchant_key, user_id=user_id)
        if category:
            logger.debug(f"Category from exact rule: {merchant_key} -> {category['name']}")
            return category

        category = self.store.find_pattern_rule_category(merchant_key, user_id=user_id)
        if category:
            logger.debug(f"Category from pattern rule: {merchant_key} -> {category['name']}")
            return category

        category = self.store.latest_category_for_merchant(merchant_key, user_id=user_id)
        if category:
            logger.debug(f"Category from history: {merchant_key} -> {category['name']}")
            return category

        for step, name in (
            ("merchant pattern", get_merchant_pattern_category(merchant_key)),
            ("provider", get_provider_category(provider)),
        ):
            if not name:
                continue
            category = self.store.get_category_by_name(name, user_id=user_id)
            if category:
                logger.debug(f"Category from {step}: {merchant_key} -> {name}")
                return category

        logger.debug(f"No category found for: {merchant_key}")
        return self.store.get_category_by_name(UNCATEGORIZED, user_id=user_id)

    def learn_from_assignment(self, merchant_key: str, category_id: int, user_id: int = 1) -> dict:
        """Remember a manual assignment as an exact rule for the merchant."""
        rule = self.store.set_merchant_rule(
            merchant_key, category_id, is_exact_match=True, user_id=user_id
        )
        logger.info(f"Learned category rule: {merchant_key} -> {category_id}")
        return rule

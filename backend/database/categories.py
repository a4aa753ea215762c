"""
Categories & Rules - Database Operations

Handles category management and the user merchant rules consulted by the
category resolver.

Modules:
- Categories (list_categories, get_category_by_name, create_category, seeding)
- Merchant rules (find_exact_rule_category, find_pattern_rule_category,
  set_merchant_rule, delete_merchant_rule)
"""

from .models.category import Category, MerchantCategoryRule


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "user_id": category.user_id,
        "name": category.name,
        "icon": category.icon,
        "color": category.color,
        "is_system": category.is_system,
    }


def rule_to_dict(rule: MerchantCategoryRule) -> dict:
    return {
        "id": rule.id,
        "user_id": rule.user_id,
        "merchant_pattern": rule.merchant_pattern,
        "category_id": rule.category_id,
        "is_exact_match": rule.is_exact_match,
        "created_at": rule.created_at,
    }


class CategoryStoreMixin:
    """Category and merchant rule operations (requires get_session())."""

    # ============================================================================
    # CATEGORIES
    # ============================================================================

    def list_categories(self, user_id: int = 1) -> list[dict]:
        with self.get_session() as session:
            categories = (
                session.query(Category)
                .filter(Category.user_id == user_id)
                .order_by(Category.name.asc())
                .all()
            )
            return [category_to_dict(c) for c in categories]

    def get_category(self, category_id: int) -> dict | None:
        with self.get_session() as session:
            category = session.get(Category, category_id)
            return category_to_dict(category) if category else None

    def get_category_by_name(self, name: str, user_id: int = 1) -> dict | None:
        with self.get_session() as session:
            category = (
                session.query(Category)
                .filter(Category.user_id == user_id, Category.name == name)
                .first()
            )
            return category_to_dict(category) if category else None

    def create_category(
        self,
        name: str,
        icon: str | None = None,
        color: str | None = None,
        is_system: bool = False,
        user_id: int = 1,
    ) -> dict:
        with self.get_session() as session:
            category = Category(
                user_id=user_id, name=name, icon=icon, color=color, is_system=is_system
            )
            session.add(category)
            session.commit()
            return category_to_dict(category)

    def delete_category(self, category_id: int) -> bool:
        with self.get_session() as session:
            category = session.get(Category, category_id)
            if not category:
                return False
            session.delete(category)
            session.commit()
            return True

    def seed_default_categories(self, defaults: list[tuple], user_id: int = 1) -> int:
        """
        Insert missing system categories.

        Args:
            defaults: (name, icon, color) tuples
            user_id: Owning user

        Returns:
            Number of categories inserted
        """
        with self.get_session() as session:
            existing = {
                name
                for (name,) in session.query(Category.name).filter(Category.user_id == user_id)
            }
            inserted = 0
            for name, icon, color in defaults:
                if name in existing:
                    continue
                session.add(
                    Category(user_id=user_id, name=name, icon=icon, color=color, is_system=True)
                )
                inserted += 1
            session.commit()
            return inserted

    # ============================================================================
    # MERCHANT RULES
    # ============================================================================

    def find_exact_rule_category(self, merchant_key: str, user_id: int = 1) -> dict | None:
        """Category of the exact-match rule for this merchant key."""
        with self.get_session() as session:
            category = (
                session.query(Category)
                .join(MerchantCategoryRule, MerchantCategoryRule.category_id == Category.id)
                .filter(
                    MerchantCategoryRule.user_id == user_id,
                    MerchantCategoryRule.is_exact_match.is_(True),
                    MerchantCategoryRule.merchant_pattern == merchant_key,
                )
                .first()
            )
            return category_to_dict(category) if category else None

    def find_pattern_rule_category(self, merchant_key: str, user_id: int = 1) -> dict | None:
        """Category of the longest pattern rule contained in the merchant key."""
        with self.get_session() as session:
            rules = (
                session.query(MerchantCategoryRule)
                .filter(
                    MerchantCategoryRule.user_id == user_id,
                    MerchantCategoryRule.is_exact_match.is_(False),
                )
                .order_by(MerchantCategoryRule.id.asc())
                .all()
            )
            matching = [r for r in rules if r.merchant_pattern and r.merchant_pattern in merchant_key]
            if not matching:
                return None

            # Longest (most specific) pattern wins; earliest rule breaks ties
            best = max(matching, key=lambda r: len(r.merchant_pattern))
            category = session.get(Category, best.category_id)
            return category_to_dict(category) if category else None

    def set_merchant_rule(
        self,
        merchant_pattern: str,
        category_id: int,
        is_exact_match: bool = False,
        user_id: int = 1,
    ) -> dict:
        """Create or replace the rule for (user_id, merchant_pattern)."""
        with self.get_session() as session:
            rule = (
                session.query(MerchantCategoryRule)
                .filter(
                    MerchantCategoryRule.user_id == user_id,
                    MerchantCategoryRule.merchant_pattern == merchant_pattern,
                )
                .first()
            )
            if rule:
                rule.category_id = category_id
                rule.is_exact_match = is_exact_match
            else:
                rule = MerchantCategoryRule(
                    user_id=user_id,
                    merchant_pattern=merchant_pattern,
                    category_id=category_id,
                    is_exact_match=is_exact_match,
                )
                session.add(rule)
            session.commit()
            return rule_to_dict(rule)

    def list_merchant_rules(self, user_id: int = 1) -> list[dict]:
        with self.get_session() as session:
            rules = (
                session.query(MerchantCategoryRule)
                .filter(MerchantCategoryRule.user_id == user_id)
                .order_by(MerchantCategoryRule.merchant_pattern.asc())
                .all()
            )
            return [rule_to_dict(r) for r in rules]

    def delete_merchant_rule(self, rule_id: int) -> bool:
        with self.get_session() as session:
            rule = session.get(MerchantCategoryRule, rule_id)
            if not rule:
                return False
            session.delete(rule)
            session.commit()
            return True

"""Recurrence Validator."""
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from chronotask.exceptions import RecurrenceValidationError, ValidationError
from chronotask.models.recurrence_rule import LAST_WEEK_OF_MONTH, RecurrenceRule, RecurrenceType
from chronotask.models.task import TaskPriority

MAX_INTERVAL = 999
MAX_TAGS = 10
MAX_TAG_LENGTH = 20


def _result() -> Dict[str, Any]:
    return {
        "valid": True,
        "errors": [],
        "warnings": []
    }


class RecurrenceValidator:
    """Validate recurrence rules and other task fields before any write."""

    @staticmethod
    def validate_rule(rule: RecurrenceRule) -> Dict[str, Any]:
        """
        Validate a recurrence rule.

        Args:
            rule: Rule to check

        Returns:
            Dict with validation result
        """
        result = _result()
        errors: List[str] = result["errors"]
        warnings: List[str] = result["warnings"]

        # type none ignores every other field
        if rule.type == RecurrenceType.NONE:
            return result

        if rule.interval < 1:
            errors.append(f"Recurrence interval must be at least 1, got {rule.interval}")
        elif rule.interval > MAX_INTERVAL:
            errors.append(f"Recurrence interval must be at most {MAX_INTERVAL}, got {rule.interval}")

        if rule.weekday is not None and not 0 <= rule.weekday <= 6:
            errors.append(f"Weekday must be between 0 (Sunday) and 6 (Saturday), got {rule.weekday}")

        if rule.month_day is not None and not 1 <= rule.month_day <= 31:
            errors.append(f"Day of month must be between 1 and 31, got {rule.month_day}")

        if rule.week_of_month is not None and not 1 <= rule.week_of_month <= LAST_WEEK_OF_MONTH:
            errors.append(f"Week of month must be between 1 and {LAST_WEEK_OF_MONTH}, got {rule.week_of_month}")

        if rule.type == RecurrenceType.MONTHLY_WEEKDAY:
            if rule.weekday is None:
                errors.append("Monthly weekday recurrence requires a weekday")
            if rule.week_of_month is None:
                errors.append("Monthly weekday recurrence requires a week of month")

        if rule.type != RecurrenceType.MONTHLY and rule.month_day is not None:
            warnings.append(f"Day of month is ignored for {rule.type.value} recurrence")
        if rule.type not in (RecurrenceType.WEEKLY, RecurrenceType.MONTHLY_WEEKDAY) and rule.weekday is not None:
            warnings.append(f"Weekday is ignored for {rule.type.value} recurrence")
        if rule.type != RecurrenceType.MONTHLY_WEEKDAY and rule.week_of_month is not None:
            warnings.append(f"Week of month is ignored for {rule.type.value} recurrence")

        result["valid"] = not errors
        return result

    @staticmethod
    def ensure_valid(rule: RecurrenceRule) -> RecurrenceRule:
        """Raise RecurrenceValidationError listing every problem with the rule."""
        validation = RecurrenceValidator.validate_rule(rule)
        if not validation["valid"]:
            raise RecurrenceValidationError("; ".join(validation["errors"]), validation["errors"])
        return rule

    @staticmethod
    def build_rule(data: Optional[Dict[str, Any]]) -> RecurrenceRule:
        """
        Build and validate a rule from raw input.

        Args:
            data: Mapping of rule fields (missing means no recurrence)

        Returns:
            A valid RecurrenceRule
        """
        if not data:
            return RecurrenceRule.none()
        try:
            rule = RecurrenceRule(**data)
        except PydanticValidationError as e:
            messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise RecurrenceValidationError("; ".join(messages), messages) from e
        return RecurrenceValidator.ensure_valid(rule)

    @staticmethod
    def validate_tag_limits(tags: list) -> Dict[str, Any]:
        """
        Validate tag limits.

        Args:
            tags: List of tags

        Returns:
            Dict with validation result
        """
        result = _result()

        if not tags:
            return result

        if not isinstance(tags, list):
            result["valid"] = False
            result["errors"].append("Tags must be a list")
            return result

        if len(tags) > MAX_TAGS:
            result["valid"] = False
            result["errors"].append(f"Maximum {MAX_TAGS} tags allowed, got {len(tags)}")
            return result

        for i, tag in enumerate(tags):
            if not isinstance(tag, str):
                result["valid"] = False
                result["errors"].append(f"Tag at index {i} must be a string")
                return result

            if len(tag) > MAX_TAG_LENGTH:
                result["valid"] = False
                result["errors"].append(f"Tag '{tag}' exceeds maximum length of {MAX_TAG_LENGTH} characters")
                return result

            if not re.match(r'^[\w\s\-_.]+$', tag):
                result["warnings"].append(f"Tag '{tag}' contains potentially problematic characters")

        return result

    @staticmethod
    def validate_priority(priority: Optional[str]) -> Dict[str, Any]:
        """
        Validate priority value.

        Args:
            priority: Priority string (None clears the priority)

        Returns:
            Dict with validation result
        """
        result = _result()

        if priority is None:
            return result

        allowed = [p.value for p in TaskPriority]
        if priority not in allowed:
            result["valid"] = False
            result["errors"].append(f"Priority must be one of: {', '.join(allowed)}, got: {priority}")

        return result

    @staticmethod
    def raise_for(result: Dict[str, Any]) -> None:
        """Turn a failed validation result into a ValidationError."""
        if not result["valid"]:
            raise ValidationError("; ".join(result["errors"]), result["errors"])

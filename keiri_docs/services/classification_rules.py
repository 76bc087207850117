"""
User-defined keyword rules that override the AI document type.

Rules are evaluated after Gemini OCR. The highest-priority active rule
whose keyword appears in the vendor name or description decides the
type; the rest of the OCR result passes through untouched.
"""

from loguru import logger
from typing import Iterable

from .ocr_types import OcrResult
from ..models.settings import ClassificationRule


def sort_rules(rules: Iterable[ClassificationRule]) -> list[ClassificationRule]:
    """
    Active rules ordered by priority, highest first.

    The sort is stable, so rules with equal priority keep their input order.
    """
    active = [rule for rule in rules if rule.is_active]
    return sorted(active, key=lambda rule: rule.priority, reverse=True)


def find_matching_rule(
    vendor_name: str,
    description: str | None,
    rules: Iterable[ClassificationRule],
) -> ClassificationRule | None:
    haystack = f"{vendor_name} {description or ''}".lower()

    for rule in sort_rules(rules):
        if rule.keyword.lower() in haystack:
            return rule
    return None


def apply_classification_rules(
    ocr_result: OcrResult,
    rules: Iterable[ClassificationRule],
) -> OcrResult:
    """
    Apply keyword rules to an OCR result.

    Args:
        ocr_result: Normalized Gemini output
        rules: The owner's rules (inactive ones are ignored)

    Returns:
        A copy of ocr_result, with `type` replaced when a rule matched
    """
    result = ocr_result.model_copy()

    rule = find_matching_rule(result.vendor_name, result.description, rules)
    if rule is None:
        return result

    logger.debug(
        "Classification rule matched",
        keyword=rule.keyword,
        priority=rule.priority,
        ai_type=ocr_result.type,
        rule_type=rule.document_type,
    )
    result.type = rule.document_type
    return result

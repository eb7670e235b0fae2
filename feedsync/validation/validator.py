"""Product validation against marketplace field rules.

Classifies each ProductRecord as valid or invalid. Rules are applied in a
fixed order (required fields, identifiers, field formats, warnings) and all
violations are collected; nothing short-circuits.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from feedsync.domain.value_objects import IssueSeverity, ProductRecord, ValidationIssue
from feedsync.validation.rules import (
    FIELD_RULES,
    GTIN_LENGTHS,
    IDENTIFIER_MAX_LENGTHS,
    REQUIRED_FIELDS,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[float], None]


@dataclass
class ValidationResult:
    """Verdict for a single product."""

    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)


@dataclass
class FeedValidationResult:
    """Outcome of validating every product of a feed run.

    Attributes:
        is_valid: True when no product was rejected.
        valid_products: Products that go into the rendered feed.
        invalid_products: Products excluded because of errors.
        errors: All errors across products, in product order.
        warnings: All warnings across products, in product order.
    """

    is_valid: bool
    valid_products: list[ProductRecord] = field(default_factory=list)
    invalid_products: list[ProductRecord] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def total_products(self) -> int:
        """Number of products validated."""
        return len(self.valid_products) + len(self.invalid_products)


class FeedValidator:
    """Validates products for a target marketplace.

    Args:
        currency: Optional target currency; prices in another currency
            produce a warning.
    """

    def __init__(self, currency: str | None = None) -> None:
        self.currency = currency.upper() if currency else None

    def validate_product(self, product: ProductRecord) -> ValidationResult:
        """Validate one product.

        Args:
            product: Product to validate.

        Returns:
            ValidationResult with all errors and warnings found.
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        self._check_required_fields(product, errors)
        self._check_identifiers(product, errors)
        self._check_field_formats(product, errors)
        self._check_warnings(product, warnings)

        if errors:
            logger.warning(
                "Product validation failed",
                product_id=product.id,
                errors=[e.to_dict() for e in errors],
            )
        if warnings:
            logger.info(
                "Product validation warnings",
                product_id=product.id,
                warnings=[w.to_dict() for w in warnings],
            )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    # Alias matching the collaborator contract name
    validate = validate_product

    def _check_required_fields(
        self, product: ProductRecord, errors: list[ValidationIssue]
    ) -> None:
        for name in REQUIRED_FIELDS:
            if not product.get(name).strip():
                errors.append(
                    _issue(name, f"Missing required field: {name}", product)
                )

    def _check_identifiers(
        self, product: ProductRecord, errors: list[ValidationIssue]
    ) -> None:
        has_gtin = bool(product.gtin.strip())
        has_mpn = bool(product.mpn.strip())
        has_brand = bool(product.brand.strip())

        if not has_gtin and not (has_mpn and has_brand):
            errors.append(
                _issue(
                    "identifiers",
                    "Product must have either GTIN or both MPN and Brand",
                    product,
                )
            )

        if has_gtin:
            gtin = product.gtin.strip()
            if not gtin.isdigit() or len(gtin) not in GTIN_LENGTHS:
                lengths = ", ".join(str(n) for n in sorted(GTIN_LENGTHS))
                errors.append(
                    _issue(
                        "gtin",
                        f"Invalid GTIN length. Must be one of: {lengths} digits",
                        product,
                    )
                )

    def _check_field_formats(
        self, product: ProductRecord, errors: list[ValidationIssue]
    ) -> None:
        for rule in FIELD_RULES:
            value = product.get(rule.field)
            if not value:
                continue

            if rule.max_length is not None and len(value) > rule.max_length:
                errors.append(
                    _issue(
                        rule.field,
                        f"{rule.field} exceeds maximum length of {rule.max_length} characters",
                        product,
                    )
                )

            if rule.pattern is not None and not rule.pattern.match(value):
                errors.append(_issue(rule.field, f"Invalid {rule.field} format", product))

            if rule.allowed_values is not None and value not in rule.allowed_values:
                errors.append(
                    _issue(
                        rule.field,
                        f"Invalid {rule.field}. Must be one of: {', '.join(rule.allowed_values)}",
                        product,
                    )
                )

    def _check_warnings(
        self, product: ProductRecord, warnings: list[ValidationIssue]
    ) -> None:
        for name, max_length in IDENTIFIER_MAX_LENGTHS.items():
            value = product.get(name)
            if len(value) > max_length:
                warnings.append(
                    _issue(
                        name,
                        f"{name} longer than {max_length} characters will be truncated",
                        product,
                        IssueSeverity.WARNING,
                    )
                )

        if self.currency and product.price:
            _, _, currency = product.price.rpartition(" ")
            if currency and currency != self.currency:
                warnings.append(
                    _issue(
                        "price",
                        f"Price currency {currency} differs from feed currency {self.currency}",
                        product,
                        IssueSeverity.WARNING,
                    )
                )


def _issue(
    field_name: str,
    message: str,
    product: ProductRecord,
    severity: IssueSeverity = IssueSeverity.ERROR,
) -> ValidationIssue:
    return ValidationIssue(
        field=field_name,
        message=message,
        product_id=product.id or None,
        severity=severity,
    )


def validate_feed(
    products: Sequence[ProductRecord],
    on_progress: ProgressCallback | None = None,
    currency: str | None = None,
) -> FeedValidationResult:
    """Validate every product of a feed.

    Runs sequentially on the calling thread. ``on_progress`` receives the
    percentage complete after each product, so it is called once per
    product and the last call reports 100.

    Args:
        products: Products to validate.
        on_progress: Optional progress callback.
        currency: Optional target currency for price warnings.

    Returns:
        FeedValidationResult partitioning products into valid and invalid.
    """
    validator = FeedValidator(currency=currency)
    result = FeedValidationResult(is_valid=True)
    total = len(products)

    for index, product in enumerate(products):
        verdict = validator.validate_product(product)

        if verdict.is_valid:
            result.valid_products.append(product)
        else:
            result.invalid_products.append(product)

        result.errors.extend(verdict.errors)
        result.warnings.extend(verdict.warnings)

        if on_progress:
            on_progress((index + 1) / total * 100)

    result.is_valid = not result.invalid_products

    summary = {
        "total_products": total,
        "valid_products": len(result.valid_products),
        "invalid_products": len(result.invalid_products),
        "total_errors": len(result.errors),
        "total_warnings": len(result.warnings),
    }
    if result.invalid_products:
        logger.warning("Feed validation completed with errors", **summary)
    else:
        logger.info("Feed validation completed", **summary)

    return result

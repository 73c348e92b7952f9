"""
Data Validation Utilities

This module provides the boundary validation used before any input reaches
the deterministic update rule or the scheduler:
1. Validation of payloads against Pydantic models with detailed error reporting
2. Range checks for plain numeric arguments
"""

import math
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from srs_engine.common.error_handling import DataValidationError

# Type variables
T = TypeVar('T', bound=BaseModel)

# Configure logging
logger = logging.getLogger(__name__)


class ValidationResult:
    """Result of a validation operation"""

    def __init__(
        self,
        is_valid: bool,
        errors: Optional[List[Dict[str, Any]]] = None,
        instance: Optional[BaseModel] = None
    ):
        """
        Initialize validation result.

        Args:
            is_valid: Whether the validation passed
            errors: List of validation errors
            instance: Validated model instance if validation passed
        """
        self.is_valid = is_valid
        self.errors = errors or []
        self.instance = instance

    def __bool__(self) -> bool:
        """Allow using the result in boolean context"""
        return self.is_valid

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to a dictionary"""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "validated_data": self.instance.model_dump() if self.instance is not None else {}
        }

    def raise_if_invalid(self, data_type: str = "data") -> BaseModel:
        """
        Raise an exception if validation failed.

        Args:
            data_type: Type of data being validated

        Returns:
            The validated model instance

        Raises:
            DataValidationError: If validation failed
        """
        if not self.is_valid:
            raise DataValidationError(
                data_type=data_type,
                validation_errors=self.errors
            )
        return self.instance


def validate_against_model(
    model: Type[T],
    data: Union[Dict[str, Any], T]
) -> ValidationResult:
    """
    Validate data against a Pydantic model.

    Instances of the model are re-validated so that objects built with
    ``model_construct`` or mutated after creation cannot bypass the checks.

    Args:
        model: Pydantic model class to validate against
        data: Mapping or model instance to validate

    Returns:
        Validation result
    """
    if isinstance(data, BaseModel):
        data = data.model_dump()

    try:
        instance = model.model_validate(data)
        return ValidationResult(is_valid=True, instance=instance)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })
        logger.debug(f"Validation against {model.__name__} failed with {len(errors)} errors")
        return ValidationResult(is_valid=False, errors=errors)


def parse_model(model: Type[T], data: Union[Dict[str, Any], T, None] = None) -> T:
    """
    Validate a payload and return the model instance.

    Args:
        model: Pydantic model class
        data: Payload (mapping, instance, or None for all defaults)

    Returns:
        Validated model instance

    Raises:
        DataValidationError: If the payload is invalid
    """
    result = validate_against_model(model, data if data is not None else {})
    return result.raise_if_invalid(model.__name__)


def validate_range(
    name: str,
    value: Union[int, float],
    minimum: Optional[float] = None,
    maximum: Optional[float] = None
) -> Union[int, float]:
    """
    Check that a plain numeric argument is finite and within bounds.

    Args:
        name: Argument name used in the error report
        value: Value to check
        minimum: Inclusive lower bound
        maximum: Inclusive upper bound

    Returns:
        The value, unchanged

    Raises:
        DataValidationError: If the value is not a finite number in range
    """
    problem = None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        problem = "must be a number"
    elif math.isnan(value) or math.isinf(value):
        problem = "must be finite"
    elif minimum is not None and value < minimum:
        problem = f"must be >= {minimum}"
    elif maximum is not None and value > maximum:
        problem = f"must be <= {maximum}"

    if problem:
        raise DataValidationError(
            data_type=name,
            validation_errors=[{"field": name, "message": f"{name} {problem}", "type": "value_error"}]
        )
    return value

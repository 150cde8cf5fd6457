from .rules import parse_rules, validate_variable

__all__ = ["parse_rules", "validate_variable"]

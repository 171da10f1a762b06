from .money import quantize_money, to_decimal

__all__ = ["quantize_money", "to_decimal"]

"""
Value Transform Engine

Bidirectional conversion between form data and chain values.

Usage:
    from callforge.transform import parse_input, format_output

    amount = parse_input(FunctionParameter(name="amount", type="uint256"), "1000")
"""

from .input_parser import ABSENT, parse_input
from .output_formatter import format_output, format_value
from .payload import (
    format_call_arguments,
    format_transaction_data,
    function_to_abi,
    parameter_to_abi,
    unflatten_form_values,
)

__all__ = [
    "ABSENT",
    "parse_input",
    "format_output",
    "format_value",
    "format_call_arguments",
    "format_transaction_data",
    "function_to_abi",
    "parameter_to_abi",
    "unflatten_form_values",
]

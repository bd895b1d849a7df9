"""Reference test conversion into Rust or pytest."""

from .converter import ConversionResult, ConvertedTest, TestConverter, parse_reference_tests

__all__ = ["ConversionResult", "ConvertedTest", "TestConverter", "parse_reference_tests"]

"""
Validators — pure judges of content.

Each returns a ValidationResult; failing results carry an instruction the
caller can feed back into the next attempt.
"""
from validators.base import ValidationResult, Validator, CustomValidator
from validators.text import (
    RegexMatchValidator, RegexNoMatchValidator,
    KeywordValidator, LengthValidator, JsonValidator,
)
from validators.composite import AllValidator, AnyValidator
from validators.model import ModelValidator, ToxicLanguageValidator
from validators.schema import SchemaValidator

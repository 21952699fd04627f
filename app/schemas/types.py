"""
Shared Pydantic types for schema validation.

UUIDStr: complaint, action and notification ids are UUID columns; responses
expose them as strings.

NameStr: names of branches, lines of business and complaint types. Surrounding
whitespace is dropped before length checks and uniqueness lookups.
"""

from typing import Annotated
from pydantic import BeforeValidator, StringConstraints

UUIDStr = Annotated[str, BeforeValidator(lambda v: str(v) if not isinstance(v, str) else v)]

NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]

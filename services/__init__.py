"""
Application services layer.

Services orchestrate business operations using repositories and return
Result values. Concrete services are imported from their own modules;
this package only re-exports the shared result type so that
`domain.exceptions` can import `services.error_codes` without pulling in
the repositories.
"""

from services import error_codes
from services.result import Result

__all__ = [
    "Result",
    "error_codes",
]

"""
Domain exceptions raised by the categorization core.
Routers translate these into HTTP errors.
"""


class SchoolFocusError(Exception):
    """Base class for all categorization core errors"""


class CategorizationLookupError(SchoolFocusError):
    """The rule store could not be reached while resolving a category"""


class ClassifierError(SchoolFocusError):
    """The external AI classifier failed, timed out or returned unusable content"""


class RuleValidationError(SchoolFocusError, ValueError):
    """Invalid category/subcategory or malformed rule input at a mutation boundary"""


class RuleNotFoundError(SchoolFocusError, LookupError):
    """A rule addressed by id does not exist"""


class SuggestionNotFoundError(SchoolFocusError, LookupError):
    """A suggestion addressed by id does not exist"""


class SuggestionConflictError(SchoolFocusError):
    """A suggestion was reviewed again after reaching a terminal status"""

class OrderedTreeError(Exception):
    """base class for all errors raised by the tree"""


class InvalidConfiguration(OrderedTreeError, ValueError):
    """order of the tree is not an integer >= 2"""


class NullElement(OrderedTreeError, TypeError):
    """None cannot be stored when natural ordering is used"""


class IncomparableElement(OrderedTreeError, TypeError):
    """element cannot be compared with the elements already in the tree"""


class InternalInvariantViolation(OrderedTreeError, AssertionError):
    """
        the tree reached a state its own insert logic must never produce
        - never caused by the caller, always a defect in the tree
    """

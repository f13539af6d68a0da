"""Conversion: legacy query text -> target view/function DDL.

The converter and reference resolver depend on :mod:`qb_sql.mapping`, which
itself uses the name helpers here, so they are imported lazily.
"""

from .ddl import BoundParameter, QueryClass, bind_parameters, classify, infer_output_columns, synthesize
from .function_map import FUNCTION_MAP, UNPORTABLE_FUNCTIONS, FunctionRule
from .functions import FunctionTranslation, translate_functions
from .names import param_name, quote_ident, sanitize_name
from .syntax import qualify_functions, qualify_tables, rewrite_syntax

_LAZY = {
    "QueryConverter": ".converter",
    "convert_query": ".converter",
    "convert_expression": ".converter",
    "ReferenceResolver": ".references",
    "Resolution": ".references",
    "state_subquery": ".references",
    "SESSION_SETTING": ".references",
    "STATE_TABLE": ".references",
    "TEMPVARS_TABLE": ".references",
}


def __getattr__(name: str):
    """Lazy import for mapping-dependent members."""
    if name in _LAZY:
        import importlib
        module = importlib.import_module(_LAZY[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "QueryConverter",
    "convert_query",
    "convert_expression",
    "BoundParameter",
    "QueryClass",
    "bind_parameters",
    "classify",
    "infer_output_columns",
    "synthesize",
    "FUNCTION_MAP",
    "UNPORTABLE_FUNCTIONS",
    "FunctionRule",
    "FunctionTranslation",
    "translate_functions",
    "param_name",
    "quote_ident",
    "sanitize_name",
    "SESSION_SETTING",
    "STATE_TABLE",
    "TEMPVARS_TABLE",
    "ReferenceResolver",
    "Resolution",
    "state_subquery",
    "qualify_functions",
    "qualify_tables",
    "rewrite_syntax",
]

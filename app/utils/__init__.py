from app.utils.formula import evaluate, evaluate_int, validate_formula
from app.utils.paths import delete_path, get_path, has_path, set_path
from app.utils.text import fold, normalize, strip_accents

__all__ = [
    "evaluate",
    "evaluate_int",
    "validate_formula",
    "delete_path",
    "get_path",
    "has_path",
    "set_path",
    "fold",
    "normalize",
    "strip_accents",
]
